"""
取消政策

只有一条规则：距离预订的计划开始时间不足窗口（默认 24 小时）时取消，
收取价格的一定比例（默认 50%）作为取消费，否则免费。
开始时间已经过去的预订同样可以取消，此时按晚取消计费。
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CancellationPolicy:
    window_hours: int = 24
    fee_rate: Decimal = Decimal("0.5")

    @property
    def window(self) -> timedelta:
        return timedelta(hours=self.window_hours)

    def is_late(self, start_at: datetime, now: datetime) -> bool:
        """按计划开始时间（而非创建时间）判断"""
        return start_at - now < self.window

    def fee_for(self, price: Decimal, start_at: datetime, now: datetime) -> Decimal:
        """计算取消费"""
        if not self.is_late(start_at, now):
            return Decimal("0.00")
        fee = Decimal(str(price)) * Decimal(str(self.fee_rate))
        return fee.quantize(CENT, rounding=ROUND_HALF_UP)

    @classmethod
    def from_settings(cls, settings) -> "CancellationPolicy":
        return cls(
            window_hours=settings.CANCELLATION_WINDOW_HOURS,
            fee_rate=Decimal(str(settings.CANCELLATION_FEE_RATE)),
        )
