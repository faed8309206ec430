"""
事件处理器 - 预订与积分之间的衔接
订阅预订事件，由调用方决定是否累积 / 冲销积分；取消政策本身不记账
"""
from decimal import Decimal
from typing import Callable
import logging

from core.engine.event_bus import Event, event_bus
from app.config import settings
from app.database import SessionLocal
from app.models.events import EventType
from app.models.ontology import LedgerCategory, ResourceKind

logger = logging.getLogger(__name__)

RESERVATION_REFERENCE = "reservation"


class LoyaltyEventHandlers:
    """
    积分事件处理器

    支持依赖注入以便于测试：
    - db_session_factory: 数据库会话工厂
    - app_settings: 开关配置
    - event_publisher: 积分服务发布事件用的发布器
    """

    def __init__(
        self,
        db_session_factory: Callable = None,
        app_settings=None,
        event_publisher: Callable[[Event], None] = None,
    ):
        self._db_session_factory = db_session_factory or SessionLocal
        self._settings = app_settings or settings
        self._event_publisher = event_publisher
        self._registered = False

    def _services(self, db):
        from app.services.ledger_service import LedgerService
        from app.services.reward_config_service import RewardConfigService
        config = RewardConfigService(db, event_publisher=self._event_publisher).snapshot()
        return LedgerService(db, event_publisher=self._event_publisher), config

    def handle_reservation_created(self, event: Event) -> None:
        """
        预订创建：累积积分

        房间按次累积 booking 积分，乐器按租金累积 rental 积分。
        """
        if not self._settings.BOOKING_ACCRUAL_ENABLED:
            return

        data = event.data
        reservation_id = data.get("reservation_id")
        member_id = data.get("requester_id")
        if not reservation_id or not member_id:
            logger.warning(f"Invalid reservation.created event: {data}")
            return

        if data.get("resource_kind") == ResourceKind.ROOM.value:
            category = LedgerCategory.BOOKING
        else:
            category = LedgerCategory.RENTAL

        db = self._db_session_factory()
        try:
            ledger, config = self._services(db)
            result = ledger.accrue(
                member_id, category, config,
                spend=Decimal(str(data.get("price") or 0)),
                description=f"{data.get('resource_name', '')} 预订 #{reservation_id}",
                reference_type=RESERVATION_REFERENCE,
                reference_id=str(reservation_id),
            )
            if not result.success:
                logger.warning(f"Accrual for reservation {reservation_id} rejected: {result.error.message}")
        finally:
            db.close()

    def handle_reservation_cancelled(self, event: Event) -> None:
        """预订取消：冲销该预订累积的积分"""
        if not self._settings.REVERSE_ACCRUAL_ON_CANCEL:
            return

        data = event.data
        reservation_id = data.get("reservation_id")
        member_id = data.get("requester_id")
        if not reservation_id or not member_id:
            logger.warning(f"Invalid reservation.cancelled event: {data}")
            return

        db = self._db_session_factory()
        try:
            ledger, config = self._services(db)
            result = ledger.reverse_reference(
                member_id, RESERVATION_REFERENCE, str(reservation_id), config,
                description=f"预订 #{reservation_id} 取消，冲销积分",
            )
            if result.success and result.value:
                logger.info(f"Reversed {len(result.value)} entries for cancelled reservation {reservation_id}")
        finally:
            db.close()

    def register_handlers(self, event_bus_instance=None) -> None:
        """注册所有事件处理器"""
        if self._registered:
            return

        bus = event_bus_instance or event_bus
        bus.subscribe(EventType.RESERVATION_CREATED, self.handle_reservation_created)
        bus.subscribe(EventType.RESERVATION_CANCELLED, self.handle_reservation_cancelled)

        self._registered = True
        logger.info("Loyalty event handlers registered")

    def unregister_handlers(self, event_bus_instance=None) -> None:
        """取消注册所有事件处理器（用于测试）"""
        bus = event_bus_instance or event_bus
        bus.unsubscribe(EventType.RESERVATION_CREATED, self.handle_reservation_created)
        bus.unsubscribe(EventType.RESERVATION_CANCELLED, self.handle_reservation_cancelled)

        self._registered = False
        logger.info("Loyalty event handlers unregistered")


# 全局事件处理器实例
event_handlers = LoyaltyEventHandlers()


def register_event_handlers():
    """注册所有事件处理器（应用启动时调用）"""
    event_handlers.register_handlers()
