"""
预订生命周期

pending → confirmed → completed，pending / confirmed → cancelled。
已取消与已完成是终态，状态不可逆。
"""
from typing import Any

from core.engine.state_machine import StateMachine, StateMachineConfig, StateTransition
from core.result import Result
from app.domain.actor import Actor
from app.domain.errors import ErrorKind

PENDING, CONFIRMED, CANCELLED, COMPLETED = "pending", "confirmed", "cancelled", "completed"

PAYMENT_STATUSES = ("pending", "paid", "refunded")


reservation_machine = StateMachine(StateMachineConfig(
    name="Reservation",
    states=[PENDING, CONFIRMED, CANCELLED, COMPLETED],
    transitions=[
        StateTransition(PENDING, CONFIRMED, "confirm"),
        StateTransition(CONFIRMED, COMPLETED, "complete"),
        StateTransition(PENDING, CANCELLED, "cancel"),
        StateTransition(CONFIRMED, CANCELLED, "cancel"),
    ],
    initial_state=PENDING,
))


def _value(status: Any) -> str:
    return getattr(status, "value", status)


def check_status_transition(current: Any, target: Any, requester_id: int, actor: Actor) -> Result:
    """
    校验状态迁移

    检查顺序：操作人权限 → 取消的终态检查 → 确认/完成的管理员检查 → 状态机。

    Returns:
        成功时 value 为目标状态字符串
    """
    current, target = _value(current), _value(target)

    if not actor.may_act_on(requester_id):
        return Result.fail(ErrorKind.UNAUTHORIZED, "只有预订人或管理员可以修改该预订")

    if target == CANCELLED:
        if current == CANCELLED:
            return Result.fail(ErrorKind.ALREADY_CANCELLED, "预订已取消")
        if current == COMPLETED:
            return Result.fail(ErrorKind.INVALID_TRANSITION, "已完成的预订不能取消")
    elif target in (CONFIRMED, COMPLETED):
        if not actor.is_admin:
            return Result.fail(ErrorKind.UNAUTHORIZED, "只有管理员可以确认或完成预订")

    if not reservation_machine.can_transition(current, target):
        return Result.fail(
            ErrorKind.INVALID_TRANSITION,
            f"不允许的状态变更: {current} -> {target}",
            current=current, target=target,
        )
    return Result.ok(target)


def check_payment_change(target: Any, actor: Actor) -> Result:
    """支付状态只能由管理员修改"""
    target = _value(target)
    if not actor.is_admin:
        return Result.fail(ErrorKind.UNAUTHORIZED, "只有管理员可以修改支付状态")
    if target not in PAYMENT_STATUSES:
        return Result.fail(ErrorKind.INVALID_TRANSITION, f"未知的支付状态: {target}")
    return Result.ok(target)
