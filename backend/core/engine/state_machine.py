"""
core/engine/state_machine.py

状态机引擎 - 声明式的状态转换表
状态本身由调用方持久化（例如 ORM 字段），状态机只回答
"从 A 能否经由某个动作到达 B"，因此可以被多个实体并发共享。
"""
from typing import Dict, List, Any, Optional, Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class StateTransition:
    """
    状态转换定义

    Attributes:
        from_state: 源状态
        to_state: 目标状态
        trigger: 触发动作
        condition: 可选的转换条件，接收调用方提供的上下文
    """

    from_state: str
    to_state: str
    trigger: str
    condition: Optional[Callable[[Dict[str, Any]], bool]] = None

    def is_allowed(self, context: Dict[str, Any]) -> bool:
        """检查转换条件"""
        if self.condition is None:
            return True
        return bool(self.condition(context))


@dataclass
class StateMachineConfig:
    """
    状态机配置

    Attributes:
        name: 状态机名称
        states: 所有状态的列表
        transitions: 转换列表
        initial_state: 默认初始状态
    """

    name: str
    states: List[str]
    transitions: List[StateTransition]
    initial_state: str


class StateMachine:
    """
    无状态的状态机

    Example:
        >>> machine = StateMachine(StateMachineConfig(
        ...     name="Reservation",
        ...     states=["pending", "confirmed"],
        ...     transitions=[StateTransition("pending", "confirmed", "confirm")],
        ...     initial_state="pending",
        ... ))
        >>> machine.can_transition("pending", "confirmed")
        True
    """

    def __init__(self, config: StateMachineConfig):
        for t in config.transitions:
            if t.from_state not in config.states or t.to_state not in config.states:
                raise ValueError(f"Transition {t.from_state}->{t.to_state} uses unknown state")
        if config.initial_state not in config.states:
            raise ValueError(f"Unknown initial state: {config.initial_state}")

        # 构建转换映射: from_state -> to_state -> transition
        self._transition_map: Dict[str, Dict[str, StateTransition]] = {}
        for t in config.transitions:
            self._transition_map.setdefault(t.from_state, {})[t.to_state] = t

    def find_transition(self, from_state: str, to_state: str) -> Optional[StateTransition]:
        """查找 from_state -> to_state 的转换定义"""
        return self._transition_map.get(from_state, {}).get(to_state)

    def can_transition(self, from_state: str, to_state: str,
                       context: Optional[Dict[str, Any]] = None) -> bool:
        """
        检查是否可以从 from_state 转换到 to_state

        Args:
            from_state: 当前状态
            to_state: 目标状态
            context: 可选的上下文数据（传给转换条件）

        Returns:
            True 如果转换被允许
        """
        transition = self.find_transition(from_state, to_state)
        if transition is None:
            return False
        return transition.is_allowed(context or {})


__all__ = [
    "StateTransition",
    "StateMachineConfig",
    "StateMachine",
]
