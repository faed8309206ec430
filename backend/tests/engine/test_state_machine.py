"""
状态机引擎测试
"""
import pytest

from core.engine.state_machine import StateMachine, StateMachineConfig, StateTransition


@pytest.fixture
def machine():
    return StateMachine(StateMachineConfig(
        name="Door",
        states=["closed", "open", "locked"],
        transitions=[
            StateTransition("closed", "open", "open"),
            StateTransition("open", "closed", "close"),
            StateTransition("closed", "locked", "lock", condition=lambda ctx: ctx.get("has_key", False)),
        ],
        initial_state="closed",
    ))


class TestStateMachine:

    def test_can_transition(self, machine):
        assert machine.can_transition("closed", "open")
        assert not machine.can_transition("open", "locked")

    def test_condition(self, machine):
        assert not machine.can_transition("closed", "locked")
        assert machine.can_transition("closed", "locked", {"has_key": True})

    def test_find_transition(self, machine):
        assert machine.find_transition("closed", "locked").trigger == "lock"
        assert machine.find_transition("locked", "open") is None

    def test_unknown_state_in_config(self):
        with pytest.raises(ValueError):
            StateMachine(StateMachineConfig(
                name="Bad", states=["a"], transitions=[StateTransition("a", "b", "go")], initial_state="a",
            ))
