"""Unit tests for the exchange state machine."""

import pytest

from chainhttp.state_machine import (
    ExchangeState,
    ExchangeStateError,
    ExchangeStateMachine,
)


class TestExchangeState:
    """Tests for ExchangeState enum."""

    @pytest.mark.unit
    def test_all_states_defined(self) -> None:
        """Test that all expected states are defined."""
        expected = {"UNSENT", "CACHE_HIT", "SENT", "REDIRECTING", "COMPLETED", "FAILED"}
        assert {state.name for state in ExchangeState} == expected


class TestExchangeStateMachine:
    """Tests for ExchangeStateMachine."""

    @pytest.mark.unit
    def test_initial_state(self) -> None:
        """Test that initial state is UNSENT."""
        machine = ExchangeStateMachine("http://example.com/")
        assert machine.state == ExchangeState.UNSENT
        assert machine.hops == 0
        assert not machine.is_terminal()

    @pytest.mark.unit
    def test_cache_hit_path(self) -> None:
        """Test UNSENT -> CACHE_HIT -> COMPLETED."""
        machine = ExchangeStateMachine("http://example.com/")
        machine.transition(ExchangeState.CACHE_HIT)
        machine.transition(ExchangeState.COMPLETED)
        assert machine.is_completed()
        assert machine.hops == 0

    @pytest.mark.unit
    def test_redirect_hops_are_counted(self) -> None:
        """Test that each REDIRECTING transition counts one hop."""
        machine = ExchangeStateMachine("http://example.com/")
        machine.transition(ExchangeState.SENT)
        machine.transition(ExchangeState.REDIRECTING)
        machine.transition(ExchangeState.REDIRECTING)
        machine.transition(ExchangeState.REDIRECTING)
        machine.transition(ExchangeState.COMPLETED)
        assert machine.hops == 3
        assert machine.is_terminal()

    @pytest.mark.unit
    def test_failure_from_sent(self) -> None:
        """Test that a sent exchange may fail."""
        machine = ExchangeStateMachine("http://example.com/")
        machine.transition(ExchangeState.SENT)
        machine.transition(ExchangeState.FAILED)
        assert machine.is_failed()

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("path", "target"),
        [
            ([], ExchangeState.COMPLETED),
            ([], ExchangeState.REDIRECTING),
            ([ExchangeState.CACHE_HIT], ExchangeState.REDIRECTING),
            ([ExchangeState.CACHE_HIT], ExchangeState.FAILED),
            ([ExchangeState.SENT, ExchangeState.COMPLETED], ExchangeState.SENT),
            ([ExchangeState.SENT, ExchangeState.FAILED], ExchangeState.COMPLETED),
        ],
    )
    def test_invalid_transitions(
        self, path: list[ExchangeState], target: ExchangeState
    ) -> None:
        """Test that invalid transitions raise ExchangeStateError."""
        machine = ExchangeStateMachine("http://example.com/")
        for state in path:
            machine.transition(state)

        assert not machine.can_transition(target)
        with pytest.raises(ExchangeStateError) as exc_info:
            machine.transition(target)

        assert exc_info.value.to_state == target
        assert machine.state == (path[-1] if path else ExchangeState.UNSENT)
