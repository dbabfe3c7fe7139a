"""Exchange lifecycle state machine for a single call."""

from enum import Enum, auto
from typing import ClassVar

import structlog


logger = structlog.get_logger()


class ExchangeState(Enum):
    """Exchange lifecycle states.

    State transitions:
        UNSENT -> CACHE_HIT: Cached snapshot found, no network call
        UNSENT -> SENT: Round trip issued
        UNSENT -> FAILED: Request could not be finalized or sent
        SENT -> REDIRECTING: 3xx response being followed
        SENT -> COMPLETED / FAILED: Final response received or transport failure
        REDIRECTING -> REDIRECTING: Another hop
        REDIRECTING -> COMPLETED / FAILED: Chain resolved
        CACHE_HIT -> COMPLETED: Cached response exposed
    """

    UNSENT = auto()
    CACHE_HIT = auto()
    SENT = auto()
    REDIRECTING = auto()
    COMPLETED = auto()
    FAILED = auto()


class ExchangeStateError(Exception):
    """Raised when an invalid exchange state transition is attempted."""

    def __init__(self, from_state: ExchangeState, to_state: ExchangeState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid exchange state transition: {from_state.name} -> {to_state.name}"
        )


class ExchangeStateMachine:
    """State machine for one request/response exchange.

    Enforces valid state transitions inside the executor and logs
    invariant violations when an invalid transition is attempted.
    """

    VALID_TRANSITIONS: ClassVar[dict[ExchangeState, set[ExchangeState]]] = {
        ExchangeState.UNSENT: {
            ExchangeState.CACHE_HIT,
            ExchangeState.SENT,
            ExchangeState.FAILED,
        },
        ExchangeState.CACHE_HIT: {ExchangeState.COMPLETED},
        ExchangeState.SENT: {
            ExchangeState.REDIRECTING,
            ExchangeState.COMPLETED,
            ExchangeState.FAILED,
        },
        ExchangeState.REDIRECTING: {
            ExchangeState.REDIRECTING,
            ExchangeState.COMPLETED,
            ExchangeState.FAILED,
        },
        ExchangeState.COMPLETED: set(),  # Terminal state
        ExchangeState.FAILED: set(),  # Terminal state
    }

    def __init__(self, url: str) -> None:
        """Initialize the state machine in UNSENT state.

        Args:
            url: Request URL for logging.
        """
        self._state = ExchangeState.UNSENT
        self._hops = 0
        self._log = logger.bind(component="executor", url=url)

    @property
    def state(self) -> ExchangeState:
        """Get the current state."""
        return self._state

    @property
    def hops(self) -> int:
        """Get the number of redirect hops taken."""
        return self._hops

    def can_transition(self, to_state: ExchangeState) -> bool:
        """Check if a transition to the given state is valid.

        Args:
            to_state: The target state.

        Returns:
            True if the transition is valid, False otherwise.
        """
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: ExchangeState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            ExchangeStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise ExchangeStateError(self._state, to_state)

        if to_state == ExchangeState.REDIRECTING:
            self._hops += 1
        old_state = self._state
        self._state = to_state
        self._log.debug(
            "exchange_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_terminal(self) -> bool:
        """Check if the current state is terminal (no more transitions allowed)."""
        return self._state in (ExchangeState.COMPLETED, ExchangeState.FAILED)

    def is_completed(self) -> bool:
        """Check if the exchange completed."""
        return self._state == ExchangeState.COMPLETED

    def is_failed(self) -> bool:
        """Check if the exchange failed."""
        return self._state == ExchangeState.FAILED
