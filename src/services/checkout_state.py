"""Lifecycle of a single checkout attempt."""

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class CheckoutState(str, Enum):
    """States of one checkout attempt."""

    RESOLVING = "resolving"
    PARTITIONING = "partitioning"
    PERSISTED = "persisted"
    SESSION_CREATED = "session_created"
    RECONCILED = "reconciled"
    ROLLED_BACK = "rolled_back"


ALLOWED_TRANSITIONS: dict[CheckoutState, frozenset[CheckoutState]] = {
    CheckoutState.RESOLVING: frozenset({CheckoutState.PARTITIONING}),
    CheckoutState.PARTITIONING: frozenset({CheckoutState.PERSISTED}),
    CheckoutState.PERSISTED: frozenset({CheckoutState.SESSION_CREATED, CheckoutState.ROLLED_BACK}),
    CheckoutState.SESSION_CREATED: frozenset({CheckoutState.RECONCILED, CheckoutState.ROLLED_BACK}),
    CheckoutState.RECONCILED: frozenset(),
    CheckoutState.ROLLED_BACK: frozenset(),
}


class IllegalCheckoutTransition(RuntimeError):
    """Raised when a checkout attempt is moved to a state it cannot reach."""

    def __init__(self, current: CheckoutState, target: CheckoutState) -> None:
        super().__init__(f"Illegal checkout transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


class CheckoutAttempt:
    """Tracks one checkout attempt through its states.

    An attempt starts in RESOLVING and ends in RECONCILED or ROLLED_BACK.
    No state is entered twice; a failed attempt is never resumed.
    """

    def __init__(self, nonce: str) -> None:
        self.nonce = nonce
        self.state = CheckoutState.RESOLVING
        self.history: list[CheckoutState] = [CheckoutState.RESOLVING]
        self.order_id: str | None = None
        self.session_id: str | None = None

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.state]

    @property
    def needs_compensation(self) -> bool:
        """Whether an order row exists that a failure must delete."""
        return self.state in (CheckoutState.PERSISTED, CheckoutState.SESSION_CREATED)

    def advance(self, target: CheckoutState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise IllegalCheckoutTransition(self.state, target)
        logger.debug("Checkout %s: %s -> %s", self.nonce, self.state.value, target.value)
        self.state = target
        self.history.append(target)

    def mark_persisted(self, order_id: str) -> None:
        self.advance(CheckoutState.PERSISTED)
        self.order_id = order_id

    def mark_session_created(self, session_id: str) -> None:
        self.advance(CheckoutState.SESSION_CREATED)
        self.session_id = session_id
