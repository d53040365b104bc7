from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from rangeserve.core.errors import InvalidTransitionError
from rangeserve.models.resource import ByteRange

# longer client tokens are truncated, never rejected
MAX_CLIENT_SESSION_LENGTH = 256


class TransferState(str, Enum):
    ADMITTED = "admitted"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    REJECTED = "rejected"


TERMINAL_STATES = frozenset({TransferState.COMPLETED, TransferState.ABORTED, TransferState.REJECTED})

_ALLOWED_TRANSITIONS: dict[TransferState, frozenset[TransferState]] = {
    TransferState.ADMITTED: frozenset({TransferState.STREAMING, TransferState.ABORTED}),
    TransferState.STREAMING: frozenset({TransferState.COMPLETED, TransferState.ABORTED}),
}


def _now() -> float:
    return time.monotonic()


@dataclass
class TransferSession:
    """
    One in-flight transfer. Owned by the request that created it; the
    governor only keeps it in its live set until the first terminal
    transition fires the release callback.
    """
    resource_id: str
    byte_range: Optional[ByteRange] = None
    client_session: Optional[str] = None
    state: TransferState = TransferState.ADMITTED
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: float = field(default_factory=_now)
    last_progress_at: float = field(default_factory=_now)
    bytes_sent: int = 0
    abort_reason: Optional[str] = None

    _on_terminal: Optional[Callable[["TransferSession"], object]] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.client_session is not None:
            self.client_session = self.client_session[:MAX_CLIENT_SESSION_LENGTH]

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def bind_release(self, callback: Callable[["TransferSession"], object]) -> None:
        self._on_terminal = callback

    def record_progress(self, n: int) -> None:
        if n < 0:
            raise ValueError("progress must be non-negative")
        self.bytes_sent += n
        self.last_progress_at = _now()

    def mark_streaming(self) -> None:
        self._transition(TransferState.STREAMING)

    def complete(self) -> None:
        self._transition(TransferState.COMPLETED)

    def abort(self, reason: str) -> bool:
        """Abort unless already terminal. Returns False when there was nothing to do."""
        if self.is_terminal:
            return False
        self.abort_reason = reason
        self._transition(TransferState.ABORTED)
        return True

    def _transition(self, new_state: TransferState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS.get(self.state, frozenset()):
            raise InvalidTransitionError(f"{self.state.value} -> {new_state.value}")
        self.state = new_state

        if new_state in TERMINAL_STATES and self._on_terminal is not None:
            # fire once
            callback, self._on_terminal = self._on_terminal, None
            callback(self)
