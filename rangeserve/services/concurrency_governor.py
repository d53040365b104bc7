from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from rangeserve.core.errors import CapacityError
from rangeserve.models import ByteRange, TransferSession, TransferState


class _ConcurrencyBudget:
    """Live-transfer count vs. ceiling. Only the governor touches it, under its lock."""

    __slots__ = ("active_count", "max_concurrent")

    def __init__(self, max_concurrent: int):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.active_count = 0
        self.max_concurrent = max_concurrent


@dataclass(frozen=True)
class GovernorSnapshot:
    active_count: int
    max_concurrent: int
    per_resource: dict[str, int] = field(default_factory=dict)
    sessions: list[TransferSession] = field(default_factory=list)
    totals: dict[str, int] = field(default_factory=dict)


class ConcurrencyGovernor:
    """
    Admission control for byte-range transfers.

    try_admit/release are the only ways to change the budget. Both take a
    threading.Lock so they are safe from the event loop and from worker
    threads alike; neither blocks for longer than a dict update.
    """

    def __init__(self, max_concurrent: int):
        self._budget = _ConcurrencyBudget(max_concurrent)
        self._lock = threading.Lock()
        self._live: dict[str, TransferSession] = {}
        self._per_resource: Counter[str] = Counter()
        self._totals: Counter[str] = Counter()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def max_concurrent(self) -> int:
        return self._budget.max_concurrent

    @property
    def active_count(self) -> int:
        with self._lock:
            return self._budget.active_count

    def try_admit(
        self,
        resource_id: str,
        *,
        byte_range: Optional[ByteRange] = None,
        client_session: Optional[str] = None,
    ) -> TransferSession:
        """Admit a new transfer or raise CapacityError. The returned session is the admission ticket."""
        with self._lock:
            if self._budget.active_count >= self._budget.max_concurrent:
                self._totals["rejected"] += 1
                rejected = TransferSession(
                    resource_id=resource_id,
                    byte_range=byte_range,
                    client_session=client_session,
                    state=TransferState.REJECTED,
                )
                raise CapacityError(rejected, self._budget.active_count, self._budget.max_concurrent)

            session = TransferSession(
                resource_id=resource_id,
                byte_range=byte_range,
                client_session=client_session,
            )
            self._budget.active_count += 1
            self._live[session.session_id] = session
            self._per_resource[resource_id] += 1
            self._totals["admitted"] += 1

        session.bind_release(self.release)
        return session

    def release(self, session: TransferSession) -> bool:
        """Give back the session's slot. Releasing twice (or a never-admitted session) is a no-op."""
        with self._lock:
            if self._live.pop(session.session_id, None) is None:
                return False
            self._budget.active_count -= 1
            self._per_resource[session.resource_id] -= 1
            if self._per_resource[session.resource_id] <= 0:
                del self._per_resource[session.resource_id]
            outcome = session.state.value if session.is_terminal else "released"
            self._totals[outcome] += 1
        return True

    def sweep_stale(self, max_idle: float, *, now: Optional[float] = None) -> int:
        """
        Abort live sessions with no progress for `max_idle` seconds.
        Backstop for transfers whose terminal transition never ran.
        """
        now = time.monotonic() if now is None else now
        with self._lock:
            stale = [s for s in self._live.values() if now - s.last_progress_at >= max_idle]

        swept = 0
        for session in stale:
            if session.abort("stale"):
                swept += 1
            else:
                # terminal but still listed: the release callback was lost
                swept += int(self.release(session))
        if swept:
            self.logger.warning("Swept %d stale transfer(s); active=%d", swept, self.active_count)
        return swept

    def snapshot(self) -> GovernorSnapshot:
        with self._lock:
            return GovernorSnapshot(
                active_count=self._budget.active_count,
                max_concurrent=self._budget.max_concurrent,
                per_resource=dict(self._per_resource),
                sessions=list(self._live.values()),
                totals=dict(self._totals),
            )


async def sweep_forever(governor: ConcurrencyGovernor, *, interval: float, max_idle: float) -> None:
    """Background task: periodically sweep stale transfers."""
    while True:
        await asyncio.sleep(interval)
        governor.sweep_stale(max_idle)
