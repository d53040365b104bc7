from __future__ import annotations

import os
import time
from typing import Optional

from fastapi import APIRouter, Depends

from rangeserve.api.deps import get_client_sessions, get_governor
from rangeserve.runtime.client_sessions import ClientSessionRegistry
from rangeserve.schemas.diagnostics import StreamDiagnosticsOut, TransferSessionOut
from rangeserve.services.concurrency_governor import ConcurrencyGovernor

router = APIRouter()


def _open_file_descriptors() -> Optional[int]:
    # Linux only; elsewhere the field is left out
    try:
        return len(os.listdir("/proc/self/fd"))
    except OSError:
        return None


@router.get("/streams", response_model=StreamDiagnosticsOut)
async def get_stream_diagnostics(
    governor: ConcurrencyGovernor = Depends(get_governor),
    client_sessions: ClientSessionRegistry = Depends(get_client_sessions),
) -> StreamDiagnosticsOut:
    snap = governor.snapshot()
    now = time.monotonic()
    return StreamDiagnosticsOut(
        active_count=snap.active_count,
        max_concurrent=snap.max_concurrent,
        per_resource=snap.per_resource,
        totals=snap.totals,
        unique_client_sessions=client_sessions.count(),
        open_file_descriptors=_open_file_descriptors(),
        sessions=[
            TransferSessionOut(
                session_id=s.session_id,
                resource_id=s.resource_id,
                client_session=s.client_session,
                state=s.state.value,
                range_start=s.byte_range.start if s.byte_range else None,
                range_end=s.byte_range.end if s.byte_range else None,
                bytes_sent=s.bytes_sent,
                age_seconds=round(now - s.started_at, 3),
                idle_seconds=round(now - s.last_progress_at, 3),
            )
            for s in snap.sessions
        ],
    )
