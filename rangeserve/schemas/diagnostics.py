from pydantic import BaseModel
from typing import Dict, List, Optional


class TransferSessionOut(BaseModel):
    session_id: str
    resource_id: str
    client_session: Optional[str] = None
    state: str
    range_start: Optional[int] = None
    range_end: Optional[int] = None
    bytes_sent: int
    age_seconds: float
    idle_seconds: float


class StreamDiagnosticsOut(BaseModel):
    active_count: int
    max_concurrent: int
    per_resource: Dict[str, int] = {}
    totals: Dict[str, int] = {}
    unique_client_sessions: int
    open_file_descriptors: Optional[int] = None
    sessions: List[TransferSessionOut] = []
