from fastapi import Request

from rangeserve.core.config import Settings
from rangeserve.runtime.client_sessions import ClientSessionRegistry
from rangeserve.services.concurrency_governor import ConcurrencyGovernor
from rangeserve.services.stream_service import StreamService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_stream_service(request: Request) -> StreamService:
    return request.app.state.stream_service


def get_governor(request: Request) -> ConcurrencyGovernor:
    return request.app.state.governor


def get_client_sessions(request: Request) -> ClientSessionRegistry:
    return request.app.state.client_sessions
