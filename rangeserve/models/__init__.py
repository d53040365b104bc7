from rangeserve.models.resource import ByteRange, Resource
from rangeserve.models.transfer import TERMINAL_STATES, TransferSession, TransferState

__all__ = [
    "ByteRange",
    "Resource",
    "TERMINAL_STATES",
    "TransferSession",
    "TransferState",
]
