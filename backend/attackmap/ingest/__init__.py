from .buffer import RollingBuffer
from .connection import ConnectionManager, ConnectionState
from .validate import BatchResult, validate_batch, validate_event

__all__ = [
    "BatchResult",
    "ConnectionManager",
    "ConnectionState",
    "RollingBuffer",
    "validate_batch",
    "validate_event",
]
