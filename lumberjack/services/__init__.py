from .backends import CloudWatchBackend, LogBackend
from .tail import (
    BufferReplaced,
    EventsAppended,
    QueryFailed,
    TailController,
    TailMode,
    TailSession,
    TailStopped,
)

__all__ = [
    "BufferReplaced",
    "CloudWatchBackend",
    "EventsAppended",
    "LogBackend",
    "QueryFailed",
    "TailController",
    "TailMode",
    "TailSession",
    "TailStopped",
]
