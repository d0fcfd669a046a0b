from .base import Transport
from .direct import DirectTransport
from .legacy import LegacyMessagesTransport
from .sse import SSEStreamTransport

__all__ = [
    "Transport",
    "DirectTransport",
    "LegacyMessagesTransport",
    "SSEStreamTransport",
]
