from courier.transport.base import (
    InboundMessage,
    MessageHandler,
    SentMessage,
    StatusSink,
    Transport,
    TransportError,
)

__all__ = [
    "InboundMessage",
    "MessageHandler",
    "SentMessage",
    "StatusSink",
    "Transport",
    "TransportError",
]
