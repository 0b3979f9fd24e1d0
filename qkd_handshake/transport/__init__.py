"""Classical transport between the peers."""

from qkd_handshake.transport.authenticated import AuthenticatedChannel
from qkd_handshake.transport.channel import (
    InMemoryLink,
    LinkEndpoint,
    Message,
    MessageChannel,
    MessageHandler,
)

__all__ = [
    "AuthenticatedChannel",
    "InMemoryLink",
    "LinkEndpoint",
    "Message",
    "MessageChannel",
    "MessageHandler",
]
