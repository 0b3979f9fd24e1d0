"""Classical message channel between the two peers.

The state machines only need a reliable, ordered, asynchronous channel that
carries JSON-able dictionaries. ``InMemoryLink`` provides one inside a single
process: sends are queued and handed to the receiving handler on ``pump()``,
so a handler that sends a reply never re-enters the other peer.
"""

import json
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Protocol, Tuple

from qkd_handshake.core.exceptions import ChannelUnavailableError
from qkd_handshake.utils.logging import get_logger

logger = get_logger(__name__)

Message = Dict[str, Any]
MessageHandler = Callable[[Message], None]


class MessageChannel(Protocol):
    """What the state machine consumes from its transport."""

    def send_message(self, message: Message) -> None:
        ...

    def on_message(self, handler: MessageHandler) -> None:
        ...


def _wire_copy(message: Message) -> Message:
    """Copy a message the way a wire would: through its JSON encoding."""
    try:
        return json.loads(json.dumps(message))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Message is not JSON-serializable: {e}") from e


class LinkEndpoint:
    """One side of an ``InMemoryLink``."""

    def __init__(self, link: "InMemoryLink", name: str) -> None:
        self._link = link
        self.name = name
        self._handler: Optional[MessageHandler] = None
        self.peer: Optional["LinkEndpoint"] = None

    def send_message(self, message: Message) -> None:
        """Queue ``message`` for the peer.

        Raises
        ------
        ChannelUnavailableError
            If the link has been closed.
        """
        if self._link.closed:
            raise ChannelUnavailableError(f"Link closed, cannot send from {self.name}")
        self._link._enqueue(self.peer, _wire_copy(message))

    def on_message(self, handler: MessageHandler) -> None:
        self._handler = handler

    def deliver(self, message: Message) -> None:
        if self._handler is None:
            raise ChannelUnavailableError(f"No message handler registered on {self.name}")
        self._handler(message)


class InMemoryLink:
    """Reliable, ordered, in-process link with two endpoints.

    Examples
    --------
    >>> link = InMemoryLink()
    >>> received = []
    >>> link.bob.on_message(received.append)
    >>> link.alice.send_message({"type": "ping"})
    >>> link.pump()
    1
    >>> received
    [{'type': 'ping'}]
    """

    def __init__(self, names: Tuple[str, str] = ("alice", "bob")) -> None:
        self.closed = False
        self._queue: Deque[Tuple[LinkEndpoint, Message]] = deque()
        self.alice = LinkEndpoint(self, names[0])
        self.bob = LinkEndpoint(self, names[1])
        self.alice.peer = self.bob
        self.bob.peer = self.alice

    @property
    def pending(self) -> int:
        """Messages queued but not yet delivered."""
        return len(self._queue)

    def _enqueue(self, endpoint: LinkEndpoint, message: Message) -> None:
        self._queue.append((endpoint, message))

    def pump(self, max_messages: Optional[int] = None) -> int:
        """Deliver queued messages in send order until the queue drains.

        Messages sent by handlers during delivery join the back of the queue.

        Parameters
        ----------
        max_messages : Optional[int]
            Stop after this many deliveries.

        Returns
        -------
        int
            Number of messages delivered.
        """
        delivered = 0
        while self._queue and not self.closed:
            if max_messages is not None and delivered >= max_messages:
                break
            endpoint, message = self._queue.popleft()
            logger.debug(f"-> {endpoint.name}: {message.get('type')}")
            endpoint.deliver(message)
            delivered += 1
        return delivered

    def close(self) -> None:
        """Close the link and discard undelivered messages."""
        self.closed = True
        self._queue.clear()
