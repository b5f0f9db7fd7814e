"""
Message Channel Module.

A Channel is the asynchronous boundary between a document producer and
the DocumentHandler: messages go out with send() and come in with
receive(); receive() returns None once the peer has disconnected.

QueueChannel is the in-process implementation used by the CLI and the
tests. Two channels created by create_channel_pair() are wired back to
back: what one sends, the other receives.

Author: ML Engineering Team
"""

import asyncio
from typing import Any, Dict, Optional, Tuple

from bill_extraction.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)

Message = Dict[str, Any]


class Channel:
    """Interface of a bidirectional message channel."""

    async def send(self, message: Message) -> None:
        raise NotImplementedError

    async def receive(self) -> Optional[Message]:
        """Next message, or None after a disconnect."""
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


class QueueChannel(Channel):
    """
    asyncio.Queue backed channel endpoint.

    Attributes:
        name: Endpoint name used in log messages

    Example:
        >>> client, server = create_channel_pair()
        >>> await client.send({"type": "INIT_PDF_TRANSFER", "totalChunks": 2})
        >>> await server.receive()
        {'type': 'INIT_PDF_TRANSFER', 'totalChunks': 2}
    """

    def __init__(
        self,
        inbox: "asyncio.Queue[Optional[Message]]",
        outbox: "asyncio.Queue[Optional[Message]]",
        name: str = "channel"
    ) -> None:
        self.name = name
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False
        self._peer_closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Message) -> None:
        if self._closed:
            raise ConnectionError(f"{self.name} is closed")
        await self._outbox.put(message)

    async def receive(self) -> Optional[Message]:
        if self._peer_closed:
            return None
        message = await self._inbox.get()
        if message is None:
            self._peer_closed = True
            logger.debug(f"{self.name}: peer disconnected")
        return message

    async def close(self) -> None:
        """Disconnect; the peer's next receive() returns None."""
        if self._closed:
            return
        self._closed = True
        await self._outbox.put(None)


def create_channel_pair() -> Tuple[QueueChannel, QueueChannel]:
    """
    Two connected channel endpoints.

    Returns:
        (client, server) pair.
    """
    to_server: "asyncio.Queue[Optional[Message]]" = asyncio.Queue()
    to_client: "asyncio.Queue[Optional[Message]]" = asyncio.Queue()
    client = QueueChannel(inbox=to_client, outbox=to_server, name="client")
    server = QueueChannel(inbox=to_server, outbox=to_client, name="server")
    return client, server
