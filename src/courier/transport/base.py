from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from courier.logging import get_logger

log = get_logger("transport")


class TransportError(RuntimeError):
    """The chat connection could not be established or was lost."""


class SentMessage(ABC):
    @abstractmethod
    async def edit(self, text: str) -> None:
        """Replace the message body."""


class InboundMessage(ABC):
    """A chat message delivered to the bot."""

    def __init__(
        self,
        *,
        author_id: str,
        author_tag: str,
        channel_id: str,
        content: str,
        author_is_bot: bool = False,
        is_private: bool = False,
        mentions_bot: bool = False,
    ) -> None:
        self.author_id = author_id
        self.author_tag = author_tag
        self.channel_id = channel_id
        self.content = content
        self.author_is_bot = author_is_bot
        self.is_private = is_private
        self.mentions_bot = mentions_bot

    @abstractmethod
    async def reply(self, text: str) -> SentMessage:
        """Send a reply and return a handle that can be edited later."""


MessageHandler = Callable[[InboundMessage], Awaitable[None]]


class Transport(ABC):
    @property
    @abstractmethod
    def bot_tag(self) -> str | None:
        """Display name of the connected bot account."""

    @abstractmethod
    async def start(self, handler: MessageHandler) -> None:
        """Connect and deliver inbound messages to ``handler`` until closed."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""


class StatusSink:
    """Editable status message with the transport's size limit applied."""

    def __init__(self, message: SentMessage, limit: int = 2000) -> None:
        self.message = message
        self.limit = limit
        self.finalized = False

    async def update(self, text: str, is_final: bool = False) -> None:
        """Edit the message; once a final update lands, later ones are dropped."""
        if self.finalized:
            log.debug("Status message already final, dropping update (%d chars)", len(text))
            return
        await self.message.edit(text[: self.limit])
        if is_final:
            self.finalized = True
