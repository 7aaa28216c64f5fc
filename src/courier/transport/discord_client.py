from __future__ import annotations

import discord

from courier.logging import get_logger
from courier.transport.base import (
    InboundMessage,
    MessageHandler,
    SentMessage,
    Transport,
    TransportError,
)

log = get_logger("discord")


def build_intents() -> discord.Intents:
    intents = discord.Intents.none()
    intents.guilds = True
    intents.guild_messages = True
    intents.dm_messages = True
    intents.message_content = True
    return intents


class DiscordSentMessage(SentMessage):
    def __init__(self, message: discord.Message) -> None:
        self.message = message

    async def edit(self, text: str) -> None:
        await self.message.edit(content=text)


class DiscordInboundMessage(InboundMessage):
    def __init__(self, message: discord.Message, bot_user: discord.ClientUser | None) -> None:
        super().__init__(
            author_id=str(message.author.id),
            author_tag=str(message.author),
            channel_id=str(message.channel.id),
            content=message.content,
            author_is_bot=message.author.bot,
            is_private=message.guild is None,
            mentions_bot=bot_user is not None and bot_user.mentioned_in(message),
        )
        self.message = message

    async def reply(self, text: str) -> SentMessage:
        sent = await self.message.reply(text)
        return DiscordSentMessage(sent)


class DiscordTransport(Transport):
    def __init__(self, token: str, client: discord.Client | None = None) -> None:
        self.token = token
        self.client = client or discord.Client(intents=build_intents())
        self._handler: MessageHandler | None = None
        self.client.event(self.on_ready)
        self.client.event(self.on_message)

    @property
    def bot_tag(self) -> str | None:
        user = self.client.user
        return str(user) if user else None

    async def on_ready(self) -> None:
        log.info("Logged in as %s", self.bot_tag)
        log.info("Listening for direct messages and mentions...")

    async def on_message(self, message: discord.Message) -> None:
        if self._handler is None:
            return
        inbound = DiscordInboundMessage(message, self.client.user)
        log.debug(
            "Message received from %s in %s (dm: %s, mentioned: %s)",
            inbound.author_tag,
            inbound.channel_id,
            inbound.is_private,
            inbound.mentions_bot,
        )
        await self._handler(inbound)

    async def start(self, handler: MessageHandler) -> None:
        self._handler = handler
        log.info("Connecting to Discord...")
        try:
            await self.client.start(self.token)
        except (discord.DiscordException, OSError) as exc:
            raise TransportError(f"Discord connection failed: {exc}") from exc

    async def close(self) -> None:
        if not self.client.is_closed():
            await self.client.close()
