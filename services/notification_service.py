import logging
from typing import Any, Dict

import discord

from interfaces.service_interface import IMessageTransport
from services.exceptions import UpstreamFailure
from ui.components import to_message_kwargs

logger = logging.getLogger(__name__)


class DiscordMessageTransport(IMessageTransport):
    """Posts and edits alert messages through the bot's HTTP client"""

    def __init__(self, bot: discord.Client):
        self.bot = bot

    async def create_message(self, channel_id: int, body: Dict[str, Any]) -> str:
        """Send a message to a channel and return its id"""
        channel = self.bot.get_partial_messageable(int(channel_id))
        try:
            message = await channel.send(**to_message_kwargs(body))
        except discord.HTTPException as e:
            logger.warning(f"Failed to send message to channel {channel_id}: {e}")
            raise UpstreamFailure(f"Discord rejected the message: {e.text or e}", status=e.status) from e
        return str(message.id)

    async def update_message(self, channel_id: int, message_id: str, body: Dict[str, Any]) -> None:
        """Edit an existing message"""
        channel = self.bot.get_partial_messageable(int(channel_id))
        message = channel.get_partial_message(int(message_id))
        try:
            await message.edit(**to_message_kwargs(body, editing=True))
        except discord.HTTPException as e:
            logger.warning(f"Failed to edit message {message_id} in channel {channel_id}: {e}")
            raise UpstreamFailure(f"Discord rejected the update: {e.text or e}", status=e.status) from e

    async def update_deferred_response(self, interaction: discord.Interaction, body: Dict[str, Any]) -> None:
        """Replace the 'thinking...' placeholder of a deferred interaction"""
        try:
            await interaction.edit_original_response(**to_message_kwargs(body, editing=True))
        except discord.HTTPException as e:
            logger.warning(f"Failed to update deferred response: {e}")
            raise UpstreamFailure(f"Discord rejected the response: {e.text or e}", status=e.status) from e
