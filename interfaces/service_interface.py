from abc import ABC, abstractmethod
from typing import Any, Dict

import discord


class IMessageTransport(ABC):
    """Interface for posting and editing Discord messages

    Non-success responses raise UpstreamFailure.
    """

    @abstractmethod
    async def create_message(self, channel_id: int, body: Dict[str, Any]) -> str:
        """Post a message and return its id"""
        pass

    @abstractmethod
    async def update_message(self, channel_id: int, message_id: str, body: Dict[str, Any]) -> None:
        """Edit a message in place"""
        pass

    @abstractmethod
    async def update_deferred_response(self, interaction: discord.Interaction, body: Dict[str, Any]) -> None:
        """Replace the deferred response of an interaction"""
        pass
