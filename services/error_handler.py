import discord
from discord import app_commands
import logging
from typing import Any, Dict, Union

from services.exceptions import (
    InvalidInput, LinkMismatch, NotFound, NotLinked, StreamAlertError, UpstreamFailure,
)
from services.logging_service import LoggingService
from ui.embeds import build_error_embed, error_body

GENERIC_ERROR = "An unexpected error occurred. Please try again later."


class ErrorHandler:
    """Turns command errors into user-facing replies and logs them"""

    def __init__(self, logging_service: LoggingService):
        self.logging_service = logging_service
        self.logger = logging.getLogger(__name__)

    async def handle_command_error(self, interaction: discord.Interaction,
                                   error: Union[Exception, app_commands.AppCommandError]) -> None:
        """Handle command errors and send appropriate responses"""
        if isinstance(error, app_commands.CommandInvokeError):
            error = error.original

        if isinstance(error, StreamAlertError) and not isinstance(error, UpstreamFailure):
            self.logger.info(f"Command rejected: {error}")
        else:
            await self.logging_service.log_error(error, "Command error")

        embed = discord.Embed.from_dict(build_error_embed(self.get_error_message(error)))
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            self.logger.error(f"Error in error handler: {e}")

    def build_error_body(self, error: Exception) -> Dict[str, Any]:
        """Message body for a deferred response that failed"""
        return error_body(self.get_error_message(error))

    def get_error_message(self, error: Exception) -> str:
        """Get user-friendly error message"""
        if isinstance(error, (NotFound, NotLinked, LinkMismatch, InvalidInput)):
            return str(error)

        elif isinstance(error, UpstreamFailure):
            return "Something went wrong while talking to Twitch, Kick or Discord. Please try again later."

        elif isinstance(error, app_commands.MissingPermissions):
            return "You don't have permission to use this command."

        elif isinstance(error, app_commands.BotMissingPermissions):
            return "I don't have the required permissions to execute this command."

        elif isinstance(error, app_commands.NoPrivateMessage):
            return "This command can only be used in servers."

        elif isinstance(error, app_commands.CommandOnCooldown):
            return f"Please wait {error.retry_after:.1f}s before using this command again."

        elif isinstance(error, app_commands.TransformerError):
            return f"Invalid input format: {str(error)}"

        else:
            # Log unexpected errors
            self.logger.error(f"Unexpected error: {type(error).__name__}: {str(error)}")
            return GENERIC_ERROR
