import logging
import traceback
import discord
from typing import Optional, Union
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

LEVEL_COLORS = {
    "DEBUG": 0x99AAB5,
    "INFO": 0x3498DB,
    "WARNING": 0xF1C40F,
    "ERROR": 0xE74C3C,
}


def setup_logging(log_level: str = 'INFO', log_file: Optional[str] = 'bot.log') -> None:
    """Configure the root logger once for the whole process"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers
    )
    # discord.py is chatty at DEBUG
    logging.getLogger('discord').setLevel(logging.INFO)


class LoggingService:
    """Service for handling logging and error reporting"""

    def __init__(self, log_channel_id: Optional[int] = None):
        self.bot = None
        self.log_channel_id = log_channel_id
        self.logger = logging.getLogger(__name__)

    def set_bot(self, bot: discord.Client) -> None:
        """Set bot instance for Discord channel logging"""
        self.bot = bot

    async def log_debug(self, message: str) -> None:
        """Log debug message"""
        self.logger.debug(message)

    async def log_info(self, message: str) -> None:
        """Log info message"""
        self.logger.info(message)
        await self._log_to_discord("INFO", message)

    async def log_warning(self, message: str) -> None:
        """Log warning message"""
        self.logger.warning(message)
        await self._log_to_discord("WARNING", message)

    async def log_error(self, error: Union[Exception, str], context: str = "") -> None:
        """Log error message with optional context"""
        error_message = f"{context}: {str(error)}" if context else str(error)
        self.logger.error(error_message)
        await self._log_to_discord("ERROR", error_message, error if isinstance(error, Exception) else None)

    async def _log_to_discord(self, level: str, message: str, error: Optional[Exception] = None) -> None:
        """Mirror a log line to the configured Discord channel"""
        if not self.bot or not self.log_channel_id:
            return

        try:
            channel = self.bot.get_partial_messageable(self.log_channel_id)
            embed = discord.Embed(
                title=f"Bot Log - {level}",
                description=message[:4000],
                color=LEVEL_COLORS.get(level, 0),
                timestamp=datetime.now(timezone.utc)
            )
            if error is not None and error.__traceback__ is not None:
                tb = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
                if len(tb) > 1000:
                    tb = tb[:997] + "..."
                embed.add_field(name="Traceback", value=f"```python\n{tb}```", inline=False)
            await channel.send(embed=embed)
        except discord.HTTPException as e:
            self.logger.error(f"Failed to log to Discord: {e}")
