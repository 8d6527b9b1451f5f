import logging
from typing import Any, Awaitable, Callable, Dict

from discord import Interaction

from services.exceptions import StreamAlertError

logger = logging.getLogger(__name__)

CommandWork = Callable[[], Awaitable[Dict[str, Any]]]


async def run_deferred(bot, interaction: Interaction, work: CommandWork) -> None:
    """Acknowledge the interaction, then finish `work` in the background

    `work` is called only once the acknowledgement went through. It resolves
    to a message body that replaces the deferred response.
    """
    await interaction.response.defer(ephemeral=True)
    bot.task_runner.submit(_finish(bot, interaction, work), name=f"command-{interaction.id}")


async def _finish(bot, interaction: Interaction, work: CommandWork) -> None:
    try:
        body = await work()
    except StreamAlertError as e:
        logger.info(f"Command failed: {e}")
        body = bot.error_handler.build_error_body(e)
    except Exception as e:
        logger.exception("Unexpected error in command")
        await bot.logging_service.log_error(e, "Command error")
        body = bot.error_handler.build_error_body(e)
    await bot.transport.update_deferred_response(interaction, body)
