import os
import asyncio
import logging

import discord
from discord import app_commands

from commands import CommandManager
from models.stream import Platform
from platforms.kick_platform import KickPlatform
from platforms.twitch_platform import TwitchPlatform
from services.config_manager import ConfigManager
from services.database_service import DatabaseService
from services.error_handler import ErrorHandler
from services.logging_service import LoggingService, setup_logging
from services.notification_dispatcher import NotificationDispatcher
from services.notification_service import DiscordMessageTransport
from services.session_lifecycle import SessionLifecycleService
from services.stream_link_registry import StreamLinkRegistry
from services.stream_monitor import StreamMonitor
from services.stream_state_resolver import StreamStateResolver
from services.stream_test_service import StreamTestService
from services.task_runner import TaskRunner
from utils.embed_builder import NotificationComposer

logger = logging.getLogger(__name__)


class NotificationBot(discord.Client):
    def __init__(self, config: ConfigManager):
        intents = discord.Intents.default()
        super().__init__(intents=intents)
        self.tree = app_commands.CommandTree(self)
        self.tree.on_error = self.on_app_command_error
        self.config = config
        self._ready = asyncio.Event()

        logger.info("Initializing services...")
        self.logging_service = LoggingService(config.get('log_channel_id'))
        self.logging_service.set_bot(self)
        self.error_handler = ErrorHandler(self.logging_service)
        self.task_runner = TaskRunner(self.logging_service)

        self.store = DatabaseService(
            config.get('db_path', 'bot_data.db'),
            claim_timeout_seconds=config.get('claim_timeout_seconds', 300)
        )
        self.platforms = {
            Platform.TWITCH: TwitchPlatform(config.get_platform_credentials('twitch')),
            Platform.KICK: KickPlatform(config.get_platform_credentials('kick')),
        }
        self.registry = StreamLinkRegistry(self.store)
        self.resolver = StreamStateResolver(self.platforms)
        self.composer = NotificationComposer(config.get('assets_base_url'))
        self.transport = DiscordMessageTransport(self)
        self.dispatcher = NotificationDispatcher(self.transport, self.composer)
        self.lifecycle = SessionLifecycleService(
            self.store, self.registry, self.resolver, self.dispatcher,
            merge_window_seconds=config.get('merge_window_seconds', 15)
        )
        self.monitor = StreamMonitor(
            self.store, self.resolver, self.lifecycle,
            logging_service=self.logging_service,
            check_interval=config.get('check_interval', 60)
        )
        self.test_service = StreamTestService(
            self.registry, self.resolver, self.composer, self.dispatcher,
            self.transport, self.error_handler
        )
        self.command_manager = CommandManager(self)
        logger.info("Services initialized successfully")

    async def setup_hook(self):
        """Setup bot hooks and initialize services"""
        logger.info("Initializing database...")
        await self.store.initialize()

        logger.info("Initializing platforms...")
        for platform in self.platforms.values():
            await platform.initialize()

        logger.info("Setting up commands...")
        self.command_manager.setup()

        logger.info("Syncing command tree...")
        await self.tree.sync()
        logger.info(f"Command tree synced: {', '.join(self.command_manager.names)}")

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        await self.error_handler.handle_command_error(interaction, error)

    async def on_ready(self):
        """Called when the bot is ready"""
        if self._ready.is_set():
            return

        logger.info(f'Logged in as {self.user.name} (ID: {self.user.id})')
        logger.info(f'Connected to {len(self.guilds)} guilds')

        await self.monitor.start_checking()
        self._ready.set()
        logger.info("Bot is fully ready")

    async def on_guild_join(self, guild: discord.Guild):
        await self.logging_service.log_info(f"Joined new guild: {guild.name} ({guild.id})")

    async def on_guild_remove(self, guild: discord.Guild):
        await self.logging_service.log_info(f"Left guild: {guild.name} ({guild.id})")

    async def close(self):
        """Cleanup before shutdown"""
        logger.info("Starting bot shutdown...")
        try:
            await self.monitor.stop_checking()
            await self.task_runner.drain()
            for platform in self.platforms.values():
                await platform.cleanup()
            logger.info("Cleanup completed")
        finally:
            await super().close()


async def run_bot_async():
    """Run the bot asynchronously"""
    config = ConfigManager(os.getenv('CONFIG_PATH', 'config.json'))
    setup_logging(config.get('log_level', 'INFO'))

    token = os.getenv('DISCORD_TOKEN')
    if not token:
        logger.error("DISCORD_TOKEN not found in environment variables")
        return

    bot = NotificationBot(config)
    async with bot:
        logger.info("Starting bot client...")
        await bot.start(token)


def run_bot():
    """Run the bot"""
    try:
        asyncio.run(run_bot_async())
    except KeyboardInterrupt:
        logger.info("Bot shutdown requested by user")
    finally:
        logger.info("Bot shutdown complete")


if __name__ == "__main__":
    run_bot()
