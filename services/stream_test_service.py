import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List

import discord

from interfaces.service_interface import IMessageTransport
from models.commands import MultistreamTestArgs, StreamTestArgs
from models.stream import (
    EPHEMERAL_SESSION_ID, LiveState, Platform, SessionSnapshot, Subscription, utcnow,
)
from services.error_handler import ErrorHandler
from services.exceptions import NotLinked, StreamAlertError
from services.notification_dispatcher import NotificationDispatcher
from services.stream_link_registry import StreamLinkRegistry
from services.stream_state_resolver import StreamStateResolver
from ui.embeds import success_body
from utils.embed_builder import NotificationComposer

logger = logging.getLogger(__name__)

OFFLINE_TEST_DURATION = timedelta(hours=1)


def build_test_snapshot(legs: List[Subscription], states: Dict[Platform, LiveState],
                        message_type: str, now: datetime) -> SessionSnapshot:
    """Synthetic session that is never stored and never tracked"""
    snapshot = SessionSnapshot(
        id=EPHEMERAL_SESSION_ID,
        discord_channel_id=legs[0].channel_id,
        created_at=now,
    )
    for subscription in legs:
        state = states[subscription.platform]
        started_at = state.started_at or now
        if message_type == 'live':
            snapshot = snapshot.with_platform_live(subscription, state, started_at)
        else:
            snapshot = snapshot.with_platform_live(subscription, state, started_at - OFFLINE_TEST_DURATION)
            snapshot = snapshot.with_platform_ended(subscription.platform, now, state.vod)
    return snapshot


class StreamTestService:
    """Preview and broadcast flows behind the `test` commands"""

    def __init__(self, registry: StreamLinkRegistry, resolver: StreamStateResolver,
                 composer: NotificationComposer, dispatcher: NotificationDispatcher,
                 transport: IMessageTransport, error_handler: ErrorHandler,
                 clock: Callable[[], datetime] = utcnow):
        self.registry = registry
        self.resolver = resolver
        self.composer = composer
        self.dispatcher = dispatcher
        self.transport = transport
        self.error_handler = error_handler
        self.clock = clock

    async def resolve_stream_test_legs(self, guild_id: int, args: StreamTestArgs) -> List[Subscription]:
        subscription = await self.registry.resolve_by_name(guild_id, args.platform, args.streamer)
        if args.multistream is False:
            return [subscription]
        if args.multistream is None and subscription.link is None:
            return [subscription]
        try:
            counterpart = await self.registry.resolve_counterpart(subscription)
        except NotLinked:
            if args.multistream:
                raise
            # Dangling link and no explicit request: test the single platform
            logger.warning(f"Ignoring dangling link of {subscription.platform.value} subscription {subscription.id}")
            return [subscription]
        return self._ordered([subscription, counterpart])

    async def resolve_multistream_test_legs(self, guild_id: int, args: MultistreamTestArgs) -> List[Subscription]:
        twitch, kick = await self.registry.resolve_pair(guild_id, args.twitch_streamer, args.kick_streamer)
        return [twitch, kick]

    @staticmethod
    def _ordered(legs: List[Subscription]) -> List[Subscription]:
        """Twitch leg first so the primary channel matches the multistream test"""
        return sorted(legs, key=lambda s: 0 if s.platform is Platform.TWITCH else 1)

    async def build_preview(self, legs: List[Subscription], message_type: str) -> SessionSnapshot:
        now = self.clock()
        states = await self.resolver.fetch_legs(legs, include_vod=message_type == 'offline', fallback_start=now)
        return build_test_snapshot(legs, states, message_type, now)

    async def run_stream_test(self, interaction: discord.Interaction, args: StreamTestArgs) -> None:
        await self._run(interaction, self.resolve_stream_test_legs(interaction.guild_id, args),
                        args.message_type, args.broadcast)

    async def run_multistream_test(self, interaction: discord.Interaction, args: MultistreamTestArgs) -> None:
        await self._run(interaction, self.resolve_multistream_test_legs(interaction.guild_id, args),
                        args.message_type, args.broadcast)

    async def _run(self, interaction: discord.Interaction, resolve_legs, message_type: str, broadcast: bool) -> None:
        """Deferred part of a test command; always ends by editing the deferred response"""
        try:
            legs = await resolve_legs
            snapshot = await self.build_preview(legs, message_type)

            if not broadcast:
                await self.transport.update_deferred_response(interaction, self.composer.compose(snapshot))
                return

            result = await self.dispatcher.broadcast(snapshot)
            if not result.success:
                raise result.error
            await self.transport.update_deferred_response(
                interaction, success_body(f"Test message sent to <#{snapshot.discord_channel_id}>"))
        except StreamAlertError as e:
            logger.info(f"Test command failed: {e}")
            await self.transport.update_deferred_response(interaction, self.error_handler.build_error_body(e))
        except Exception as e:
            logger.exception("Unexpected error in test command")
            await self.error_handler.logging_service.log_error(e, "Test command")
            await self.transport.update_deferred_response(interaction, self.error_handler.build_error_body(e))
