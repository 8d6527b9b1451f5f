import asyncio
import logging
from typing import Optional, Set, Tuple

from interfaces.repository_interface import ISubscriptionStore
from models.stream import Platform, Subscription
from services.exceptions import StreamAlertError
from services.session_lifecycle import SessionLifecycleService
from services.stream_state_resolver import StreamStateResolver

logger = logging.getLogger(__name__)

WatchKey = Tuple[Platform, str]


class StreamMonitor:
    """Polls watched broadcasters and drives session transitions

    Whether a subscription was live on the previous check is read from the
    store (an open session), so a restart picks up where it left off.
    """

    def __init__(self, store: ISubscriptionStore, resolver: StreamStateResolver,
                 lifecycle: SessionLifecycleService, logging_service=None, check_interval: int = 60):
        self.store = store
        self.resolver = resolver
        self.lifecycle = lifecycle
        self.logging_service = logging_service
        self.check_interval = check_interval
        self.watched: Set[WatchKey] = set()
        self._running = False
        self.main_task: Optional[asyncio.Task] = None

    async def load_watched(self) -> None:
        """Watch every broadcaster that has at least one subscription"""
        for subscription in await self.store.list_subscriptions():
            self.watch(subscription.platform, subscription.broadcaster_id)
        logger.info(f"Watching {len(self.watched)} broadcasters")

    def watch(self, platform: Platform, broadcaster_id: str) -> None:
        self.watched.add((platform, str(broadcaster_id)))

    def unwatch(self, platform: Platform, broadcaster_id: str) -> None:
        self.watched.discard((platform, str(broadcaster_id)))
        logger.info(f"Stopped watching {platform.value} broadcaster {broadcaster_id}")

    async def start_checking(self):
        """Start checking all stream statuses"""
        if self._running:
            return

        self._running = True
        await self.load_watched()
        logger.info("Starting stream status checking loop...")
        self.main_task = asyncio.create_task(self._check_streams_loop())

    async def stop_checking(self):
        """Stop the checking loop"""
        self._running = False
        if self.main_task and not self.main_task.done():
            self.main_task.cancel()
            try:
                await self.main_task
            except asyncio.CancelledError:
                pass
        self.main_task = None
        logger.info("Stream status checking loop stopped")

    async def _check_streams_loop(self):
        while self._running:
            await self.check_all()
            await asyncio.sleep(self.check_interval)

    async def check_all(self) -> None:
        """Run one polling pass over every watched broadcaster"""
        for platform, broadcaster_id in list(self.watched):
            try:
                await self.check_broadcaster(platform, broadcaster_id)
            except StreamAlertError as e:
                await self._report(e, f"Error checking {platform.value} broadcaster {broadcaster_id}")
            except Exception as e:
                logger.exception(f"Unexpected error checking {platform.value} broadcaster {broadcaster_id}")
                await self._report(e, "Unexpected error in stream monitor")

    async def check_broadcaster(self, platform: Platform, broadcaster_id: str) -> None:
        subscriptions = await self.store.list_remaining_subscriptions(platform, broadcaster_id)
        if not subscriptions:
            self.unwatch(platform, broadcaster_id)
            return

        state = await self.resolver.fetch_live_state(subscriptions[0])
        logger.debug(f"Stream check result for {platform.value}:{subscriptions[0].name}: "
                     f"{'Live' if state.is_live else 'Offline'}")

        for subscription in subscriptions:
            await self._check_subscription(subscription, state)

    async def _check_subscription(self, subscription: Subscription, state) -> None:
        session = await self.store.find_open_session(subscription.platform, subscription.id)
        if state.is_live and session is None:
            await self.lifecycle.stream_online(subscription, state)
            if self.logging_service:
                await self.logging_service.log_info(
                    f"Stream went live: {subscription.platform.label} {subscription.name} "
                    f"(guild {subscription.guild_id})"
                )
        elif state.is_live and not session.has_message:
            # An earlier create failed or never finished
            await self.lifecycle.stream_online(subscription, state)
        elif not state.is_live and session is not None:
            await self.lifecycle.stream_offline(subscription)
            if self.logging_service:
                await self.logging_service.log_info(
                    f"Stream went offline: {subscription.platform.label} {subscription.name} "
                    f"(guild {subscription.guild_id})"
                )

    async def _report(self, error: Exception, context: str) -> None:
        if self.logging_service:
            await self.logging_service.log_error(error, context)
        else:
            logger.error(f"{context}: {error}")
