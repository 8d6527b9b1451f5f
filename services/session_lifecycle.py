import logging
from datetime import datetime
from typing import Callable, Optional

from interfaces.repository_interface import ISubscriptionStore
from models.stream import LiveState, Platform, SessionSnapshot, Subscription, utcnow
from services.exceptions import LinkMismatch, NotLinked, StreamAlertError
from services.notification_dispatcher import NotificationDispatcher
from services.stream_link_registry import StreamLinkRegistry
from services.stream_state_resolver import StreamStateResolver

logger = logging.getLogger(__name__)

DEFAULT_MERGE_WINDOW_SECONDS = 15


class SessionLifecycleService:
    """Moves stored sessions through live, ended and archived

    Each stored session owns exactly one Discord message. The message is
    created by whoever wins the claim on the session and edited from then on.
    """

    def __init__(self, store: ISubscriptionStore, registry: StreamLinkRegistry,
                 resolver: StreamStateResolver, dispatcher: NotificationDispatcher,
                 merge_window_seconds: int = DEFAULT_MERGE_WINDOW_SECONDS,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.registry = registry
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.merge_window_seconds = merge_window_seconds
        self.clock = clock

    async def stream_online(self, subscription: Subscription, state: LiveState) -> Optional[SessionSnapshot]:
        """Handle a subscription going live"""
        existing = await self.store.find_open_session(subscription.platform, subscription.id)
        if existing is not None:
            if existing.has_message:
                logger.debug(f"{subscription.platform.value} subscription {subscription.id} already has "
                             f"open session {existing.id}")
                return existing
            logger.info(f"Session {existing.id} has no message yet, creating it")
            return await self._create_message(existing)

        started_at = state.started_at or self.clock()

        target = await self._find_merge_target(subscription, started_at)
        if target is not None:
            merged = target.with_platform_live(subscription, state, started_at)
            await self.store.save_session(merged)
            logger.info(f"Merged {subscription.platform.value} stream of {subscription.name} "
                        f"into session {merged.id}")
            result = await self.dispatcher.dispatch(merged)
            if not result.success:
                logger.error(f"Failed to update message for session {merged.id}: {result.error}")
            return result.snapshot

        snapshot = SessionSnapshot(
            discord_channel_id=subscription.channel_id,
            created_at=self.clock(),
        ).with_platform_live(subscription, state, started_at)
        session = await self.store.insert_session(snapshot)
        logger.info(f"{subscription.platform.value} stream of {subscription.name} started session {session.id}")
        return await self._create_message(session)

    async def _find_merge_target(self, subscription: Subscription,
                                 started_at: datetime) -> Optional[SessionSnapshot]:
        """Open session of the linked counterpart this stream should join"""
        if subscription.link is None:
            return None
        try:
            counterpart = await self.registry.resolve_counterpart(subscription)
        except (NotLinked, LinkMismatch) as e:
            logger.warning(f"Not merging {subscription.name}: {e}")
            return None

        session = await self.store.find_open_session(counterpart.platform, counterpart.id)
        if session is None or not session.has_message:
            return None
        if session.discord_channel_id != subscription.channel_id:
            return None
        if session.is_online(subscription.platform):
            return None

        if subscription.link.late_merge:
            return session
        counterpart_start = session.started_at(counterpart.platform)
        if counterpart_start is None:
            return None
        if abs((started_at - counterpart_start).total_seconds()) <= self.merge_window_seconds:
            return session
        return None

    async def _create_message(self, session: SessionSnapshot) -> SessionSnapshot:
        if not await self.store.claim_message(session.id):
            logger.debug(f"Session {session.id} already claimed, skipping create")
            return session

        result = await self.dispatcher.dispatch(session)
        if not result.success:
            await self.store.release_claim(session.id)
            logger.error(f"Failed to create message for session {session.id}: {result.error}")
            return session

        await self.store.set_message_id(session.id, result.snapshot.discord_message_id)
        return result.snapshot

    async def stream_offline(self, subscription: Subscription) -> Optional[SessionSnapshot]:
        """Handle a subscription's stream ending"""
        session = await self.store.find_open_session(subscription.platform, subscription.id)
        if session is None:
            return None

        platform = subscription.platform
        platform_session_id = session.twitch_stream_id if platform is Platform.TWITCH else None
        try:
            vod = await self.resolver.fetch_vod(subscription, session.started_at(platform), platform_session_id)
        except StreamAlertError as e:
            logger.warning(f"VOD lookup for {subscription.name} failed, continuing without: {e}")
            vod = None

        ended = session.with_platform_ended(platform, self.clock(), vod)
        await self.store.save_session(ended)
        logger.info(f"{platform.value} stream of {subscription.name} ended in session {ended.id}")

        if not ended.has_message:
            # The live alert was never posted; post the current state instead of editing
            created = await self._create_message(ended)
            if ended.ended_at is not None:
                await self.store.archive_session(ended.id)
            return created

        result = await self.dispatcher.dispatch(ended)
        if not result.success:
            logger.error(f"Failed to update message for session {ended.id}: {result.error}")
            return ended
        if ended.ended_at is not None:
            await self.store.archive_session(ended.id)
        return result.snapshot
