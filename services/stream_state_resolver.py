import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, Optional, Union

from interfaces.platform_interface import IStreamPlatform
from models.stream import LiveState, Platform, Subscription
from services.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)


class StreamStateResolver:
    """Fetches live and VOD state for subscriptions from the platform clients"""

    def __init__(self, platforms: Dict[Platform, IStreamPlatform]):
        self.platforms = platforms

    def _client(self, platform: Platform) -> IStreamPlatform:
        client = self.platforms.get(platform)
        if client is None:
            raise UpstreamFailure(f"No client configured for {platform.label}")
        return client

    async def fetch_live_state(self, subscription: Subscription) -> LiveState:
        """Streamer and stream details, fetched concurrently"""
        client = self._client(subscription.platform)
        streamer_data, stream_data = await asyncio.gather(
            client.get_streamer(subscription.name, subscription.broadcaster_id),
            client.get_stream(subscription.name, subscription.broadcaster_id),
        )
        return LiveState(
            platform=subscription.platform,
            streamer_data=streamer_data,
            stream_data=stream_data,
        )

    async def fetch_vod(self, subscription: Subscription, reference_start: Optional[datetime],
                        platform_session_id: Optional[str] = None):
        """VOD recorded for the session, None when nothing matches"""
        client = self._client(subscription.platform)
        return await client.get_latest_vod(
            subscription.name, subscription.broadcaster_id, reference_start, platform_session_id)

    async def _fetch_leg(self, subscription: Subscription, include_vod: bool,
                         fallback_start: Optional[datetime]) -> LiveState:
        state = await self.fetch_live_state(subscription)
        if not include_vod:
            return state
        vod = await self.fetch_vod(
            subscription,
            state.started_at or fallback_start,
            state.platform_session_id,
        )
        return replace(state, vod=vod)

    async def fetch_legs(self, legs: Iterable[Subscription], include_vod: bool = False,
                         fallback_start: Optional[datetime] = None) -> Dict[Platform, LiveState]:
        """Fetch every leg concurrently; all legs finish before a failure is raised"""
        legs = list(legs)
        results = await asyncio.gather(
            *(self._fetch_leg(leg, include_vod, fallback_start) for leg in legs),
            return_exceptions=True,
        )

        outcome: Dict[Platform, Union[LiveState, BaseException]] = {}
        failed = []
        for leg, result in zip(legs, results):
            outcome[leg.platform] = result
            if isinstance(result, BaseException):
                logger.warning(f"Fetching {leg.platform.value} state for {leg.name} failed: {result}")
                failed.append(leg.platform.label)

        if failed:
            raise UpstreamFailure(f"Failed to fetch stream state from {', '.join(failed)}", details=outcome)
        return outcome
