"""Shared fixtures: an in-memory store, mocked platform clients and a mocked transport."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from interfaces.repository_interface import ISubscriptionStore
from models.stream import (
    MultiStreamLink, PENDING_MESSAGE_ID, Platform, SessionSnapshot, Subscription,
)
from services.notification_dispatcher import NotificationDispatcher
from services.stream_link_registry import StreamLinkRegistry
from services.stream_state_resolver import StreamStateResolver
from utils.embed_builder import NotificationComposer

GUILD_ID = 1000
CHANNEL_ID = 2000
ROLE_ID = 3000
NOW = datetime(2024, 5, 1, 20, 0, 0, tzinfo=timezone.utc)
STARTED = datetime(2024, 5, 1, 18, 0, 0, tzinfo=timezone.utc)


class InMemoryStore(ISubscriptionStore):
    """Dict-backed store; subscriptions keep whatever link they are given"""

    def __init__(self):
        self.subscriptions: Dict[int, Subscription] = {}
        self.sessions: Dict[int, SessionSnapshot] = {}
        self._next_id = 1
        self.writes = 0
        self.clock = lambda: NOW
        self.claim_timeout = timedelta(minutes=5)
        self.claimed_at: Dict[int, datetime] = {}

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id - 1

    def put(self, subscription: Subscription) -> Subscription:
        self.subscriptions[subscription.id] = subscription
        self._next_id = max(self._next_id, subscription.id + 1)
        return subscription

    async def find_subscriptions_by_name(self, platform, guild_id, name_pattern):
        matches = [
            s for s in self.subscriptions.values()
            if s.platform is platform and s.guild_id == guild_id and name_pattern.lower() in s.name.lower()
        ]
        return sorted(matches, key=lambda s: s.name.lower())

    async def get_subscription(self, platform, subscription_id):
        subscription = self.subscriptions.get(subscription_id)
        if subscription is None or subscription.platform is not platform:
            return None
        return subscription

    async def list_subscriptions(self, platform=None, guild_id=None):
        return [
            s for s in self.subscriptions.values()
            if (platform is None or s.platform is platform) and (guild_id is None or s.guild_id == guild_id)
        ]

    async def add_subscription(self, subscription):
        self.writes += 1
        return self.put(replace(subscription, id=self._new_id()))

    async def update_subscription(self, subscription):
        self.writes += 1
        if subscription.id not in self.subscriptions:
            return False
        self.subscriptions[subscription.id] = replace(subscription, link=self.subscriptions[subscription.id].link)
        return True

    async def delete_subscription(self, subscription):
        self.writes += 1
        platform = subscription.platform
        removed = self.subscriptions.pop(subscription.id, None)
        if subscription.link:
            await self.delete_link(subscription.link)
        for session_id, session in list(self.sessions.items()):
            if session.subscription(platform) and session.subscription(platform).id == subscription.id:
                if session.is_online(platform) and session.archived_at is None:
                    session = session.with_platform_ended(platform, self.clock(), None)
                self.sessions[session_id] = replace(session, **{f"{platform.value}_subscription": None})
        return removed is not None

    async def list_remaining_subscriptions(self, platform, broadcaster_id):
        return [s for s in self.subscriptions.values()
                if s.platform is platform and s.broadcaster_id == broadcaster_id]

    async def create_link(self, twitch, kick, priority='twitch', late_merge=True):
        self.writes += 1
        link = MultiStreamLink(self._new_id(), twitch.id, kick.id, priority, late_merge)
        self.subscriptions[twitch.id] = replace(self.subscriptions[twitch.id], link=link)
        self.subscriptions[kick.id] = replace(self.subscriptions[kick.id], link=link)
        return link

    async def update_link(self, link):
        self.writes += 1
        found = False
        for subscription_id, subscription in list(self.subscriptions.items()):
            if subscription.link and subscription.link.id == link.id:
                self.subscriptions[subscription_id] = replace(subscription, link=link)
                found = True
        return found

    async def delete_link(self, link):
        self.writes += 1
        found = False
        for subscription_id, subscription in list(self.subscriptions.items()):
            if subscription.link and subscription.link.id == link.id:
                self.subscriptions[subscription_id] = replace(subscription, link=None)
                found = True
        return found

    async def find_open_session(self, platform, subscription_id):
        candidates = [
            s for s in self.sessions.values()
            if s.subscription(platform) is not None and s.subscription(platform).id == subscription_id
            and s.is_online(platform) and s.archived_at is None
        ]
        return max(candidates, key=lambda s: s.id) if candidates else None

    async def insert_session(self, snapshot):
        assert not snapshot.is_ephemeral
        self.writes += 1
        stored = replace(snapshot, id=self._new_id())
        self.sessions[stored.id] = stored
        return stored

    async def save_session(self, snapshot):
        assert not snapshot.is_ephemeral
        self.writes += 1
        current = self.sessions[snapshot.id]
        self.sessions[snapshot.id] = replace(snapshot, discord_message_id=current.discord_message_id,
                                             archived_at=current.archived_at)

    async def claim_message(self, session_id):
        session = self.sessions[session_id]
        if session.discord_message_id == PENDING_MESSAGE_ID:
            claimed_at = self.claimed_at.get(session_id)
            if claimed_at is not None and self.clock() - claimed_at < self.claim_timeout:
                return False
        elif session.discord_message_id is not None:
            return False
        self.sessions[session_id] = replace(session, discord_message_id=PENDING_MESSAGE_ID)
        self.claimed_at[session_id] = self.clock()
        return True

    async def set_message_id(self, session_id, message_id):
        self.sessions[session_id] = replace(self.sessions[session_id], discord_message_id=message_id)

    async def release_claim(self, session_id):
        session = self.sessions[session_id]
        if session.discord_message_id == PENDING_MESSAGE_ID:
            self.sessions[session_id] = replace(session, discord_message_id=None)

    async def archive_session(self, session_id):
        session = self.sessions[session_id]
        if session.ended_at is not None:
            self.sessions[session_id] = replace(session, archived_at=session.ended_at)


def make_subscription(id: int, platform: Platform, name: str, link: Optional[MultiStreamLink] = None,
                      **overrides) -> Subscription:
    values = dict(
        id=id,
        platform=platform,
        guild_id=GUILD_ID,
        broadcaster_id=f"{platform.value}-{id}",
        name=name,
        channel_id=CHANNEL_ID,
        role_id=ROLE_ID,
        live_message='@everyone {{name}} is now live @ {{url}}',
        offline_message='{{name}} is now offline',
        link=link,
    )
    values.update(overrides)
    return Subscription(**values)


def twitch_user(login: str) -> dict:
    return {
        'id': '111',
        'login': login,
        'display_name': login.capitalize(),
        'profile_image_url': f'https://static-cdn.jtvnw.net/{login}-profile.png',
        'offline_image_url': f'https://static-cdn.jtvnw.net/{login}-offline.png',
    }


def twitch_stream(started_at: datetime = STARTED) -> dict:
    return {
        'id': '40001',
        'user_id': '111',
        'game_name': 'Just Chatting',
        'title': 'Twitch title',
        'started_at': started_at.strftime('%Y-%m-%dT%H:%M:%SZ'),
        'thumbnail_url': 'https://static-cdn.jtvnw.net/previews-ttv/live_user_foo-{width}x{height}.jpg',
    }


def kick_channel(slug: str) -> dict:
    return {
        'slug': slug,
        'user_id': 222,
        'user': {'username': slug.capitalize(), 'profile_pic': f'https://files.kick.com/{slug}.webp'},
        'offline_banner_image': {'src': f'https://files.kick.com/{slug}-banner.webp'},
    }


def kick_stream(started_at: datetime = STARTED) -> dict:
    return {
        'broadcaster_user_id': 222,
        'stream_title': 'Kick title',
        'thumbnail': 'https://images.kick.com/video_thumbnails/bar.webp',
        'started_at': started_at.strftime('%Y-%m-%dT%H:%M:%SZ'),
        'category': {'name': 'Slots'},
    }


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def linked_pair(store):
    """Twitch `foo` linked to Kick `bar` in the same guild and channel"""
    link = MultiStreamLink(id=50, twitch_subscription_id=1, kick_subscription_id=2)
    foo = store.put(make_subscription(1, Platform.TWITCH, 'foo', link))
    bar = store.put(make_subscription(2, Platform.KICK, 'bar', link))
    return foo, bar


@pytest.fixture
def twitch_client():
    client = AsyncMock()
    client.get_streamer.return_value = twitch_user('foo')
    client.get_stream.return_value = twitch_stream()
    client.get_latest_vod.return_value = None
    return client


@pytest.fixture
def kick_client():
    client = AsyncMock()
    client.get_streamer.return_value = kick_channel('bar')
    client.get_stream.return_value = kick_stream()
    client.get_latest_vod.return_value = None
    return client


@pytest.fixture
def resolver(twitch_client, kick_client):
    return StreamStateResolver({Platform.TWITCH: twitch_client, Platform.KICK: kick_client})


@pytest.fixture
def registry(store):
    return StreamLinkRegistry(store)


@pytest.fixture
def composer():
    return NotificationComposer('https://alerts.example.com')


@pytest.fixture
def transport():
    transport = AsyncMock()
    transport.create_message.return_value = '987654321'
    return transport


@pytest.fixture
def dispatcher(transport, composer):
    return NotificationDispatcher(transport, composer)


@pytest.fixture
def mock_logging_service():
    service = AsyncMock()
    return service


@pytest.fixture
def mock_interaction():
    interaction = MagicMock()
    interaction.guild_id = GUILD_ID
    interaction.id = 42
    interaction.response.defer = AsyncMock()
    return interaction
