import json
import asyncio
import logging
from typing import List, Dict, Any, Optional
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import aiosqlite

from interfaces.repository_interface import ISubscriptionStore
from models.stream import (
    MultiStreamLink, Platform, SessionSnapshot, Subscription,
    PENDING_MESSAGE_ID, parse_timestamp,
)
from utils.query_builder import QueryBuilder, SESSION_FIELDS

logger = logging.getLogger(__name__)

# A claim older than this is taken to belong to a create that never finished
DEFAULT_CLAIM_TIMEOUT_SECONDS = 300

JSON_FIELDS = (
    'twitch_streamer_data', 'twitch_stream_data', 'twitch_vod',
    'kick_streamer_data', 'kick_stream_data', 'kick_vod',
)
TIMESTAMP_FIELDS = (
    'twitch_started_at', 'twitch_ended_at', 'kick_started_at', 'kick_ended_at',
    'created_at', 'ended_at', 'archived_at',
)


class DatabaseService(ISubscriptionStore):
    def __init__(self, db_path: str = "bot_data.db", claim_timeout_seconds: int = DEFAULT_CLAIM_TIMEOUT_SECONDS):
        self.db_path = db_path
        self.claim_timeout_seconds = claim_timeout_seconds
        self._lock = asyncio.Lock()

    async def initialize(self):
        """Initialize database tables"""
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute('''
                    CREATE TABLE IF NOT EXISTS subscriptions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        platform TEXT NOT NULL,
                        guild_id INTEGER NOT NULL,
                        broadcaster_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        channel_id INTEGER NOT NULL,
                        role_id INTEGER,
                        live_message TEXT,
                        offline_message TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE(guild_id, platform, name)
                    )
                ''')

                await db.execute('''
                    CREATE TABLE IF NOT EXISTS multi_streams (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        twitch_subscription_id INTEGER NOT NULL UNIQUE,
                        kick_subscription_id INTEGER NOT NULL UNIQUE,
                        priority TEXT NOT NULL DEFAULT 'twitch',
                        late_merge BOOLEAN NOT NULL DEFAULT 1
                    )
                ''')

                await db.execute('''
                    CREATE TABLE IF NOT EXISTS stream_messages (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        discord_channel_id INTEGER NOT NULL,
                        discord_message_id TEXT,
                        message_claimed_at TEXT,
                        twitch_subscription_id INTEGER,
                        kick_subscription_id INTEGER,
                        twitch_online BOOLEAN DEFAULT 0,
                        kick_online BOOLEAN DEFAULT 0,
                        twitch_started_at TEXT,
                        twitch_ended_at TEXT,
                        kick_started_at TEXT,
                        kick_ended_at TEXT,
                        twitch_stream_id TEXT,
                        twitch_streamer_data TEXT,
                        twitch_stream_data TEXT,
                        twitch_vod TEXT,
                        kick_streamer_data TEXT,
                        kick_stream_data TEXT,
                        kick_vod TEXT,
                        created_at TEXT NOT NULL,
                        ended_at TEXT,
                        archived_at TEXT
                    )
                ''')

                # Databases created before claims expired lack the claim timestamp
                try:
                    await db.execute('ALTER TABLE stream_messages ADD COLUMN message_claimed_at TEXT')
                except aiosqlite.OperationalError as e:
                    if "duplicate column name" not in str(e).lower():
                        raise

                await db.commit()

    def _dict_factory(self, cursor, row):
        """Row factory that returns plain dicts"""
        return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}

    @staticmethod
    def _to_subscription(row: Dict[str, Any]) -> Subscription:
        link = None
        if row.get('link_id') is not None:
            link = MultiStreamLink(
                id=row['link_id'],
                twitch_subscription_id=row['link_twitch_id'],
                kick_subscription_id=row['link_kick_id'],
                priority=row['link_priority'],
                late_merge=bool(row['link_late_merge']),
            )
        return Subscription(
            id=row['id'],
            platform=Platform(row['platform']),
            guild_id=row['guild_id'],
            broadcaster_id=str(row['broadcaster_id']),
            name=row['name'],
            channel_id=row['channel_id'],
            role_id=row['role_id'],
            live_message=row['live_message'],
            offline_message=row['offline_message'],
            link=link,
        )

    @staticmethod
    def _session_values(snapshot: SessionSnapshot) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for name in SESSION_FIELDS:
            if name == 'twitch_subscription_id':
                values[name] = snapshot.twitch_subscription.id if snapshot.twitch_subscription else None
            elif name == 'kick_subscription_id':
                values[name] = snapshot.kick_subscription.id if snapshot.kick_subscription else None
            elif name in JSON_FIELDS:
                value = getattr(snapshot, name)
                values[name] = json.dumps(value) if value is not None else None
            elif name in TIMESTAMP_FIELDS:
                value = getattr(snapshot, name)
                values[name] = value.isoformat() if value is not None else None
            elif name in ('twitch_online', 'kick_online'):
                values[name] = 1 if getattr(snapshot, name) else 0
            else:
                values[name] = getattr(snapshot, name)
        return values

    async def _fetch_subscription(self, db, platform: Platform, subscription_id: Optional[int]) -> Optional[Subscription]:
        if subscription_id is None:
            return None
        query, params = QueryBuilder.get_subscription(platform.value, subscription_id)
        async with db.execute(query, params) as cursor:
            row = await cursor.fetchone()
        return self._to_subscription(row) if row else None

    async def _to_session(self, db, row: Dict[str, Any]) -> SessionSnapshot:
        kwargs: Dict[str, Any] = {
            'id': row['id'],
            'discord_channel_id': row['discord_channel_id'],
            'discord_message_id': row['discord_message_id'],
            'twitch_online': bool(row['twitch_online']),
            'kick_online': bool(row['kick_online']),
            'twitch_stream_id': row['twitch_stream_id'],
            'twitch_subscription': await self._fetch_subscription(
                db, Platform.TWITCH, row['twitch_subscription_id']),
            'kick_subscription': await self._fetch_subscription(
                db, Platform.KICK, row['kick_subscription_id']),
        }
        for name in JSON_FIELDS:
            kwargs[name] = json.loads(row[name]) if row[name] else None
        for name in TIMESTAMP_FIELDS:
            kwargs[name] = parse_timestamp(row[name])
        return SessionSnapshot(**kwargs)

    async def find_subscriptions_by_name(self, platform: Platform, guild_id: int,
                                         name_pattern: str) -> List[Subscription]:
        """Case-insensitive partial name match, links eager-loaded"""
        query, params = QueryBuilder.find_subscriptions_by_name(platform.value, guild_id, name_pattern)
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = self._dict_factory
                async with db.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
                    return [self._to_subscription(row) for row in rows]

    async def get_subscription(self, platform: Platform, subscription_id: int) -> Optional[Subscription]:
        """Get one subscription by id"""
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = self._dict_factory
                return await self._fetch_subscription(db, platform, subscription_id)

    async def list_subscriptions(self, platform: Optional[Platform] = None,
                                 guild_id: Optional[int] = None) -> List[Subscription]:
        """List subscriptions, optionally filtered by platform and guild"""
        query, params = QueryBuilder.list_subscriptions(
            platform.value if platform else None, guild_id)
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = self._dict_factory
                async with db.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
                    return [self._to_subscription(row) for row in rows]

    async def add_subscription(self, subscription: Subscription) -> Subscription:
        """Add new subscription"""
        query, params = QueryBuilder.insert_subscription({
            'platform': subscription.platform.value,
            'guild_id': subscription.guild_id,
            'broadcaster_id': subscription.broadcaster_id,
            'name': subscription.name,
            'channel_id': subscription.channel_id,
            'role_id': subscription.role_id,
            'live_message': subscription.live_message,
            'offline_message': subscription.offline_message,
        })
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(query, params)
                await db.commit()
                new_id = cursor.lastrowid
        logger.info(f"Added {subscription.platform.value} subscription {subscription.name} "
                    f"in guild {subscription.guild_id}")
        return Subscription(
            id=new_id,
            platform=subscription.platform,
            guild_id=subscription.guild_id,
            broadcaster_id=subscription.broadcaster_id,
            name=subscription.name,
            channel_id=subscription.channel_id,
            role_id=subscription.role_id,
            live_message=subscription.live_message,
            offline_message=subscription.offline_message,
        )

    async def update_subscription(self, subscription: Subscription) -> bool:
        """Save a subscription's channel, role and message templates"""
        query, params = QueryBuilder.update_subscription(subscription.id, {
            'channel_id': subscription.channel_id,
            'role_id': subscription.role_id,
            'live_message': subscription.live_message,
            'offline_message': subscription.offline_message,
        })
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(query, params)
                await db.commit()
                return cursor.rowcount > 0

    async def delete_subscription(self, subscription: Subscription) -> bool:
        """Delete a subscription, severing its link and orphaning its sessions

        Sessions in which the subscription is still online have its platform
        ended first, so the other platform alone decides when they end.
        """
        platform = subscription.platform
        column = f"{platform.value}_subscription_id"
        ended_at = datetime.now(timezone.utc)
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = self._dict_factory
                query, params = QueryBuilder.list_open_sessions(platform.value, subscription.id)
                async with db.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
                for row in rows:
                    session = await self._to_session(db, row)
                    ended = session.with_platform_ended(platform, ended_at, None)
                    query, params = QueryBuilder.update_session(ended.id, self._session_values(ended))
                    await db.execute(query, params)
                    logger.info(f"Ended {platform.value} side of session {ended.id} for deleted subscription")

                await db.execute(
                    f'DELETE FROM multi_streams WHERE {column} = ?', (subscription.id,))
                await db.execute(
                    f'UPDATE stream_messages SET {column} = NULL WHERE {column} = ?',
                    (subscription.id,))
                cursor = await db.execute('''
                    DELETE FROM subscriptions
                    WHERE id = ? AND platform = ?
                ''', (subscription.id, subscription.platform.value))
                await db.commit()
                return cursor.rowcount > 0

    async def list_remaining_subscriptions(self, platform: Platform, broadcaster_id: str) -> List[Subscription]:
        """Subscriptions in any guild that still reference a broadcaster"""
        query, params = QueryBuilder.list_subscriptions(platform.value, broadcaster_id=broadcaster_id)
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = self._dict_factory
                async with db.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
                    return [self._to_subscription(row) for row in rows]

    async def create_link(self, twitch: Subscription, kick: Subscription,
                          priority: str = 'twitch', late_merge: bool = True) -> MultiStreamLink:
        """Link a Twitch and a Kick subscription"""
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute('''
                    INSERT INTO multi_streams (
                        twitch_subscription_id, kick_subscription_id, priority, late_merge
                    ) VALUES (?, ?, ?, ?)
                ''', (twitch.id, kick.id, priority, 1 if late_merge else 0))
                await db.commit()
                link_id = cursor.lastrowid
        return MultiStreamLink(
            id=link_id,
            twitch_subscription_id=twitch.id,
            kick_subscription_id=kick.id,
            priority=priority,
            late_merge=late_merge,
        )

    async def update_link(self, link: MultiStreamLink) -> bool:
        """Save a link's priority and late-merge setting"""
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute('''
                    UPDATE multi_streams SET priority = ?, late_merge = ?
                    WHERE id = ?
                ''', (link.priority, 1 if link.late_merge else 0, link.id))
                await db.commit()
                return cursor.rowcount > 0

    async def delete_link(self, link: MultiStreamLink) -> bool:
        """Remove a link"""
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute('DELETE FROM multi_streams WHERE id = ?', (link.id,))
                await db.commit()
                return cursor.rowcount > 0

    async def find_open_session(self, platform: Platform, subscription_id: int) -> Optional[SessionSnapshot]:
        """Session in which the subscription's platform is still online"""
        query, params = QueryBuilder.find_open_session(platform.value, subscription_id)
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = self._dict_factory
                async with db.execute(query, params) as cursor:
                    row = await cursor.fetchone()
                if row is None:
                    return None
                return await self._to_session(db, row)

    async def insert_session(self, snapshot: SessionSnapshot) -> SessionSnapshot:
        """Persist a new session and return it with its id"""
        if snapshot.is_ephemeral:
            raise ValueError("Ephemeral sessions are never stored")
        query, params = QueryBuilder.insert_session(self._session_values(snapshot))
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(query, params)
                await db.commit()
                session_id = cursor.lastrowid
        return replace(snapshot, id=session_id)

    async def save_session(self, snapshot: SessionSnapshot) -> None:
        """Persist session state (flags, timestamps, payloads)"""
        if snapshot.is_ephemeral or snapshot.id is None:
            raise ValueError("Only stored sessions can be saved")
        query, params = QueryBuilder.update_session(snapshot.id, self._session_values(snapshot))
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(query, params)
                await db.commit()

    async def claim_message(self, session_id: int) -> bool:
        """Atomically mark a session as being dispatched

        A claim left pending for longer than `claim_timeout_seconds` can be
        taken over; its create never reported back.
        """
        now = datetime.now(timezone.utc)
        stale_before = now - timedelta(seconds=self.claim_timeout_seconds)
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute('''
                    UPDATE stream_messages SET discord_message_id = ?, message_claimed_at = ?
                    WHERE id = ? AND (
                        discord_message_id IS NULL OR (
                            discord_message_id = ?
                            AND (message_claimed_at IS NULL OR message_claimed_at < ?)
                        )
                    )
                ''', (PENDING_MESSAGE_ID, now.isoformat(), session_id, PENDING_MESSAGE_ID, stale_before.isoformat()))
                await db.commit()
                if cursor.rowcount == 1:
                    return True
                logger.debug(f"Session {session_id} is already claimed")
                return False

    async def set_message_id(self, session_id: int, message_id: str) -> None:
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    'UPDATE stream_messages SET discord_message_id = ? WHERE id = ?',
                    (message_id, session_id))
                await db.commit()

    async def release_claim(self, session_id: int) -> None:
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute('''
                    UPDATE stream_messages SET discord_message_id = NULL, message_claimed_at = NULL
                    WHERE id = ? AND discord_message_id = ?
                ''', (session_id, PENDING_MESSAGE_ID))
                await db.commit()

    async def archive_session(self, session_id: int) -> None:
        """Mark an ended session as archived"""
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute('''
                    UPDATE stream_messages SET archived_at = ?
                    WHERE id = ? AND ended_at IS NOT NULL
                ''', (datetime.now(timezone.utc).isoformat(), session_id))
                await db.commit()
