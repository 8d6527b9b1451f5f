from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

EPHEMERAL_SESSION_ID = "ephemeral"
PENDING_MESSAGE_ID = "pending"


class Platform(str, Enum):
    TWITCH = "twitch"
    KICK = "kick"

    @property
    def counterpart(self) -> "Platform":
        return Platform.KICK if self is Platform.TWITCH else Platform.TWITCH

    @property
    def label(self) -> str:
        return "Twitch" if self is Platform.TWITCH else "Kick"


class SessionStatus(Enum):
    NOT_LIVE = "not_live"
    LIVE = "live"
    ENDED = "ended"
    ARCHIVED = "archived"


@dataclass(frozen=True)
class MultiStreamLink:
    """Stored pairing of one Twitch subscription and one Kick subscription"""
    id: int
    twitch_subscription_id: int
    kick_subscription_id: int
    priority: str = "twitch"
    late_merge: bool = True

    def counterpart_id(self, platform: Platform) -> int:
        """Id of the subscription on the other side, seen from `platform`"""
        if platform is Platform.TWITCH:
            return self.kick_subscription_id
        return self.twitch_subscription_id

    def own_id(self, platform: Platform) -> int:
        if platform is Platform.TWITCH:
            return self.twitch_subscription_id
        return self.kick_subscription_id


@dataclass(frozen=True)
class Subscription:
    id: int
    platform: Platform
    guild_id: int
    broadcaster_id: str
    name: str
    channel_id: int
    role_id: Optional[int] = None
    live_message: Optional[str] = None
    offline_message: Optional[str] = None
    link: Optional[MultiStreamLink] = None

    @property
    def url(self) -> str:
        if self.platform is Platform.TWITCH:
            return f"https://twitch.tv/{self.name}"
        return f"https://kick.com/{self.name}"


@dataclass(frozen=True)
class LiveState:
    """Platform state for one subscription at fetch time"""
    platform: Platform
    streamer_data: Optional[Dict[str, Any]] = None
    stream_data: Optional[Dict[str, Any]] = None
    vod: Optional[Dict[str, Any]] = None

    @property
    def is_live(self) -> bool:
        return self.stream_data is not None

    @property
    def started_at(self) -> Optional[datetime]:
        if not self.stream_data or not self.stream_data.get("started_at"):
            return None
        return parse_timestamp(self.stream_data["started_at"])

    @property
    def platform_session_id(self) -> Optional[str]:
        if not self.stream_data or self.stream_data.get("id") is None:
            return None
        return str(self.stream_data["id"])


@dataclass(frozen=True)
class SessionSnapshot:
    discord_channel_id: int
    created_at: datetime
    id: Union[int, str, None] = None
    twitch_subscription: Optional[Subscription] = None
    kick_subscription: Optional[Subscription] = None
    twitch_online: bool = False
    kick_online: bool = False
    twitch_started_at: Optional[datetime] = None
    twitch_ended_at: Optional[datetime] = None
    kick_started_at: Optional[datetime] = None
    kick_ended_at: Optional[datetime] = None
    twitch_stream_id: Optional[str] = None
    twitch_streamer_data: Optional[Dict[str, Any]] = None
    twitch_stream_data: Optional[Dict[str, Any]] = None
    twitch_vod: Optional[Dict[str, Any]] = None
    kick_streamer_data: Optional[Dict[str, Any]] = None
    kick_stream_data: Optional[Dict[str, Any]] = None
    kick_vod: Optional[Dict[str, Any]] = None
    discord_message_id: Optional[str] = None
    ended_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    @property
    def is_ephemeral(self) -> bool:
        return self.id == EPHEMERAL_SESSION_ID

    @property
    def has_message(self) -> bool:
        return bool(self.discord_message_id) and self.discord_message_id != PENDING_MESSAGE_ID

    @property
    def status(self) -> SessionStatus:
        if self.archived_at is not None:
            return SessionStatus.ARCHIVED
        if self.twitch_online or self.kick_online:
            return SessionStatus.LIVE
        if self.ended_at is not None:
            return SessionStatus.ENDED
        return SessionStatus.NOT_LIVE

    def subscription(self, platform: Platform) -> Optional[Subscription]:
        if platform is Platform.TWITCH:
            return self.twitch_subscription
        return self.kick_subscription

    def is_online(self, platform: Platform) -> bool:
        return self.twitch_online if platform is Platform.TWITCH else self.kick_online

    def started_at(self, platform: Platform) -> Optional[datetime]:
        return self.twitch_started_at if platform is Platform.TWITCH else self.kick_started_at

    def with_platform_live(self, subscription: Subscription, state: LiveState,
                           started_at: datetime) -> "SessionSnapshot":
        """Copy of the snapshot with `subscription`'s platform marked live"""
        if subscription.platform is Platform.TWITCH:
            return replace(
                self,
                twitch_subscription=subscription,
                twitch_online=True,
                twitch_started_at=started_at,
                twitch_ended_at=None,
                twitch_stream_id=state.platform_session_id,
                twitch_streamer_data=state.streamer_data,
                twitch_stream_data=state.stream_data,
                twitch_vod=None,
                ended_at=None,
            )
        return replace(
            self,
            kick_subscription=subscription,
            kick_online=True,
            kick_started_at=started_at,
            kick_ended_at=None,
            kick_streamer_data=state.streamer_data,
            kick_stream_data=state.stream_data,
            kick_vod=None,
            ended_at=None,
        )

    def with_platform_ended(self, platform: Platform, ended_at: datetime,
                            vod: Optional[Dict[str, Any]]) -> "SessionSnapshot":
        """Copy of the snapshot with `platform` offline; ends the session when nothing is live"""
        if platform is Platform.TWITCH:
            updated = replace(self, twitch_online=False, twitch_ended_at=ended_at, twitch_vod=vod)
        else:
            updated = replace(self, kick_online=False, kick_ended_at=ended_at, kick_vod=vod)
        if not updated.twitch_online and not updated.kick_online:
            updated = replace(updated, ended_at=ended_at)
        return updated


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse platform timestamps ('2024-01-01T12:00:00Z' or '2024-01-01 12:00:00')"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = value.strip().replace("Z", "+00:00")
    if " " in text and "T" not in text:
        text = text.replace(" ", "T", 1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    # Kick's site API returns naive UTC timestamps
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
