from dataclasses import dataclass
from typing import Optional

from models.stream import Platform
from services.exceptions import InvalidInput, MissingTarget
from utils.validators import UsernameValidator, Validators

MESSAGE_TYPES = ("live", "offline")


@dataclass(frozen=True)
class StreamTestArgs:
    """Arguments of `/twitch test` and `/kick test`"""
    platform: Platform
    streamer: str
    message_type: str = "live"
    multistream: Optional[bool] = None
    broadcast: bool = False


@dataclass(frozen=True)
class MultistreamTestArgs:
    """Arguments of `/multistream test`"""
    twitch_streamer: Optional[str] = None
    kick_streamer: Optional[str] = None
    message_type: str = "live"
    broadcast: bool = False


@dataclass(frozen=True)
class AddSubscriptionArgs:
    platform: Platform
    streamer: str
    channel_id: int
    role_id: Optional[int] = None
    live_message: Optional[str] = None
    offline_message: Optional[str] = None


@dataclass(frozen=True)
class EditSubscriptionArgs:
    """Arguments of `/twitch edit` and `/kick edit`; None leaves a setting unchanged"""
    platform: Platform
    streamer: str
    channel_id: Optional[int] = None
    role_id: Optional[int] = None
    live_message: Optional[str] = None
    offline_message: Optional[str] = None


@dataclass(frozen=True)
class LinkArgs:
    twitch_streamer: str
    kick_streamer: str
    priority: str = "twitch"
    late_merge: bool = True


@dataclass(frozen=True)
class EditLinkArgs:
    twitch_streamer: Optional[str] = None
    kick_streamer: Optional[str] = None
    priority: Optional[str] = None
    late_merge: Optional[bool] = None


def _clean_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().lstrip("@")
    return value or None


def _decode_message_type(message_type: Optional[str]) -> str:
    message_type = (message_type or "live").lower()
    if message_type not in MESSAGE_TYPES:
        raise InvalidInput(f"Unknown message type `{message_type}`, expected one of: {', '.join(MESSAGE_TYPES)}")
    return message_type


def decode_stream_test_args(platform: Platform, streamer: Optional[str], message_type: Optional[str] = None,
                            multistream: Optional[bool] = None, broadcast: Optional[bool] = None) -> StreamTestArgs:
    name = _clean_name(streamer)
    if not name:
        raise InvalidInput("Missing required arguments")
    return StreamTestArgs(
        platform=platform,
        streamer=name,
        message_type=_decode_message_type(message_type),
        multistream=multistream,
        broadcast=bool(broadcast),
    )


def decode_multistream_test_args(twitch_streamer: Optional[str], kick_streamer: Optional[str],
                                 message_type: Optional[str] = None,
                                 broadcast: Optional[bool] = None) -> MultistreamTestArgs:
    twitch_name = _clean_name(twitch_streamer)
    kick_name = _clean_name(kick_streamer)
    if not twitch_name and not kick_name:
        raise MissingTarget("You must specify a Twitch or Kick streamer to test alerts for")
    return MultistreamTestArgs(
        twitch_streamer=twitch_name,
        kick_streamer=kick_name,
        message_type=_decode_message_type(message_type),
        broadcast=bool(broadcast),
    )


def decode_link_args(twitch_streamer: Optional[str], kick_streamer: Optional[str],
                     priority: Optional[str] = None, late_merge: Optional[bool] = None) -> LinkArgs:
    twitch_name = _clean_name(twitch_streamer)
    kick_name = _clean_name(kick_streamer)
    if not twitch_name or not kick_name:
        raise InvalidInput("Both a Twitch and a Kick streamer are required to create a link")
    priority = (priority or "twitch").lower()
    if priority not in ("twitch", "kick"):
        raise InvalidInput(f"Unknown priority `{priority}`")
    return LinkArgs(
        twitch_streamer=twitch_name,
        kick_streamer=kick_name,
        priority=priority,
        late_merge=True if late_merge is None else late_merge,
    )


def decode_add_subscription_args(platform: Platform, streamer: Optional[str], channel_id: int,
                                 role_id: Optional[int] = None, live_message: Optional[str] = None,
                                 offline_message: Optional[str] = None) -> AddSubscriptionArgs:
    name = Validators.extract_username(platform, streamer or "")
    if not name:
        _, reason = UsernameValidator.validate_username(platform, _clean_name(streamer) or "")
        raise InvalidInput(f"Invalid {platform.label} username: {reason}")

    for message in (live_message, offline_message):
        is_valid, reason = Validators.validate_message(message)
        if not is_valid:
            raise InvalidInput(reason)

    return AddSubscriptionArgs(
        platform=platform,
        streamer=name,
        channel_id=channel_id,
        role_id=role_id,
        live_message=live_message,
        offline_message=offline_message,
    )


def decode_edit_subscription_args(platform: Platform, streamer: Optional[str], channel_id: Optional[int] = None,
                                  role_id: Optional[int] = None, live_message: Optional[str] = None,
                                  offline_message: Optional[str] = None) -> EditSubscriptionArgs:
    name = _clean_name(streamer)
    if not name:
        raise InvalidInput("Missing required arguments")

    for message in (live_message, offline_message):
        is_valid, reason = Validators.validate_message(message)
        if not is_valid:
            raise InvalidInput(reason)

    if channel_id is None and role_id is None and live_message is None and offline_message is None:
        raise InvalidInput("Nothing to edit: give a new channel, role, live message or offline message")

    return EditSubscriptionArgs(
        platform=platform,
        streamer=name,
        channel_id=channel_id,
        role_id=role_id,
        live_message=live_message,
        offline_message=offline_message,
    )


def decode_edit_link_args(twitch_streamer: Optional[str], kick_streamer: Optional[str],
                          priority: Optional[str] = None, late_merge: Optional[bool] = None) -> EditLinkArgs:
    twitch_name = _clean_name(twitch_streamer)
    kick_name = _clean_name(kick_streamer)
    if not twitch_name and not kick_name:
        raise MissingTarget("You must specify either a Twitch or Kick streamer to edit")
    if priority is None and late_merge is None:
        raise InvalidInput("You must specify a priority or late-merge setting to update")
    if priority is not None:
        priority = priority.lower()
        if priority not in ("twitch", "kick"):
            raise InvalidInput(f"Unknown priority `{priority}`")
    return EditLinkArgs(
        twitch_streamer=twitch_name,
        kick_streamer=kick_name,
        priority=priority,
        late_merge=late_merge,
    )
