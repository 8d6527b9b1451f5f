import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.stream import Platform, SessionSnapshot, Subscription, parse_timestamp

TWITCH_COLOR = 0x6441A4
KICK_COLOR = 0x53FC18
KICK_DEFAULT_BANNER = 'https://kick.com/img/default-channel-banners/offline.webp'

DEFAULT_LIVE_MESSAGE = '@everyone {{name}} is now live @ {{url}}'
DEFAULT_OFFLINE_MESSAGE = '{{name}} is now offline'
FALLBACK_LIVE_MESSAGE = '{{name}} is live!'
FALLBACK_OFFLINE_MESSAGE = '{{name}} is now offline.'

BUTTON_EMOJIS = {
    Platform.TWITCH: {'name': 'twitch', 'id': '1404661243373031585', 'animated': False},
    Platform.KICK: {'name': 'kick', 'id': '1404661261030916246', 'animated': False},
}


def format_duration(milliseconds: int) -> str:
    """Format a duration as e.g. `2h5m3s`, leaving out zero parts"""
    seconds = max(int(milliseconds // 1000), 0)
    hours, remainder = divmod(seconds, 3600)
    minutes, remaining_seconds = divmod(remainder, 60)

    formatted = ''
    if hours:
        formatted += f'{hours}h'
    if minutes:
        formatted += f'{minutes}m'
    if remaining_seconds:
        formatted += f'{remaining_seconds}s'
    return formatted or '0s'


def message_builder(message: str, name: str, game: Optional[str] = None,
                    started_at: Optional[datetime] = None, service: str = 'twitch',
                    twitch_name: Optional[str] = None, kick_name: Optional[str] = None) -> str:
    """Interpolate the {{...}} placeholders of a subscription message template"""
    twitch_url = f'https://twitch.tv/{twitch_name or name}'
    kick_url = f'https://kick.com/{kick_name or name}'
    if service == 'kick':
        url = kick_url
    elif service == 'both':
        url = f'{twitch_url} | {kick_url}'
    else:
        url = twitch_url

    replacements = [
        (r'\{\{name\}\}', name),
        (r'\{\{url\}\}', url),
        (r'\{\{twitch_url\}\}', twitch_url),
        (r'\{\{kick_url\}\}', kick_url),
        (r'\{\{everyone\}\}', '@everyone'),
        (r'\{\{here\}\}', '@here'),
        (r'\{\{(game|category)\}\}', game or ''),
    ]
    for pattern, value in replacements:
        message = re.sub(pattern, lambda _: value, message, flags=re.IGNORECASE)

    if started_at is not None:
        message = re.sub(r'\{\{timestamp\}\}', f'<t:{int(started_at.timestamp())}:R>',
                         message, flags=re.IGNORECASE)
    return message


def role_mention(subscription: Subscription) -> str:
    """Role ping for live content; the @everyone role shares the guild's id and is skipped"""
    if subscription.role_id and subscription.role_id != subscription.guild_id:
        return f'<@&{subscription.role_id}>'
    return ''


class NotificationComposer:
    """Builds the Discord message body for a session snapshot

    compose() reads only the snapshot: no clock and no randomness, so the
    same snapshot always produces the same body.
    """

    def __init__(self, assets_base_url: Optional[str] = None):
        self.assets_base_url = assets_base_url.rstrip('/') if assets_base_url else None

    def compose(self, snapshot: SessionSnapshot) -> Dict[str, Any]:
        platforms = [p for p in (Platform.TWITCH, Platform.KICK) if self._has_block(snapshot, p)]

        embeds = [self._embed(snapshot, platform) for platform in platforms]
        buttons = [b for b in (self._button(snapshot, platform) for platform in platforms) if b]
        components = [{'type': 1, 'components': buttons}] if buttons else []

        return {
            'content': self._content(snapshot, platforms),
            'embeds': embeds,
            'components': components,
        }

    @staticmethod
    def _has_block(snapshot: SessionSnapshot, platform: Platform) -> bool:
        if snapshot.subscription(platform) is None:
            return False
        return snapshot.is_online(platform) or snapshot.started_at(platform) is not None

    def _icon(self, platform: Platform) -> Optional[str]:
        if not self.assets_base_url:
            return None
        return f'{self.assets_base_url}/static/{platform.value}-logo.png'

    def _embed(self, snapshot: SessionSnapshot, platform: Platform) -> Dict[str, Any]:
        if platform is Platform.TWITCH:
            if snapshot.twitch_online:
                return self._twitch_online(snapshot)
            return self._twitch_offline(snapshot)
        if snapshot.kick_online:
            return self._kick_online(snapshot)
        return self._kick_offline(snapshot)

    def _author(self, name: str, platform: Platform) -> Dict[str, Any]:
        author = {'name': name}
        icon = self._icon(platform)
        if icon:
            author['icon_url'] = icon
        return author

    @staticmethod
    def _duration(snapshot: SessionSnapshot, platform: Platform) -> str:
        started = snapshot.started_at(platform)
        ended = snapshot.twitch_ended_at if platform is Platform.TWITCH else snapshot.kick_ended_at
        if started and ended:
            return format_duration(int((ended - started).total_seconds() * 1000))
        return '0'

    @staticmethod
    def _iso(value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    def _twitch_online(self, snapshot: SessionSnapshot) -> Dict[str, Any]:
        subscription = snapshot.twitch_subscription
        streamer = snapshot.twitch_streamer_data or {}
        stream = snapshot.twitch_stream_data
        started = snapshot.twitch_started_at

        title = f"{streamer.get('display_name') or subscription.name} is live!"
        image = streamer.get('offline_image_url') or ''
        if stream:
            title = stream.get('title') or title
            started = parse_timestamp(stream.get('started_at')) or started
            cache_buster = int(started.timestamp()) if started else 0
            image = (stream.get('thumbnail_url', '').replace('{width}', '1280').replace('{height}', '720')
                     + f"?b={stream.get('id')}&t={cache_buster}")

        embed = {
            'title': title,
            'color': TWITCH_COLOR,
            'description': f'**{subscription.name} is live!**',
            'author': self._author('Live on Twitch', Platform.TWITCH),
            'fields': [{'name': 'Game', 'value': (stream or {}).get('game_name') or 'No game'}],
            'url': subscription.url,
            'image': {'url': image},
            'thumbnail': {'url': streamer.get('profile_image_url') or ''},
            'footer': {'text': 'Online'},
        }
        if started:
            embed['timestamp'] = self._iso(started)
        return embed

    def _twitch_offline(self, snapshot: SessionSnapshot) -> Dict[str, Any]:
        subscription = snapshot.twitch_subscription
        streamer = snapshot.twitch_streamer_data or {}
        stream = snapshot.twitch_stream_data
        vod = snapshot.twitch_vod

        duration = vod.get('duration') if vod and vod.get('duration') else self._duration(snapshot, Platform.TWITCH)
        backup_image = ''
        if stream:
            backup_image = (stream.get('thumbnail_url', '').replace('{width}', '1280').replace('{height}', '720')
                            + f"?b={stream.get('id')}")
        title = f"{streamer.get('display_name') or subscription.name} is no longer live!"
        if stream and stream.get('title'):
            title = stream['title']

        embed = {
            'title': title,
            'color': TWITCH_COLOR,
            'description': f'Streamed for **{duration}**',
            'author': self._author('Twitch', Platform.TWITCH),
            'url': subscription.url,
            'image': {'url': streamer.get('offline_image_url') or backup_image},
            'thumbnail': {'url': streamer.get('profile_image_url') or ''},
            'footer': {'text': 'Last online'},
        }
        if snapshot.twitch_ended_at:
            embed['timestamp'] = self._iso(snapshot.twitch_ended_at)
        return embed

    def _kick_online(self, snapshot: SessionSnapshot) -> Dict[str, Any]:
        subscription = snapshot.kick_subscription
        streamer = snapshot.kick_streamer_data or {}
        stream = snapshot.kick_stream_data
        started = snapshot.kick_started_at

        title = f"{streamer.get('slug') or subscription.name} is live!"
        image = (streamer.get('offline_banner_image') or {}).get('src') or KICK_DEFAULT_BANNER
        if stream:
            title = stream.get('stream_title') or title
            started = parse_timestamp(stream.get('started_at')) or started
            cache_buster = int(started.timestamp()) if started else 0
            image = f"{stream.get('thumbnail')}?b={stream.get('started_at')}&t={cache_buster}"

        embed = {
            'title': title,
            'color': KICK_COLOR,
            'description': f'**{subscription.name} is live!**',
            'author': self._author('Live on KICK', Platform.KICK),
            'fields': [{'name': 'Game', 'value': ((stream or {}).get('category') or {}).get('name') or 'No game'}],
            'url': subscription.url,
            'image': {'url': image},
            'thumbnail': {'url': (streamer.get('user') or {}).get('profile_pic') or ''},
            'footer': {'text': 'Online'},
        }
        if started:
            embed['timestamp'] = self._iso(started)
        return embed

    def _kick_offline(self, snapshot: SessionSnapshot) -> Dict[str, Any]:
        subscription = snapshot.kick_subscription
        streamer = snapshot.kick_streamer_data or {}
        stream = snapshot.kick_stream_data
        vod = snapshot.kick_vod

        vod_duration = (vod or {}).get('duration')
        if isinstance(vod_duration, (int, float)) and vod_duration > 0:
            duration = format_duration(int(vod_duration))
        else:
            duration = self._duration(snapshot, Platform.KICK)

        title = f"{(streamer.get('user') or {}).get('username') or subscription.name} is no longer live!"
        if stream and stream.get('stream_title'):
            title = stream['stream_title']

        embed = {
            'title': title,
            'color': KICK_COLOR,
            'description': f'Streamed for **{duration}**',
            'author': self._author('Kick', Platform.KICK),
            'url': subscription.url,
            'image': {'url': (streamer.get('offline_banner_image') or {}).get('src') or KICK_DEFAULT_BANNER},
            'thumbnail': {'url': (streamer.get('user') or {}).get('profile_pic') or ''},
            'footer': {'text': 'Last online'},
        }
        if snapshot.kick_ended_at:
            embed['timestamp'] = self._iso(snapshot.kick_ended_at)
        return embed

    @staticmethod
    def _button(snapshot: SessionSnapshot, platform: Platform) -> Optional[Dict[str, Any]]:
        subscription = snapshot.subscription(platform)
        if snapshot.is_online(platform):
            label = f'Watch {platform.label} Stream'
            url = subscription.url
        else:
            vod = snapshot.twitch_vod if platform is Platform.TWITCH else snapshot.kick_vod
            if not vod:
                return None
            label = f'Watch {platform.label} VOD'
            if platform is Platform.TWITCH:
                url = f"https://twitch.tv/videos/{vod.get('id')}"
            else:
                url = f"https://kick.com/{subscription.name}/videos/{(vod.get('video') or {}).get('uuid')}"
        return {
            'type': 2,
            'style': 5,
            'label': label,
            'url': url,
            'emoji': dict(BUTTON_EMOJIS[platform]),
        }

    @staticmethod
    def _game(snapshot: SessionSnapshot, platform: Platform) -> Optional[str]:
        if platform is Platform.TWITCH:
            return (snapshot.twitch_stream_data or {}).get('game_name')
        return ((snapshot.kick_stream_data or {}).get('category') or {}).get('name')

    def _live_line(self, snapshot: SessionSnapshot, platform: Platform) -> str:
        subscription = snapshot.subscription(platform)
        text = message_builder(
            subscription.live_message or FALLBACK_LIVE_MESSAGE,
            subscription.name,
            self._game(snapshot, platform),
            snapshot.started_at(platform) or snapshot.created_at,
            platform.value,
        )
        mention = role_mention(subscription)
        return f'{mention} {text}' if mention else text

    @staticmethod
    def _offline_line(snapshot: SessionSnapshot, platform: Platform) -> str:
        subscription = snapshot.subscription(platform)
        return message_builder(
            subscription.offline_message or FALLBACK_OFFLINE_MESSAGE,
            subscription.name,
            started_at=snapshot.started_at(platform) or snapshot.created_at,
            service=platform.value,
        )

    def _content(self, snapshot: SessionSnapshot, platforms: List[Platform]) -> str:
        twitch = snapshot.twitch_subscription
        kick = snapshot.kick_subscription

        if len(platforms) == 2 and snapshot.twitch_online and snapshot.kick_online \
                and twitch.live_message == kick.live_message:
            mentions = []
            for mention in (role_mention(twitch), role_mention(kick)):
                if mention and mention not in mentions:
                    mentions.append(mention)
            combined = message_builder(
                twitch.live_message or DEFAULT_LIVE_MESSAGE,
                twitch.name,
                self._game(snapshot, Platform.TWITCH),
                snapshot.twitch_started_at or snapshot.created_at,
                'both',
                twitch_name=twitch.name,
                kick_name=kick.name,
            )
            return ' '.join(mentions + [combined])

        lines: List[str] = []
        for platform in platforms:
            if snapshot.is_online(platform):
                line = self._live_line(snapshot, platform)
            else:
                line = self._offline_line(snapshot, platform)
            if line not in lines or snapshot.is_online(platform):
                lines.append(line)
        return '\n'.join(lines)
