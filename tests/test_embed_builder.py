"""Message body composition."""

import copy
import json
from datetime import datetime, timedelta, timezone

import pytest

from models.stream import LiveState, Platform, SessionSnapshot
from utils.embed_builder import (
    KICK_COLOR, KICK_DEFAULT_BANNER, TWITCH_COLOR, format_duration, message_builder,
)

from conftest import CHANNEL_ID, GUILD_ID, NOW, STARTED, kick_channel, kick_stream, make_subscription, \
    twitch_stream, twitch_user


@pytest.fixture
def foo():
    return make_subscription(1, Platform.TWITCH, 'foo')


@pytest.fixture
def bar():
    return make_subscription(2, Platform.KICK, 'bar')


def base_snapshot(**overrides):
    return SessionSnapshot(discord_channel_id=CHANNEL_ID, created_at=STARTED, id=7, **overrides)


def twitch_live(subscription):
    return LiveState(Platform.TWITCH, twitch_user(subscription.name), twitch_stream())


def kick_live(subscription):
    return LiveState(Platform.KICK, kick_channel(subscription.name), kick_stream())


class TestFormatDuration:
    @pytest.mark.parametrize("milliseconds,expected", [
        (0, '0s'),
        (999, '0s'),
        (45_000, '45s'),
        (60_000, '1m'),
        (3_600_000, '1h'),
        (3_723_000, '1h2m3s'),
        (7_203_000, '2h3s'),
    ])
    def test_zero_parts_are_omitted(self, milliseconds, expected):
        assert format_duration(milliseconds) == expected


class TestMessageBuilder:
    def test_placeholders(self):
        started = datetime(2024, 1, 1, tzinfo=timezone.utc)
        message = message_builder(
            '{{NAME}} {{url}} {{twitch_url}} {{kick_url}} {{everyone}} {{here}} {{game}} {{category}} {{timestamp}}',
            'foo', 'Chess', started
        )
        assert message == (
            'foo https://twitch.tv/foo https://twitch.tv/foo https://kick.com/foo @everyone @here Chess Chess '
            f'<t:{int(started.timestamp())}:R>'
        )

    def test_both_urls(self):
        message = message_builder('{{url}}', 'foo', service='both', twitch_name='foo', kick_name='bar')
        assert message == 'https://twitch.tv/foo | https://kick.com/bar'

    def test_missing_game_renders_empty(self):
        assert message_builder('playing {{game}}', 'foo') == 'playing '


class TestCompose:
    def test_compose_is_pure(self, composer, foo, bar):
        snapshot = base_snapshot() \
            .with_platform_live(foo, twitch_live(foo), STARTED) \
            .with_platform_live(bar, kick_live(bar), STARTED + timedelta(seconds=5))
        before = copy.deepcopy(snapshot)

        first = composer.compose(snapshot)
        second = composer.compose(snapshot)

        assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)
        assert snapshot == before

    def test_kick_only_online(self, composer, foo, bar):
        snapshot = base_snapshot(twitch_subscription=foo).with_platform_live(bar, kick_live(bar), STARTED)

        body = composer.compose(snapshot)

        assert len(body['embeds']) == 1
        embed = body['embeds'][0]
        assert embed['color'] == KICK_COLOR
        assert embed['author']['name'] == 'Live on KICK'
        assert embed['footer']['text'] == 'Online'
        assert embed['fields'] == [{'name': 'Game', 'value': 'Slots'}]
        assert not any(e['color'] == TWITCH_COLOR for e in body['embeds'])
        assert [b['label'] for b in body['components'][0]['components']] == ['Watch Kick Stream']
        assert body['content'] == '<@&3000> @everyone bar is now live @ https://kick.com/bar'

    def test_twitch_online_block(self, composer, foo):
        body = composer.compose(base_snapshot().with_platform_live(foo, twitch_live(foo), STARTED))

        embed = body['embeds'][0]
        assert embed['title'] == 'Twitch title'
        assert embed['description'] == '**foo is live!**'
        assert embed['author'] == {'name': 'Live on Twitch', 'icon_url': 'https://alerts.example.com/static/twitch-logo.png'}
        assert embed['image']['url'] == (
            'https://static-cdn.jtvnw.net/previews-ttv/live_user_foo-1280x720.jpg'
            f'?b=40001&t={int(STARTED.timestamp())}'
        )
        assert embed['timestamp'] == STARTED.isoformat()
        button = body['components'][0]['components'][0]
        assert button == {
            'type': 2, 'style': 5, 'label': 'Watch Twitch Stream', 'url': 'https://twitch.tv/foo',
            'emoji': {'name': 'twitch', 'id': '1404661243373031585', 'animated': False},
        }

    def test_everyone_role_is_not_mentioned(self, composer):
        subscription = make_subscription(1, Platform.TWITCH, 'foo', role_id=GUILD_ID, live_message='{{name}} live')
        body = composer.compose(base_snapshot().with_platform_live(subscription, twitch_live(subscription), STARTED))
        assert body['content'] == 'foo live'

    def test_missing_vod_renders_offline_block(self, composer, foo):
        snapshot = base_snapshot() \
            .with_platform_live(foo, twitch_live(foo), STARTED) \
            .with_platform_ended(Platform.TWITCH, NOW, None)

        body = composer.compose(snapshot)

        embed = body['embeds'][0]
        assert embed['description'] == 'Streamed for **2h**'
        assert embed['author']['name'] == 'Twitch'
        assert embed['footer']['text'] == 'Last online'
        assert embed['image']['url'] == 'https://static-cdn.jtvnw.net/foo-offline.png'
        assert body['components'] == []
        assert body['content'] == 'foo is now offline'

    def test_missing_end_falls_back_to_zero(self, composer, bar):
        snapshot = base_snapshot(kick_subscription=bar, kick_started_at=STARTED)

        body = composer.compose(snapshot)

        assert body['embeds'][0]['description'] == 'Streamed for **0**'
        assert body['embeds'][0]['image']['url'] == KICK_DEFAULT_BANNER

    def test_vod_buttons_after_session(self, composer, foo, bar):
        snapshot = base_snapshot() \
            .with_platform_live(foo, twitch_live(foo), STARTED) \
            .with_platform_live(bar, kick_live(bar), STARTED) \
            .with_platform_ended(Platform.TWITCH, NOW, {'id': 'v1', 'duration': '1h59m'}) \
            .with_platform_ended(Platform.KICK, NOW, {'duration': 7_000_000, 'video': {'uuid': 'abc-123'}})

        body = composer.compose(snapshot)

        assert [e['description'] for e in body['embeds']] == ['Streamed for **1h59m**', 'Streamed for **1h56m40s**']
        buttons = body['components'][0]['components']
        assert [(b['label'], b['url']) for b in buttons] == [
            ('Watch Twitch VOD', 'https://twitch.tv/videos/v1'),
            ('Watch Kick VOD', 'https://kick.com/bar/videos/abc-123'),
        ]

    def test_identical_live_templates_are_combined(self, composer, foo, bar):
        snapshot = base_snapshot() \
            .with_platform_live(foo, twitch_live(foo), STARTED) \
            .with_platform_live(bar, kick_live(bar), STARTED)

        body = composer.compose(snapshot)

        assert body['content'] == '<@&3000> @everyone foo is now live @ https://twitch.tv/foo | https://kick.com/bar'
        assert len(body['embeds']) == 2

    def test_different_live_templates_are_stacked(self, composer, foo):
        kick = make_subscription(2, Platform.KICK, 'bar', live_message='{{name}} on kick', role_id=None)
        snapshot = base_snapshot() \
            .with_platform_live(foo, twitch_live(foo), STARTED) \
            .with_platform_live(kick, kick_live(kick), STARTED)

        body = composer.compose(snapshot)

        assert body['content'] == '<@&3000> @everyone foo is now live @ https://twitch.tv/foo\nbar on kick'

    def test_equal_offline_messages_are_deduplicated(self, composer):
        twitch = make_subscription(1, Platform.TWITCH, 'foo', offline_message='Stream over')
        kick = make_subscription(2, Platform.KICK, 'bar', offline_message='Stream over')
        snapshot = base_snapshot() \
            .with_platform_live(twitch, twitch_live(twitch), STARTED) \
            .with_platform_live(kick, kick_live(kick), STARTED) \
            .with_platform_ended(Platform.TWITCH, NOW, None) \
            .with_platform_ended(Platform.KICK, NOW, None)

        assert composer.compose(snapshot)['content'] == 'Stream over'
