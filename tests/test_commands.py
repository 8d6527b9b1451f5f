"""Command handlers and argument decoding."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from commands import COMMANDS, CommandDescriptor, CommandManager
from commands.multistream_command import (
    edit_multistream, link_streams, list_multistreams, multistream_details, unlink_streams,
)
from commands.stream_commands import (
    add_subscription, edit_subscription, remove_subscription, streamer_identity, subscription_details,
)
from models.commands import (
    LinkArgs, decode_add_subscription_args, decode_edit_link_args, decode_edit_subscription_args,
    decode_link_args, decode_multistream_test_args, decode_stream_test_args,
)
from models.stream import Platform
from services.exceptions import InvalidInput, MissingTarget, NotFound, NotLinked
from utils.embed_builder import DEFAULT_LIVE_MESSAGE

from conftest import CHANNEL_ID, GUILD_ID, ROLE_ID, make_subscription, twitch_user


@pytest.fixture
def bot(store, registry, twitch_client, kick_client, mock_logging_service):
    return SimpleNamespace(
        store=store,
        registry=registry,
        platforms={Platform.TWITCH: twitch_client, Platform.KICK: kick_client},
        monitor=MagicMock(),
        logging_service=mock_logging_service,
    )


@pytest.fixture
def channel():
    channel = MagicMock()
    channel.id = CHANNEL_ID
    channel.mention = f'<#{CHANNEL_ID}>'
    permissions = MagicMock(view_channel=True, send_messages=True, embed_links=True, mention_everyone=False)
    channel.permissions_for.return_value = permissions
    return channel


class TestArgumentDecoding:
    def test_profile_url_is_accepted(self):
        args = decode_add_subscription_args(Platform.TWITCH, 'https://www.twitch.tv/Some_Streamer/', CHANNEL_ID)
        assert args.streamer == 'some_streamer'

    def test_invalid_username(self):
        with pytest.raises(InvalidInput):
            decode_add_subscription_args(Platform.TWITCH, 'ab', CHANNEL_ID)

    def test_blank_message_is_rejected(self):
        with pytest.raises(InvalidInput):
            decode_add_subscription_args(Platform.KICK, 'xqc', CHANNEL_ID, live_message='   ')

    def test_stream_test_defaults(self):
        args = decode_stream_test_args(Platform.KICK, '@bar')
        assert (args.streamer, args.message_type, args.multistream, args.broadcast) == ('bar', 'live', None, False)

    def test_unknown_message_type(self):
        with pytest.raises(InvalidInput):
            decode_stream_test_args(Platform.KICK, 'bar', message_type='rerun')

    def test_multistream_test_needs_a_streamer(self):
        with pytest.raises(MissingTarget):
            decode_multistream_test_args(None, '  ')

    def test_link_needs_both_streamers(self):
        with pytest.raises(InvalidInput):
            decode_link_args('foo', None)
        assert decode_link_args('foo', 'bar', 'KICK').priority == 'kick'

    def test_edit_needs_a_change(self):
        with pytest.raises(InvalidInput):
            decode_edit_subscription_args(Platform.TWITCH, 'foo')
        with pytest.raises(InvalidInput):
            decode_edit_link_args('foo', None)
        with pytest.raises(MissingTarget):
            decode_edit_link_args(None, None, priority='kick')


class TestSubscriptionCommands:
    def test_streamer_identity(self):
        assert streamer_identity(Platform.TWITCH, twitch_user('foo')) == {'broadcaster_id': '111', 'name': 'foo'}
        assert streamer_identity(Platform.KICK, {'user_id': 5, 'slug': 'bar'}) == {'broadcaster_id': '5', 'name': 'bar'}

    @pytest.mark.asyncio
    async def test_add_stores_defaults_and_watches(self, bot, store, channel):
        args = decode_add_subscription_args(Platform.TWITCH, 'foo', CHANNEL_ID)

        body = await add_subscription(bot, GUILD_ID, args, MagicMock(), channel)

        subscription = (await store.list_subscriptions(Platform.TWITCH))[0]
        assert subscription.broadcaster_id == '111'
        assert subscription.live_message == DEFAULT_LIVE_MESSAGE
        bot.monitor.watch.assert_called_once_with(Platform.TWITCH, '111')
        assert body['embeds'][0]['title'] == '✅ Success'

    @pytest.mark.asyncio
    async def test_add_duplicate(self, bot, store, channel):
        store.put(make_subscription(1, Platform.TWITCH, 'foo'))
        args = decode_add_subscription_args(Platform.TWITCH, 'FOO', CHANNEL_ID)

        with pytest.raises(InvalidInput):
            await add_subscription(bot, GUILD_ID, args, MagicMock(), channel)

    @pytest.mark.asyncio
    async def test_add_unknown_streamer(self, bot, twitch_client, channel):
        twitch_client.get_streamer.return_value = None
        args = decode_add_subscription_args(Platform.TWITCH, 'nobody', CHANNEL_ID)

        with pytest.raises(InvalidInput):
            await add_subscription(bot, GUILD_ID, args, MagicMock(), channel)

    @pytest.mark.asyncio
    async def test_add_without_send_permission(self, bot, store, channel):
        channel.permissions_for.return_value.send_messages = False
        args = decode_add_subscription_args(Platform.TWITCH, 'foo', CHANNEL_ID)

        with pytest.raises(InvalidInput):
            await add_subscription(bot, GUILD_ID, args, MagicMock(), channel)
        assert store.subscriptions == {}

    @pytest.mark.asyncio
    async def test_remove_unwatches_last_subscription(self, bot, store, linked_pair):
        foo, bar = linked_pair

        await remove_subscription(bot, GUILD_ID, Platform.TWITCH, 'foo')

        assert foo.id not in store.subscriptions
        assert store.subscriptions[bar.id].link is None
        bot.monitor.unwatch.assert_called_once_with(Platform.TWITCH, foo.broadcaster_id)

    @pytest.mark.asyncio
    async def test_remove_unknown(self, bot):
        with pytest.raises(NotFound):
            await remove_subscription(bot, GUILD_ID, Platform.KICK, 'nobody')

    @pytest.mark.asyncio
    async def test_edit_changes_settings_and_keeps_link(self, bot, store, linked_pair):
        foo, _ = linked_pair
        args = decode_edit_subscription_args(Platform.TWITCH, 'foo', role_id=4000, offline_message='{{name}} is done')

        body = await edit_subscription(bot, GUILD_ID, args)

        edited = store.subscriptions[foo.id]
        assert (edited.role_id, edited.offline_message) == (4000, '{{name}} is done')
        assert edited.live_message == foo.live_message
        assert edited.link == foo.link
        assert 'Multistream linked to: Kick `bar`' in body['embeds'][0]['description']

    @pytest.mark.asyncio
    async def test_edit_channel(self, bot, store, channel):
        foo = store.put(make_subscription(1, Platform.TWITCH, 'foo', channel_id=CHANNEL_ID + 1))
        args = decode_edit_subscription_args(Platform.TWITCH, 'foo', channel_id=CHANNEL_ID)

        await edit_subscription(bot, GUILD_ID, args, MagicMock(), channel)

        assert store.subscriptions[foo.id].channel_id == CHANNEL_ID

    @pytest.mark.asyncio
    async def test_edit_channel_of_linked_stream(self, bot, store, channel, linked_pair):
        channel.id = CHANNEL_ID + 1
        args = decode_edit_subscription_args(Platform.KICK, 'bar', channel_id=channel.id)

        with pytest.raises(InvalidInput):
            await edit_subscription(bot, GUILD_ID, args, MagicMock(), channel)
        assert store.subscriptions[2].channel_id == CHANNEL_ID

    @pytest.mark.asyncio
    async def test_subscription_details(self, bot, store):
        store.put(make_subscription(1, Platform.KICK, 'bar'))

        body = await subscription_details(bot, GUILD_ID, Platform.KICK, 'bar')

        description = body['embeds'][0]['description']
        assert 'Streamer: `bar`' in description
        assert f'Role: <@&{ROLE_ID}>' in description
        assert 'Multistream' not in description


class TestMultistreamCommands:
    @pytest.mark.asyncio
    async def test_link(self, bot, store):
        foo = store.put(make_subscription(1, Platform.TWITCH, 'foo'))
        bar = store.put(make_subscription(2, Platform.KICK, 'bar'))

        await link_streams(bot, GUILD_ID, LinkArgs('foo', 'bar'))

        assert store.subscriptions[foo.id].link.counterpart_id(Platform.TWITCH) == bar.id
        twitch, kick = await bot.registry.resolve_pair(GUILD_ID, 'foo', 'bar')
        assert (twitch.id, kick.id) == (foo.id, bar.id)

    @pytest.mark.asyncio
    async def test_link_requires_same_channel(self, bot, store):
        store.put(make_subscription(1, Platform.TWITCH, 'foo'))
        store.put(make_subscription(2, Platform.KICK, 'bar', channel_id=CHANNEL_ID + 1))

        with pytest.raises(InvalidInput):
            await link_streams(bot, GUILD_ID, LinkArgs('foo', 'bar'))

    @pytest.mark.asyncio
    async def test_link_already_linked(self, bot, store, linked_pair):
        store.put(make_subscription(3, Platform.KICK, 'baz'))

        with pytest.raises(InvalidInput):
            await link_streams(bot, GUILD_ID, LinkArgs('foo', 'baz'))

    @pytest.mark.asyncio
    async def test_unlink(self, bot, store, linked_pair):
        await unlink_streams(bot, GUILD_ID, None, 'bar')

        assert all(s.link is None for s in store.subscriptions.values())
        with pytest.raises(NotLinked):
            await unlink_streams(bot, GUILD_ID, 'foo', None)
        with pytest.raises(MissingTarget):
            await unlink_streams(bot, GUILD_ID, None, None)

    @pytest.mark.asyncio
    async def test_details(self, bot, linked_pair):
        body = await multistream_details(bot, GUILD_ID, 'foo', None)

        assert len(body['embeds']) == 1

    @pytest.mark.asyncio
    async def test_edit_link(self, bot, store, linked_pair):
        foo, bar = linked_pair

        await edit_multistream(bot, GUILD_ID, decode_edit_link_args(None, 'bar', priority='KICK'))

        assert store.subscriptions[foo.id].link.priority == 'kick'
        assert store.subscriptions[bar.id].link.priority == 'kick'
        assert store.subscriptions[foo.id].link.late_merge is True

    @pytest.mark.asyncio
    async def test_edit_unlinked(self, bot, store):
        store.put(make_subscription(1, Platform.TWITCH, 'foo'))

        with pytest.raises(NotLinked):
            await edit_multistream(bot, GUILD_ID, decode_edit_link_args('foo', None, late_merge=False))

    @pytest.mark.asyncio
    async def test_list(self, bot, store, linked_pair):
        store.put(make_subscription(3, Platform.TWITCH, 'solo'))

        body = await list_multistreams(bot, GUILD_ID)

        embed = body['embeds'][0]
        assert embed['title'] == 'Multistream links (1)'
        assert 'Twitch `foo` ⇄ Kick `bar`' in embed['description']


class TestCommandManager:
    def test_setup_registers_every_group(self):
        calls = []
        manager = CommandManager(bot=None, commands=[
            CommandDescriptor('a', 'first', lambda bot: calls.append('a')),
            CommandDescriptor('b', 'second', lambda bot: calls.append('b')),
        ])

        manager.setup()

        assert calls == ['a', 'b']
        assert manager.names == ['a', 'b']

    def test_default_groups(self):
        assert [command.name for command in COMMANDS] == ['twitch', 'kick', 'multistream']
