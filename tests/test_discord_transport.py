"""Message bodies rendered to discord.py objects, and the deferred command flow."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from commands.deferred import run_deferred
from services.error_handler import ErrorHandler
from services.exceptions import NotLinked, UpstreamFailure
from services.notification_service import DiscordMessageTransport
from services.task_runner import TaskRunner
from ui.components import to_message_kwargs

BODY = {
    'content': 'foo is live',
    'embeds': [{'title': 'Twitch title', 'color': 0x6441A4}],
    'components': [{'type': 1, 'components': [{
        'type': 2, 'style': 5, 'label': 'Watch Twitch Stream', 'url': 'https://twitch.tv/foo',
        'emoji': {'name': 'twitch', 'id': '1404661243373031585', 'animated': False},
    }]}],
}


def http_error(status=403, message='Missing Access'):
    return discord.HTTPException(MagicMock(status=status, reason='Forbidden'), message)


class TestMessageKwargs:
    @pytest.mark.asyncio
    async def test_buttons_become_a_view(self):
        kwargs = to_message_kwargs(BODY)

        assert kwargs['content'] == 'foo is live'
        assert kwargs['embeds'][0].title == 'Twitch title'
        button = kwargs['view'].children[0]
        assert button.url == 'https://twitch.tv/foo'
        assert button.emoji.id == 1404661243373031585

    @pytest.mark.asyncio
    async def test_edit_without_buttons_clears_view(self):
        body = {'content': '', 'embeds': [], 'components': []}

        assert 'view' not in to_message_kwargs(body)
        assert to_message_kwargs(body, editing=True)['view'] is None


class TestDiscordMessageTransport:
    @pytest.mark.asyncio
    async def test_create_returns_message_id(self):
        bot = MagicMock()
        channel = bot.get_partial_messageable.return_value
        channel.send = AsyncMock(return_value=MagicMock(id=555))

        message_id = await DiscordMessageTransport(bot).create_message(2000, BODY)

        assert message_id == '555'
        bot.get_partial_messageable.assert_called_once_with(2000)

    @pytest.mark.asyncio
    async def test_http_errors_become_upstream_failures(self):
        bot = MagicMock()
        message = bot.get_partial_messageable.return_value.get_partial_message.return_value
        message.edit = AsyncMock(side_effect=http_error(404, 'Unknown Message'))

        with pytest.raises(UpstreamFailure) as excinfo:
            await DiscordMessageTransport(bot).update_message(2000, '555', BODY)

        assert excinfo.value.status == 404


class TestRunDeferred:
    @pytest.fixture
    def bot(self, mock_logging_service, transport):
        return SimpleNamespace(
            task_runner=TaskRunner(mock_logging_service),
            transport=transport,
            error_handler=ErrorHandler(mock_logging_service),
            logging_service=mock_logging_service,
        )

    @pytest.mark.asyncio
    async def test_result_replaces_deferred_response(self, bot, transport, mock_interaction):
        async def work():
            return BODY

        await run_deferred(bot, mock_interaction, work)
        await bot.task_runner.drain()

        mock_interaction.response.defer.assert_awaited_once_with(ephemeral=True)
        transport.update_deferred_response.assert_awaited_once_with(mock_interaction, BODY)

    @pytest.mark.asyncio
    async def test_errors_replace_deferred_response(self, bot, transport, mock_interaction, mock_logging_service):
        async def work():
            raise NotLinked('Kick', 'bar')

        await run_deferred(bot, mock_interaction, work)
        await bot.task_runner.drain()

        body = transport.update_deferred_response.await_args.args[1]
        assert body['embeds'][0]['description'] == 'The Kick streamer `bar` is not linked to a multistream'
        mock_logging_service.log_error.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_work_is_not_started_when_defer_fails(self, bot, transport, mock_interaction):
        work = AsyncMock(return_value=BODY)
        mock_interaction.response.defer.side_effect = http_error(404, 'Unknown interaction')

        with pytest.raises(discord.HTTPException):
            await run_deferred(bot, mock_interaction, work)
        await bot.task_runner.drain()

        work.assert_not_called()
        transport.update_deferred_response.assert_not_awaited()
