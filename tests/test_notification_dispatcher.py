from dataclasses import replace

import pytest

from models.stream import LiveState, Platform, SessionSnapshot
from services.exceptions import UpstreamFailure

from conftest import CHANNEL_ID, STARTED, make_subscription, twitch_stream, twitch_user


@pytest.fixture
def live_snapshot():
    subscription = make_subscription(1, Platform.TWITCH, 'foo')
    state = LiveState(Platform.TWITCH, twitch_user('foo'), twitch_stream())
    return SessionSnapshot(discord_channel_id=CHANNEL_ID, created_at=STARTED, id=3) \
        .with_platform_live(subscription, state, STARTED)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_creates_message_when_none_exists(self, dispatcher, transport, composer, live_snapshot):
        result = await dispatcher.dispatch(live_snapshot)

        assert result.success
        assert result.snapshot.discord_message_id == '987654321'
        assert live_snapshot.discord_message_id is None
        transport.create_message.assert_awaited_once_with(CHANNEL_ID, composer.compose(live_snapshot))
        transport.update_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_updates_existing_message(self, dispatcher, transport, live_snapshot):
        snapshot = replace(live_snapshot, discord_message_id='555')

        result = await dispatcher.dispatch(snapshot)

        assert result.success
        assert result.snapshot is snapshot
        transport.update_message.assert_awaited_once_with(CHANNEL_ID, '555', result.body)
        transport.create_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_claim_is_not_a_message(self, dispatcher, transport, live_snapshot):
        snapshot = replace(live_snapshot, discord_message_id='pending')

        await dispatcher.dispatch(snapshot)

        transport.create_message.assert_awaited_once()
        transport.update_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transport_failure_is_reported(self, dispatcher, transport, live_snapshot):
        error = UpstreamFailure("Discord said no", status=403)
        transport.create_message.side_effect = error

        result = await dispatcher.dispatch(live_snapshot)

        assert not result.success
        assert result.error is error
        assert result.snapshot is live_snapshot
        assert transport.create_message.await_count == 1


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_snapshot_is_returned_unchanged(self, dispatcher, transport, live_snapshot):
        result = await dispatcher.broadcast(live_snapshot)

        assert result.success
        assert result.snapshot is live_snapshot
        transport.create_message.assert_awaited_once_with(CHANNEL_ID, result.body)
