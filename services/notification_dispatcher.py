import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from interfaces.service_interface import IMessageTransport
from models.stream import SessionSnapshot
from services.exceptions import StreamAlertError
from utils.embed_builder import NotificationComposer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    snapshot: SessionSnapshot
    body: Optional[Dict[str, Any]] = None
    error: Optional[Exception] = None


class NotificationDispatcher:
    """Creates or updates the single Discord message that represents a session

    No retries: a failed transport call is reported in the result.
    """

    def __init__(self, transport: IMessageTransport, composer: NotificationComposer):
        self.transport = transport
        self.composer = composer

    async def dispatch(self, snapshot: SessionSnapshot) -> DispatchResult:
        """Create the session message on first dispatch, edit it afterwards"""
        body = self.composer.compose(snapshot)
        try:
            if snapshot.has_message:
                await self.transport.update_message(
                    snapshot.discord_channel_id, snapshot.discord_message_id, body)
                return DispatchResult(success=True, snapshot=snapshot, body=body)

            message_id = await self.transport.create_message(snapshot.discord_channel_id, body)
        except StreamAlertError as e:
            logger.warning(f"Dispatch of session {snapshot.id} to channel {snapshot.discord_channel_id} failed: {e}")
            return DispatchResult(success=False, snapshot=snapshot, body=body, error=e)

        logger.info(f"Created message {message_id} for session {snapshot.id}")
        return DispatchResult(success=True, snapshot=replace(snapshot, discord_message_id=message_id), body=body)

    async def broadcast(self, snapshot: SessionSnapshot) -> DispatchResult:
        """One-off post for test alerts; the snapshot is never given a message id"""
        body = self.composer.compose(snapshot)
        try:
            await self.transport.create_message(snapshot.discord_channel_id, body)
        except StreamAlertError as e:
            logger.warning(f"Broadcast to channel {snapshot.discord_channel_id} failed: {e}")
            return DispatchResult(success=False, snapshot=snapshot, body=body, error=e)
        return DispatchResult(success=True, snapshot=snapshot, body=body)
