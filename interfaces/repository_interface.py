from abc import ABC, abstractmethod
from typing import List, Optional

from models.stream import MultiStreamLink, Platform, SessionSnapshot, Subscription


class ISubscriptionStore(ABC):
    """Interface for subscription, link and session storage"""

    @abstractmethod
    async def find_subscriptions_by_name(self, platform: Platform, guild_id: int,
                                         name_pattern: str) -> List[Subscription]:
        """Case-insensitive partial name match, links eager-loaded"""
        pass

    @abstractmethod
    async def get_subscription(self, platform: Platform, subscription_id: int) -> Optional[Subscription]:
        """Get one subscription by id"""
        pass

    @abstractmethod
    async def list_subscriptions(self, platform: Optional[Platform] = None,
                                 guild_id: Optional[int] = None) -> List[Subscription]:
        """List subscriptions, optionally filtered"""
        pass

    @abstractmethod
    async def add_subscription(self, subscription: Subscription) -> Subscription:
        """Store a new subscription and return it with its id"""
        pass

    @abstractmethod
    async def update_subscription(self, subscription: Subscription) -> bool:
        """Save a subscription's channel, role and message templates"""
        pass

    @abstractmethod
    async def delete_subscription(self, subscription: Subscription) -> bool:
        """Delete a subscription, severing its link and ending its side of open sessions"""
        pass

    @abstractmethod
    async def list_remaining_subscriptions(self, platform: Platform, broadcaster_id: str) -> List[Subscription]:
        """Subscriptions in any guild that still reference a broadcaster"""
        pass

    @abstractmethod
    async def create_link(self, twitch: Subscription, kick: Subscription,
                          priority: str, late_merge: bool) -> MultiStreamLink:
        """Link a Twitch and a Kick subscription"""
        pass

    @abstractmethod
    async def update_link(self, link: MultiStreamLink) -> bool:
        """Save a link's priority and late-merge setting"""
        pass

    @abstractmethod
    async def delete_link(self, link: MultiStreamLink) -> bool:
        """Remove a link"""
        pass

    @abstractmethod
    async def find_open_session(self, platform: Platform, subscription_id: int) -> Optional[SessionSnapshot]:
        """Session in which the subscription's platform is still online"""
        pass

    @abstractmethod
    async def insert_session(self, snapshot: SessionSnapshot) -> SessionSnapshot:
        """Persist a new session and return it with its id"""
        pass

    @abstractmethod
    async def save_session(self, snapshot: SessionSnapshot) -> None:
        """Persist session state (flags, timestamps, payloads)"""
        pass

    @abstractmethod
    async def claim_message(self, session_id: int) -> bool:
        """Atomically mark a session as being dispatched

        False if it already has a message or a claim that has not yet expired.
        """
        pass

    @abstractmethod
    async def set_message_id(self, session_id: int, message_id: str) -> None:
        """Store the Discord message id of a claimed session"""
        pass

    @abstractmethod
    async def release_claim(self, session_id: int) -> None:
        """Undo a claim after a failed create"""
        pass

    @abstractmethod
    async def archive_session(self, session_id: int) -> None:
        """Mark an ended session as archived"""
        pass
