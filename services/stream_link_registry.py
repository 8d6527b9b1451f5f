import logging
from typing import Optional, Tuple

from interfaces.repository_interface import ISubscriptionStore
from models.stream import Platform, Subscription
from services.exceptions import LinkMismatch, MissingTarget, NotFound, NotLinked

logger = logging.getLogger(__name__)


class StreamLinkRegistry:
    """Read-only lookups of subscriptions and the multistream links between them

    A link is only trusted when both sides reference each other. Any asymmetry
    is reported as LinkMismatch and left untouched in the store.
    """

    def __init__(self, store: ISubscriptionStore):
        self.store = store

    async def resolve_by_name(self, guild_id: int, platform: Platform, name: str) -> Subscription:
        """Find a guild's subscription by (partial, case-insensitive) name"""
        matches = await self.store.find_subscriptions_by_name(platform, guild_id, name)
        if not matches:
            raise NotFound(platform.label, name)
        for subscription in matches:
            if subscription.name.lower() == name.lower():
                return subscription
        return matches[0]

    async def resolve_counterpart(self, subscription: Subscription) -> Subscription:
        """Follow a subscription's link to the other platform"""
        link = subscription.link
        if link is None:
            raise NotLinked(subscription.platform.label, subscription.name)

        other_platform = subscription.platform.counterpart
        if link.own_id(subscription.platform) != subscription.id:
            logger.warning(f"Link {link.id} does not reference {subscription.platform.value} "
                           f"subscription {subscription.id}")
            raise self._mismatch(subscription, None)

        counterpart = await self.store.get_subscription(other_platform, link.counterpart_id(subscription.platform))
        if counterpart is None:
            raise NotLinked(subscription.platform.label, subscription.name)

        if not self._links_back(counterpart, subscription):
            logger.warning(f"Asymmetric link between {subscription.platform.value} subscription "
                           f"{subscription.id} and {other_platform.value} subscription {counterpart.id}")
            raise self._mismatch(subscription, counterpart)
        return counterpart

    async def resolve_pair(self, guild_id: int, twitch_name: Optional[str] = None,
                           kick_name: Optional[str] = None) -> Tuple[Subscription, Subscription]:
        """Resolve a linked (twitch, kick) pair from one or both names"""
        if twitch_name and kick_name:
            twitch = await self.resolve_by_name(guild_id, Platform.TWITCH, twitch_name)
            kick = await self.resolve_by_name(guild_id, Platform.KICK, kick_name)
            if not (self._links_back(twitch, kick) and self._links_back(kick, twitch)):
                raise LinkMismatch(twitch.name, kick.name)
            return twitch, kick

        if twitch_name:
            twitch = await self.resolve_by_name(guild_id, Platform.TWITCH, twitch_name)
            return twitch, await self.resolve_counterpart(twitch)

        if kick_name:
            kick = await self.resolve_by_name(guild_id, Platform.KICK, kick_name)
            return await self.resolve_counterpart(kick), kick

        raise MissingTarget()

    @staticmethod
    def _links_back(subscription: Subscription, other: Subscription) -> bool:
        """True when `subscription`'s link names `other` as its counterpart"""
        link = subscription.link
        if link is None or subscription.platform is other.platform:
            return False
        return (link.own_id(subscription.platform) == subscription.id
                and link.counterpart_id(subscription.platform) == other.id)

    @staticmethod
    def _mismatch(subscription: Subscription, counterpart: Optional[Subscription]) -> LinkMismatch:
        other_name = counterpart.name if counterpart else "unknown"
        if subscription.platform is Platform.TWITCH:
            return LinkMismatch(subscription.name, other_name)
        return LinkMismatch(other_name, subscription.name)
