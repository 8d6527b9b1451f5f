from typing import Dict, Any, List, Optional, Tuple

from models.stream import MultiStreamLink, Platform, Subscription

FOOTER_TEXT = "Stream Alerts"


def build_error_embed(error: str, embed: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        'color': 0xFF0000,
        'title': '❌ Oops! Something went wrong',
        'description': error,
        'footer': {'text': FOOTER_TEXT},
        **(embed or {}),
    }


def build_success_embed(message: str, embed: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        'color': 0x00FF00,
        'title': '✅ Success',
        'description': message,
        'footer': {'text': FOOTER_TEXT},
        **(embed or {}),
    }


def error_body(error: str) -> Dict[str, Any]:
    return {'content': '', 'embeds': [build_error_embed(error)], 'components': []}


def success_body(message: str) -> Dict[str, Any]:
    return {'content': '', 'embeds': [build_success_embed(message)], 'components': []}


class SubscriptionListEmbed:
    @staticmethod
    def create(platform: Platform, subscriptions: List[Subscription]) -> Dict[str, Any]:
        if not subscriptions:
            return build_success_embed(
                f"You are not subscribed to any {platform.label} streamers",
                {'title': f"{platform.label} subscriptions"}
            )

        lines = [SubscriptionListEmbed._line(subscription) for subscription in subscriptions]
        return build_success_embed(
            "\n".join(lines),
            {'title': f"{platform.label} subscriptions ({len(subscriptions)})"}
        )

    @staticmethod
    def _line(subscription: Subscription) -> str:
        line = f"**{subscription.name}** → <#{subscription.channel_id}>"
        if subscription.role_id and subscription.role_id != subscription.guild_id:
            line += f" (pings <@&{subscription.role_id}>)"
        if subscription.link:
            line += " 🔗"
        return line


class SubscriptionDetailsEmbed:
    @staticmethod
    def create(subscription: Subscription, counterpart: Optional[Subscription] = None,
               title: Optional[str] = None) -> Dict[str, Any]:
        lines = [
            f"Streamer: `{subscription.name}`",
            f"Channel: <#{subscription.channel_id}>",
            f"Live Message: `{subscription.live_message}`",
            f"Offline Message: `{subscription.offline_message}`",
        ]
        if subscription.role_id:
            lines.append(f"Role: <@&{subscription.role_id}>")
        if counterpart is not None:
            lines.append(f"Multistream linked to: {counterpart.platform.label} `{counterpart.name}`")
        return build_success_embed(
            "\n".join(lines),
            {'title': title or f"{subscription.platform.label} stream notification details"}
        )


class MultistreamDetailsEmbed:
    @staticmethod
    def create(twitch: Subscription, kick: Subscription, link: MultiStreamLink) -> Dict[str, Any]:
        return build_success_embed(
            f"**{twitch.name}** (Twitch) ⇄ **{kick.name}** (Kick)",
            {
                'title': 'Multistream details',
                'fields': [
                    {'name': 'Channel', 'value': f"<#{twitch.channel_id}>", 'inline': True},
                    {'name': 'Priority', 'value': link.priority.capitalize(), 'inline': True},
                    {'name': 'Late merge', 'value': 'Enabled' if link.late_merge else 'Disabled', 'inline': True},
                ],
            }
        )


class MultistreamListEmbed:
    @staticmethod
    def create(pairs: List[Tuple[Subscription, Subscription]]) -> Dict[str, Any]:
        if not pairs:
            return build_success_embed("No multistream links found", {'title': 'Multistream links'})

        lines = [
            f"Twitch `{twitch.name}` ⇄ Kick `{kick.name}` (priority: {twitch.link.priority.capitalize()})"
            for twitch, kick in pairs
        ]
        return build_success_embed("\n".join(lines), {'title': f"Multistream links ({len(pairs)})"})
