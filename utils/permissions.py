from discord import Member, TextChannel
from typing import Tuple

# Alerts cannot be posted without these
REQUIRED_ALERT_PERMISSIONS = {
    'view_channel': 'View Channel',
    'send_messages': 'Send Messages',
    'embed_links': 'Embed Links',
}
# Alerts still post without these, but role and @everyone pings are dropped
OPTIONAL_ALERT_PERMISSIONS = {
    'mention_everyone': 'Mention Roles',
}


class PermissionChecker:
    @staticmethod
    def check_permissions(member: Member, channel: TextChannel) -> Tuple[bool, str]:
        """Whether `member` can post alerts in `channel`, with a per-permission report"""
        granted = channel.permissions_for(member)

        report = []
        can_post = True
        for perm, description in REQUIRED_ALERT_PERMISSIONS.items():
            has_perm = getattr(granted, perm, False)
            can_post = can_post and has_perm
            report.append(f"{description}: {'✅' if has_perm else '❌'}")
        for perm, description in OPTIONAL_ALERT_PERMISSIONS.items():
            has_perm = getattr(granted, perm, False)
            report.append(f"{description}: {'✅' if has_perm else '⚠️ pings disabled'}")

        return can_post, "\n".join(report)
