from typing import List

from discord import app_commands, Interaction

from models.stream import Platform

MAX_CHOICES = 25


def streamer_autocomplete(platform: Platform):
    """Autocomplete callback suggesting the guild's subscriptions for a platform"""

    async def autocomplete(interaction: Interaction, current: str) -> List[app_commands.Choice[str]]:
        if not interaction.guild_id:
            return []
        subscriptions = await interaction.client.store.find_subscriptions_by_name(
            platform, interaction.guild_id, current or ""
        )
        return [
            app_commands.Choice(name=subscription.name, value=subscription.name)
            for subscription in subscriptions[:MAX_CHOICES]
        ]

    return autocomplete
