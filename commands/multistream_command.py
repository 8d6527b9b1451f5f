from discord import app_commands, Interaction
from dataclasses import replace
from typing import Any, Dict, Literal, Optional
import logging

from commands.autocomplete import streamer_autocomplete
from commands.deferred import run_deferred
from models.commands import (
    EditLinkArgs, LinkArgs, decode_edit_link_args, decode_link_args, decode_multistream_test_args,
)
from models.stream import Platform
from services.exceptions import InvalidInput, MissingTarget, NotLinked
from ui.embeds import MultistreamDetailsEmbed, MultistreamListEmbed, success_body

logger = logging.getLogger(__name__)


async def link_streams(bot, guild_id: int, args: LinkArgs) -> Dict[str, Any]:
    """Link a Twitch and a Kick subscription into one multistream alert"""
    twitch = await bot.registry.resolve_by_name(guild_id, Platform.TWITCH, args.twitch_streamer)
    kick = await bot.registry.resolve_by_name(guild_id, Platform.KICK, args.kick_streamer)

    if twitch.link is not None:
        raise InvalidInput(f"The Twitch streamer `{twitch.name}` is already linked to a multistream")
    if kick.link is not None:
        raise InvalidInput(f"The Kick streamer `{kick.name}` is already linked to a multistream")
    if twitch.channel_id != kick.channel_id:
        raise InvalidInput(
            f"`{twitch.name}` and `{kick.name}` must post to the same channel to be linked "
            f"(<#{twitch.channel_id}> vs <#{kick.channel_id}>)"
        )

    await bot.store.create_link(twitch, kick, args.priority, args.late_merge)
    await bot.logging_service.log_info(
        f"Linked Twitch {twitch.name} and Kick {kick.name} in guild {guild_id}"
    )
    return success_body(f"Successfully linked Twitch streamer `{twitch.name}` and Kick streamer `{kick.name}`")


async def unlink_streams(bot, guild_id: int, twitch_streamer: Optional[str],
                         kick_streamer: Optional[str]) -> Dict[str, Any]:
    """Remove the link of a Twitch or Kick subscription"""
    if twitch_streamer:
        subscription = await bot.registry.resolve_by_name(guild_id, Platform.TWITCH, twitch_streamer)
    elif kick_streamer:
        subscription = await bot.registry.resolve_by_name(guild_id, Platform.KICK, kick_streamer)
    else:
        raise MissingTarget()

    if subscription.link is None:
        raise NotLinked(subscription.platform.label, subscription.name)

    await bot.store.delete_link(subscription.link)
    await bot.logging_service.log_info(
        f"Unlinked {subscription.platform.label} {subscription.name} in guild {guild_id}"
    )
    return success_body(f"Successfully removed the multistream link for `{subscription.name}`")


async def multistream_details(bot, guild_id: int, twitch_streamer: Optional[str],
                              kick_streamer: Optional[str]) -> Dict[str, Any]:
    twitch, kick = await bot.registry.resolve_pair(guild_id, twitch_streamer, kick_streamer)
    embed = MultistreamDetailsEmbed.create(twitch, kick, twitch.link)
    return {'content': '', 'embeds': [embed], 'components': []}


async def list_multistreams(bot, guild_id: int) -> Dict[str, Any]:
    pairs = []
    for twitch in await bot.store.list_subscriptions(Platform.TWITCH, guild_id):
        if twitch.link is None:
            continue
        kick = await bot.store.get_subscription(Platform.KICK, twitch.link.kick_subscription_id)
        if kick is not None:
            pairs.append((twitch, kick))
    return {'content': '', 'embeds': [MultistreamListEmbed.create(pairs)], 'components': []}


async def edit_multistream(bot, guild_id: int, args: EditLinkArgs) -> Dict[str, Any]:
    """Change the priority or late-merge setting of an existing link"""
    if args.twitch_streamer:
        subscription = await bot.registry.resolve_by_name(guild_id, Platform.TWITCH, args.twitch_streamer)
    else:
        subscription = await bot.registry.resolve_by_name(guild_id, Platform.KICK, args.kick_streamer)
    counterpart = await bot.registry.resolve_counterpart(subscription)
    twitch, kick = (subscription, counterpart) if subscription.platform is Platform.TWITCH \
        else (counterpart, subscription)

    changes: Dict[str, Any] = {}
    if args.priority is not None:
        changes['priority'] = args.priority
    if args.late_merge is not None:
        changes['late_merge'] = args.late_merge
    link = replace(subscription.link, **changes)
    await bot.store.update_link(link)

    await bot.logging_service.log_info(
        f"Edited multistream Twitch {twitch.name} + Kick {kick.name} in guild {guild_id}: {', '.join(changes)}"
    )
    embed = MultistreamDetailsEmbed.create(twitch, kick, link)
    embed['title'] = f"Updated `{twitch.name}` + `{kick.name}` multistream settings"
    return {'content': '', 'embeds': [embed], 'components': []}


def setup_multistream_command(bot):
    group = app_commands.Group(
        name="multistream",
        description="Combine a Twitch and a Kick streamer into one alert",
        guild_only=True
    )
    twitch_autocomplete = streamer_autocomplete(Platform.TWITCH)
    kick_autocomplete = streamer_autocomplete(Platform.KICK)

    @group.command(name="link", description="Link a Twitch and a Kick streamer")
    @app_commands.describe(
        twitch_streamer="Twitch streamer",
        kick_streamer="Kick streamer",
        priority="Platform whose details lead the alert",
        late_merge="Merge a stream that starts long after the other one"
    )
    @app_commands.rename(twitch_streamer="twitch-streamer", kick_streamer="kick-streamer", late_merge="late-merge")
    @app_commands.autocomplete(twitch_streamer=twitch_autocomplete, kick_streamer=kick_autocomplete)
    @app_commands.checks.has_permissions(manage_guild=True)
    async def link(interaction: Interaction, twitch_streamer: str, kick_streamer: str,
                   priority: Optional[Literal['twitch', 'kick']] = None, late_merge: Optional[bool] = None):
        args = decode_link_args(twitch_streamer, kick_streamer, priority, late_merge)
        await run_deferred(bot, interaction, lambda: link_streams(bot, interaction.guild_id, args))

    @group.command(name="unlink", description="Remove a multistream link")
    @app_commands.describe(twitch_streamer="Twitch streamer", kick_streamer="Kick streamer")
    @app_commands.rename(twitch_streamer="twitch-streamer", kick_streamer="kick-streamer")
    @app_commands.autocomplete(twitch_streamer=twitch_autocomplete, kick_streamer=kick_autocomplete)
    @app_commands.checks.has_permissions(manage_guild=True)
    async def unlink(interaction: Interaction, twitch_streamer: Optional[str] = None,
                     kick_streamer: Optional[str] = None):
        await run_deferred(bot, interaction, lambda: unlink_streams(
            bot, interaction.guild_id, twitch_streamer, kick_streamer
        ))

    @group.command(name="edit", description="Change the settings of a multistream link")
    @app_commands.describe(
        twitch_streamer="Twitch streamer",
        kick_streamer="Kick streamer",
        priority="Platform whose details lead the alert",
        late_merge="Merge a stream that starts long after the other one"
    )
    @app_commands.rename(twitch_streamer="twitch-streamer", kick_streamer="kick-streamer", late_merge="late-merge")
    @app_commands.autocomplete(twitch_streamer=twitch_autocomplete, kick_streamer=kick_autocomplete)
    @app_commands.checks.has_permissions(manage_guild=True)
    async def edit(interaction: Interaction, twitch_streamer: Optional[str] = None,
                   kick_streamer: Optional[str] = None,
                   priority: Optional[Literal['twitch', 'kick']] = None, late_merge: Optional[bool] = None):
        args = decode_edit_link_args(twitch_streamer, kick_streamer, priority, late_merge)
        await run_deferred(bot, interaction, lambda: edit_multistream(bot, interaction.guild_id, args))

    @group.command(name="list", description="List this server's multistream links")
    async def list_command(interaction: Interaction):
        await run_deferred(bot, interaction, lambda: list_multistreams(bot, interaction.guild_id))

    @group.command(name="details", description="Show a multistream link")
    @app_commands.describe(twitch_streamer="Twitch streamer", kick_streamer="Kick streamer")
    @app_commands.rename(twitch_streamer="twitch-streamer", kick_streamer="kick-streamer")
    @app_commands.autocomplete(twitch_streamer=twitch_autocomplete, kick_streamer=kick_autocomplete)
    async def details(interaction: Interaction, twitch_streamer: Optional[str] = None,
                      kick_streamer: Optional[str] = None):
        await run_deferred(bot, interaction, lambda: multistream_details(
            bot, interaction.guild_id, twitch_streamer, kick_streamer
        ))

    @group.command(name="test", description="Preview or send a test multistream alert")
    @app_commands.describe(
        twitch_streamer="Twitch streamer",
        kick_streamer="Kick streamer",
        message_type="Alert to render",
        broadcast="Post the test alert in the alert channel"
    )
    @app_commands.rename(twitch_streamer="twitch-streamer", kick_streamer="kick-streamer",
                         message_type="message-type", broadcast="global")
    @app_commands.autocomplete(twitch_streamer=twitch_autocomplete, kick_streamer=kick_autocomplete)
    async def test(interaction: Interaction, twitch_streamer: Optional[str] = None,
                   kick_streamer: Optional[str] = None,
                   message_type: Optional[Literal['live', 'offline']] = None,
                   broadcast: Optional[bool] = None):
        args = decode_multistream_test_args(twitch_streamer, kick_streamer, message_type, broadcast)
        await interaction.response.defer(ephemeral=True)
        bot.task_runner.submit(bot.test_service.run_multistream_test(interaction, args),
                               name=f"test-{interaction.id}")

    bot.tree.add_command(group)
