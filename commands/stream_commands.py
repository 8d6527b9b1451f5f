from discord import app_commands, Interaction, Role, TextChannel
from dataclasses import replace
from typing import Any, Dict, Literal, Optional
import logging

from commands.autocomplete import streamer_autocomplete
from commands.deferred import run_deferred
from models.commands import (
    AddSubscriptionArgs, EditSubscriptionArgs, decode_add_subscription_args, decode_edit_subscription_args,
    decode_stream_test_args,
)
from models.stream import Platform, Subscription
from services.exceptions import InvalidInput, LinkMismatch, NotLinked
from ui.embeds import SubscriptionDetailsEmbed, SubscriptionListEmbed, success_body
from utils.embed_builder import DEFAULT_LIVE_MESSAGE, DEFAULT_OFFLINE_MESSAGE
from utils.permissions import PermissionChecker

logger = logging.getLogger(__name__)


def streamer_identity(platform: Platform, streamer: Dict[str, Any]) -> Dict[str, str]:
    """Broadcaster id and canonical name from a platform user/channel payload"""
    if platform is Platform.TWITCH:
        return {'broadcaster_id': str(streamer['id']), 'name': streamer.get('login') or streamer['display_name']}
    return {'broadcaster_id': str(streamer['user_id']), 'name': streamer['slug']}


async def add_subscription(bot, guild_id: int, args: AddSubscriptionArgs,
                           member, channel: TextChannel) -> Dict[str, Any]:
    """Validate and store a new subscription, then start watching the broadcaster"""
    existing = await bot.store.find_subscriptions_by_name(args.platform, guild_id, args.streamer)
    if any(subscription.name.lower() == args.streamer.lower() for subscription in existing):
        raise InvalidInput(f"You are already subscribed to {args.platform.label} notifications for `{args.streamer}`")

    streamer = await bot.platforms[args.platform].get_streamer(args.streamer)
    if not streamer:
        raise InvalidInput(f"Could not find {args.platform.label} streamer `{args.streamer}`")

    can_post, permission_info = PermissionChecker.check_permissions(member, channel)
    if not can_post:
        raise InvalidInput(f"I can't post alerts in {channel.mention}:\n{permission_info}")

    identity = streamer_identity(args.platform, streamer)
    subscription = await bot.store.add_subscription(Subscription(
        id=0,
        platform=args.platform,
        guild_id=guild_id,
        broadcaster_id=identity['broadcaster_id'],
        name=identity['name'],
        channel_id=channel.id,
        role_id=args.role_id,
        live_message=args.live_message or DEFAULT_LIVE_MESSAGE,
        offline_message=args.offline_message or DEFAULT_OFFLINE_MESSAGE,
    ))
    bot.monitor.watch(subscription.platform, subscription.broadcaster_id)
    await bot.logging_service.log_info(
        f"Added {subscription.platform.label} subscription {subscription.name} in guild {guild_id}"
    )
    return success_body(
        f"Successfully subscribed to {subscription.platform.label} notifications for `{subscription.name}` "
        f"in {channel.mention}"
    )


async def remove_subscription(bot, guild_id: int, platform: Platform, streamer: str) -> Dict[str, Any]:
    """Delete a subscription; the broadcaster is unwatched once nobody follows it"""
    subscription = await bot.registry.resolve_by_name(guild_id, platform, streamer)
    await bot.store.delete_subscription(subscription)

    remaining = await bot.store.list_remaining_subscriptions(platform, subscription.broadcaster_id)
    if not remaining:
        bot.monitor.unwatch(platform, subscription.broadcaster_id)

    await bot.logging_service.log_info(
        f"Removed {platform.label} subscription {subscription.name} in guild {guild_id}"
    )
    return success_body(f"Successfully unsubscribed from {platform.label} notifications for `{subscription.name}`")


async def linked_counterpart(bot, subscription: Subscription) -> Optional[Subscription]:
    """The other side of a subscription's link, or None when it has no usable link"""
    if subscription.link is None:
        return None
    try:
        return await bot.registry.resolve_counterpart(subscription)
    except (NotLinked, LinkMismatch) as e:
        logger.warning(f"Ignoring link of {subscription.name}: {e}")
        return None


async def edit_subscription(bot, guild_id: int, args: EditSubscriptionArgs,
                            member=None, channel: Optional[TextChannel] = None) -> Dict[str, Any]:
    """Change a subscription's channel, role or messages; its link is kept"""
    subscription = await bot.registry.resolve_by_name(guild_id, args.platform, args.streamer)
    counterpart = await linked_counterpart(bot, subscription)

    changes: Dict[str, Any] = {}
    if channel is not None:
        if counterpart is not None and counterpart.channel_id != channel.id:
            raise InvalidInput(
                f"`{subscription.name}` is linked to {counterpart.platform.label} streamer `{counterpart.name}`, "
                f"which posts in <#{counterpart.channel_id}>; linked streams must share a channel"
            )
        can_post, permission_info = PermissionChecker.check_permissions(member, channel)
        if not can_post:
            raise InvalidInput(f"I can't post alerts in {channel.mention}:\n{permission_info}")
        changes['channel_id'] = channel.id
    if args.role_id is not None:
        changes['role_id'] = args.role_id
    if args.live_message is not None:
        changes['live_message'] = args.live_message
    if args.offline_message is not None:
        changes['offline_message'] = args.offline_message
    if not changes:
        raise InvalidInput("Nothing to edit: give a new channel, role, live message or offline message")

    updated = replace(subscription, **changes)
    await bot.store.update_subscription(updated)
    await bot.logging_service.log_info(
        f"Edited {updated.platform.label} subscription {updated.name} in guild {guild_id}: {', '.join(changes)}"
    )
    embed = SubscriptionDetailsEmbed.create(
        updated, counterpart, title=f"Edited {updated.platform.label} notifications for `{updated.name}`"
    )
    return {'content': '', 'embeds': [embed], 'components': []}


async def subscription_details(bot, guild_id: int, platform: Platform, streamer: str) -> Dict[str, Any]:
    subscription = await bot.registry.resolve_by_name(guild_id, platform, streamer)
    counterpart = await linked_counterpart(bot, subscription)
    return {'content': '', 'embeds': [SubscriptionDetailsEmbed.create(subscription, counterpart)], 'components': []}


async def list_subscriptions(bot, guild_id: int, platform: Platform) -> Dict[str, Any]:
    subscriptions = await bot.store.list_subscriptions(platform, guild_id)
    return {'content': '', 'embeds': [SubscriptionListEmbed.create(platform, subscriptions)], 'components': []}


def build_platform_group(bot, platform: Platform) -> app_commands.Group:
    """Slash command group `/twitch` or `/kick`"""
    group = app_commands.Group(
        name=platform.value,
        description=f"Manage {platform.label} stream alerts",
        guild_only=True
    )
    autocomplete = streamer_autocomplete(platform)

    @group.command(name="add", description=f"Get alerts when a {platform.label} streamer goes live")
    @app_commands.describe(
        streamer=f"{platform.label} username or channel URL",
        channel="Channel for notifications",
        role="Role to mention",
        live_message="Message when the stream goes live ({{name}}, {{url}}, {{game}}, {{timestamp}}...)",
        offline_message="Message when the stream ends"
    )
    @app_commands.checks.has_permissions(manage_guild=True)
    async def add(interaction: Interaction, streamer: str, channel: TextChannel,
                  role: Optional[Role] = None, live_message: Optional[str] = None,
                  offline_message: Optional[str] = None):
        args = decode_add_subscription_args(
            platform, streamer, channel.id, role.id if role else None, live_message, offline_message
        )
        await run_deferred(bot, interaction, lambda: add_subscription(
            bot, interaction.guild_id, args, interaction.guild.me, channel
        ))

    @group.command(name="edit", description=f"Change the alert settings of a {platform.label} streamer")
    @app_commands.describe(
        streamer=f"{platform.label} streamer to edit",
        channel="New channel for notifications",
        role="New role to mention",
        live_message="New message when the stream goes live",
        offline_message="New message when the stream ends"
    )
    @app_commands.autocomplete(streamer=autocomplete)
    @app_commands.checks.has_permissions(manage_guild=True)
    async def edit(interaction: Interaction, streamer: str, channel: Optional[TextChannel] = None,
                   role: Optional[Role] = None, live_message: Optional[str] = None,
                   offline_message: Optional[str] = None):
        args = decode_edit_subscription_args(
            platform, streamer, channel.id if channel else None, role.id if role else None,
            live_message, offline_message
        )
        await run_deferred(bot, interaction, lambda: edit_subscription(
            bot, interaction.guild_id, args, interaction.guild.me, channel
        ))

    @group.command(name="remove", description=f"Stop alerts for a {platform.label} streamer")
    @app_commands.describe(streamer=f"{platform.label} streamer to remove")
    @app_commands.autocomplete(streamer=autocomplete)
    @app_commands.checks.has_permissions(manage_guild=True)
    async def remove(interaction: Interaction, streamer: str):
        await run_deferred(bot, interaction, lambda: remove_subscription(
            bot, interaction.guild_id, platform, streamer
        ))

    @group.command(name="list", description=f"List this server's {platform.label} alerts")
    async def list_command(interaction: Interaction):
        await run_deferred(bot, interaction, lambda: list_subscriptions(bot, interaction.guild_id, platform))

    @group.command(name="details", description=f"Show the alert settings of a {platform.label} streamer")
    @app_commands.describe(streamer=f"{platform.label} streamer")
    @app_commands.autocomplete(streamer=autocomplete)
    async def details(interaction: Interaction, streamer: str):
        await run_deferred(bot, interaction, lambda: subscription_details(
            bot, interaction.guild_id, platform, streamer
        ))

    @group.command(name="test", description=f"Preview or send a test {platform.label} alert")
    @app_commands.describe(
        streamer=f"{platform.label} streamer to test",
        message_type="Alert to render",
        multistream="Include the linked streamer (defaults to on when linked)",
        broadcast="Post the test alert in the alert channel"
    )
    @app_commands.rename(message_type="message-type", broadcast="global")
    @app_commands.autocomplete(streamer=autocomplete)
    async def test(interaction: Interaction, streamer: str,
                   message_type: Optional[Literal['live', 'offline']] = None,
                   multistream: Optional[bool] = None, broadcast: Optional[bool] = None):
        args = decode_stream_test_args(platform, streamer, message_type, multistream, broadcast)
        await interaction.response.defer(ephemeral=True)
        bot.task_runner.submit(bot.test_service.run_stream_test(interaction, args),
                               name=f"test-{interaction.id}")

    return group


def setup_twitch_command(bot):
    bot.tree.add_command(build_platform_group(bot, Platform.TWITCH))


def setup_kick_command(bot):
    bot.tree.add_command(build_platform_group(bot, Platform.KICK))
