"""Discord bot entry point for Blame Bot."""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import discord
from discord import app_commands
from discord.ext import commands

from .adapters.discord.builders import (
    build_blame_embed,
    build_error_embed,
    build_revert_embed,
    build_unblame_embed,
)
from .adapters.discord.handlers import _post_to_channel, safe_respond
from .adapters.discord.paginator import PaginationManager
from .config import Settings, get_settings
from .idempotency import InteractionGuard, get_interaction_guard, interaction_age
from .models import ArchiveRole
from .retry import DATA_ACCESS_ERRORS, describe_data_error
from .service import BlameService, parse_blame_ids
from .telemetry_decorator import track_command
from .views import (
    ArchiveFilter,
    DetailFilter,
    GuildScope,
    HistoryFilter,
    InsultsFilter,
    build_views,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong while handling that command. Please try again later."
GUILD_ONLY_MESSAGE = "This command can only be used inside a server."
INVALID_IDS_MESSAGE = "Please provide at least one valid blame ID."


@dataclass(frozen=True)
class ChannelRouter:
    """Configures which Discord channels receive automated posts."""

    log: Optional[int]

    @staticmethod
    def from_env() -> "ChannelRouter":
        def _parse(env_key: str) -> Optional[int]:
            value = os.environ.get(env_key)
            if not value:
                return None
            try:
                return int(value)
            except ValueError:
                logger.warning("Invalid channel id %s for %s", value, env_key)
                return None

        return ChannelRouter(log=_parse("BLAMEBOT_CHANNEL_LOG"))


def admit_interaction(
    interaction: discord.Interaction, guard: Optional[InteractionGuard] = None
) -> bool:
    """Consult the interaction guard; False for duplicates and expired events."""

    if guard is None:
        guard = get_interaction_guard()
    admitted = guard.admit(str(interaction.id), interaction_age(interaction))
    if not admitted:
        logger.info("Skipping duplicate or expired interaction %s", interaction.id)
    return admitted


class GuardedCommandTree(app_commands.CommandTree):
    """Command tree that drops duplicate and stale slash command deliveries."""

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        return admit_interaction(interaction)


async def route_component(
    managers: Dict[str, PaginationManager],
    interaction: discord.Interaction,
    guard: Optional[InteractionGuard] = None,
) -> bool:
    """Dispatch a button click to the manager owning its custom_id prefix."""

    custom_id = (interaction.data or {}).get("custom_id", "")
    manager = managers.get(custom_id.split(":", 1)[0])
    if manager is None:
        return False
    if not admit_interaction(interaction, guard):
        return True
    return await manager.handle_control(interaction)


def _is_admin(user: object) -> bool:
    permissions = getattr(user, "guild_permissions", None)
    return bool(permissions and permissions.administrator)


def build_bot(
    db_path: Path,
    intents: Optional[discord.Intents] = None,
    settings: Optional[Settings] = None,
) -> commands.Bot:
    intents = intents or discord.Intents.default()
    app_id_raw = os.environ.get("DISCORD_APP_ID")
    application_id: Optional[int] = None
    if app_id_raw:
        try:
            application_id = int(app_id_raw)
        except ValueError:
            logger.warning("Invalid DISCORD_APP_ID: %s", app_id_raw)
    bot = commands.Bot(
        command_prefix="/",
        intents=intents,
        application_id=application_id,
        tree_cls=GuardedCommandTree,
    )
    settings = settings or get_settings()
    service = BlameService(db_path, settings)
    setattr(bot, "state_service", service)
    router = ChannelRouter.from_env()
    managers = {
        key: PaginationManager.from_settings(view, settings)
        for key, view in build_views(service).items()
    }
    setattr(bot, "pagination_managers", managers)

    async def _reply_error(interaction: discord.Interaction, message: str) -> None:
        await safe_respond(
            interaction,
            embed=build_error_embed(message),
            ephemeral=True,
            deadline=settings.response_deadline,
        )

    async def _guild_id(interaction: discord.Interaction) -> Optional[str]:
        if interaction.guild_id is None:
            await _reply_error(interaction, GUILD_ONLY_MESSAGE)
            return None
        return str(interaction.guild_id)

    @bot.event
    async def on_ready() -> None:
        logger.info("Blame bot connected as %s", bot.user)
        try:
            synced = await bot.tree.sync()
            logger.info("Synced %d commands", len(synced))
        except discord.HTTPException as exc:
            logger.exception("Failed to sync commands: %s", exc)

    @bot.listen("on_interaction")
    async def on_component(interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        handled = await route_component(managers, interaction)
        if not handled:
            logger.debug("Ignoring component %s", (interaction.data or {}).get("custom_id"))

    @bot.tree.error
    async def on_app_command_error(
        interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        logger.error(
            "Unhandled error in command %s",
            interaction.command.name if interaction.command else "?",
            exc_info=error,
        )
        await _reply_error(interaction, GENERIC_ERROR_MESSAGE)

    @app_commands.command(name="blame", description="Record an insult against a user")
    @track_command
    @app_commands.describe(
        user="The user who said it",
        insult="The insult, at most three words",
        note="Optional context for the blame",
    )
    async def blame(
        interaction: discord.Interaction,
        user: discord.Member,
        insult: str,
        note: Optional[str] = None,
    ) -> None:
        guild_id = await _guild_id(interaction)
        if guild_id is None:
            return
        try:
            outcome = await service.blame(
                guild_id=guild_id,
                target_id=str(user.id),
                target_name=user.name,
                blamer_id=str(interaction.user.id),
                blamer_name=interaction.user.name,
                insult=insult,
                note=note,
                event_id=str(interaction.id),
                target_is_bot=user.bot,
                blamer_is_bot=interaction.user.bot,
            )
        except BlameService.ValidationError as exc:
            await _reply_error(interaction, str(exc))
            return
        except DATA_ACCESS_ERRORS as exc:
            logger.error("Failed to record blame in %s: %r", guild_id, exc)
            await _reply_error(interaction, describe_data_error(exc))
            return

        embed = build_blame_embed(
            outcome.record,
            guild_name=interaction.guild.name if interaction.guild else None,
            total_blames=outcome.total_blames,
            insult_count=outcome.insult_count,
            frequencies=outcome.frequencies,
        )
        await safe_respond(
            interaction, embed=embed, ephemeral=False, deadline=settings.response_deadline
        )
        await _post_to_channel(bot, router.log, embed=embed, purpose="blame log")

    @app_commands.command(name="unblame", description="Remove a blame and move it to the archive")
    @track_command
    @app_commands.describe(blame_id="The id shown when the blame was recorded")
    async def unblame(interaction: discord.Interaction, blame_id: int) -> None:
        guild_id = await _guild_id(interaction)
        if guild_id is None:
            return
        try:
            archived = await service.unblame(
                guild_id=guild_id,
                insult_id=blame_id,
                requester_id=str(interaction.user.id),
                is_admin=_is_admin(interaction.user),
            )
        except (BlameService.ValidationError, BlameService.PermissionDenied) as exc:
            await _reply_error(interaction, str(exc))
            return
        except DATA_ACCESS_ERRORS as exc:
            logger.error("Failed to archive blame %s: %r", blame_id, exc)
            await _reply_error(interaction, describe_data_error(exc))
            return

        embed = build_unblame_embed(archived)
        await safe_respond(
            interaction, embed=embed, ephemeral=False, deadline=settings.response_deadline
        )
        await _post_to_channel(bot, router.log, embed=embed, purpose="blame log")

    @app_commands.command(name="rank", description="Show the insults leaderboard")
    @track_command
    async def rank(interaction: discord.Interaction) -> None:
        guild_id = await _guild_id(interaction)
        if guild_id is None:
            return
        await managers["rank"].handle_initial_command(interaction, GuildScope(guild_id))

    @app_commands.command(name="history", description="Browse recorded blames")
    @track_command
    @app_commands.describe(user="Only show blames against this user")
    async def history(
        interaction: discord.Interaction, user: Optional[discord.User] = None
    ) -> None:
        guild_id = await _guild_id(interaction)
        if guild_id is None:
            return
        user_id = str(user.id) if user else None
        await managers["history"].handle_initial_command(
            interaction, HistoryFilter(guild_id, user_id)
        )

    @app_commands.command(name="archive", description="Browse removed blames")
    @track_command
    @app_commands.describe(
        user="Only show archived blames involving this user",
        role="Which side of the blame the user was on",
    )
    @app_commands.choices(
        role=[
            app_commands.Choice(name="Insulted", value=ArchiveRole.INSULTED.value),
            app_commands.Choice(name="Blamer", value=ArchiveRole.BLAMER.value),
            app_commands.Choice(name="Unblamer", value=ArchiveRole.UNBLAMER.value),
        ]
    )
    async def archive(
        interaction: discord.Interaction,
        user: Optional[discord.User] = None,
        role: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        guild_id = await _guild_id(interaction)
        if guild_id is None:
            return
        user_id = str(user.id) if user else None
        archive_role = ArchiveRole(role.value) if role is not None else None
        await managers["archive"].handle_initial_command(
            interaction, ArchiveFilter(guild_id, user_id, archive_role)
        )

    @app_commands.command(name="insults", description="Show insult statistics")
    @track_command
    @app_commands.describe(word="Show every use of one insult")
    async def insults(interaction: discord.Interaction, word: Optional[str] = None) -> None:
        guild_id = await _guild_id(interaction)
        if guild_id is None:
            return
        cleaned = " ".join(word.split()) if word else None
        await managers["insults"].handle_initial_command(
            interaction, InsultsFilter(guild_id, cleaned or None)
        )

    @app_commands.command(name="detail", description="Show details for one or more blames")
    @track_command
    @app_commands.describe(blame_ids="Blame ids, separated by spaces or commas")
    async def detail(interaction: discord.Interaction, blame_ids: str) -> None:
        guild_id = await _guild_id(interaction)
        if guild_id is None:
            return
        insult_ids, skipped = parse_blame_ids(blame_ids, settings.max_detail_ids)
        if not insult_ids:
            await _reply_error(interaction, INVALID_IDS_MESSAGE)
            return
        if skipped:
            logger.info("Ignoring %d extra ids in /detail from %s", len(skipped), interaction.user.id)
        await managers["detail"].handle_initial_command(
            interaction, DetailFilter(guild_id, tuple(insult_ids))
        )

    @app_commands.command(name="revert", description="Restore archived blames")
    @track_command
    @app_commands.describe(blame_ids="Archived blame ids, separated by spaces or commas")
    async def revert(interaction: discord.Interaction, blame_ids: str) -> None:
        guild_id = await _guild_id(interaction)
        if guild_id is None:
            return
        insult_ids, skipped = parse_blame_ids(blame_ids, settings.max_revert_ids)
        try:
            outcome = await service.revert(
                guild_id=guild_id,
                insult_ids=insult_ids,
                requester_id=str(interaction.user.id),
                is_admin=_is_admin(interaction.user),
            )
        except BlameService.ValidationError as exc:
            await _reply_error(interaction, str(exc))
            return
        except DATA_ACCESS_ERRORS as exc:
            logger.error("Failed to restore blames %s: %r", insult_ids, exc)
            await _reply_error(interaction, describe_data_error(exc))
            return

        embed = build_revert_embed(
            outcome.restored,
            not_found=outcome.not_found,
            forbidden=outcome.forbidden,
            skipped=skipped,
        )
        await safe_respond(
            interaction, embed=embed, ephemeral=False, deadline=settings.response_deadline
        )
        if outcome.restored:
            await _post_to_channel(bot, router.log, embed=embed, purpose="blame log")

    bot.tree.add_command(blame)
    bot.tree.add_command(unblame)
    bot.tree.add_command(rank)
    bot.tree.add_command(history)
    bot.tree.add_command(archive)
    bot.tree.add_command(insults)
    bot.tree.add_command(detail)
    bot.tree.add_command(revert)
    return bot


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    token = os.environ.get("DISCORD_TOKEN")
    if not token:
        raise RuntimeError("DISCORD_TOKEN environment variable must be set")
    db_path = Path(os.environ.get("BLAMEBOT_DB", "blamebot.db"))
    bot = build_bot(db_path)
    bot.run(token)


__all__ = ["ChannelRouter", "GuardedCommandTree", "admit_interaction", "build_bot", "main", "route_component"]
