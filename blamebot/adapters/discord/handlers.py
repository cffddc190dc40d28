"""Discord interaction and channel helpers.

Replies to interactions are best effort: once Discord reports the interaction
as unknown (expired) or already acknowledged there is nothing left to do, so
those failures are logged at debug level and dropped.
"""

from __future__ import annotations

import logging
from typing import Optional

import discord
from discord.ext import commands

from ...idempotency import interaction_age

logger = logging.getLogger(__name__)

UNKNOWN_INTERACTION = 10062
ALREADY_ACKNOWLEDGED = 40060
_INVALID_INTERACTION_CODES = frozenset({UNKNOWN_INTERACTION, ALREADY_ACKNOWLEDGED})


def is_interaction_invalid_error(error: BaseException) -> bool:
    """True when ``error`` means the interaction can no longer be answered."""

    if isinstance(error, discord.InteractionResponded):
        return True
    return isinstance(error, discord.HTTPException) and error.code in _INVALID_INTERACTION_CODES


def is_interaction_expired(interaction: discord.Interaction, deadline: float) -> bool:
    return interaction_age(interaction) > deadline


async def safe_respond(
    interaction: discord.Interaction,
    *,
    embed: discord.Embed,
    view: Optional[discord.ui.View] = None,
    ephemeral: bool = True,
    edit: bool = False,
    deadline: Optional[float] = None,
) -> bool:
    """Send or edit the interaction response; False if it could not be delivered."""

    if interaction.response.is_done():
        logger.debug("Interaction %s already acknowledged, skipping response", interaction.id)
        return False
    if deadline is not None and is_interaction_expired(interaction, deadline):
        logger.debug("Interaction %s has expired, skipping response", interaction.id)
        return False
    kwargs = {"embed": embed}
    if view is not None:
        kwargs["view"] = view
    try:
        if edit:
            if view is None:
                kwargs["view"] = None
            await interaction.response.edit_message(**kwargs)
        else:
            await interaction.response.send_message(ephemeral=ephemeral, **kwargs)
    except (discord.HTTPException, discord.InteractionResponded) as exc:
        if is_interaction_invalid_error(exc):
            logger.debug("Interaction %s is no longer valid: %s", interaction.id, exc)
        else:
            logger.exception("Failed to respond to interaction %s", interaction.id)
        return False
    return True


async def _post_to_channel(
    bot: commands.Bot,
    channel_id: Optional[int],
    content: Optional[str] = None,
    *,
    embed: Optional[discord.Embed] = None,
    purpose: str,
) -> None:
    """Send content to a configured channel if possible."""

    if channel_id is None:
        logger.debug("Skipping %s post; channel not configured", purpose)
        return
    channel = bot.get_channel(channel_id)
    if channel is None:
        logger.warning("Failed to locate %s channel with id %s", purpose, channel_id)
        return
    try:
        await channel.send(content=content, embed=embed)
    except discord.HTTPException:
        logger.exception("Failed to send %s message", purpose)


__all__ = [
    "ALREADY_ACKNOWLEDGED",
    "UNKNOWN_INTERACTION",
    "_post_to_channel",
    "is_interaction_expired",
    "is_interaction_invalid_error",
    "safe_respond",
]
