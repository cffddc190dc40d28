"""Paginated Discord responses driven by stateless button tokens."""

from __future__ import annotations

import logging
from typing import Any, Generic, Optional, TypeVar

import discord

from ...config import Settings
from ...pagination import (
    CUSTOM_ID_MAX_LENGTH,
    Action,
    EncodingError,
    PageView,
    PaginationData,
    PaginationSession,
    clamp_page,
    decode_session,
    encode_session,
    resolve_page,
)
from ...retry import DATA_ACCESS_ERRORS, describe_data_error
from .builders import build_error_embed
from .handlers import safe_respond

logger = logging.getLogger(__name__)

T = TypeVar("T")
F = TypeVar("F")

_CONTROL_LABELS = (
    (Action.FIRST, "⏮"),
    (Action.PREV, "◀"),
    (Action.NEXT, "▶"),
    (Action.LAST, "⏭"),
    (Action.REFRESH, "↻"),
)


class PaginationManager(Generic[T, F]):
    """Answers "render page N" and navigation clicks for one :class:`PageView`.

    Nothing about a session is kept in memory: each button carries an encoded
    :class:`PaginationSession`, and the page count is re-derived from a fresh
    fetch on every click, so any process instance can serve any button.
    """

    def __init__(
        self,
        view: PageView,
        *,
        page_size: int = 10,
        ephemeral: bool = True,
        max_token_length: int = CUSTOM_ID_MAX_LENGTH,
        response_deadline: Optional[float] = None,
    ) -> None:
        self.view = view
        self.page_size = page_size
        self.ephemeral = ephemeral
        self.max_token_length = max_token_length
        self.response_deadline = response_deadline

    @classmethod
    def from_settings(cls, view: PageView, settings: Settings) -> "PaginationManager":
        return cls(
            view,
            page_size=view.page_size or settings.page_size,
            ephemeral=settings.is_ephemeral(view.command_key),
            max_token_length=settings.custom_id_max_length,
            response_deadline=settings.response_deadline,
        )

    @property
    def command_key(self) -> str:
        return self.view.command_key

    # Controls ----------------------------------------------------------
    def encode_token(self, action: Optional[Action], page: int, filter: F) -> str:
        return encode_session(
            self.command_key,
            action,
            page,
            self.view.build_params(filter),
            max_length=self.max_token_length,
        )

    def build_controls(self, page: int, total_pages: int, filter: F) -> discord.ui.View:
        """Navigation buttons for ``page``; raises EncodingError if a token overflows."""

        controls = discord.ui.View(timeout=None)
        for action, label in _CONTROL_LABELS:
            if action in (Action.FIRST, Action.PREV):
                disabled = page <= 1
            elif action in (Action.NEXT, Action.LAST):
                disabled = page >= total_pages
            else:
                disabled = False
            controls.add_item(
                discord.ui.Button(
                    style=discord.ButtonStyle.primary,
                    label=label,
                    custom_id=self.encode_token(action, page, filter),
                    disabled=disabled,
                )
            )
        # A stopped view is never stored by discord.py; clicks are routed by
        # custom_id through handle_control instead.
        controls.stop()
        return controls

    # Responses ---------------------------------------------------------
    async def handle_initial_command(self, interaction: discord.Interaction, filter: F) -> None:
        if interaction.response.is_done():
            logger.debug(
                "Interaction %s already acknowledged, skipping initial %s",
                interaction.id,
                self.command_key,
            )
            return
        await self.respond_with_page(interaction, 1, filter, initial=True)

    async def respond_with_page(
        self,
        interaction: discord.Interaction,
        page: int,
        filter: F,
        *,
        initial: bool = False,
    ) -> Optional[PaginationData[T]]:
        """Fetch ``page`` (clamped into range), render it and reply with controls."""

        try:
            data = await self.fetch_page(page, filter)
        except DATA_ACCESS_ERRORS as exc:
            logger.error("Error in pagination for %s: %r", self.command_key, exc)
            await self._respond_error(interaction, describe_data_error(exc), initial=initial)
            return None
        await self._respond_with_data(interaction, data, filter, initial=initial)
        return data

    async def fetch_page(self, page: int, filter: F) -> PaginationData[T]:
        data = await self.view.fetch(page, self.page_size, filter)
        clamped = clamp_page(page, data.total_pages)
        if clamped != page:
            logger.debug(
                "Clamped %s page %d to %d of %d", self.command_key, page, clamped, data.total_pages
            )
            data = await self.view.fetch(clamped, self.page_size, filter)
        return data

    async def _respond_with_data(
        self,
        interaction: discord.Interaction,
        data: PaginationData[T],
        filter: F,
        *,
        initial: bool,
    ) -> bool:
        embed = self.view.render(data, filter)
        try:
            controls: Optional[discord.ui.View] = self.build_controls(
                data.current_page, data.total_pages, filter
            )
        except EncodingError as exc:
            logger.warning("Navigation disabled for %s: %s", self.command_key, exc)
            controls = None
        return await safe_respond(
            interaction,
            embed=embed,
            view=controls,
            ephemeral=self.ephemeral,
            edit=not initial,
            deadline=self.response_deadline,
        )

    async def _respond_error(
        self, interaction: discord.Interaction, message: str, *, initial: bool
    ) -> bool:
        return await safe_respond(
            interaction,
            embed=build_error_embed(message),
            ephemeral=True,
            edit=not initial,
            deadline=self.response_deadline,
        )

    # Navigation --------------------------------------------------------
    def decode(self, custom_id: str) -> Optional[PaginationSession]:
        return decode_session(custom_id, self.command_key)

    async def handle_control(self, interaction: discord.Interaction, context: Any = None) -> bool:
        """Handle a button click; False when the custom_id is not a valid token for this view."""

        custom_id = (interaction.data or {}).get("custom_id", "")
        session = self.decode(custom_id)
        if session is None:
            return False
        filter = self.view.parse_params(
            session.filter_params, context if context is not None else interaction
        )
        if filter is None:
            logger.debug("Ignoring %s control with unusable parameters", self.command_key)
            return False
        if interaction.response.is_done():
            logger.debug("Button interaction %s already acknowledged, skipping", custom_id)
            return True
        await self.navigate(interaction, session, filter)
        return True

    async def navigate(
        self, interaction: discord.Interaction, session: PaginationSession, filter: F
    ) -> None:
        if session.action in (Action.NEXT, Action.LAST):
            # The page count embedded in an old render may be stale; learn it again.
            try:
                current = await self.view.fetch(session.page, self.page_size, filter)
            except DATA_ACCESS_ERRORS as exc:
                logger.error("Error fetching %s page count: %r", self.command_key, exc)
                await self._respond_error(interaction, describe_data_error(exc), initial=False)
                return
            target = resolve_page(session.action, session.page, current.total_pages)
            if target == current.current_page:
                await self._respond_with_data(interaction, current, filter, initial=False)
                return
        else:
            # first/prev/refresh/page never move past the session page; the
            # fetch in respond_with_page clamps if the data has shrunk.
            target = resolve_page(session.action, session.page, session.page)
        await self.respond_with_page(interaction, target, filter, initial=False)


__all__ = ["PaginationManager"]
