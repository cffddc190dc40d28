"""Discord embed/message builders.

Pure construction helpers for Discord UI objects. Keeping these in a
separate module makes them easy to unit test and reuse across views.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Union

import discord
from wcwidth import wcswidth, wcwidth

from ...models import ArchiveRecord, InsultRecord, InsultStat, LeaderboardEntry
from ...pagination import PaginationData

ERROR_COLOUR = discord.Colour(0xFF0000)
LEADERBOARD_COLOUR = discord.Colour(0xDC143C)
ARCHIVE_COLOUR = discord.Colour(0x95A5A6)
BLAME_COLOUR = discord.Colour(0x00B894)

_FIELD_LIMIT = 1024
_PODIUM = {1: "**1st Place:** 💀", 2: "**2nd Place:** 👎", 3: "**3rd Place:** 😢"}


def display_width(text: str) -> int:
    """Monospace cell width of ``text`` (wide glyphs and emoji sequences count double)."""

    width = wcswidth(text)
    if width < 0:
        # Control characters make wcswidth give up; count the printable rest.
        width = sum(max(0, wcwidth(char)) for char in text)
    return width


def _fit(text: str, width: int, align: str = "left") -> str:
    value = text or ""
    if display_width(value) > width:
        while value and display_width(value) > width - 1:
            value = value[:-1]
        value += "…"
    padding = " " * max(0, width - display_width(value))
    return padding + value if align == "right" else value + padding


def render_table(
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    *,
    max_widths: Sequence[int],
    empty_message: str = "No data to display",
) -> str:
    """Render rows as a box-drawn table inside a code block."""

    if not rows:
        return f"```text\n{empty_message}\n```"
    widths: List[int] = []
    for index, header in enumerate(headers):
        content = max(
            [display_width(header)] + [display_width(row[index] or "") for row in rows]
        )
        limit = max_widths[index] if index < len(max_widths) else 8
        widths.append(min(content, limit))

    top = "╔" + "╦".join("═" * (w + 2) for w in widths) + "╗"
    middle = "╠" + "╬".join("═" * (w + 2) for w in widths) + "╣"
    bottom = "╚" + "╩".join("═" * (w + 2) for w in widths) + "╝"
    header_row = "║ " + " ║ ".join(_fit(h, widths[i]) for i, h in enumerate(headers)) + " ║"
    body = [
        "║ "
        + " ║ ".join(
            _fit(cell, widths[i], "right" if i == 0 else "left") for i, cell in enumerate(row)
        )
        + " ║"
        for row in rows
    ]
    table = "\n".join([top, header_row, middle, *body, bottom])
    return f"```text\n{table}\n```"


def format_frequencies(stats: Sequence[InsultStat], limit: int = _FIELD_LIMIT) -> str:
    """Comma separated ``insult (count)`` pairs clamped to an embed field."""

    if not stats:
        return "—"
    parts: List[str] = []
    length = 0
    for stat in stats:
        piece = f"{stat.insult} ({stat.count})"
        extra = len(piece) + (2 if parts else 0)
        if length + extra > limit - 2:
            parts.append("…")
            break
        parts.append(piece)
        length += extra
    return ", ".join(parts)


def _name(usernames: Dict[str, str], user_id: str) -> str:
    return usernames.get(user_id) or user_id


def _footer(data: PaginationData) -> str:
    return f"Page {data.current_page}/{data.total_pages}"


def build_error_embed(message: str) -> discord.Embed:
    return discord.Embed(title="❌ Error", description=message, colour=ERROR_COLOUR)


def build_leaderboard_embed(data: PaginationData[LeaderboardEntry], page_size: int) -> discord.Embed:
    """Leaderboard page; ranks continue across pages."""

    lines: List[str] = []
    for index, entry in enumerate(data.items):
        rank = (data.current_page - 1) * page_size + index + 1
        label = _PODIUM.get(rank, f"**{rank}.**")
        points = "Point" if entry.points == 1 else "Points"
        lines.append(f"{label} <@{entry.user_id}> - {entry.points} {points}")
    embed = discord.Embed(
        title="💀 Insults Leaderboard",
        description="\n".join(lines) if lines else "No insults recorded yet.",
        colour=LEADERBOARD_COLOUR,
        timestamp=datetime.now(timezone.utc),
    )
    embed.set_footer(text=_footer(data))
    return embed


def build_history_embed(data: PaginationData[InsultRecord], user_id: Optional[str]) -> discord.Embed:
    usernames: Dict[str, str] = data.extras.get("usernames", {})
    if user_id:
        headers = ["ID", "Blamer", "Insult"]
        rows = [[str(e.id), _name(usernames, e.blamer_id), e.insult] for e in data.items]
        target = data.extras.get("target_username") or user_id
        title = f"📜 History for {target}"
    else:
        headers = ["ID", "Insulter", "Insult"]
        rows = [[str(e.id), _name(usernames, e.user_id), e.insult] for e in data.items]
        title = "📜 Server-wide History"
    embed = discord.Embed(
        title=title,
        description=render_table(
            headers, rows, max_widths=(4, 10, 14), empty_message="No history data to display"
        ),
        timestamp=datetime.now(timezone.utc),
    )
    embed.set_footer(text=_footer(data))
    if user_id:
        embed.add_field(
            name="User",
            value=f"<@{user_id}> ({data.extras.get('target_username') or user_id})",
            inline=False,
        )
    embed.add_field(name="Total Blames", value=str(data.total_count), inline=True)
    if not user_id:
        embed.add_field(
            name="Total Users", value=str(data.extras.get("distinct_users", 0)), inline=True
        )
    frequencies: Sequence[InsultStat] = data.extras.get("frequencies", [])
    embed.add_field(name="Total Insults", value=str(len(frequencies)), inline=True)
    embed.add_field(name="Insults Frequency", value=format_frequencies(frequencies), inline=False)
    return embed


def build_archive_embed(data: PaginationData[ArchiveRecord]) -> discord.Embed:
    usernames: Dict[str, str] = data.extras.get("usernames", {})
    rows = [
        [f"#{e.original_insult_id}", e.insult, f"@{_name(usernames, e.unblamer_id)}"]
        for e in data.items
    ]
    embed = discord.Embed(
        title="🗃️ Archive",
        description=render_table(
            ["ID", "Insult", "Unblamer"],
            rows,
            max_widths=(6, 8, 10),
            empty_message="No archived records",
        ),
        colour=ARCHIVE_COLOUR,
        timestamp=datetime.now(timezone.utc),
    )
    embed.set_footer(text=_footer(data))
    return embed


def build_insults_embed(data: PaginationData[InsultStat]) -> discord.Embed:
    rows = [[stat.insult, str(stat.count)] for stat in data.items]
    embed = discord.Embed(
        title="🧾 Insults Overview",
        description=render_table(
            ["Insult", "Count"], rows, max_widths=(16, 6), empty_message="No insults recorded yet"
        ),
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(
        name="Total Recorded", value=str(data.extras.get("total_recorded", 0)), inline=True
    )
    embed.add_field(name="Distinct Insults", value=str(data.total_count), inline=True)
    embed.set_footer(text=_footer(data))
    return embed


def build_insult_word_embed(data: PaginationData[InsultRecord], word: str) -> discord.Embed:
    usernames: Dict[str, str] = data.extras.get("usernames", {})
    rows = [
        [str(e.id), _name(usernames, e.user_id), _name(usernames, e.blamer_id)]
        for e in data.items
    ]
    embed = discord.Embed(
        title=f"🧾 Insult: {word}"[:256],
        description=render_table(
            ["ID", "Insulter", "Blamer"],
            rows,
            max_widths=(4, 12, 12),
            empty_message="No records for this insult",
        ),
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(name="Total", value=str(data.total_count), inline=True)
    embed.add_field(name="Users", value=str(data.extras.get("distinct_users", 0)), inline=True)
    top_blamer = data.extras.get("top_blamer")
    embed.add_field(
        name="Top Blamer",
        value=f"@{_name(usernames, top_blamer)}" if top_blamer else "—",
        inline=True,
    )
    embed.set_footer(text=_footer(data))
    return embed


def build_blame_embed(
    record: InsultRecord,
    *,
    guild_name: Optional[str],
    total_blames: int,
    insult_count: int,
    frequencies: Sequence[InsultStat],
) -> discord.Embed:
    def _spoiler(value: str) -> str:
        return value if value == "—" else f"||{value}||"

    embed = discord.Embed(
        title="Blame recorded",
        colour=BLAME_COLOUR,
        timestamp=record.created_at,
    )
    embed.add_field(name="**Server**", value=guild_name or "Unknown", inline=True)
    embed.add_field(name="**Blame ID**", value=str(record.id), inline=True)
    embed.add_field(name="**Insulter**", value=f"<@{record.user_id}>", inline=False)
    embed.add_field(name="**Insult**", value=_spoiler(record.insult), inline=True)
    embed.add_field(name="**Frequency (server-wide)**", value=str(insult_count), inline=True)
    embed.add_field(name="**Note**", value=_spoiler(record.note or "—"), inline=False)
    embed.add_field(name="**Blamer**", value=f"<@{record.blamer_id}>", inline=False)
    embed.add_field(
        name=f"**Total Insults: {total_blames}**",
        value=_spoiler(format_frequencies(frequencies, limit=_FIELD_LIMIT - 4)),
        inline=False,
    )
    embed.set_footer(text="Blame created")
    return embed


def build_unblame_embed(archived: ArchiveRecord) -> discord.Embed:
    embed = discord.Embed(
        title="Blame removed",
        description=f"Blame #{archived.original_insult_id} moved to the archive.",
        colour=ARCHIVE_COLOUR,
        timestamp=archived.unblamed_at,
    )
    embed.add_field(name="Insulter", value=f"<@{archived.user_id}>", inline=True)
    embed.add_field(name="Blamer", value=f"<@{archived.blamer_id}>", inline=True)
    embed.add_field(name="Removed by", value=f"<@{archived.unblamer_id}>", inline=True)
    return embed


def _id_list(ids: Sequence[int]) -> str:
    text = ", ".join(f"#{insult_id}" for insult_id in ids)
    return text if len(text) <= _FIELD_LIMIT else text[: _FIELD_LIMIT - 1] + "…"


def build_detail_embed(data: PaginationData[Union[InsultRecord, ArchiveRecord]]) -> discord.Embed:
    """One blame per page, active or archived, with a found/not-found summary."""

    found: Sequence[int] = data.extras.get("found_ids", [])
    not_found: Sequence[int] = data.extras.get("not_found_ids", [])
    summary = []
    if found:
        summary.append(f"🟢 Found: {_id_list(found)}")
    if not_found:
        summary.append(f"🔴 Not found: {_id_list(not_found)}")

    if not data.items:
        embed = discord.Embed(
            title="Blame Details",
            description="\n".join(summary) if summary else "No valid IDs to display.",
            colour=ERROR_COLOUR,
        )
        embed.set_footer(text=_footer(data))
        return embed

    record = data.items[0]
    archived = isinstance(record, ArchiveRecord)
    blame_id = record.original_insult_id if archived else record.id
    embed = discord.Embed(
        title=f"🗑️ Archived - Blame #{blame_id}" if archived else f"Blame #{blame_id}",
        colour=ARCHIVE_COLOUR if archived else BLAME_COLOUR,
        timestamp=record.created_at,
    )
    embed.add_field(name="**Insult**", value=record.insult, inline=True)
    embed.add_field(name="**Note**", value=record.note or "—", inline=True)
    embed.add_field(name="**Insulter**", value=f"<@{record.user_id}>", inline=False)
    embed.add_field(name="**Blamer**", value=f"<@{record.blamer_id}>", inline=True)
    if archived:
        embed.add_field(name="**Removed by**", value=f"<@{record.unblamer_id}>", inline=True)
    embed.add_field(name="**Summary**", value="\n".join(summary)[:_FIELD_LIMIT], inline=False)
    embed.set_footer(text=_footer(data))
    return embed


def build_revert_embed(
    restored: Sequence[InsultRecord],
    *,
    not_found: Sequence[int] = (),
    forbidden: Sequence[int] = (),
    skipped: Sequence[int] = (),
) -> discord.Embed:
    lines = [f"Restored: #{record.id} ({record.insult})" for record in restored]
    other = []
    if not_found:
        other.append(f"Not found: {_id_list(not_found)}")
    if forbidden:
        other.append(f"Not allowed: {_id_list(forbidden)}")
    if skipped:
        other.append(f"Skipped (too many IDs): {_id_list(skipped)}")
    embed = discord.Embed(
        title="Revert Summary",
        description="\n".join(lines)[:4096] if lines else "Nothing was restored.",
        colour=BLAME_COLOUR if restored else ERROR_COLOUR,
        timestamp=datetime.now(timezone.utc),
    )
    if other:
        embed.add_field(name="Other", value="\n".join(other)[:_FIELD_LIMIT], inline=False)
    return embed


__all__ = [
    "build_archive_embed",
    "build_blame_embed",
    "build_detail_embed",
    "build_error_embed",
    "build_history_embed",
    "build_insult_word_embed",
    "build_insults_embed",
    "build_leaderboard_embed",
    "build_revert_embed",
    "build_unblame_embed",
    "display_width",
    "format_frequencies",
    "render_table",
]
