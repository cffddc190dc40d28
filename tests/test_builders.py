"""Tests for embed and table builders."""
from datetime import datetime, timezone

from blamebot.adapters.discord.builders import (
    build_archive_embed,
    build_blame_embed,
    build_detail_embed,
    build_error_embed,
    build_leaderboard_embed,
    build_revert_embed,
    build_unblame_embed,
    display_width,
    format_frequencies,
    render_table,
)
from blamebot.models import ArchiveRecord, InsultRecord, InsultStat, LeaderboardEntry
from blamebot.pagination import PaginationData

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_render_table_empty_and_rows():
    assert render_table(["A"], [], max_widths=(5,), empty_message="Nothing") == "```text\nNothing\n```"
    table = render_table(["ID", "Insult"], [["1", "idiot"], ["12", "a very long insult"]], max_widths=(4, 8))
    lines = table.splitlines()
    assert lines[0] == "```text"
    assert lines[1].startswith("╔")
    assert "║  1 ║ idiot    ║" in table
    assert "a very …" in table
    assert len({display_width(line) for line in lines[1:-1]}) == 1


def test_display_width_counts_wide_glyphs():
    assert display_width("abc") == 3
    assert display_width("漢字") == 4
    assert display_width("e\u0301") == 1
    assert display_width("é") == 1


def test_display_width_treats_emoji_sequences_as_one_glyph():
    assert display_width("👨‍👩‍👧") == 2
    assert display_width("💀") == 2


def test_display_width_ignores_control_characters():
    assert display_width("a\x07b") == 2


def test_render_table_aligns_wide_cells():
    table = render_table(["ID", "Insult"], [["1", "漢字"], ["2", "💀 idiot"]], max_widths=(4, 10))
    lines = table.splitlines()[1:-1]
    assert len({display_width(line) for line in lines}) == 1


def test_format_frequencies_truncates():
    stats = [InsultStat(f"insult{i}", 10 - i) for i in range(10)]
    assert format_frequencies([]) == "—"
    assert format_frequencies(stats[:2]) == "insult0 (10), insult1 (9)"
    clipped = format_frequencies(stats, limit=30)
    assert clipped.endswith("…")
    assert len(clipped) <= 30


def test_leaderboard_podium_and_footer():
    entries = [LeaderboardEntry("1", 5), LeaderboardEntry("2", 1)]
    embed = build_leaderboard_embed(PaginationData.from_count(entries, 2, 1, 10), 10)
    lines = embed.description.splitlines()
    assert lines[0] == "**1st Place:** 💀 <@1> - 5 Points"
    assert lines[1] == "**2nd Place:** 👎 <@2> - 1 Point"
    assert embed.footer.text == "Page 1/1"


def test_leaderboard_empty():
    embed = build_leaderboard_embed(PaginationData.from_count([], 0, 1, 10), 10)
    assert embed.description == "No insults recorded yet."


def test_error_embed():
    embed = build_error_embed("Nope")
    assert embed.title == "❌ Error"
    assert embed.description == "Nope"


def test_blame_and_unblame_embeds():
    record = InsultRecord(7, "g", "1", "2", "idiot", None, NOW)
    embed = build_blame_embed(
        record,
        guild_name="Guild",
        total_blames=3,
        insult_count=2,
        frequencies=[InsultStat("idiot", 2), InsultStat("clown", 1)],
    )
    fields = {field.name: field.value for field in embed.fields}
    assert fields["**Blame ID**"] == "7"
    assert fields["**Insult**"] == "||idiot||"
    assert fields["**Note**"] == "—"
    assert fields["**Total Insults: 3**"] == "||idiot (2), clown (1)||"

    archived = ArchiveRecord(1, 7, "g", "1", "2", "idiot", None, NOW, "3", NOW)
    unblame = build_unblame_embed(archived)
    assert "#7" in unblame.description

    page = build_archive_embed(PaginationData.from_count([archived], 1, 1, 10, usernames={"3": "carol"}))
    assert "@carol" in page.description


def test_detail_embed_marks_archived_blames():
    archived = ArchiveRecord(
        id=3,
        original_insult_id=9,
        guild_id="1",
        user_id="2",
        blamer_id="3",
        insult="clown",
        note=None,
        created_at=NOW,
        unblamer_id="4",
        unblamed_at=NOW,
    )
    data = PaginationData.from_count([archived], 1, 1, 1, found_ids=[9], not_found_ids=[5, 6])

    embed = build_detail_embed(data)

    assert embed.title == "🗑️ Archived - Blame #9"
    assert embed.footer.text == "Page 1/1"
    assert {field.name: field.value for field in embed.fields}["**Removed by**"] == "<@4>"
    assert embed.fields[-1].value == "🟢 Found: #9\n🔴 Not found: #5, #6"


def test_detail_embed_without_matches():
    empty = PaginationData.from_count([], 0, 1, 1)
    assert build_detail_embed(empty).description == "No valid IDs to display."


def test_revert_embed_lists_every_outcome():
    record = InsultRecord(
        id=9, guild_id="1", user_id="2", blamer_id="3", insult="clown", note=None, created_at=NOW
    )
    embed = build_revert_embed([record], not_found=[4], forbidden=[5], skipped=[6, 7])

    assert embed.title == "Revert Summary"
    assert embed.description == "Restored: #9 (clown)"
    assert embed.fields[0].value == (
        "Not found: #4\nNot allowed: #5\nSkipped (too many IDs): #6, #7"
    )
    assert build_revert_embed([]).description == "Nothing was restored."
