from __future__ import annotations

import datetime as dt

import pytest

from blame_owner.models import ContributorRanking, ContributorTally
from blame_owner.render import ORANGE, RESET, format_relative_time, render_names, render_top, render_verbose

NOW = dt.datetime(2025, 6, 1, 12, 0, tzinfo=dt.timezone.utc)
TS = int(NOW.timestamp())


@pytest.mark.parametrize(
    "seconds_ago,expected",
    [
        (30, "just now"),
        (5 * 60, "5 minutes ago"),
        (3 * 3600, "3 hours ago"),
        (86_400 + 60, "yesterday"),
        (4 * 86_400, "4 days ago"),
        (8 * 86_400, "1 week ago"),
        (20 * 86_400, "2 weeks ago"),
        (45 * 86_400, "1 month ago"),
        (200 * 86_400, "6 months ago"),
        (800 * 86_400, "2 years ago"),
    ],
)
def test_format_relative_time(seconds_ago: int, expected: str) -> None:
    assert format_relative_time(TS - seconds_ago, NOW) == expected


def test_unknown_time_is_never() -> None:
    assert format_relative_time(0, NOW) == "never"


def _ranking() -> ContributorRanking:
    return ContributorRanking(
        entries=(
            ContributorTally(key="bob@x", display_name="Bob", line_count=6, files_touched={"a", "c"}, last_commit_time=TS - 3 * 86_400),
            ContributorTally(key="al@x", display_name="Alice", line_count=5, files_touched={"b"}, last_commit_time=TS - 86_400),
        )
    )


def test_render_top_plain() -> None:
    assert render_top(_ranking(), color=False, now=NOW) == "Bob   54.5%  (last touched 3 days ago)"
    assert render_top(ContributorRanking(), color=False, now=NOW) == ""


def test_render_top_colored() -> None:
    out = render_top(_ranking(), color=True, now=NOW)
    assert out.startswith(f"{ORANGE}Bob{RESET}")


def test_render_verbose_lists_everyone_with_file_counts() -> None:
    out = render_verbose(_ranking(), color=False, show_files=True, now=NOW)
    assert out.splitlines() == [
        "",
        "Bob   54.5%  (last touched 3 days ago)  2 files",
        "Alice   45.5%  (last touched yesterday)  1 file",
    ]


def test_render_names() -> None:
    assert render_names(_ranking(), all_names=False) == "Bob"
    assert render_names(_ranking(), all_names=True) == "Bob\nAlice"
