from __future__ import annotations

import datetime as dt
from typing import Optional

from .models import ContributorRanking, ContributorTally

ORANGE = "\x1b[38;5;208m"
DIM = "\x1b[2m"
RESET = "\x1b[0m"


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'' if n == 1 else 's'} ago"


def format_relative_time(timestamp: int, now: Optional[dt.datetime] = None) -> str:
    if timestamp <= 0:
        return "never"
    current = now or dt.datetime.now(dt.timezone.utc)
    then = dt.datetime.fromtimestamp(timestamp, tz=dt.timezone.utc)
    delta = current - then
    seconds = int(delta.total_seconds())
    days = delta.days

    if days <= 0:
        hours = max(0, seconds // 3600)
        if hours == 0:
            minutes = max(0, seconds // 60)
            if minutes <= 1:
                return "just now"
            return f"{minutes} minutes ago"
        return f"{hours} hours ago"
    if days == 1:
        return "yesterday"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        return _plural(days // 7, "week")
    if days < 365:
        return _plural(days // 30, "month")
    return _plural(days // 365, "year")


def fmt_share(share: float) -> str:
    return f"{share * 100:>5.1f}%"


def render_line(
    ranking: ContributorRanking,
    tally: ContributorTally,
    *,
    color: bool,
    show_files: bool = False,
    now: Optional[dt.datetime] = None,
) -> str:
    name = tally.display_name
    last = f"(last touched {format_relative_time(tally.last_commit_time, now)})"
    if color:
        name = f"{ORANGE}{name}{RESET}"
        last = f"{DIM}{last}{RESET}"
    line = f"{name}  {fmt_share(ranking.share(tally))}  {last}"
    if show_files:
        n = len(tally.files_touched)
        line += f"  {n} file{'' if n == 1 else 's'}"
    return line


def render_top(ranking: ContributorRanking, *, color: bool, now: Optional[dt.datetime] = None) -> str:
    top = ranking.top
    if top is None:
        return ""
    return render_line(ranking, top, color=color, now=now)


def render_verbose(
    ranking: ContributorRanking,
    *,
    color: bool,
    show_files: bool = False,
    now: Optional[dt.datetime] = None,
) -> str:
    lines = [""]
    for tally in ranking:
        lines.append(render_line(ranking, tally, color=color, show_files=show_files, now=now))
    lines.append("")
    return "\n".join(lines)


def render_names(ranking: ContributorRanking, *, all_names: bool) -> str:
    names = [t.display_name for t in ranking]
    if not all_names:
        names = names[:1]
    return "\n".join(names)
