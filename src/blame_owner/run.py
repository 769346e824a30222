from __future__ import annotations

import argparse
import dataclasses
import os
import sys
from pathlib import Path
from typing import Optional, TextIO

from .aggregate import aggregate_files, resolve_ranking
from .blame_source import GitBlameSource
from .config import Settings, load_settings
from .errors import NoIdentityResolved
from .git import get_remote_origin, github_repo_from_remote
from .identity import IdentityResolver
from .lookup import build_lookup
from .models import ContributorRanking
from .paths import select_files
from .render import render_names, render_top, render_verbose

PROGRESS_MIN_FILES = 200


def _warn(msg: str) -> None:
    print(f"Warning: {msg}", file=sys.stderr)


def _is_tty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


def _use_color(stream: TextIO) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return _is_tty(stream)


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    changes: dict[str, object] = {}
    if getattr(args, "jobs", None):
        changes["jobs"] = max(1, int(args.jobs))
    if getattr(args, "timeout", None):
        changes["timeout_s"] = float(args.timeout)
    return dataclasses.replace(settings, **changes) if changes else settings


def build_resolver(settings: Settings, repo: Path, *, github_mode: bool) -> tuple[IdentityResolver, str]:
    """Returns the resolver and the effective lookup mode ("none" without --gh)."""
    ident = settings.identity
    if not github_mode:
        return IdentityResolver(None, ident.aliases), "none"
    github_repo: Optional[tuple[str, str]] = None
    if ident.lookup not in ("config", "none"):
        github_repo = github_repo_from_remote(get_remote_origin(repo))
    lookup, mode = build_lookup(
        ident.lookup,
        usernames=ident.usernames,
        github_repo=github_repo,
        api_url=ident.github_api_url,
        token_env=ident.github_token_env,
        max_commits=ident.max_commits,
    )
    return IdentityResolver(lookup, ident.aliases), mode


def _progress(done: int, total: int) -> None:
    if done % 50 == 0 or done == total:
        print(f"\rBlamed {done}/{total} files...", end="" if done < total else "\n", file=sys.stderr, flush=True)


def run_blame(*, args: argparse.Namespace, cwd: Optional[Path] = None) -> int:
    selection = select_files(list(args.patterns), cwd)
    for pattern in selection.unmatched_patterns:
        _warn(f"No files matched '{pattern}'")

    settings = _apply_overrides(load_settings(args.config, selection.repo), args)
    resolver, lookup_mode = build_resolver(settings, selection.repo, github_mode=bool(args.gh))

    ignore_revs = Path(settings.ignore_revs_file).expanduser() if settings.ignore_revs_file else None
    if ignore_revs is not None and not ignore_revs.is_absolute():
        ignore_revs = selection.repo / ignore_revs
    source = GitBlameSource(selection.repo, timeout_s=settings.timeout_s, ignore_revs_file=ignore_revs)

    show_progress = len(selection.files) >= PROGRESS_MIN_FILES and _is_tty(sys.stderr)
    result = aggregate_files(
        selection.files,
        source,
        resolver.normalize,
        jobs=settings.jobs,
        on_progress=_progress if show_progress else None,
    )
    for failure in result.warnings:
        _warn(f"Could not process '{failure.path}': {failure.describe()}")
    if result.warnings:
        _warn(f"Ranking built from {result.files_blamed} of {len(selection.files)} files")

    ranking = result.ranking
    if not ranking:
        print("Note: No blame data found", file=sys.stderr)
        if args.only_name:
            raise NoIdentityResolved("No contributor found to print")
        return 0

    if args.gh:
        resolution = resolve_ranking(ranking, resolver, jobs=settings.jobs)
        n = len(resolution.unavailable)
        for msg in resolution.messages:
            _warn(
                f"GitHub username lookup ({lookup_mode}) unavailable for {n} contributor{'' if n == 1 else 's'} ({msg}); "
                "showing git author names where unresolved"
            )
        ranking = resolution.ranking

    return _report(ranking, args)


def _report(ranking: ContributorRanking, args: argparse.Namespace) -> int:
    if args.only_name:
        if args.gh:
            top = ranking.top
            if top is None or not top.external_username:
                name = top.display_name if top is not None else "?"
                raise NoIdentityResolved(f"No GitHub username found for top contributor '{name}'")
            resolved = ContributorRanking(entries=tuple(t for t in ranking if t.external_username))
            print(render_names(resolved, all_names=bool(args.verbose)))
        else:
            print(render_names(ranking, all_names=bool(args.verbose)))
        return 0

    color = _use_color(sys.stdout)
    if args.verbose:
        print(render_verbose(ranking, color=color, show_files=bool(args.files)))
    else:
        print(render_top(ranking, color=color))
    return 0
