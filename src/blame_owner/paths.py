from __future__ import annotations

import dataclasses
import glob
import os
from pathlib import Path
from typing import Optional

from .errors import NoFilesMatched, NotInRepository
from .git import get_repo_toplevel, list_tracked_files


@dataclasses.dataclass(frozen=True)
class FileSelection:
    repo: Path
    files: list[str]
    unmatched_patterns: list[str]


def expand_pattern(pattern: str, cwd: Path) -> list[Path]:
    """Literal path first; otherwise a glob (`**` recurses). Results are absolute and sorted."""
    literal = Path(pattern).expanduser()
    if not literal.is_absolute():
        literal = cwd / literal
    if literal.exists():
        return [literal.resolve()]
    if not any(c in pattern for c in "*?["):
        return []
    expanded = os.path.expanduser(pattern)
    if not os.path.isabs(expanded):
        expanded = os.path.join(str(cwd), expanded)
    return sorted({Path(m).resolve() for m in glob.glob(expanded, recursive=True)})


def select_files(patterns: list[str], cwd: Optional[Path] = None) -> FileSelection:
    base = (cwd or Path.cwd()).resolve()
    repo: Optional[Path] = None
    files: set[str] = set()
    unmatched: list[str] = []

    for pattern in patterns:
        expanded = expand_pattern(pattern, base)
        if not expanded:
            unmatched.append(pattern)
            continue
        for path in expanded:
            if repo is None:
                repo = get_repo_toplevel(path)
                if repo is None:
                    raise NotInRepository(f"'{path}' is not in a git repository")
            if path.is_dir():
                files.update(str(f) for f in list_tracked_files(path, repo))
            else:
                files.add(str(path))

    if repo is None or not files:
        raise NoFilesMatched(patterns)
    return FileSelection(repo=repo, files=sorted(files), unmatched_patterns=unmatched)
