from __future__ import annotations

import dataclasses
from typing import Iterator, Optional

from .errors import PerFileBlameFailure


@dataclasses.dataclass(frozen=True)
class BlameRecord:
    author_identity: str
    source_file: str
    line_number: int
    commit: str = ""
    author_time: int = 0


@dataclasses.dataclass
class ContributorTally:
    key: str
    display_name: str = ""
    line_count: int = 0
    files_touched: set[str] = dataclasses.field(default_factory=set)
    commits: set[str] = dataclasses.field(default_factory=set)
    last_commit_time: int = 0
    external_username: Optional[str] = None
    # (author_time, name) of the newest line seen; picks display_name independently of fold order
    name_stamp: tuple[int, str] = (0, "")

    def copy(self) -> ContributorTally:
        return dataclasses.replace(self, files_touched=set(self.files_touched), commits=set(self.commits))


TallyTable = dict[str, ContributorTally]


@dataclasses.dataclass(frozen=True)
class ContributorRanking:
    entries: tuple[ContributorTally, ...] = ()

    def __iter__(self) -> Iterator[ContributorTally]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    @property
    def total_lines(self) -> int:
        return sum(t.line_count for t in self.entries)

    @property
    def top(self) -> Optional[ContributorTally]:
        return self.entries[0] if self.entries else None

    def share(self, tally: ContributorTally) -> float:
        total = self.total_lines
        if total <= 0:
            return 0.0
        return tally.line_count / total


@dataclasses.dataclass(frozen=True)
class AggregationResult:
    ranking: ContributorRanking
    failures: tuple[PerFileBlameFailure, ...] = ()
    files_blamed: int = 0

    @property
    def warnings(self) -> list[PerFileBlameFailure]:
        return [f for f in self.failures if f.is_warning]


@dataclasses.dataclass(frozen=True)
class ResolutionResult:
    ranking: ContributorRanking
    unavailable: tuple[str, ...] = ()  # grouping keys whose lookup source was unreachable
    messages: tuple[str, ...] = ()
