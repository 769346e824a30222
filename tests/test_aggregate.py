from __future__ import annotations

import random
from typing import Iterator

import pytest

from blame_owner.aggregate import aggregate, aggregate_files, fold_file, merge_tables, rank
from blame_owner.errors import BlameFailureKind, PerFileBlameFailure
from blame_owner.identity import IdentityResolver
from blame_owner.models import BlameRecord, TallyTable
from conftest import ranking_pairs


def _records(path: str, authors: list[str], *, when: int = 0) -> list[BlameRecord]:
    return [BlameRecord(author_identity=a, source_file=path, line_number=i, author_time=when) for i, a in enumerate(authors, start=1)]


def test_counts_and_orders_by_line_count() -> None:
    result = aggregate([("f.py", _records("f.py", ["A", "A", "B"]))])
    assert ranking_pairs(result.ranking) == [("A", 2), ("B", 1)]
    assert result.failures == ()
    assert result.files_blamed == 1


def test_tie_is_broken_by_display_name() -> None:
    result = aggregate([("f.py", _records("f.py", ["B", "A"]))])
    assert ranking_pairs(result.ranking) == [("A", 1), ("B", 1)]


def test_line_count_sum_equals_record_count() -> None:
    rng = random.Random(7)
    authors = [f"Dev {i} <dev{i}@example.com>" for i in range(6)]
    streams = []
    total = 0
    for n in range(5):
        path = f"file{n}.py"
        recs = _records(path, [rng.choice(authors) for _ in range(rng.randint(0, 40))])
        total += len(recs)
        streams.append((path, recs))
    result = aggregate(streams)
    assert result.ranking.total_lines == total
    assert sum(t.line_count for t in result.ranking) == total


def test_file_by_file_merge_matches_single_fold() -> None:
    a = _records("a.py", ["Jane <jane@example.com>", "Joe <joe@example.com>", "Jane <JANE@example.com>"], when=10)
    b = _records("b.py", ["Joe <joe@example.com>", "Joe <joe@example.com>", "Ann <ann@example.com>"], when=20)

    together = aggregate([("a.py", a), ("b.py", b)]).ranking

    merged: TallyTable = {}
    for path, recs in (("b.py", b), ("a.py", a)):
        partial = fold_file(path, recs)
        assert not isinstance(partial, PerFileBlameFailure)
        merge_tables(merged, partial)
    separate = rank(merged)

    assert [(t.key, t.display_name, t.line_count, t.files_touched) for t in together] == [
        (t.key, t.display_name, t.line_count, t.files_touched) for t in separate
    ]
    assert ranking_pairs(together) == [("Joe", 3), ("Jane", 2), ("Ann", 1)]


def test_ranking_is_independent_of_input_order() -> None:
    recs = _records("x.py", ["C", "B", "A", "B", "C", "D"])
    expected = ranking_pairs(aggregate([("x.py", recs)]).ranking)
    rng = random.Random(3)
    for _ in range(10):
        shuffled = list(recs)
        rng.shuffle(shuffled)
        assert ranking_pairs(aggregate([("x.py", shuffled)]).ranking) == expected
    assert expected == [("B", 2), ("C", 2), ("A", 1), ("D", 1)]


def test_display_name_comes_from_newest_line() -> None:
    old = BlameRecord("Jane Doe <jane@example.com>", "a.py", 1, commit="c1", author_time=100)
    new = BlameRecord("Jane Smith <jane@example.com>", "b.py", 1, commit="c2", author_time=200)
    for order in ([old, new], [new, old]):
        ranking = aggregate([("mixed", order)]).ranking
        assert len(ranking) == 1
        top = ranking.top
        assert top is not None
        assert top.display_name == "Jane Smith"
        assert top.last_commit_time == 200
        assert top.commits == {"c1", "c2"}
        assert top.files_touched == {"a.py", "b.py"}


def test_empty_input_yields_empty_ranking() -> None:
    assert not aggregate([]).ranking
    result = aggregate([("empty.py", [])])
    assert not result.ranking
    assert result.ranking.top is None
    assert result.ranking.total_lines == 0


def _failing_stream(path: str) -> Iterator[BlameRecord]:
    yield BlameRecord("A", path, 1)
    yield BlameRecord("A", path, 2)
    raise PerFileBlameFailure(path, BlameFailureKind.TOOL_ERROR, "boom")


def test_failed_file_is_excluded_and_reported() -> None:
    result = aggregate(
        [
            ("good.py", _records("good.py", ["B", "B"])),
            ("bad.py", _failing_stream("bad.py")),
            ("other.py", _records("other.py", ["A"])),
        ]
    )
    assert ranking_pairs(result.ranking) == [("B", 2), ("A", 1)]
    assert [f.path for f in result.failures] == ["bad.py"]
    assert result.failures[0].kind is BlameFailureKind.TOOL_ERROR
    assert result.files_blamed == 2


def test_empty_file_failure_is_not_a_warning() -> None:
    def empty(path: str) -> Iterator[BlameRecord]:
        raise PerFileBlameFailure(path, BlameFailureKind.EMPTY)
        yield  # pragma: no cover

    result = aggregate([("e.py", empty("e.py")), ("u.py", iter(())), ("x.py", _records("x.py", ["A"]))])
    assert len(result.failures) == 1
    assert result.warnings == []


def test_normalizer_groups_before_counting() -> None:
    resolver = IdentityResolver(aliases={"old@example.com": "new@example.com"})
    recs = [
        BlameRecord("Pat <old@example.com>", "a.py", 1),
        BlameRecord("Pat <NEW@example.com>", "a.py", 2),
        BlameRecord("Sam <sam@example.com>", "a.py", 3),
    ]
    ranking = aggregate([("a.py", recs)], resolver.normalize).ranking
    assert [(t.key, t.line_count) for t in ranking] == [("new@example.com", 2), ("sam@example.com", 1)]


class _MemorySource:
    def __init__(self, files: dict[str, list[str]]) -> None:
        self.files = files
        self.cancelled = False

    def blame(self, path: str) -> Iterator[BlameRecord]:
        if path not in self.files:
            raise PerFileBlameFailure(path, BlameFailureKind.NOT_FOUND)
        for i, author in enumerate(self.files[path], start=1):
            yield BlameRecord(author, path, i)

    def cancel(self) -> None:
        self.cancelled = True


def test_parallel_matches_sequential() -> None:
    rng = random.Random(11)
    authors = ["Ann <ann@x>", "Bo <bo@x>", "Cy <cy@x>", "Di <di@x>"]
    files = {f"f{i}.py": [rng.choice(authors) for _ in range(rng.randint(1, 30))] for i in range(25)}
    paths = list(files) + ["missing.py"]

    seq = aggregate_files(paths, _MemorySource(files), jobs=1)
    par = aggregate_files(paths, _MemorySource(files), jobs=6)

    assert ranking_pairs(par.ranking) == ranking_pairs(seq.ranking)
    assert [f.path for f in par.failures] == ["missing.py"]
    assert par.files_blamed == 25


def test_progress_callback_reports_every_file() -> None:
    files = {f"f{i}.py": ["A"] for i in range(4)}
    seen: list[tuple[int, int]] = []
    aggregate_files(list(files), _MemorySource(files), jobs=2, on_progress=lambda d, t: seen.append((d, t)))
    assert seen[-1] == (4, 4)
    assert len(seen) == 4


class _InterruptingSource(_MemorySource):
    def blame(self, path: str) -> Iterator[BlameRecord]:
        if path == "f2.py":
            raise KeyboardInterrupt
        yield from super().blame(path)


@pytest.mark.parametrize("jobs", [1, 4])
def test_interrupt_cancels_source_and_propagates(jobs: int) -> None:
    files = {f"f{i}.py": ["A", "B"] for i in range(5)}
    source = _InterruptingSource(files)
    with pytest.raises(KeyboardInterrupt):
        aggregate_files(list(files), source, jobs=jobs)
    assert source.cancelled is True
