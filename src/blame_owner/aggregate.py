from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, Optional, Protocol, Sequence, Union

from .errors import LookupUnavailable, PerFileBlameFailure
from .identity import IdentityResolver, base_key, display_name_for, format_identity, normalize_github_username
from .models import AggregationResult, BlameRecord, ContributorRanking, ContributorTally, ResolutionResult, TallyTable

Normalizer = Callable[[str], str]


class BlameSource(Protocol):
    def blame(self, path: str) -> Iterable[BlameRecord]: ...

    def cancel(self) -> None: ...


def add_record(table: TallyTable, record: BlameRecord, normalize: Normalizer) -> None:
    key = normalize(record.author_identity)
    tally = table.get(key)
    if tally is None:
        tally = ContributorTally(key=key)
        table[key] = tally
    tally.line_count += 1
    tally.files_touched.add(record.source_file)
    if record.commit:
        tally.commits.add(record.commit)
    if record.author_time > tally.last_commit_time:
        tally.last_commit_time = record.author_time
    stamp = (record.author_time, display_name_for(record.author_identity))
    if not tally.display_name or stamp > tally.name_stamp:
        tally.name_stamp = stamp
        tally.display_name = stamp[1] or key


def merge_tally(dst: ContributorTally, src: ContributorTally) -> None:
    dst.line_count += src.line_count
    dst.files_touched |= src.files_touched
    dst.commits |= src.commits
    dst.last_commit_time = max(dst.last_commit_time, src.last_commit_time)
    if src.name_stamp > dst.name_stamp:
        dst.name_stamp = src.name_stamp
        dst.display_name = src.display_name
    if dst.external_username is None:
        dst.external_username = src.external_username


def merge_tables(dst: TallyTable, src: TallyTable) -> None:
    for key, tally in src.items():
        cur = dst.get(key)
        if cur is None:
            dst[key] = tally.copy()
            continue
        merge_tally(cur, tally)


def rank(table: TallyTable) -> ContributorRanking:
    entries = sorted(table.values(), key=lambda t: (-t.line_count, t.display_name, t.key))
    return ContributorRanking(entries=tuple(entries))


def fold_file(path: str, records: Iterable[BlameRecord], normalize: Normalizer = base_key) -> Union[TallyTable, PerFileBlameFailure]:
    """
    Fold one file's records into a fresh partial table.

    A failure raised mid-stream discards the partial counts so the file is
    either fully included or not at all.
    """
    table: TallyTable = {}
    try:
        for record in records:
            add_record(table, record, normalize)
    except PerFileBlameFailure as e:
        return e
    return table


def combine(partials: Iterable[tuple[str, Union[TallyTable, PerFileBlameFailure]]]) -> AggregationResult:
    total: TallyTable = {}
    failures: list[PerFileBlameFailure] = []
    blamed = 0
    for _path, partial in partials:
        if isinstance(partial, PerFileBlameFailure):
            failures.append(partial)
            continue
        blamed += 1
        merge_tables(total, partial)
    return AggregationResult(ranking=rank(total), failures=tuple(failures), files_blamed=blamed)


def aggregate(
    streams: Iterable[tuple[str, Iterable[BlameRecord]]],
    normalize: Normalizer = base_key,
) -> AggregationResult:
    return combine((path, fold_file(path, records, normalize)) for path, records in streams)


def aggregate_files(
    paths: Sequence[str],
    source: BlameSource,
    normalize: Normalizer = base_key,
    *,
    jobs: int = 4,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> AggregationResult:
    ordered = sorted(set(paths))
    if jobs <= 1 or len(ordered) <= 1:
        try:
            done = []
            for i, p in enumerate(ordered, start=1):
                done.append((p, fold_file(p, source.blame(p), normalize)))
                if on_progress is not None:
                    on_progress(i, len(ordered))
            return combine(done)
        except BaseException:
            source.cancel()
            raise

    partials: dict[str, Union[TallyTable, PerFileBlameFailure]] = {}
    ex = ThreadPoolExecutor(max_workers=jobs)
    try:
        futs = {ex.submit(fold_file, p, source.blame(p), normalize): p for p in ordered}
        for i, fut in enumerate(as_completed(futs), start=1):
            partials[futs[fut]] = fut.result()
            if on_progress is not None:
                on_progress(i, len(futs))
    except BaseException:
        # interrupted: kill running git processes and drop queued files
        source.cancel()
        ex.shutdown(wait=False, cancel_futures=True)
        raise
    ex.shutdown(wait=True)

    # merged in path order so repeated runs build identical tables
    return combine((p, partials[p]) for p in ordered)


def resolve_ranking(ranking: ContributorRanking, resolver: IdentityResolver, *, jobs: int = 4) -> ResolutionResult:
    if not resolver.has_lookup or not ranking:
        return ResolutionResult(ranking=ranking)

    def resolve_one(t: ContributorTally) -> tuple[ContributorTally, Optional[str], Optional[str]]:
        raw = format_identity(t.display_name, t.key if "@" in t.key else "")
        try:
            return t, resolver.resolve_external(raw, t.commits), None
        except LookupUnavailable as e:
            return t, None, str(e)

    with ThreadPoolExecutor(max_workers=max(1, jobs)) as ex:
        outcomes = list(ex.map(resolve_one, ranking.entries))

    table: dict[str, ContributorTally] = {}
    usernames: dict[str, str] = {}
    unavailable: list[str] = []
    messages: list[str] = []
    for t, username, err in outcomes:
        if err is not None:
            unavailable.append(t.key)
            if err not in messages:
                messages.append(err)
        entry = t.copy()
        if username:
            entry.key = f"@{normalize_github_username(username)}"
            usernames.setdefault(entry.key, username)
        cur = table.get(entry.key)
        if cur is None:
            table[entry.key] = entry
        else:
            merge_tally(cur, entry)

    for key, username in usernames.items():
        table[key].external_username = username
        table[key].display_name = username
    return ResolutionResult(ranking=rank(table), unavailable=tuple(unavailable), messages=tuple(messages))
