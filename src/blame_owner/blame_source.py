from __future__ import annotations

import re
import subprocess
import threading
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .errors import BlameFailureKind, PerFileBlameFailure
from .git import is_tracked, relative_to_repo
from .identity import format_identity
from .models import BlameRecord

_HEADER_RE = re.compile(r"^(?P<sha>[0-9a-f]{40}|[0-9a-f]{64}) \d+ (?P<final>\d+)(?: \d+)?$")
_UNTRACKED_MARKERS = ("no such path", "is outside repository", "did not match any file")


class GitBlameSource:
    """
    Streams `git blame --line-porcelain` for one file at a time.

    Each call to `blame()` returns a generator; the git process starts on first
    iteration and is killed if the consumer stops early, the timeout elapses,
    or `cancel()` is called from another thread.
    """

    def __init__(self, repo: Path, *, timeout_s: float = 60, ignore_revs_file: Optional[Path] = None) -> None:
        self.repo = repo
        self.timeout_s = timeout_s
        if ignore_revs_file is None:
            candidate = repo / ".git-blame-ignore-revs"
            ignore_revs_file = candidate if candidate.is_file() else None
        self.ignore_revs_file = ignore_revs_file
        self._procs: set[subprocess.Popen[str]] = set()
        self._lock = threading.Lock()
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()
        with self._lock:
            procs = list(self._procs)
        for proc in procs:
            _kill(proc)

    def command(self, rel_path: str) -> list[str]:
        cmd = ["git", "blame", "--line-porcelain"]
        if self.ignore_revs_file is not None:
            cmd.extend(["--ignore-revs-file", str(self.ignore_revs_file)])
        cmd.extend(["--", rel_path])
        return cmd

    def blame(self, path: str) -> Iterator[BlameRecord]:
        p = Path(path)
        if self._cancelled.is_set():
            raise PerFileBlameFailure(path, BlameFailureKind.TOOL_ERROR, "cancelled")
        if not p.is_file():
            raise PerFileBlameFailure(path, BlameFailureKind.NOT_FOUND)

        rel = relative_to_repo(p, self.repo)
        try:
            proc = subprocess.Popen(
                self.command(rel),
                cwd=str(self.repo),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise PerFileBlameFailure(path, BlameFailureKind.TOOL_ERROR, f"failed to start git blame: {e}") from e

        with self._lock:
            self._procs.add(proc)
            # a cancel() that ran while Popen was starting has not seen this process
            if self._cancelled.is_set():
                _kill(proc)

        timed_out = threading.Event()

        def on_timeout() -> None:
            timed_out.set()
            _kill(proc)

        timer = threading.Timer(self.timeout_s, on_timeout)
        timer.daemon = True
        timer.start()

        stderr_chunks: list[str] = []
        stderr_chars = 0
        max_stderr_chars = 50_000

        def drain_stderr() -> None:
            nonlocal stderr_chars
            if proc.stderr is None:
                return
            while True:
                chunk = proc.stderr.read(8192)
                if not chunk:
                    return
                if stderr_chars >= max_stderr_chars:
                    continue
                take = chunk[: max_stderr_chars - stderr_chars]
                stderr_chunks.append(take)
                stderr_chars += len(take)

        stderr_thread = threading.Thread(target=drain_stderr, daemon=True)
        stderr_thread.start()

        count = 0
        exhausted = False
        try:
            assert proc.stdout is not None
            for record in parse_line_porcelain(proc.stdout, path):
                count += 1
                yield record
            exhausted = True
        finally:
            timer.cancel()
            code = _finish(proc, exhausted=exhausted)
            stderr_thread.join(timeout=5)
            with self._lock:
                self._procs.discard(proc)

        stderr = "".join(stderr_chunks).strip()
        if timed_out.is_set():
            raise PerFileBlameFailure(path, BlameFailureKind.TIMEOUT, f"no result after {self.timeout_s:g}s")
        if self._cancelled.is_set():
            raise PerFileBlameFailure(path, BlameFailureKind.TOOL_ERROR, "cancelled")
        if code != 0:
            raise self._classify_failure(p, path, code, stderr)
        if count == 0:
            raise PerFileBlameFailure(path, BlameFailureKind.EMPTY)

    def _classify_failure(self, p: Path, path: str, code: int, stderr: str) -> PerFileBlameFailure:
        low = stderr.lower()
        if any(m in low for m in _UNTRACKED_MARKERS) or not is_tracked(p, self.repo):
            return PerFileBlameFailure(path, BlameFailureKind.UNTRACKED)
        first = stderr.splitlines()[0] if stderr else ""
        return PerFileBlameFailure(path, BlameFailureKind.TOOL_ERROR, f"git blame exited {code}: {first[:500]}".rstrip(": "))


def parse_line_porcelain(lines: Iterable[str], source_file: str) -> Iterator[BlameRecord]:
    sha = ""
    line_number = 0
    author = ""
    mail = ""
    author_time = 0
    for raw_line in lines:
        line = raw_line.rstrip("\n")
        if line.startswith("\t"):
            if line_number > 0:
                yield BlameRecord(
                    author_identity=format_identity(author, mail),
                    source_file=source_file,
                    line_number=line_number,
                    commit=sha,
                    author_time=author_time,
                )
            sha = ""
            line_number = 0
            author = ""
            mail = ""
            author_time = 0
            continue
        m = _HEADER_RE.match(line)
        if m is not None:
            sha = m.group("sha")
            line_number = int(m.group("final"))
        elif line.startswith("author-mail "):
            mail = line[len("author-mail ") :].strip().strip("<>")
        elif line.startswith("author-time "):
            try:
                author_time = int(line[len("author-time ") :].strip())
            except ValueError:
                author_time = 0
        elif line.startswith("author "):
            author = line[len("author ") :].strip()


def _kill(proc: subprocess.Popen[str]) -> None:
    if proc.poll() is None:
        try:
            proc.kill()
        except OSError:
            pass


def _finish(proc: subprocess.Popen[str], *, exhausted: bool) -> int:
    if not exhausted:
        # consumer stopped early: the process may be blocked writing stdout
        _kill(proc)
    try:
        return proc.wait(timeout=10)
    finally:
        if proc.stdout is not None:
            proc.stdout.close()
