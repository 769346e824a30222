from __future__ import annotations

import enum


class BlameOwnerError(Exception):
    exit_code = 1


class ConfigError(BlameOwnerError):
    pass


class NotInRepository(BlameOwnerError):
    pass


class NoFilesMatched(BlameOwnerError):
    exit_code = 2

    def __init__(self, patterns: list[str]) -> None:
        self.patterns = list(patterns)
        joined = ", ".join(repr(p) for p in self.patterns)
        super().__init__(f"No git-tracked files matched {joined}")


class NoIdentityResolved(BlameOwnerError):
    exit_code = 3


class LookupUnavailable(BlameOwnerError):
    """The identity source could not be reached; distinct from "no mapping"."""


class BlameFailureKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    UNTRACKED = "untracked"
    EMPTY = "empty"
    TIMEOUT = "timeout"
    TOOL_ERROR = "tool_error"


class PerFileBlameFailure(BlameOwnerError):
    def __init__(self, path: str, kind: BlameFailureKind, detail: str = "") -> None:
        self.path = path
        self.kind = kind
        self.detail = detail
        msg = f"{path}: {kind.value}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)

    @property
    def is_warning(self) -> bool:
        return self.kind is not BlameFailureKind.EMPTY

    def describe(self) -> str:
        if self.kind is BlameFailureKind.NOT_FOUND:
            reason = "file not found"
        elif self.kind is BlameFailureKind.UNTRACKED:
            reason = "not tracked by git"
        elif self.kind is BlameFailureKind.EMPTY:
            reason = "file is empty"
        elif self.kind is BlameFailureKind.TIMEOUT:
            reason = "git blame timed out"
        else:
            reason = "git blame failed"
        if self.detail:
            return f"{reason} ({self.detail})"
        return reason
