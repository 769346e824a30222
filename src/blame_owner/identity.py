from __future__ import annotations

import re
import threading
from typing import Iterable, Mapping, Optional, Protocol

_WS_RE = re.compile(r"\s+")
_IDENTITY_RE = re.compile(r"^(?P<name>.*?)\s*<(?P<email>[^<>]*)>\s*$")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_name(name: str) -> str:
    return _WS_RE.sub(" ", name.strip()).casefold()


def normalize_github_username(username: str) -> str:
    return username.strip().lstrip("@").casefold()


def github_username_from_email(email: str) -> str:
    """
    Extract GitHub username from GitHub noreply patterns:
      - username@users.noreply.github.com
      - 123456+username@users.noreply.github.com
    Returns normalized username or "".
    """
    e = normalize_email(email)
    if not e:
        return ""
    if not e.endswith("@users.noreply.github.com"):
        return ""
    local = e.split("@", 1)[0]
    if "+" in local:
        local = local.rsplit("+", 1)[-1]
    return normalize_github_username(local)


def split_identity(raw: str) -> tuple[str, str]:
    """Split `"Jane Doe <jane@example.com>"` into `("Jane Doe", "jane@example.com")`."""
    s = (raw or "").strip()
    m = _IDENTITY_RE.match(s)
    if m is None:
        return _WS_RE.sub(" ", s), ""
    return _WS_RE.sub(" ", m.group("name").strip()), m.group("email").strip()


def format_identity(name: str, email: str) -> str:
    return f"{name} <{email}>"


def display_name_for(raw: str) -> str:
    name, email = split_identity(raw)
    return name or email


def base_key(raw: str) -> str:
    name, email = split_identity(raw)
    if email:
        return normalize_email(email)
    # a bare address (e.g. an already-normalized key) keeps the email rule
    if "@" in name:
        return normalize_email(name)
    return normalize_name(name)


class ExternalLookup(Protocol):
    def lookup(self, name: str, email: str, commits: tuple[str, ...]) -> Optional[str]: ...


class IdentityResolver:
    """
    Groups raw author identities and maps them to external usernames.

    Grouping prefers the email over the name. `aliases` maps normalized keys
    onto other keys (e.g. an old work address onto the current one) and is
    applied inside `normalize()`, i.e. before any counting happens.
    """

    def __init__(self, lookup: Optional[ExternalLookup] = None, aliases: Optional[Mapping[str, str]] = None) -> None:
        self._lookup = lookup
        self._aliases = _close_aliases(aliases or {})
        self._cache: dict[str, Optional[str]] = {}
        self._lock = threading.Lock()

    @property
    def has_lookup(self) -> bool:
        return self._lookup is not None

    def normalize(self, raw_identity: str) -> str:
        key = base_key(raw_identity)
        return self._aliases.get(key, key)

    def resolve_external(self, raw_identity: str, commits: Iterable[str] = ()) -> Optional[str]:
        if self._lookup is None:
            return None
        key = self.normalize(raw_identity)
        with self._lock:
            if key in self._cache:
                return self._cache[key]
        name, email = split_identity(raw_identity)
        shas = tuple(sorted(c for c in commits if c))
        # LookupUnavailable propagates uncached so a later call may retry.
        username = self._lookup.lookup(name, email, shas)
        if username is not None:
            username = username.strip().lstrip("@") or None
        with self._lock:
            self._cache[key] = username
        return username


def _close_aliases(aliases: Mapping[str, str]) -> dict[str, str]:
    direct: dict[str, str] = {}
    for src, dst in aliases.items():
        s = base_key(str(src))
        d = base_key(str(dst))
        if s and d and s != d:
            direct[s] = d

    closed: dict[str, str] = {}
    for src in direct:
        path = [src]
        cur = direct[src]
        while cur in direct and cur not in path:
            path.append(cur)
            cur = direct[cur]
        if cur in path:
            # cycle: every member and every chain leading into it agree on the smallest member
            cur = min(path[path.index(cur) :])
        if cur != src:
            closed[src] = cur
    return closed
