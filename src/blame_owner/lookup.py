from __future__ import annotations

import json
import os
import shutil
import ssl
import subprocess
import urllib.error
import urllib.parse
import urllib.request
from typing import Mapping, Optional, Sequence

from .errors import ConfigError, LookupUnavailable
from .identity import ExternalLookup, github_username_from_email, normalize_email, normalize_name


class NoopLookup:
    def lookup(self, name: str, email: str, commits: tuple[str, ...]) -> Optional[str]:
        return None


class ConfigLookup:
    """Explicit email/name -> username mapping, plus GitHub noreply addresses."""

    def __init__(self, usernames: Optional[Mapping[str, str]] = None, *, use_noreply: bool = True) -> None:
        self._by_email: dict[str, str] = {}
        self._by_name: dict[str, str] = {}
        for ident, username in (usernames or {}).items():
            ident = str(ident).strip()
            username = str(username).strip().lstrip("@")
            if not ident or not username:
                continue
            if "@" in ident:
                self._by_email[normalize_email(ident)] = username
            else:
                self._by_name[normalize_name(ident)] = username
        self._use_noreply = use_noreply

    def lookup(self, name: str, email: str, commits: tuple[str, ...]) -> Optional[str]:
        e = normalize_email(email) if email else ""
        if e and e in self._by_email:
            return self._by_email[e]
        n = normalize_name(name) if name else ""
        if n and n in self._by_name:
            return self._by_name[n]
        if e and self._use_noreply:
            gh = github_username_from_email(e)
            if gh:
                return gh
        return None


class GitHubApiLookup:
    """
    Asks the GitHub REST API who authored one of the contributor's commits:
    `GET /repos/{owner}/{repo}/commits/{sha}` -> `.author.login`.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        *,
        api_url: str = "https://api.github.com",
        token: str = "",
        max_commits: int = 3,
        timeout_s: int = 15,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.api_url = (api_url or "https://api.github.com").rstrip("/")
        self.token = token
        self.max_commits = max(1, max_commits)
        self.timeout_s = timeout_s

    def commit_url(self, sha: str) -> str:
        owner = urllib.parse.quote(self.owner, safe="")
        repo = urllib.parse.quote(self.repo, safe="")
        return f"{self.api_url}/repos/{owner}/{repo}/commits/{sha}"

    def lookup(self, name: str, email: str, commits: tuple[str, ...]) -> Optional[str]:
        for sha in commits[: self.max_commits]:
            login = self._login_for_commit(sha)
            if login:
                return login
        return None

    def _login_for_commit(self, sha: str) -> Optional[str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "blame-owner",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        req = urllib.request.Request(self.commit_url(sha), method="GET", headers=headers)
        ctx = ssl.create_default_context() if self.api_url.startswith("https:") else None
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s, context=ctx) as resp:
                payload = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            code = int(getattr(e, "code", 0) or 0)
            if code in (404, 422):
                # commit not on GitHub (unpushed, rewritten)
                return None
            body = ""
            try:
                body = e.read().decode("utf-8", errors="replace")
            except Exception:
                body = ""
            raise LookupUnavailable(f"GitHub API returned HTTP {code}: {body.strip()[:200]}") from e
        except urllib.error.URLError as e:
            raise LookupUnavailable(f"GitHub API unreachable: {e.reason}") from e
        except OSError as e:
            raise LookupUnavailable(f"GitHub API unreachable: {e}") from e

        try:
            obj = json.loads(payload)
        except ValueError as e:
            raise LookupUnavailable("GitHub API returned invalid JSON") from e
        author = obj.get("author") if isinstance(obj, dict) else None
        if not isinstance(author, dict):
            return None
        login = str(author.get("login") or "").strip()
        return login or None


class GhCliLookup:
    """Same query as `GitHubApiLookup`, through `gh api` so the user's gh login is used."""

    def __init__(self, owner: str, repo: str, *, max_commits: int = 3, timeout_s: int = 30, gh: str = "gh") -> None:
        self.owner = owner
        self.repo = repo
        self.max_commits = max(1, max_commits)
        self.timeout_s = timeout_s
        self.gh = gh

    def lookup(self, name: str, email: str, commits: tuple[str, ...]) -> Optional[str]:
        for sha in commits[: self.max_commits]:
            login = self._login_for_commit(sha)
            if login:
                return login
        return None

    def _login_for_commit(self, sha: str) -> Optional[str]:
        cmd = [self.gh, "api", f"repos/{self.owner}/{self.repo}/commits/{sha}", "--jq", ".author.login"]
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout_s)
        except FileNotFoundError as e:
            raise LookupUnavailable(f"`{self.gh}` is not installed") from e
        except subprocess.TimeoutExpired as e:
            raise LookupUnavailable(f"`{self.gh} api` timed out after {self.timeout_s}s") from e
        if proc.returncode != 0:
            err = (proc.stderr or "").strip()
            if "HTTP 404" in err or "HTTP 422" in err:
                return None
            raise LookupUnavailable(f"`{self.gh} api` failed: {err[:200]}")
        login = proc.stdout.strip()
        if not login or login == "null":
            return None
        return login


class ChainLookup:
    def __init__(self, lookups: Sequence[ExternalLookup]) -> None:
        self.lookups = list(lookups)

    def lookup(self, name: str, email: str, commits: tuple[str, ...]) -> Optional[str]:
        unavailable: Optional[LookupUnavailable] = None
        for lk in self.lookups:
            try:
                found = lk.lookup(name, email, commits)
            except LookupUnavailable as e:
                if unavailable is None:
                    unavailable = e
                continue
            if found:
                return found
        if unavailable is not None:
            raise unavailable
        return None


LOOKUP_MODES = ("auto", "gh-cli", "github-api", "config", "none")


def github_token(env_names: Sequence[str], environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    for k in env_names:
        v = (env.get(k) or "").strip()
        if v:
            return v
    return ""


def build_lookup(
    mode: str,
    *,
    usernames: Mapping[str, str],
    github_repo: Optional[tuple[str, str]],
    api_url: str,
    token_env: Sequence[str],
    max_commits: int,
    gh_path: Optional[str] = None,
) -> tuple[ExternalLookup, str]:
    """
    Returns the lookup for `mode` together with the effective mode name
    ("auto" picks gh-cli when `gh` is installed, otherwise github-api).
    Raises ConfigError when a remote mode has no GitHub repository.
    """
    if mode == "none":
        return NoopLookup(), mode
    local = ConfigLookup(usernames)
    if mode == "config":
        return local, mode

    if mode == "auto":
        gh_path = gh_path if gh_path is not None else (shutil.which("gh") or "")
        mode = "gh-cli" if gh_path else "github-api"

    if github_repo is None:
        raise ConfigError("Could not determine the GitHub repository from the `origin` remote")
    owner, repo = github_repo
    remote: ExternalLookup
    if mode == "gh-cli":
        remote = GhCliLookup(owner, repo, max_commits=max_commits, gh=gh_path or "gh")
    else:
        remote = GitHubApiLookup(owner, repo, api_url=api_url, token=github_token(token_env), max_commits=max_commits)
    return ChainLookup([local, remote]), mode
