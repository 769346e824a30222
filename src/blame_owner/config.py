from __future__ import annotations

import dataclasses
import json
import os
from pathlib import Path
from typing import Optional

from .errors import ConfigError
from .lookup import LOOKUP_MODES

REPO_CONFIG_NAME = ".blame.json"


def default_jobs() -> int:
    return max(1, min(8, (os.cpu_count() or 4)))


@dataclasses.dataclass(frozen=True)
class IdentitySettings:
    lookup: str = "auto"
    aliases: dict[str, str] = dataclasses.field(default_factory=dict)
    usernames: dict[str, str] = dataclasses.field(default_factory=dict)
    github_api_url: str = "https://api.github.com"
    github_token_env: tuple[str, ...] = ("GITHUB_TOKEN", "GH_TOKEN")
    max_commits: int = 3


@dataclasses.dataclass(frozen=True)
class Settings:
    jobs: int = dataclasses.field(default_factory=default_jobs)
    timeout_s: float = 60.0
    ignore_revs_file: str = ""
    identity: IdentitySettings = dataclasses.field(default_factory=IdentitySettings)


def user_config_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME", "").strip()
    root = Path(base) if base else Path.home() / ".config"
    return root / "blame-owner" / "config.json"


def load_config(config_path: Path) -> dict:
    if not config_path.exists():
        return {}
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not read config {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path} must contain a JSON object")
    return data


def find_config_path(explicit: Optional[Path], repo: Optional[Path]) -> Optional[Path]:
    if explicit is not None:
        if not explicit.exists():
            raise ConfigError(f"Config file not found: {explicit}")
        return explicit
    if repo is not None and (repo / REPO_CONFIG_NAME).is_file():
        return repo / REPO_CONFIG_NAME
    user = user_config_path()
    if user.is_file():
        return user
    return None


def load_settings(explicit: Optional[Path], repo: Optional[Path]) -> Settings:
    path = find_config_path(explicit, repo)
    if path is None:
        return Settings()
    return settings_from_config(load_config(path))


def _str_map(value: object, field: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"`{field}` must be an object mapping strings to strings")
    out: dict[str, str] = {}
    for k, v in value.items():
        if not isinstance(v, str):
            raise ConfigError(f"`{field}.{k}` must be a string")
        out[str(k)] = v
    return out


def _positive_int(value: object, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"`{field}` must be a positive integer")
    return value


def settings_from_config(config: dict) -> Settings:
    defaults = Settings()
    jobs = _positive_int(config["jobs"], "jobs") if "jobs" in config else defaults.jobs

    timeout_s = defaults.timeout_s
    if "timeout_s" in config:
        raw = config["timeout_s"]
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw <= 0:
            raise ConfigError("`timeout_s` must be a positive number")
        timeout_s = float(raw)

    ignore_revs_file = str(config.get("ignore_revs_file", "") or "")

    ident_cfg = config.get("identity")
    if ident_cfg is None:
        ident_cfg = {}
    if not isinstance(ident_cfg, dict):
        raise ConfigError("`identity` must be an object")
    ident_defaults = IdentitySettings()

    lookup = str(ident_cfg.get("lookup", ident_defaults.lookup) or ident_defaults.lookup).strip().lower()
    if lookup not in LOOKUP_MODES:
        raise ConfigError(f"`identity.lookup` must be one of {', '.join(LOOKUP_MODES)}, got {lookup!r}")

    token_env_raw = ident_cfg.get("github_token_env", list(ident_defaults.github_token_env))
    if isinstance(token_env_raw, str):
        token_env_raw = [token_env_raw]
    if not isinstance(token_env_raw, list) or not all(isinstance(x, str) for x in token_env_raw):
        raise ConfigError("`identity.github_token_env` must be a string or a list of strings")

    identity = IdentitySettings(
        lookup=lookup,
        aliases=_str_map(ident_cfg.get("aliases"), "identity.aliases"),
        usernames=_str_map(ident_cfg.get("usernames"), "identity.usernames"),
        github_api_url=str(ident_cfg.get("github_api_url", ident_defaults.github_api_url) or ident_defaults.github_api_url),
        github_token_env=tuple(token_env_raw),
        max_commits=_positive_int(ident_cfg["max_commits"], "identity.max_commits") if "max_commits" in ident_cfg else ident_defaults.max_commits,
    )
    return Settings(jobs=jobs, timeout_s=timeout_s, ignore_revs_file=ignore_revs_file, identity=identity)
