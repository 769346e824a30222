from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse


def run_git(args: list[str], cwd: Path, timeout_s: int = 300) -> tuple[int, str, str]:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=timeout_s,
        )
    except FileNotFoundError as e:
        return 127, "", f"git not found: {e}"
    except subprocess.TimeoutExpired:
        return 124, "", f"git {' '.join(args[:2])} timed out after {timeout_s}s"
    return proc.returncode, proc.stdout, proc.stderr


def get_repo_toplevel(candidate: Path) -> Optional[Path]:
    start = candidate if candidate.is_dir() else candidate.parent
    if not start.exists():
        return None
    code, out, _ = run_git(["rev-parse", "--show-toplevel"], cwd=start)
    if code != 0:
        return None
    try:
        return Path(out.strip()).resolve()
    except Exception:
        return None


def is_tracked(path: Path, repo: Path) -> bool:
    code, _, _ = run_git(["ls-files", "--error-unmatch", "--", relative_to_repo(path, repo)], cwd=repo)
    return code == 0


def list_tracked_files(directory: Path, repo: Path) -> list[Path]:
    rel = relative_to_repo(directory, repo)
    args = ["ls-files", "-z", "--"]
    if rel and rel != ".":
        args.append(rel)
    code, out, _ = run_git(args, cwd=repo)
    if code != 0:
        return []
    return [repo / p for p in out.split("\0") if p]


def relative_to_repo(path: Path, repo: Path) -> str:
    try:
        return path.resolve().relative_to(repo).as_posix()
    except ValueError:
        return str(path)


def get_remote_origin(repo: Path) -> str:
    code, out, _ = run_git(["config", "--get", "remote.origin.url"], cwd=repo)
    if code == 0:
        return out.strip()
    return ""


def canonicalize_remote(remote: str) -> str:
    r = (remote or "").strip()
    if not r:
        return ""

    if "://" not in r and ":" in r and "@" in r.split(":", 1)[0]:
        left, path = r.split(":", 1)
        host = left.split("@", 1)[1]
        canon = f"{host}/{path}"
    else:
        parsed = urlparse(r)
        if parsed.scheme and parsed.netloc:
            host = parsed.netloc
            if "@" in host:
                host = host.split("@", 1)[1]
            canon = f"{host}/{parsed.path.lstrip('/')}"
        else:
            canon = r

    canon = canon.rstrip("/")
    if canon.endswith(".git"):
        canon = canon[:-4]
    return canon


def github_repo_from_remote(remote: str) -> Optional[tuple[str, str]]:
    """`git@github.com:owner/repo.git` / `https://github.com/owner/repo` -> `("owner", "repo")`."""
    canon = canonicalize_remote(remote)
    host, _, rest = canon.partition("/")
    if host.split(":", 1)[0].lower() not in ("github.com", "www.github.com", "ssh.github.com"):
        return None
    parts = [p for p in rest.split("/") if p]
    if len(parts) != 2:
        return None
    return parts[0], parts[1]
