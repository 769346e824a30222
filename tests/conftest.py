from __future__ import annotations

import os
import shutil
import subprocess
import sys
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(home.parent))
    monkeypatch.delenv("NO_COLOR", raising=False)
    for k in ("GITHUB_TOKEN", "GH_TOKEN", "HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(k, raising=False)


class GitRepo:
    def __init__(self, root: Path) -> None:
        self.root = root

    def git(self, *args: str, env: dict[str, str] | None = None) -> str:
        full_env = os.environ.copy()
        if env:
            full_env.update(env)
        proc = subprocess.run(["git", *args], cwd=str(self.root), env=full_env, text=True, capture_output=True)
        assert proc.returncode == 0, proc.stderr
        return proc.stdout

    def commit(self, files: dict[str, str], *, author: str, email: str, when: int, message: str = "change") -> str:
        for rel, content in files.items():
            p = self.root / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(content, encoding="utf-8")
            self.git("add", "--", rel)
        stamp = f"{when} +0000"
        env = {
            "GIT_AUTHOR_NAME": author,
            "GIT_AUTHOR_EMAIL": email,
            "GIT_AUTHOR_DATE": stamp,
            "GIT_COMMITTER_NAME": author,
            "GIT_COMMITTER_EMAIL": email,
            "GIT_COMMITTER_DATE": stamp,
        }
        self.git("commit", "-q", "-m", message, env=env)
        return self.git("rev-parse", "HEAD").strip()


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepo:
    if shutil.which("git") is None:
        pytest.skip("git is required")
    root = tmp_path / "repo"
    root.mkdir()
    repo = GitRepo(root.resolve())
    repo.git("init", "-q")
    return repo


@pytest.fixture
def sample_repo(git_repo: GitRepo) -> GitRepo:
    """
    a.py: Alice 2 lines, Bob 3 lines
    b.py: Alice 1 line + "Alice Smith" <ALICE@example.com> 2 lines
    c.py: Bob 3 lines
    Totals: Bob 6, Alice 5 (display name "Alice Smith", the newest).
    """
    git_repo.commit(
        {"a.py": "a1\na2\na3\n", "b.py": "b1\n"},
        author="Alice",
        email="alice@example.com",
        when=1_600_000_000,
    )
    git_repo.commit(
        {"a.py": "a1\na2\nB3\nB4\nB5\n", "c.py": "c1\nc2\nc3\n"},
        author="Bob",
        email="bob@example.com",
        when=1_700_000_000,
    )
    git_repo.commit(
        {"b.py": "b1\nb2\nb3\n"},
        author="Alice Smith",
        email="ALICE@example.com",
        when=1_750_000_000,
    )
    return git_repo


def write_fake_tool(bin_dir: Path, name: str, body_lines: list[str]) -> Path:
    bin_dir.mkdir(parents=True, exist_ok=True)
    tool = bin_dir / name
    tool.write_text("\n".join([f"#!{sys.executable}", "import sys, time", "", *body_lines]) + "\n", encoding="utf-8")
    tool.chmod(0o755)
    return tool


def ranking_pairs(ranking) -> list[tuple[str, int]]:
    return [(t.display_name, t.line_count) for t in ranking]
