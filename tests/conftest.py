"""
Shared fixtures: isolated git environment, file:// remotes and a groves root.
"""

import asyncio
import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest
import yaml

from groves.utils import config as cfg

GIT_ENV_VARS_TO_CLEAR = (
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_COMMON_DIR",
    "GIT_OBJECT_DIRECTORY",
)

DEFAULT_KEY = "example.com/acme/app"


def git(*args, cwd=None) -> str:
    """Run git for fixture setup and return stripped stdout."""
    r = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return r.stdout.strip()


def run(coro):
    return asyncio.run(coro)


# =============================================================================
# ENVIRONMENT
# =============================================================================

@pytest.fixture(autouse=True)
def git_env(tmp_path: Path, monkeypatch):
    """Isolate git from the user's config and identity."""
    for var in GIT_ENV_VARS_TO_CLEAR:
        monkeypatch.delenv(var, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Groves Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Groves Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.setattr(cfg, "FETCH_GRACE_SECONDS", 0)


# =============================================================================
# REMOTES
# =============================================================================

@dataclass
class Remote:
    """A bare file:// remote plus a seed clone used to push commits."""
    key: str
    path: Path
    seed: Path

    @property
    def url(self) -> str:
        return f"file://{self.path}"

    def commit(self, message: str) -> str:
        """Commit a new file on top of the remote main and push it. Returns the oid."""
        git("fetch", "origin", cwd=self.seed)
        git("reset", "--hard", "origin/main", cwd=self.seed)
        name = message.replace(" ", "_") + ".txt"
        (self.seed / name).write_text(message + "\n")
        git("add", name, cwd=self.seed)
        git("commit", "-m", message, cwd=self.seed)
        git("push", "origin", "HEAD:refs/heads/main", cwd=self.seed)
        return git("rev-parse", "HEAD", cwd=self.seed)

    def head(self, branch: str = "main") -> str:
        return git("rev-parse", f"refs/heads/{branch}", cwd=self.path)


class Remotes:
    """Factory for remotes laid out as ``<base>/<host>/<owner>/<repo>.git``."""

    def __init__(self, base: Path):
        self.base = base

    def create(self, key: str = DEFAULT_KEY) -> Remote:
        host, owner, repo = key.split("/")
        path = self.base / host / owner / f"{repo}.git"
        path.parent.mkdir(parents=True, exist_ok=True)
        git("init", "--bare", "--initial-branch=main", str(path))

        seed = self.base.parent / "seeds" / key.replace("/", "_")
        seed.parent.mkdir(parents=True, exist_ok=True)
        git("clone", str(path), str(seed))
        git("symbolic-ref", "HEAD", "refs/heads/main", cwd=seed)
        (seed / "README.md").write_text(f"# {repo}\n")
        git("add", "README.md", cwd=seed)
        git("commit", "-m", "initial", cwd=seed)
        git("push", "origin", "main", cwd=seed)
        return Remote(key=key, path=path, seed=seed)


@pytest.fixture
def remotes(tmp_path: Path, monkeypatch) -> Remotes:
    base = tmp_path / "remotes"
    base.mkdir()
    monkeypatch.setattr(cfg, "REPO_URL_BASE", f"file://{base}")
    return Remotes(base)


@pytest.fixture
def remote(remotes: Remotes) -> Remote:
    return remotes.create()


# =============================================================================
# ROOT
# =============================================================================

@pytest.fixture
def root(tmp_path: Path) -> Path:
    path = tmp_path / "root"
    path.mkdir()
    return path


def write_manifest(root: Path, workspaces: dict, presets: dict | None = None) -> Path:
    """Write groves.yaml from plain dicts."""
    path = cfg.manifest_path(root)
    doc = {"version": 1, "workspaces": workspaces}
    if presets:
        doc["presets"] = presets
    path.write_text(yaml.safe_dump(doc, sort_keys=False))
    return path


def read_manifest(root: Path) -> dict:
    return yaml.safe_load(cfg.manifest_path(root).read_text())


def workspace_entry(*repos, mode: str = "repo", description: str = "") -> dict:
    """``repos`` are (alias, repo_key, branch) tuples."""
    entry = {"mode": mode, "repos": [
        {"alias": alias, "repo_key": key, "branch": branch} for alias, key, branch in repos
    ]}
    if description:
        entry["description"] = description
    return entry
