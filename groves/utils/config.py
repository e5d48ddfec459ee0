# groves — Declarative fleets of git worktrees.
#
# Copyright (c) 2026 Max Rheiner / Somniacs AG
#
# Licensed under the MIT License. You may obtain a copy
# of the license at:
#
#     https://opensource.org/licenses/MIT
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND.

"""Central configuration: on-disk layout, timeouts, user overrides."""

import os
from importlib.metadata import version as _pkg_version
from pathlib import Path

import yaml

try:
    VERSION = _pkg_version("groves")
except Exception:
    VERSION = "0.0.0"

GROVES_DIR = Path.home() / ".groves"
USER_CONFIG_FILE = Path(os.environ.get("GROVES_CONFIG", GROVES_DIR / "config.yaml"))

# ── Layout under a root directory ───────────────────────────────────────────

MANIFEST_FILE_NAME = "groves.yaml"
WORKSPACES_DIR_NAME = "workspaces"
BARE_DIR_NAME = "bare"
METADATA_DIR_NAME = ".groves"
METADATA_FILE_NAME = "metadata.json"

MANIFEST_VERSION = 1

# ── Defaults (overridden by ~/.groves/config.yaml if it exists) ─────────────

GIT_TIMEOUT: float = 300          # seconds per git invocation
PREFETCH_TIMEOUT: float = 60      # seconds per background fetch
GC_FETCH_WORKERS: int = 4
FETCH_GRACE_SECONDS: float = 30   # skip remote HEAD checks on recently fetched stores
REPO_URL_BASE: str | None = os.environ.get("GROVES_REPO_URL_BASE")


def default_root() -> Path:
    """Root directory from $GROVES_ROOT, else ~/groves."""
    env = os.environ.get("GROVES_ROOT", "").strip()
    if env:
        return Path(env).expanduser()
    return Path.home() / "groves"


def manifest_path(root: str | Path) -> Path:
    return Path(root) / MANIFEST_FILE_NAME


def workspaces_root(root: str | Path) -> Path:
    return Path(root) / WORKSPACES_DIR_NAME


def workspace_dir(root: str | Path, workspace_id: str) -> Path:
    return workspaces_root(root) / workspace_id


def bare_root(root: str | Path) -> Path:
    return Path(root) / BARE_DIR_NAME


def load_user_config(path: Path | None = None):
    """Load the user config YAML and merge it over the defaults."""
    global GIT_TIMEOUT, PREFETCH_TIMEOUT, GC_FETCH_WORKERS, FETCH_GRACE_SECONDS, REPO_URL_BASE

    path = path or USER_CONFIG_FILE
    if not path.exists():
        return

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError):
        return
    if not isinstance(data, dict):
        return

    if isinstance(data.get("git_timeout"), (int, float)) and data["git_timeout"] > 0:
        GIT_TIMEOUT = data["git_timeout"]
    if isinstance(data.get("prefetch_timeout"), (int, float)) and data["prefetch_timeout"] >= 0:
        PREFETCH_TIMEOUT = data["prefetch_timeout"]
    if isinstance(data.get("gc_fetch_workers"), int) and data["gc_fetch_workers"] > 0:
        GC_FETCH_WORKERS = data["gc_fetch_workers"]
    if isinstance(data.get("fetch_grace_seconds"), (int, float)) and data["fetch_grace_seconds"] >= 0:
        FETCH_GRACE_SECONDS = data["fetch_grace_seconds"]
    if isinstance(data.get("repo_url_base"), str) and data["repo_url_base"].strip() and not REPO_URL_BASE:
        REPO_URL_BASE = data["repo_url_base"].strip()


# ── Load user config on import ──────────────────────────────────────────────

load_user_config()
