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

"""Repo spec normalization: clone URLs to canonical ``host/owner/repo`` keys."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse

from groves.utils import config as cfg


@dataclass(frozen=True)
class RepoSpec:
    """A clonable repo spec reduced to its canonical parts."""
    host: str
    owner: str
    repo: str

    @property
    def repo_key(self) -> str:
        return f"{self.host}/{self.owner}/{self.repo}"


def _split_owner_repo(path: str) -> tuple[str, str]:
    trimmed = path.strip("/")
    if not trimmed:
        raise ValueError("repo path is empty")
    parts = trimmed.split("/")
    if len(parts) != 2:
        raise ValueError("repo path must be <owner>/<repo>")
    owner = parts[0]
    repo = parts[1].removesuffix(".git")
    if not owner or not repo:
        raise ValueError("owner/repo cannot be empty")
    return owner, repo


def normalize(spec: str) -> RepoSpec:
    """Parse an ssh, https or file repo spec.

    Accepted forms::

        git@host:owner/repo(.git)
        https://host/owner/repo(.git)
        file:///any/prefix/<host>/<owner>/<repo>(.git)

    Raises ValueError for anything else.
    """
    trimmed = (spec or "").strip()
    if not trimmed:
        raise ValueError("repo spec is empty")

    if trimmed.startswith("git@"):
        at = trimmed.find("@")
        colon = trimmed.find(":")
        if colon < at:
            raise ValueError(f"invalid ssh repo spec: {spec!r}")
        host = trimmed[at + 1:colon]
        path = trimmed[colon + 1:]
    elif trimmed.startswith("https://"):
        parsed = urlparse(trimmed)
        host = parsed.hostname or ""
        path = parsed.path.lstrip("/")
    elif trimmed.startswith("file://"):
        parsed = urlparse(trimmed)
        # The key is inferred from the tail: .../<host>/<owner>/<repo>(.git)
        parts = parsed.path.strip("/").split("/")
        if len(parts) < 3 or not all(parts[-3:]):
            raise ValueError(f"file repo spec must end with <host>/<owner>/<repo>: {spec!r}")
        host = parts[-3]
        path = f"{parts[-2]}/{parts[-1]}"
    else:
        raise ValueError(f"repo spec must be ssh, https, or file: {spec!r}")

    owner, repo = _split_owner_repo(path)
    if not host:
        raise ValueError(f"host is required in repo spec: {spec!r}")
    return RepoSpec(host=host, owner=owner, repo=repo)


def parse_repo_key(key: str) -> RepoSpec:
    """Split a ``host/owner/repo`` key, raising ValueError when malformed."""
    trimmed = (key or "").strip()
    if not trimmed:
        raise ValueError("repo_key is required")
    if any(c.isspace() for c in trimmed):
        raise ValueError("repo_key must not contain whitespace")
    parts = trimmed.split("/")
    if len(parts) != 3 or not all(parts):
        raise ValueError("repo_key must be host/owner/repo")
    repo = parts[2].removesuffix(".git")
    if not repo:
        raise ValueError("repo_key must be host/owner/repo")
    return RepoSpec(host=parts[0], owner=parts[1], repo=repo)


def spec_from_key(key: str) -> str:
    """Turn a repo key back into a clonable URL.

    Uses ``https://host/owner/repo.git`` unless a URL base is configured,
    in which case the key is appended to it (handy for local mirrors).
    """
    parsed = parse_repo_key(key)
    base = cfg.REPO_URL_BASE
    if base:
        return f"{base.rstrip('/')}/{parsed.host}/{parsed.owner}/{parsed.repo}.git"
    return f"https://{parsed.host}/{parsed.owner}/{parsed.repo}.git"


def to_spec(value: str) -> str:
    """Accept either a clonable spec or a repo key and return a clonable spec."""
    trimmed = (value or "").strip()
    if trimmed.startswith(("git@", "https://", "file://")):
        return trimmed
    return spec_from_key(trimmed)
