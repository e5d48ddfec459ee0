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

"""Manifest document models and groves.yaml load/save."""

from __future__ import annotations

import logging
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from groves.errors import ManifestError, ValidationError
from groves.utils import config as cfg

log = logging.getLogger(__name__)


class WorkspaceMode(str, Enum):
    """How a workspace was created."""
    PRESET = "preset"
    REPO = "repo"
    REVIEW = "review"
    ISSUE = "issue"
    RESUME = "resume"
    ADD = "add"


class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _plain_scalars(cls, data: Any) -> Any:
        # An empty YAML value (`description:`) means "use the default". Bare
        # numbers and booleans in string fields keep their text form.
        if not isinstance(data, dict):
            return data
        out = {}
        for k, v in data.items():
            if v is None:
                continue
            field = cls.model_fields.get(k)
            if field is not None and field.annotation is str and isinstance(v, (bool, int, float)):
                v = str(v)
            out[k] = v
        return out


class RepoRef(_Document):
    """One worktree inside a workspace. ``alias`` is its identity."""
    alias: str = ""
    repo_key: str = ""
    branch: str = ""
    base_ref: str = ""

    @field_validator("alias", "repo_key", "branch", "base_ref")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class Workspace(_Document):
    description: str = ""
    mode: WorkspaceMode | None = None
    preset_name: str = ""
    source_url: str = ""
    repos: list[RepoRef] = Field(default_factory=list)

    @field_validator("description", "preset_name", "source_url")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class Preset(_Document):
    """A named, ordered list of clonable repo specs."""
    repos: list[str] = Field(default_factory=list)

    @field_validator("repos", mode="before")
    @classmethod
    def _accept_legacy_entries(cls, v: Any) -> Any:
        # Older files spell entries as {repo: <spec>}.
        if not isinstance(v, list):
            return v
        out = []
        for entry in v:
            if isinstance(entry, dict) and "repo" in entry:
                entry = entry["repo"]
            out.append(entry.strip() if isinstance(entry, str) else entry)
        return out


class ManifestFile(_Document):
    """The whole desired state: workspaces plus reusable presets."""
    version: int = cfg.MANIFEST_VERSION
    workspaces: dict[str, Workspace] = Field(default_factory=dict)
    presets: dict[str, Preset] = Field(default_factory=dict)

    @field_validator("workspaces", "presets", mode="before")
    @classmethod
    def _text_keys(cls, v: Any) -> Any:
        # `1234:` decodes as an int key.
        if isinstance(v, dict):
            return {str(k).strip() if k is not None else "": entry for k, entry in v.items()}
        return v


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _repo_to_dict(repo: RepoRef) -> dict[str, str]:
    d = {"alias": repo.alias, "repo_key": repo.repo_key, "branch": repo.branch}
    if repo.base_ref:
        d["base_ref"] = repo.base_ref
    return d


def _workspace_to_dict(ws: Workspace) -> dict[str, Any]:
    d: dict[str, Any] = {}
    if ws.description:
        d["description"] = ws.description
    if ws.mode is not None:
        d["mode"] = ws.mode.value
    if ws.preset_name:
        d["preset_name"] = ws.preset_name
    if ws.source_url:
        d["source_url"] = ws.source_url
    d["repos"] = [_repo_to_dict(r) for r in ws.repos]
    return d


def to_dict(file: ManifestFile) -> dict[str, Any]:
    """Plain mapping in on-disk key order, map keys sorted."""
    return {
        "version": file.version or cfg.MANIFEST_VERSION,
        "presets": {
            name: {"repos": list(file.presets[name].repos)}
            for name in sorted(file.presets)
        },
        "workspaces": {
            wid: _workspace_to_dict(file.workspaces[wid])
            for wid in sorted(file.workspaces)
        },
    }


def dumps(file: ManifestFile) -> str:
    return yaml.safe_dump(to_dict(file), sort_keys=False, default_flow_style=False,
                          allow_unicode=True, indent=2)


def parse(data: Any, path: str | Path = cfg.MANIFEST_FILE_NAME) -> ManifestFile:
    """Build a ManifestFile from decoded YAML, raising ValidationError on bad shapes."""
    from groves.manifest.validate import issues_from_pydantic, ValidationResult

    if data is None:
        data = {}
    try:
        return ManifestFile.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(ValidationResult(path=str(path), issues=issues_from_pydantic(e))) from e


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------

def read_raw(root: str | Path) -> Any:
    """Decode groves.yaml without interpreting it. Missing file yields None."""
    path = cfg.manifest_path(root)
    if not path.exists():
        return None
    try:
        return yaml.safe_load(path.read_text())
    except OSError as e:
        raise ManifestError(f"read {cfg.MANIFEST_FILE_NAME}: {e}") from e
    except yaml.YAMLError as e:
        raise ManifestError(f"parse {cfg.MANIFEST_FILE_NAME}: {e}") from e


def load(root: str | Path) -> ManifestFile:
    """Load the desired manifest. A missing file is an empty manifest."""
    return parse(read_raw(root), cfg.manifest_path(root))


def save(root: str | Path, file: ManifestFile) -> Path:
    """Atomically write groves.yaml."""
    path = cfg.manifest_path(root)
    write_bytes(path, dumps(file).encode())
    log.info("Wrote %s (%d workspaces)", path, len(file.workspaces))
    return path


def write_bytes(path: Path, data: bytes) -> None:
    """Atomic write: temp file in the same directory, then rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with open(fd, "wb") as f:
            f.write(data)
        Path(tmp).replace(path)
    except Exception:
        Path(tmp).unlink(missing_ok=True)
        raise
