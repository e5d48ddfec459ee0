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

"""Manifest validation.

Works on the raw decoded YAML rather than the typed models so that one
malformed entry never hides problems in the rest of the file. Every issue
found is collected; callers decide whether any issue is fatal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import pydantic

from groves.errors import ManifestError
from groves.git import runner as git
from groves.manifest.model import WorkspaceMode, read_raw
from groves.repos import repospec
from groves.utils import config as cfg

_PRESET_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_MODES = {m.value for m in WorkspaceMode}


@dataclass
class ValidationIssue:
    ref: str        # e.g. workspaces.PROJ-1.repos[0].branch
    message: str

    def __str__(self) -> str:
        return f"{self.ref}: {self.message}"


@dataclass
class ValidationResult:
    path: str
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


def issues_from_pydantic(err: pydantic.ValidationError) -> list[ValidationIssue]:
    """Map pydantic errors onto manifest refs (``workspaces.X.repos[0].alias``)."""
    issues = []
    for e in err.errors():
        ref = ""
        prev = None
        for part in e["loc"]:
            if part == "[key]":
                continue
            if isinstance(part, int) and prev == "repos":
                ref += f"[{part}]"
            else:
                ref += f".{part}" if ref else str(part)
            prev = part
        issues.append(ValidationIssue(ref=ref or cfg.MANIFEST_FILE_NAME, message=e["msg"]))
    return issues


def is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc)


async def validate_workspace_id(workspace_id: str) -> str | None:
    """Return a problem description, or None when the ID is usable."""
    if not workspace_id:
        return "workspace id is required"
    if "/" in workspace_id or "\\" in workspace_id:
        return "invalid workspace id: must not contain path separators"
    if workspace_id in (".", ".."):
        return "invalid workspace id: must not contain path traversal"
    if not await git.is_valid_branch_name(workspace_id):
        return f"invalid workspace id: not a valid branch name: {workspace_id}"
    return None


def validate_preset_name(name: str) -> str | None:
    if not _PRESET_NAME_RE.match(name):
        return f"invalid preset name: {name}"
    return None


def validate_repo_key(key: str) -> str | None:
    try:
        repospec.parse_repo_key(key)
    except ValueError as e:
        return f"invalid repo key ({e})"
    return None


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _read(root: str | Path) -> tuple[ValidationResult, Any, bool]:
    # Returns (result, decoded document, readable).
    path = cfg.manifest_path(root)
    result = ValidationResult(path=str(path))
    name = cfg.MANIFEST_FILE_NAME
    if not path.exists():
        result.issues.append(ValidationIssue(name, "file not found"))
        return result, None, False
    try:
        return result, read_raw(root), True
    except ManifestError as e:
        result.issues.append(ValidationIssue(name, str(e)))
        return result, None, False


async def validate(root: str | Path) -> ValidationResult:
    """Validate groves.yaml under ``root`` and collect every issue."""
    result, doc, readable = _read(root)
    if not readable:
        return result
    result.issues.extend(validate_version(doc))
    result.issues.extend(await validate_workspaces(doc))
    result.issues.extend(validate_presets(doc))
    return result


def validate_preset_section(root: str | Path) -> ValidationResult:
    """Validate only the presets of groves.yaml under ``root``."""
    result, doc, readable = _read(root)
    if readable:
        result.issues.extend(validate_presets(doc))
    return result


def validate_version(doc: Any) -> list[ValidationIssue]:
    if not isinstance(doc, dict) or "version" not in doc:
        return []
    v = doc["version"]
    if isinstance(v, bool) or not isinstance(v, int):
        return [ValidationIssue("version", "invalid value (must be an integer)")]
    if v != cfg.MANIFEST_VERSION:
        return [ValidationIssue("version", f"unsupported version: {v} (supported: {cfg.MANIFEST_VERSION})")]
    return []


async def validate_workspaces(doc: Any) -> list[ValidationIssue]:
    if not isinstance(doc, dict) or "workspaces" not in doc:
        return [ValidationIssue("workspaces", "missing required field")]
    workspaces = doc["workspaces"]
    if workspaces is None:
        return []
    if not isinstance(workspaces, dict):
        return [ValidationIssue("workspaces", "invalid value (must be a mapping)")]

    presets = doc.get("presets")
    preset_names: set[str] = set()
    if isinstance(presets, dict):
        preset_names = {str(k).strip() for k in presets if k is not None}

    issues: list[ValidationIssue] = []
    for key, entry in workspaces.items():
        wid = str(key).strip() if key is not None else ""
        if not wid:
            issues.append(ValidationIssue("workspaces", "workspace id is empty"))
            continue
        ref = f"workspaces.{wid}"
        problem = await validate_workspace_id(wid)
        if problem:
            issues.append(ValidationIssue(ref, problem))
        if not isinstance(entry, dict):
            issues.append(ValidationIssue(ref, "invalid value (workspace entry must be a mapping)"))
            continue
        issues.extend(await _validate_workspace_entry(ref, entry, preset_names))
    return issues


def _scalar(entry: dict, key: str) -> str:
    v = entry.get(key)
    if v is None or isinstance(v, (dict, list)):
        return ""
    return str(v).strip()


async def _validate_workspace_entry(ref: str, entry: dict,
                                    preset_names: set[str]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    mode = _scalar(entry, "mode")
    if mode and mode not in _MODES:
        issues.append(ValidationIssue(f"{ref}.mode", f"invalid value: {mode}"))

    preset_name = _scalar(entry, "preset_name")
    if mode == WorkspaceMode.PRESET.value and not preset_name:
        issues.append(ValidationIssue(f"{ref}.preset_name", "missing required field for preset mode"))
    if preset_name and preset_name not in preset_names:
        issues.append(ValidationIssue(f"{ref}.preset_name", f"preset not found: {preset_name}"))

    source_url = _scalar(entry, "source_url")
    if source_url and not is_valid_url(source_url):
        issues.append(ValidationIssue(f"{ref}.source_url", f"invalid url: {source_url}"))

    if "repos" not in entry:
        issues.append(ValidationIssue(f"{ref}.repos", "missing required field"))
        return issues
    repos = entry["repos"]
    if repos is None:
        repos = []
    if not isinstance(repos, list):
        issues.append(ValidationIssue(f"{ref}.repos", "invalid value (must be a list)"))
        return issues

    seen: set[str] = set()
    for i, repo in enumerate(repos):
        rref = f"{ref}.repos[{i}]"
        if not isinstance(repo, dict):
            issues.append(ValidationIssue(rref, "invalid value (repo entry must be a mapping)"))
            continue

        alias = _scalar(repo, "alias")
        if not alias:
            issues.append(ValidationIssue(f"{rref}.alias", "missing required field"))
        else:
            if alias == cfg.METADATA_DIR_NAME:
                issues.append(ValidationIssue(f"{rref}.alias", f"invalid value: {alias} is reserved"))
            if "/" in alias or "\\" in alias:
                issues.append(ValidationIssue(f"{rref}.alias", "invalid value (must not contain path separators)"))
            if alias in seen:
                issues.append(ValidationIssue(f"{rref}.alias", f'duplicate alias "{alias}"'))
            seen.add(alias)

        repo_key = _scalar(repo, "repo_key")
        if not repo_key:
            issues.append(ValidationIssue(f"{rref}.repo_key", "missing required field"))
        else:
            problem = validate_repo_key(repo_key)
            if problem:
                issues.append(ValidationIssue(f"{rref}.repo_key", problem))

        branch = _scalar(repo, "branch")
        if not branch:
            issues.append(ValidationIssue(f"{rref}.branch", "missing required field"))
        elif not await git.is_valid_branch_name(branch):
            issues.append(ValidationIssue(f"{rref}.branch", f"invalid branch name: {branch}"))

        base_ref = _scalar(repo, "base_ref")
        if base_ref:
            target = base_ref.removeprefix("origin/")
            if not base_ref.startswith("origin/") or not target:
                issues.append(ValidationIssue(f"{rref}.base_ref", "invalid value (must be origin/<branch>)"))
            elif not await git.is_valid_branch_name(target):
                issues.append(ValidationIssue(f"{rref}.base_ref", f"invalid base ref: {base_ref}"))

    return issues


def validate_presets(doc: Any) -> list[ValidationIssue]:
    if not isinstance(doc, dict) or doc.get("presets") is None:
        return []
    presets = doc["presets"]
    if not isinstance(presets, dict):
        return [ValidationIssue("presets", "invalid value (must be a mapping)")]

    issues: list[ValidationIssue] = []
    for key, entry in presets.items():
        name = str(key).strip() if key is not None else ""
        if not name:
            issues.append(ValidationIssue("presets", "preset name is empty"))
            continue
        ref = f"presets.{name}"
        problem = validate_preset_name(name)
        if problem:
            issues.append(ValidationIssue(ref, problem))
        issues.extend(_validate_preset_entry(ref, entry))
    return issues


def _validate_preset_entry(ref: str, entry: Any) -> list[ValidationIssue]:
    if not isinstance(entry, dict):
        return [ValidationIssue(ref, "invalid value (preset entry must be a mapping)")]
    repos = entry.get("repos")
    if repos is None:
        return [ValidationIssue(f"{ref}.repos", "missing or empty")]
    if not isinstance(repos, list):
        return [ValidationIssue(f"{ref}.repos", "invalid value (must be a list)")]

    issues: list[ValidationIssue] = []
    found = False
    for i, item in enumerate(repos):
        iref = f"{ref}.repos[{i}]"
        if isinstance(item, dict):
            item = item.get("repo")
        if not isinstance(item, str):
            issues.append(ValidationIssue(iref, "invalid value (must be a string or {repo: ...})"))
            continue
        if not item.strip():
            issues.append(ValidationIssue(iref, "repo spec is empty"))
            continue
        found = True
        try:
            repospec.normalize(item)
        except ValueError as e:
            issues.append(ValidationIssue(iref, str(e)))
    if not found and not issues:
        issues.append(ValidationIssue(f"{ref}.repos", "missing or empty"))
    return issues
