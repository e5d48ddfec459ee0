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

"""Per-workspace metadata, stored in <workspace>/.groves/metadata.json."""

from __future__ import annotations

import json
import tempfile
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from groves.errors import GrovesError
from groves.manifest.model import WorkspaceMode
from groves.manifest.validate import is_valid_url
from groves.utils import config as cfg


@dataclass
class Metadata:
    description: str = ""
    mode: str = ""          # one of WorkspaceMode, empty when unknown
    preset_name: str = ""
    source_url: str = ""
    base_refs: dict[str, str] = field(default_factory=dict)  # alias -> origin/<branch>

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Metadata:
        # Filter to only known fields
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for k, v in d.items():
            if k not in known or v is None:
                continue
            if k == "base_refs":
                if not isinstance(v, dict):
                    raise ValueError("base_refs must be an object")
                kwargs[k] = {str(a).strip(): str(r).strip() for a, r in v.items() if r}
            else:
                kwargs[k] = str(v).strip()
        return cls(**kwargs)

    def is_empty(self) -> bool:
        return not self.to_dict()


def metadata_path(ws_dir: str | Path) -> Path:
    return Path(ws_dir) / cfg.METADATA_DIR_NAME / cfg.METADATA_FILE_NAME


def load(ws_dir: str | Path) -> Metadata:
    """Load workspace metadata. A missing file yields empty metadata."""
    path = metadata_path(ws_dir)
    if not path.exists():
        return Metadata()
    try:
        data = json.loads(path.read_text())
    except OSError as e:
        raise GrovesError(f"read metadata: {e}") from e
    except json.JSONDecodeError as e:
        raise GrovesError(f"parse metadata: {e}") from e
    if not isinstance(data, dict):
        raise GrovesError("parse metadata: expected a JSON object")
    try:
        return Metadata.from_dict(data)
    except ValueError as e:
        raise GrovesError(f"parse metadata: {e}") from e


def validate(meta: Metadata) -> None:
    """Raise ValueError when metadata holds values groves would not write."""
    if meta.mode and meta.mode not in {m.value for m in WorkspaceMode}:
        raise ValueError(f"unsupported metadata mode: {meta.mode}")
    if meta.mode == WorkspaceMode.PRESET.value and not meta.preset_name:
        raise ValueError("metadata preset_name is required for preset mode")
    if meta.source_url:
        if not is_valid_url(meta.source_url):
            raise ValueError(f"invalid metadata source_url: {meta.source_url}")
    for alias, ref in meta.base_refs.items():
        if any(c.isspace() for c in ref):
            raise ValueError(f"invalid metadata base ref for {alias}: {ref}")
        if not ref.startswith("origin/") or ref == "origin/":
            raise ValueError(f"invalid metadata base ref for {alias} (must be origin/<branch>): {ref}")


def save(ws_dir: str | Path, meta: Metadata) -> None:
    """Validate and atomically write metadata. Empty metadata is not created."""
    meta = Metadata.from_dict(asdict(meta))
    path = metadata_path(ws_dir)
    if meta.is_empty() and not path.exists():
        return
    validate(meta)

    path.parent.mkdir(parents=True, exist_ok=True)
    # Atomic write: write to temp file then rename
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with open(fd, "w") as f:
            json.dump(meta.to_dict(), f, indent=2)
        Path(tmp).replace(path)
    except Exception:
        Path(tmp).unlink(missing_ok=True)
        raise
