"""Tests for groves.yaml loading, saving and validation."""

import pytest

from conftest import run, write_manifest
from groves.errors import ManifestError, ValidationError
from groves.manifest import model
from groves.manifest.model import ManifestFile, Preset, RepoRef, Workspace, WorkspaceMode
from groves.manifest.validate import validate, validate_workspace_id
from groves.utils import config as cfg

APP = "github.com/acme/app"


def issues(root) -> list[str]:
    return [str(i) for i in run(validate(root)).issues]


class TestModel:

    def test_missing_file_is_empty(self, tmp_path):
        file = model.load(tmp_path)
        assert file.workspaces == {}
        assert file.version == cfg.MANIFEST_VERSION

    def test_save_sorts_keys_and_round_trips(self, tmp_path):
        file = ManifestFile(
            workspaces={
                "B": Workspace(mode=WorkspaceMode.REPO, repos=[RepoRef(alias="app", repo_key=APP, branch="B")]),
                "A": Workspace(description="first", mode=WorkspaceMode.PRESET, preset_name="web",
                               repos=[RepoRef(alias="app", repo_key=APP, branch="A",
                                              base_ref="origin/main")]),
            },
            presets={"web": Preset(repos=["git@github.com:acme/app.git"])},
        )
        model.save(tmp_path, file)
        text = cfg.manifest_path(tmp_path).read_text()
        assert text.index("presets:") < text.index("workspaces:")
        assert text.index("  A:") < text.index("  B:")
        assert model.load(tmp_path) == file

    def test_null_values_take_defaults(self, tmp_path):
        cfg.manifest_path(tmp_path).write_text(
            "version: 1\nworkspaces:\n  W:\n    description:\n    repos:\n"
            "      - alias: app\n        repo_key: github.com/acme/app\n        branch: W\n")
        ws = model.load(tmp_path).workspaces["W"]
        assert ws.description == ""
        assert ws.repos[0].base_ref == ""

    def test_legacy_preset_entries(self, tmp_path):
        cfg.manifest_path(tmp_path).write_text(
            "version: 1\nworkspaces: {}\npresets:\n  web:\n    repos:\n"
            "      - repo: git@github.com:acme/app.git\n      - https://github.com/acme/api.git\n")
        assert model.load(tmp_path).presets["web"].repos == [
            "git@github.com:acme/app.git", "https://github.com/acme/api.git"]

    def test_numeric_scalars_load_as_text(self, tmp_path):
        cfg.manifest_path(tmp_path).write_text(
            "version: 1\nworkspaces:\n  1234:\n    repos:\n"
            "      - alias: app\n        repo_key: github.com/acme/app\n        branch: 1.0\n")
        assert issues(tmp_path) == []
        file = model.load(tmp_path)
        assert list(file.workspaces) == ["1234"]
        assert file.workspaces["1234"].repos[0].branch == "1.0"

    def test_shape_error_ref_under_numeric_key(self, tmp_path):
        cfg.manifest_path(tmp_path).write_text(
            "version: 1\nworkspaces:\n  1234:\n    repos:\n      - alias: [app]\n")
        with pytest.raises(ValidationError) as exc:
            model.load(tmp_path)
        assert [i.ref for i in exc.value.result.issues] == ["workspaces.1234.repos[0].alias"]

    def test_broken_yaml(self, tmp_path):
        cfg.manifest_path(tmp_path).write_text("workspaces: [unclosed\n")
        with pytest.raises(ManifestError):
            model.load(tmp_path)

    def test_wrong_shape_is_a_validation_error(self, tmp_path):
        cfg.manifest_path(tmp_path).write_text("version: 1\nworkspaces:\n  W:\n    repos: 3\n")
        with pytest.raises(ValidationError) as exc:
            model.load(tmp_path)
        assert exc.value.result.issues


class TestValidate:

    def test_valid(self, tmp_path):
        write_manifest(tmp_path, {"PROJ-1": {"mode": "repo", "repos": [
            {"alias": "app", "repo_key": APP, "branch": "PROJ-1", "base_ref": "origin/main"}]}})
        assert issues(tmp_path) == []

    def test_missing_file(self, tmp_path):
        assert issues(tmp_path) == [f"{cfg.MANIFEST_FILE_NAME}: file not found"]

    def test_collects_every_issue(self, tmp_path):
        write_manifest(tmp_path, {
            "bad/id": {"repos": []},
            "W": {
                "mode": "preset",
                "repos": [
                    {"alias": "app", "repo_key": APP, "branch": "W"},
                    {"alias": "app", "repo_key": "not-a-key", "branch": "bad..branch"},
                    {"alias": "api", "repo_key": APP, "branch": "W", "base_ref": "main"},
                ],
            },
        })
        found = issues(tmp_path)
        assert any(i.startswith("workspaces.bad/id:") for i in found)
        assert "workspaces.W.preset_name: missing required field for preset mode" in found
        assert 'workspaces.W.repos[1].alias: duplicate alias "app"' in found
        assert any(i.startswith("workspaces.W.repos[1].repo_key: invalid repo key") for i in found)
        assert "workspaces.W.repos[1].branch: invalid branch name: bad..branch" in found
        assert "workspaces.W.repos[2].base_ref: invalid value (must be origin/<branch>)" in found

    def test_unsupported_version(self, tmp_path):
        cfg.manifest_path(tmp_path).write_text("version: 2\nworkspaces: {}\n")
        assert issues(tmp_path) == ["version: unsupported version: 2 (supported: 1)"]

    def test_unknown_preset(self, tmp_path):
        write_manifest(tmp_path, {"W": {"mode": "preset", "preset_name": "web", "repos": []}})
        assert issues(tmp_path) == ["workspaces.W.preset_name: preset not found: web"]

    def test_reserved_alias(self, tmp_path):
        write_manifest(tmp_path, {"W": {"repos": [
            {"alias": cfg.METADATA_DIR_NAME, "repo_key": APP, "branch": "W"}]}})
        assert any("reserved" in i for i in issues(tmp_path))

    def test_invalid_preset_spec(self, tmp_path):
        write_manifest(tmp_path, {}, presets={"web": {"repos": ["github.com/acme/app"]}})
        assert any(i.startswith("presets.web.repos[0]:") for i in issues(tmp_path))

    @pytest.mark.parametrize("wid, ok", [
        ("PROJ-1", True),
        ("", False),
        ("a/b", False),
        ("..", False),
        ("bad..id", False),
    ])
    def test_workspace_ids(self, wid, ok):
        assert (run(validate_workspace_id(wid)) is None) == ok
