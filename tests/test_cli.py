"""Tests for the groves command line through click's CliRunner."""

import pytest
from click.testing import CliRunner

from cli.main import cli
from conftest import DEFAULT_KEY, git, read_manifest, workspace_entry, write_manifest
from groves.utils import config as cfg


@pytest.fixture
def groves(root):
    runner = CliRunner()

    def invoke(*args, input=None):
        return runner.invoke(cli, ["--root", str(root), *args], input=input)
    return invoke


@pytest.fixture
def added(root, remote, groves):
    result = groves("--no-prompt", "manifest", "add", "--repo", remote.url,
                    "--description", "Fix login", "PROJ-1")
    assert result.exit_code == 0, result.output
    return cfg.workspace_dir(root, "PROJ-1") / "app"


class TestPlanApply:

    def test_plan_without_manifest_fails(self, groves):
        result = groves("plan")
        assert result.exit_code == 1
        assert "file not found" in result.output
        assert "Error: manifest validation failed" in result.output

    def test_plan_lists_changes_without_applying(self, root, remote, groves):
        write_manifest(root, {"PROJ-1": workspace_entry(("app", DEFAULT_KEY, "PROJ-1"))})
        result = groves("plan")
        assert result.exit_code == 0, result.output
        assert "+ add workspace PROJ-1" in result.output
        assert not cfg.workspaces_root(root).exists()

    def test_apply_confirmed(self, root, remote, groves):
        write_manifest(root, {"PROJ-1": workspace_entry(("app", DEFAULT_KEY, "PROJ-1"))})
        result = groves("apply", input="y\n")
        assert result.exit_code == 0, result.output
        assert "Apply changes?" in result.output
        assert "worktree add app" in result.output
        assert "applied: add=1 update=0 remove=0" in result.output
        assert (cfg.workspace_dir(root, "PROJ-1") / "app" / "README.md").exists()

        again = groves("apply")
        assert again.exit_code == 0
        assert "no changes" in again.output

    def test_apply_declined_changes_nothing(self, root, remote, groves):
        write_manifest(root, {"PROJ-1": workspace_entry(("app", DEFAULT_KEY, "PROJ-1"))})
        result = groves("apply", input="n\n")
        assert result.exit_code == 0, result.output
        assert not cfg.workspaces_root(root).exists()

    def test_destructive_apply_needs_a_prompt(self, root, added, groves):
        write_manifest(root, {})
        result = groves("--no-prompt", "apply")
        assert result.exit_code == 1
        assert "destructive changes require confirmation" in result.output
        assert added.exists()

    def test_destructive_apply_shows_risk(self, root, added, groves):
        (added / "notes.txt").write_text("wip\n")
        write_manifest(root, {})
        result = groves("apply", input="y\n")
        assert "Apply destructive changes?" in result.output
        assert "app: dirty (untracked=1)" in result.output
        assert result.exit_code == 0, result.output
        assert not added.exists()


class TestManifestCommands:

    def test_add_applies_and_rewrites(self, root, added):
        assert git("rev-parse", "--abbrev-ref", "HEAD", cwd=added) == "PROJ-1"
        ws = read_manifest(root)["workspaces"]["PROJ-1"]
        assert ws["description"] == "Fix login"
        assert ws["repos"] == [{"alias": "app", "repo_key": DEFAULT_KEY, "branch": "PROJ-1",
                                "base_ref": "origin/main"}]

    def test_add_no_apply(self, root, remote, groves):
        result = groves("manifest", "add", "--repo", remote.url, "--no-apply", "PROJ-1")
        assert result.exit_code == 0, result.output
        assert "added workspace PROJ-1" in result.output
        assert "PROJ-1" in read_manifest(root)["workspaces"]
        assert not cfg.workspaces_root(root).exists()

    def test_add_declined_rolls_back(self, root, remote, groves):
        write_manifest(root, {})
        before = cfg.manifest_path(root).read_bytes()
        result = groves("manifest", "add", "--repo", remote.url, "PROJ-1", input="n\n")
        assert result.exit_code == 0, result.output
        assert "groves.yaml rolled back (apply declined)" in result.output
        assert cfg.manifest_path(root).read_bytes() == before

    def test_add_requires_one_source(self, groves):
        result = groves("manifest", "add", "PROJ-1")
        assert result.exit_code == 1
        assert "exactly one of --repo or --preset" in result.output

    def test_add_existing_id(self, added, remote, groves):
        result = groves("manifest", "add", "--repo", remote.url, "PROJ-1")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_rm_unknown(self, added, groves):
        result = groves("manifest", "rm", "PROJ-1", "PROJ-7")
        assert result.exit_code == 1
        assert "workspace(s) not found in groves.yaml: PROJ-7" in result.output

    def test_rm_confirmed(self, root, added, groves):
        result = groves("manifest", "rm", "PROJ-1", input="y\n")
        assert result.exit_code == 0, result.output
        assert "applied: add=0 update=0 remove=1" in result.output
        assert not added.exists()
        assert read_manifest(root)["workspaces"] == {}

    def test_ls(self, root, added, groves):
        result = groves("manifest", "ls")
        assert result.exit_code == 0, result.output
        assert "PROJ-1" in result.output
        assert "applied" in result.output
        assert "risk: clean" in result.output

    def test_validate(self, root, added, groves):
        assert groves("manifest", "validate").exit_code == 0

        write_manifest(root, {"PROJ-1": workspace_entry(("app", "bad", "PROJ-1"))})
        result = groves("manifest", "validate")
        assert result.exit_code == 1
        assert "workspaces.PROJ-1.repos[0].repo_key" in result.output

    def test_gc_without_candidates(self, added, groves):
        result = groves("manifest", "gc")
        assert result.exit_code == 0, result.output
        assert "no candidates" in result.output

    def test_gc_removes_merged(self, root, remote, added, groves):
        (added / "feature.txt").write_text("done\n")
        git("add", "feature.txt", cwd=added)
        git("commit", "-m", "feature", cwd=added)
        git("push", "origin", "PROJ-1:main", cwd=added)
        remote.commit("later work")

        result = groves("manifest", "gc", input="y\n")
        assert result.exit_code == 0, result.output
        assert "candidate PROJ-1 (merged)" in result.output
        assert "applied: add=0 update=0 remove=1" in result.output
        assert not added.exists()
        assert read_manifest(root)["workspaces"] == {}


class TestPresetCommands:

    def test_add_and_ls(self, root, groves):
        result = groves("manifest", "preset", "add", "--repo", "git@github.com:acme/app.git",
                        "--repo", "https://github.com/acme/api.git", "web")
        assert result.exit_code == 0, result.output
        assert read_manifest(root)["presets"] == {
            "web": {"repos": ["git@github.com:acme/app.git", "https://github.com/acme/api.git"]}}

        listed = groves("manifest", "preset", "ls")
        assert listed.exit_code == 0, listed.output
        assert "presets: 1" in listed.output
        assert "https://github.com/acme/api.git" in listed.output

    def test_ls_empty(self, groves):
        result = groves("manifest", "preset", "ls")
        assert result.exit_code == 0, result.output
        assert "no presets found" in result.output

    @pytest.mark.parametrize("args, message", [
        (["--repo", "github.com/acme/app", "web"], "repo spec must be ssh, https, or file"),
        (["--repo", "git@github.com:acme/app.git", "bad name"], "invalid preset name"),
    ])
    def test_add_rejects_bad_input(self, root, groves, args, message):
        result = groves("manifest", "preset", "add", *args)
        assert result.exit_code == 1
        assert message in result.output
        assert not cfg.manifest_path(root).exists()

    def test_add_existing(self, root, groves):
        write_manifest(root, {}, presets={"web": {"repos": ["git@github.com:acme/app.git"]}})
        result = groves("manifest", "preset", "add", "--repo", "git@github.com:acme/api.git", "web")
        assert result.exit_code == 1
        assert "preset already exists: web" in result.output

    def test_rm(self, root, groves):
        write_manifest(root, {}, presets={"web": {"repos": ["git@github.com:acme/app.git"]},
                                          "ops": {"repos": ["git@github.com:acme/ops.git"]}})
        result = groves("manifest", "preset", "rm", "web")
        assert result.exit_code == 0, result.output
        assert "removed 1 preset(s)" in result.output
        assert list(read_manifest(root)["presets"]) == ["ops"]

    def test_rm_preset_in_use(self, root, groves):
        entry = workspace_entry(("app", "github.com/acme/app", "PROJ-1"), mode="preset")
        entry["preset_name"] = "web"
        write_manifest(root, {"PROJ-1": entry},
                       presets={"web": {"repos": ["git@github.com:acme/app.git"]}})
        result = groves("manifest", "preset", "rm", "web")
        assert result.exit_code == 1
        assert "used by workspace(s): PROJ-1" in result.output
        assert "web" in read_manifest(root)["presets"]

    def test_rm_unknown(self, root, groves):
        write_manifest(root, {})
        result = groves("manifest", "preset", "rm", "web")
        assert result.exit_code == 1
        assert "preset not found: web" in result.output

    def test_validate(self, root, groves):
        write_manifest(root, {}, presets={"web": {"repos": ["git@github.com:acme/app.git"]}})
        ok = groves("manifest", "preset", "validate")
        assert ok.exit_code == 0, ok.output
        assert "no issues found" in ok.output

        write_manifest(root, {}, presets={"web": {"repos": ["github.com/acme/app"]}})
        bad = groves("manifest", "preset", "validate")
        assert bad.exit_code == 1
        assert "presets.web.repos[0]" in bad.output

    def test_workspace_from_added_preset(self, root, remote, groves):
        assert groves("manifest", "preset", "add", "--repo", remote.url, "web").exit_code == 0
        result = groves("manifest", "add", "--preset", "web", "--no-apply", "PROJ-1")
        assert result.exit_code == 0, result.output
        ws = read_manifest(root)["workspaces"]["PROJ-1"]
        assert ws["mode"] == "preset"
        assert ws["preset_name"] == "web"
        assert ws["repos"][0]["repo_key"] == DEFAULT_KEY


class TestCreateImport:

    def test_create(self, root, remote, groves):
        result = groves("create", "--repo", remote.url, "--description", "Spike", "PROJ-2")
        assert result.exit_code == 0, result.output
        assert "created workspace PROJ-2" in result.output
        ws = read_manifest(root)["workspaces"]["PROJ-2"]
        assert ws["mode"] == "repo"
        assert ws["description"] == "Spike"

    def test_create_failure_leaves_nothing(self, root, remotes, remote, groves):
        missing = f"file://{remotes.base}/example.com/acme/missing.git"
        result = groves("create", "--repo", remote.url, "--repo", missing, "PROJ-2")
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert not cfg.workspace_dir(root, "PROJ-2").exists()

    def test_import(self, root, added, groves):
        write_manifest(root, {})
        result = groves("import")
        assert result.exit_code == 0, result.output
        assert "(1 workspace(s))" in result.output
        assert "PROJ-1" in read_manifest(root)["workspaces"]
