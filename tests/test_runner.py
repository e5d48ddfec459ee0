"""Tests for the allow-listed git runner."""

import asyncio

import pytest

from conftest import git, run
from groves.errors import GitCommandError, GitNotAllowedError
from groves.git import runner


class TestAllowList:

    @pytest.mark.parametrize("sub", ["push", "reset", "checkout", "commit", "gc"])
    def test_rejected_before_exec(self, sub, monkeypatch):
        async def no_exec(*args, **kwargs):
            raise AssertionError("subprocess must not be started")

        monkeypatch.setattr(asyncio, "create_subprocess_exec", no_exec)
        with pytest.raises(GitNotAllowedError, match=sub):
            run(runner.run(sub, "--help"))

    def test_empty_command_is_rejected(self):
        with pytest.raises(GitNotAllowedError):
            run(runner.run())

    def test_merge_base_is_allowed(self):
        assert "merge-base" in runner.ALLOWED_SUBCOMMANDS


class TestRun:

    def test_captures_output(self):
        result = run(runner.run("version"))
        assert result.ok
        assert result.stdout.startswith("git version")

    def test_failure_carries_command_and_stderr(self, tmp_path):
        with pytest.raises(GitCommandError) as exc:
            run(runner.run("rev-parse", "--verify", "HEAD", cwd=tmp_path))
        err = exc.value
        assert err.returncode not in (0, None)
        assert err.args_list == ["rev-parse", "--verify", "HEAD"]
        assert str(err).startswith("git rev-parse --verify HEAD failed (exit")

    def test_unchecked_failure_returns_result(self, tmp_path):
        result = run(runner.run("rev-parse", "--verify", "HEAD", cwd=tmp_path, check=False))
        assert not result.ok


class TestQueries:

    def test_branch_names(self):
        assert run(runner.is_valid_branch_name("feature/PROJ-1"))
        assert not run(runner.is_valid_branch_name("bad..name"))
        assert not run(runner.is_valid_branch_name(" "))

    def test_refs(self, tmp_path):
        repo = tmp_path / "repo"
        git("init", "--initial-branch=main", str(repo))
        (repo / "f.txt").write_text("x\n")
        git("add", "f.txt", cwd=repo)
        git("commit", "-m", "one", cwd=repo)
        first = git("rev-parse", "HEAD", cwd=repo)
        (repo / "f.txt").write_text("y\n")
        git("commit", "-am", "two", cwd=repo)

        assert run(runner.show_ref(repo, "refs/heads/main")) == git("rev-parse", "HEAD", cwd=repo)
        assert run(runner.show_ref(repo, "refs/heads/nope")) is None
        assert run(runner.symbolic_ref(repo, "HEAD")) == "refs/heads/main"
        assert run(runner.symbolic_ref(repo, "refs/remotes/origin/HEAD")) is None
        assert run(runner.is_ancestor(repo, first, "refs/heads/main"))
        assert not run(runner.is_ancestor(repo, "refs/heads/main", first))
