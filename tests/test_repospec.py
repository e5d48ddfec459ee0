"""Tests for repo spec normalization and repo keys."""

import pytest

from groves.repos import repospec
from groves.utils import config as cfg


class TestNormalize:

    def test_ssh(self):
        spec = repospec.normalize("git@github.com:acme/app.git")
        assert spec.repo_key == "github.com/acme/app"
        assert spec.repo == "app"

    def test_https_with_and_without_suffix(self):
        assert repospec.normalize("https://github.com/acme/app.git").repo_key == "github.com/acme/app"
        assert repospec.normalize("https://github.com/acme/app").repo_key == "github.com/acme/app"

    def test_file_uses_last_three_segments(self):
        spec = repospec.normalize("file:///srv/mirrors/example.com/acme/app.git")
        assert spec.repo_key == "example.com/acme/app"

    def test_surrounding_whitespace_is_ignored(self):
        assert repospec.normalize("  git@host:o/r  ").repo_key == "host/o/r"

    @pytest.mark.parametrize("bad", [
        "",
        "   ",
        "http://github.com/acme/app",
        "github.com/acme/app",
        "https://github.com/acme",
        "https://github.com/acme/app/extra",
        "git@github.com:acme",
        "file:///app.git",
    ])
    def test_rejects(self, bad):
        with pytest.raises(ValueError):
            repospec.normalize(bad)


class TestRepoKeys:

    def test_parse_repo_key(self):
        spec = repospec.parse_repo_key("github.com/acme/app")
        assert (spec.host, spec.owner, spec.repo) == ("github.com", "acme", "app")

    @pytest.mark.parametrize("bad", ["", "github.com/acme", "a/b/c/d", "a//c", "a/b /c"])
    def test_parse_repo_key_rejects(self, bad):
        with pytest.raises(ValueError):
            repospec.parse_repo_key(bad)

    def test_spec_from_key_defaults_to_https(self, monkeypatch):
        monkeypatch.setattr(cfg, "REPO_URL_BASE", None)
        assert repospec.spec_from_key("github.com/acme/app") == "https://github.com/acme/app.git"

    def test_spec_from_key_with_url_base(self, monkeypatch):
        monkeypatch.setattr(cfg, "REPO_URL_BASE", "file:///srv/mirrors/")
        url = repospec.spec_from_key("github.com/acme/app")
        assert url == "file:///srv/mirrors/github.com/acme/app.git"
        assert repospec.normalize(url).repo_key == "github.com/acme/app"

    def test_to_spec_keeps_clonable_specs(self, monkeypatch):
        monkeypatch.setattr(cfg, "REPO_URL_BASE", None)
        assert repospec.to_spec("git@github.com:acme/app.git") == "git@github.com:acme/app.git"
        assert repospec.to_spec("github.com/acme/app") == "https://github.com/acme/app.git"
