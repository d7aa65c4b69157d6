from __future__ import annotations

from unittest.mock import patch

import pytest

from prhost.config import Configuration, get_config_path
from prhost.errors import AuthNotFound, ConfigError


SAMPLE = """
github.com:
  type: github
  auth: host-token
  repositories:
    owner/repo:
      auth: repo-token
      default_branch: develop
    owner/forked:
      fork: true
git.example.com:
  type: gitlab
  auth: gl-token
  fork: true
""".strip()


def test_missing_file_is_empty(tmp_path):
    config = Configuration.load(tmp_path / "missing.yml")

    assert config.hosts == {}
    assert config.find_settings("github.com", "owner/repo") is None


def test_malformed_file(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("github.com: [unclosed")

    with pytest.raises(ConfigError):
        Configuration.load(path)


def test_non_mapping_file(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("- a\n- b\n")

    with pytest.raises(ConfigError):
        Configuration.load(path)


def test_repository_settings_override_host(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(SAMPLE)
    config = Configuration.load(path)

    settings = config.find_settings("github.com", "owner/repo")

    assert settings.auth == "repo-token"
    assert settings.vcs_type == "github"
    assert settings.default_branch == "develop"
    assert settings.fork is False


def test_host_settings_apply_to_other_repositories(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(SAMPLE)
    config = Configuration.load(path)

    forked = config.find_settings("github.com", "owner/forked")
    assert forked.auth == "host-token"
    assert forked.fork is True

    gitlab = config.find_settings("git.example.com", "team/app")
    assert gitlab.vcs_type == "gitlab"
    assert gitlab.fork is True
    assert gitlab.default_branch is None


def test_resolve_settings_precedence(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(SAMPLE)
    config = Configuration.load(path)

    assert config.resolve_settings("github.com", "owner/repo").auth == "repo-token"
    overridden = config.resolve_settings("github.com", "owner/repo", "cli-token")
    assert overridden.auth == "cli-token"
    assert overridden.default_branch == "develop"


def test_resolve_settings_matches_find_settings(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(SAMPLE)
    config = Configuration.load(path)

    for repo in ("owner/repo", "owner/forked"):
        assert config.resolve_settings("github.com", repo) == config.find_settings("github.com", repo)


def test_resolve_settings_override_for_unknown_host():
    settings = Configuration().resolve_settings("gitea.com", "owner/repo", "cli-token")

    assert settings.auth == "cli-token"
    assert settings.vcs_type is None


def test_resolve_settings_without_token():
    with pytest.raises(AuthNotFound) as excinfo:
        Configuration().resolve_settings("github.com", "owner/repo")

    assert excinfo.value.hostname == "github.com"
    assert excinfo.value.repo == "owner/repo"


def test_save_round_trip(tmp_path):
    path = tmp_path / "nested" / "config.yml"
    config = Configuration(path=path)
    config.set_token("github.com", None, "host-token", "github")
    config.set_token("github.com", "owner/repo", "repo-token")
    config.set_default_branch("github.com", "owner/repo", "main")

    config.save()
    loaded = Configuration.load(path)

    assert loaded.to_dict() == {
        "github.com": {
            "type": "github",
            "auth": "host-token",
            "repositories": {"owner/repo": {"auth": "repo-token", "default_branch": "main"}},
        }
    }


def test_config_path_from_environment(tmp_path):
    with patch.dict("os.environ", {"PRHOST_CONFIG": str(tmp_path / "custom.yml")}):
        assert get_config_path() == tmp_path / "custom.yml"
