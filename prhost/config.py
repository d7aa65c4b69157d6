"""
Configuration management for prhost.

One YAML file (config.yml in the click app dir, or $PRHOST_CONFIG) keyed by
hostname:

    github.com:
      type: github
      auth: ghp_...
      repositories:
        owner/repo:
          auth: ghp_...
          default_branch: main
          fork: true

Per-repository values override per-host values. The file is read once per
invocation and written at most once.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import click
import yaml

from .errors import AuthNotFound, ConfigError
from .models import VersionControlSettings

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PRHOST_CONFIG"
CONFIG_FILENAME = "config.yml"


@dataclass
class RepositoryConfig:
    """Settings for a single repository on a host."""
    auth: str | None = None
    default_branch: str | None = None
    fork: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.auth is not None:
            data["auth"] = self.auth
        if self.default_branch is not None:
            data["default_branch"] = self.default_branch
        if self.fork is not None:
            data["fork"] = self.fork
        return data


@dataclass
class HostConfig:
    """Settings for one hostname."""
    vcs_type: str | None = None
    auth: str | None = None
    fork: bool = False
    repositories: dict[str, RepositoryConfig] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.vcs_type is not None:
            data["type"] = self.vcs_type
        if self.auth is not None:
            data["auth"] = self.auth
        if self.fork:
            data["fork"] = True
        if self.repositories:
            data["repositories"] = {
                name: repo.to_dict() for name, repo in self.repositories.items()
            }
        return data


def get_config_path() -> Path:
    """Location of the configuration file."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(click.get_app_dir("prhost")) / CONFIG_FILENAME


@dataclass
class Configuration:
    """Complete prhost configuration."""
    hosts: dict[str, HostConfig] = field(default_factory=dict)
    path: Path | None = None

    @classmethod
    def load(cls, path: Path | None = None) -> "Configuration":
        """Load configuration; a missing file is an empty configuration."""
        path = path or get_config_path()
        config = cls(path=path)
        if not path.exists():
            logger.info("No configuration file at %s.", path)
            return config

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read configuration file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file {path} must contain a mapping of hostnames.")

        config.hosts = {
            str(hostname): cls._parse_host(str(hostname), host_data or {}, path)
            for hostname, host_data in data.items()
        }
        logger.info("Loaded configuration for %d host(s) from %s.", len(config.hosts), path)
        return config

    @staticmethod
    def _parse_host(hostname: str, data: Any, path: Path) -> HostConfig:
        if not isinstance(data, dict):
            raise ConfigError(f"Settings for {hostname} in {path} must be a mapping.")

        repositories = {}
        for repo, repo_data in (data.get("repositories") or {}).items():
            repo_data = repo_data or {}
            if not isinstance(repo_data, dict):
                raise ConfigError(f"Settings for {hostname}/{repo} in {path} must be a mapping.")
            repositories[str(repo)] = RepositoryConfig(
                auth=repo_data.get("auth"),
                default_branch=repo_data.get("default_branch"),
                fork=repo_data.get("fork"),
            )

        return HostConfig(
            vcs_type=data.get("type"),
            auth=data.get("auth"),
            fork=bool(data.get("fork", False)),
            repositories=repositories,
        )

    def _merged_settings(self, hostname: str, repo: str) -> VersionControlSettings:
        host = self.hosts.get(hostname, HostConfig())
        repo_config = host.repositories.get(repo, RepositoryConfig())
        return VersionControlSettings(
            auth=repo_config.auth or host.auth or "",
            vcs_type=host.vcs_type,
            default_branch=repo_config.default_branch,
            fork=repo_config.fork if repo_config.fork is not None else host.fork,
        )

    def find_settings(self, hostname: str, repo: str) -> VersionControlSettings | None:
        """Merge per-repository over per-host settings; None when no token is known."""
        settings = self._merged_settings(hostname, repo)
        return settings if settings.auth else None

    def resolve_settings(
        self,
        hostname: str,
        repo: str,
        auth_override: str | None = None,
    ) -> VersionControlSettings:
        """
        Settings for one invocation.

        An explicit token (--auth / PRHOST_AUTH) wins over the per-repository
        token, which wins over the per-host token.

        Raises:
            AuthNotFound: when no token is known from any source
        """
        if auth_override:
            settings = self._merged_settings(hostname, repo)
            settings.auth = auth_override
            return settings

        settings = self.find_settings(hostname, repo)
        if settings is None:
            raise AuthNotFound(hostname, repo)
        return settings

    def set_default_branch(self, hostname: str, repo: str, branch: str) -> None:
        host = self.hosts.setdefault(hostname, HostConfig())
        host.repositories.setdefault(repo, RepositoryConfig()).default_branch = branch
        logger.info("Caching %s as default branch of %s/%s.", branch, hostname, repo)

    def set_token(
        self,
        hostname: str,
        repo: str | None,
        token: str,
        vcs_type: str | None = None,
    ) -> None:
        """Store a token for a whole host, or for one repository when repo is given."""
        host = self.hosts.setdefault(hostname, HostConfig())
        if vcs_type:
            host.vcs_type = vcs_type
        if repo:
            host.repositories.setdefault(repo, RepositoryConfig()).auth = token
        else:
            host.auth = token

    def to_dict(self) -> dict[str, Any]:
        return {hostname: host.to_dict() for hostname, host in self.hosts.items()}

    def save(self) -> Path:
        """Write the configuration file, creating its directory if needed."""
        path = self.path or get_config_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=True)
        except OSError as e:
            raise ConfigError(f"Cannot write configuration file {path}: {e}") from e
        logger.info("Saved configuration to %s.", path)
        return path
