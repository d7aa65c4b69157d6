"""
Provider selection.

An explicit type (from `prhost login --type` or the config file) always
wins; otherwise the hostname is looked up in a table of well-known hosts.
Self-hosted instances need the explicit type, they reuse the same adapter
with their own hostname.
"""

from __future__ import annotations

import logging

from ..errors import ProviderTypeUndetected, UnknownProviderType
from ..models import VersionControlSettings
from .base import VersionControl
from .bitbucket import Bitbucket
from .gitea import Gitea
from .github import GitHub
from .gitlab import GitLab

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, type[VersionControl]] = {
    "github": GitHub,
    "gitlab": GitLab,
    "bitbucket": Bitbucket,
    "gitea": Gitea,
}

KNOWN_HOSTS = {
    "github.com": "github",
    "gitlab.com": "gitlab",
    "bitbucket.org": "bitbucket",
    "gitea.com": "gitea",
    "codeberg.org": "gitea",
}


def select_provider(hostname: str, vcs_type: str | None = None) -> type[VersionControl]:
    """Pick the adapter class for a host."""
    if vcs_type:
        try:
            return PROVIDERS[vcs_type.lower()]
        except KeyError:
            raise UnknownProviderType(vcs_type, sorted(PROVIDERS)) from None

    detected = KNOWN_HOSTS.get(hostname.lower())
    if detected is None:
        raise ProviderTypeUndetected(hostname)
    logger.info("Detected %s as %s.", hostname, detected)
    return PROVIDERS[detected]


def init_vcs(hostname: str, repo: str, settings: VersionControlSettings) -> VersionControl:
    """Build the adapter bound to one repository for this invocation."""
    provider = select_provider(hostname, settings.vcs_type)
    return provider(hostname, repo, settings)


__all__ = [
    "KNOWN_HOSTS",
    "PROVIDERS",
    "VersionControl",
    "init_vcs",
    "select_provider",
]
