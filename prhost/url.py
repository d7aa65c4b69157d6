"""
Remote URL parsing.

Turns a git remote URL into the hostname and repository path that the
hosting providers are addressed with. Handles:
- https://host/owner/repo.git
- ssh://user@host/owner/repo and git://host/owner/repo
- scp-like git@host:owner/repo.git
"""

from __future__ import annotations

from .errors import InvalidUrl


NETWORK_SCHEMES = {"http", "https", "ssh", "git"}
UNSUPPORTED_SCHEMES = {"ftp", "ftps", "file"}


def parse_url(url: str) -> tuple[str, str]:
    """
    Split a remote URL into (hostname, repository path).

    Credentials and ports embedded in the host part are dropped, as is a
    trailing ".git" on the path.

    Raises:
        InvalidUrl: for local paths or unsupported schemes
    """
    first, sep, rest = url.partition(":")
    if not sep:
        raise InvalidUrl(url, "local directories are not supported")

    if first in UNSUPPORTED_SCHEMES:
        raise InvalidUrl(url, f"the {first} protocol is not supported")

    if first in NETWORK_SCHEMES:
        if not rest.startswith("//"):
            raise InvalidUrl(url, "expected // after the scheme")
        host, slash, path = rest[2:].partition("/")
        if not slash:
            raise InvalidUrl(url, "URL should contain a path")
        # ssh://git@host:2222/owner/repo
        host = host.rpartition("@")[2].partition(":")[0]
    elif rest.startswith("//"):
        raise InvalidUrl(url, f"the {first} protocol is not supported")
    else:
        # scp-like syntax, everything before the colon is the host
        host, path = first.rpartition("@")[2], rest

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]

    if not host or not path:
        raise InvalidUrl(url, "URL should contain a host and a path")

    return host, path
