"""
Provider-agnostic domain model.

Every adapter maps its wire format into these types, and every command
works only with these types. Source and target of a pull request are
always branch names on the remote, never local refs.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class PullRequestState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"
    LOCKED = "locked"


class RepositoryVisibility(str, Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    PRIVATE = "private"


class PullRequestUserFilter(str, Enum):
    ME = "me"
    ALL = "all"


class PullRequestStateFilter(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"
    LOCKED = "locked"
    ALL = "all"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp as returned by the provider APIs."""
    if not value:
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(eq=False)
class User:
    """
    A user on the hosting provider.

    Two users are the same when their provider ids match; usernames can be
    renamed and reused, ids cannot.
    """
    id: str
    username: str

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, User):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


@dataclass
class PullRequest:
    id: int
    state: PullRequestState
    title: str
    description: str
    source: str
    source_sha: str
    target: str
    target_sha: str
    url: str
    created_at: datetime | None
    updated_at: datetime | None
    author: User
    closed_by: User | None = None
    reviewers: list[User] | None = None
    delete_source_branch: bool = False


@dataclass
class ForkedFromRepository:
    name: str
    full_name: str
    html_url: str


@dataclass
class Repository:
    name: str
    full_name: str
    owner: User | None
    html_url: str
    ssh_url: str
    https_url: str
    description: str
    created_at: datetime | None
    updated_at: datetime | None
    visibility: RepositoryVisibility
    archived: bool
    default_branch: str
    forks_count: int = 0
    stars_count: int = 0
    forked_from: ForkedFromRepository | None = None


@dataclass
class CreatePullRequest:
    """
    Request to open a pull request.

    `reviewers` are usernames; each adapter resolves them to its own ids
    before submitting. A `target` of None means the repository default.
    """
    title: str
    description: str
    source: str
    target: str | None = None
    delete_source_branch: bool = False
    reviewers: list[str] = field(default_factory=list)


@dataclass
class CreateRepository:
    name: str
    organization: str | None = None
    description: str | None = None
    visibility: RepositoryVisibility = RepositoryVisibility.PRIVATE
    init: bool = False
    default_branch: str | None = None
    gitignore: str | None = None
    license: str | None = None


@dataclass
class ForkRepository:
    name: str | None = None
    organization: str | None = None


@dataclass
class ListPullRequestFilters:
    author: PullRequestUserFilter = PullRequestUserFilter.ALL
    state: PullRequestStateFilter = PullRequestStateFilter.OPEN


@dataclass
class VersionControlSettings:
    """Settings for one invocation, merged from the config file and CLI flags."""
    auth: str = ""
    vcs_type: str | None = None
    default_branch: str | None = None
    fork: bool = False


def to_dict(value: Any) -> dict[str, Any]:
    """Convert a model into JSON-friendly primitives."""
    def convert(item: Any) -> Any:
        if isinstance(item, Enum):
            return item.value
        if isinstance(item, datetime):
            return item.isoformat()
        if isinstance(item, dict):
            return {k: convert(v) for k, v in item.items()}
        if isinstance(item, list):
            return [convert(v) for v in item]
        return item

    return convert(asdict(value))
