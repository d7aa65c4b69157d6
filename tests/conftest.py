from __future__ import annotations

import json
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest
import requests

from prhost.config import Configuration
from prhost.errors import PullRequestNotFound
from prhost.models import (
    CreatePullRequest,
    CreateRepository,
    ForkRepository,
    ListPullRequestFilters,
    PullRequest,
    PullRequestState,
    Repository,
    RepositoryVisibility,
    User,
    VersionControlSettings,
)
from prhost.vcs.base import VersionControl

REMOTE_URL = "https://github.com/owner/repo.git"


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


def commit(cwd: Path, filename: str, message: str) -> str:
    (cwd / filename).write_text(message)
    git(cwd, "add", filename)
    git(cwd, "commit", "--quiet", "-m", message)
    return git(cwd, "rev-parse", "HEAD")


def make_response(status: int = 200, payload: Any = None, text: str | None = None) -> requests.Response:
    """A real requests.Response with a fixed body."""
    response = requests.Response()
    response.status_code = status
    if payload is not None:
        response._content = json.dumps(payload).encode()
    elif text is not None:
        response._content = text.encode()
    else:
        response._content = b""
    response.encoding = "utf-8"
    return response


@pytest.fixture
def work_repo(tmp_path: Path) -> Path:
    """
    A working copy on `main` whose origin looks like github.com/owner/repo.

    Pushes and pulls are redirected to a bare repository under tmp_path with
    url.<bare>.insteadOf, so the configured remote URL stays a GitHub URL.
    """
    bare = tmp_path / "remote.git"
    work = tmp_path / "work"
    subprocess.run(["git", "init", "--quiet", "--bare", str(bare)], check=True)
    subprocess.run(["git", "init", "--quiet", "--initial-branch=main", str(work)], check=True)

    git(work, "config", "user.name", "Test User")
    git(work, "config", "user.email", "test@example.com")
    git(work, "config", "commit.gpgsign", "false")
    git(work, "config", "pull.rebase", "false")
    git(work, "remote", "add", "origin", REMOTE_URL)
    git(work, "config", f"url.{bare}.insteadOf", REMOTE_URL)

    commit(work, "README.md", "Initial commit")
    git(work, "push", "--quiet", "--set-upstream", "origin", "main")
    return work


@pytest.fixture
def config(tmp_path: Path) -> Configuration:
    config = Configuration(path=tmp_path / "config" / "config.yml")
    config.set_token("github.com", None, "ghp_" + "a" * 36, "github")
    return config


def make_user(username: str = "alice", id: str = "1") -> User:
    return User(id=id, username=username)


def make_repository(**overrides: Any) -> Repository:
    values = dict(
        name="repo",
        full_name="owner/repo",
        owner=make_user("owner", "100"),
        html_url="https://github.com/owner/repo",
        ssh_url="git@github.com:owner/repo.git",
        https_url="https://github.com/owner/repo.git",
        description="A repository",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        updated_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        visibility=RepositoryVisibility.PUBLIC,
        archived=False,
        default_branch="main",
        forks_count=3,
        stars_count=42,
    )
    values.update(overrides)
    return Repository(**values)


def make_pull_request(**overrides: Any) -> PullRequest:
    values = dict(
        id=1,
        state=PullRequestState.OPEN,
        title="Add feature",
        description="Some description",
        source="feature",
        source_sha="abc123",
        target="main",
        target_sha="def456",
        url="https://github.com/owner/repo/pull/1",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        updated_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        author=make_user(),
    )
    values.update(overrides)
    return PullRequest(**values)


class FakeVersionControl(VersionControl):
    """In-memory provider; `sha_of` tells the source commit of a remote branch."""

    def __init__(
        self,
        hostname: str = "github.com",
        repo: str = "owner/repo",
        settings: VersionControlSettings | None = None,
        default_branch: str = "main",
        sha_of: Callable[[str], str] | None = None,
    ):
        super().__init__(hostname, repo, settings or VersionControlSettings(auth="token"))
        self.repository = make_repository(default_branch=default_branch)
        self.sha_of = sha_of or (lambda branch: "")
        self.prs: dict[int, PullRequest] = {}
        self.calls: list[tuple[str, Any]] = []
        self.deleted = False

    @property
    def base_url(self) -> str:
        return "https://fake.invalid"

    def _authenticate(self, token: str) -> None:
        pass

    def factory(self, hostname: str, repo: str, settings: VersionControlSettings) -> "FakeVersionControl":
        self.hostname, self.repo, self.settings = hostname, repo, settings
        return self

    def login_url(self) -> str:
        return "https://fake.invalid/tokens"

    def validate_token(self, token: str) -> None:
        pass

    def create_pr(self, pr: CreatePullRequest) -> PullRequest:
        self.calls.append(("create_pr", pr))
        new_pr = make_pull_request(
            id=len(self.prs) + 1,
            title=pr.title,
            description=pr.description,
            source=pr.source,
            source_sha=self.sha_of(pr.source),
            target=self.resolve_target(pr.target),
            delete_source_branch=pr.delete_source_branch,
        )
        self.prs[new_pr.id] = new_pr
        return new_pr

    def get_pr_by_id(self, id: int) -> PullRequest:
        self.calls.append(("get_pr_by_id", id))
        return self.prs[id]

    def get_pr_by_branch(self, branch: str) -> PullRequest:
        self.calls.append(("get_pr_by_branch", branch))
        for pr in self.prs.values():
            if pr.source == branch:
                return pr
        raise PullRequestNotFound(branch)

    def list_prs(self, filters: ListPullRequestFilters) -> list[PullRequest]:
        self.calls.append(("list_prs", filters))
        return list(self.prs.values())

    def approve_pr(self, id: int) -> None:
        self.calls.append(("approve_pr", id))

    def close_pr(self, id: int) -> PullRequest:
        self.calls.append(("close_pr", id))
        self.prs[id].state = PullRequestState.CLOSED
        return self.prs[id]

    def merge_pr(self, id: int, delete_source_branch: bool = False) -> PullRequest:
        self.calls.append(("merge_pr", id))
        self.prs[id].state = PullRequestState.MERGED
        return self.prs[id]

    def get_repository(self) -> Repository:
        self.calls.append(("get_repository", None))
        return self.repository

    def create_repository(self, repo: CreateRepository) -> Repository:
        self.calls.append(("create_repository", repo))
        full_name = f"{repo.organization or 'me'}/{repo.name}"
        return make_repository(name=repo.name, full_name=full_name)

    def fork_repository(self, repo: ForkRepository) -> Repository:
        self.calls.append(("fork_repository", repo))
        return make_repository(full_name=f"{repo.organization or 'me'}/{repo.name or 'repo'}")

    def delete_repository(self) -> None:
        self.calls.append(("delete_repository", None))
        self.deleted = True


@pytest.fixture
def fake_vcs() -> FakeVersionControl:
    return FakeVersionControl()
