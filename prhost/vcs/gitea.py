"""
Gitea (and Forgejo, Codeberg) REST API adapter.

Documentation: https://gitea.com/api/swagger

Gitea mirrors the GitHub data model: open/closed with a nullable
merged_at and a locked flag, reviewers passed by username. Listings are
plain arrays fetched page by page until an empty page.

List filter support:
- state: open, closed, all. Merged is listed as closed, Locked as all.
- author: not supported, Me is listed as All.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import InvalidToken, PullRequestNotFound
from ..models import (
    CreatePullRequest,
    CreateRepository,
    ForkedFromRepository,
    ForkRepository,
    ListPullRequestFilters,
    PullRequest,
    PullRequestStateFilter,
    Repository,
    RepositoryVisibility,
    User,
    parse_timestamp,
)
from .base import VersionControl
from .github import pull_request_state

logger = logging.getLogger(__name__)

LIST_STATES = {
    PullRequestStateFilter.OPEN: "open",
    PullRequestStateFilter.CLOSED: "closed",
    PullRequestStateFilter.MERGED: "closed",
    PullRequestStateFilter.LOCKED: "all",
    PullRequestStateFilter.ALL: "all",
}


def parse_user(data: dict[str, Any]) -> User:
    return User(id=str(data["id"]), username=data["login"])


def parse_pull_request(data: dict[str, Any]) -> PullRequest:
    head = data["head"]
    base = data["base"]
    merged_by = data.get("merged_by")
    reviewers = data.get("requested_reviewers")

    return PullRequest(
        id=data["number"],
        state=pull_request_state(data["state"], data.get("merged_at"), bool(data.get("is_locked"))),
        title=data["title"],
        description=data.get("body") or "",
        source=head["ref"],
        source_sha=head.get("sha", ""),
        target=base["ref"],
        target_sha=base.get("sha", ""),
        url=data["html_url"],
        created_at=parse_timestamp(data.get("created_at")),
        updated_at=parse_timestamp(data.get("updated_at")),
        author=parse_user(data["user"]),
        closed_by=parse_user(merged_by) if merged_by else None,
        reviewers=[parse_user(r) for r in reviewers] if reviewers is not None else None,
    )


def parse_repository(data: dict[str, Any]) -> Repository:
    parent = data.get("parent")
    if data.get("internal"):
        visibility = RepositoryVisibility.INTERNAL
    elif data.get("private"):
        visibility = RepositoryVisibility.PRIVATE
    else:
        visibility = RepositoryVisibility.PUBLIC

    return Repository(
        name=data["name"],
        full_name=data["full_name"],
        owner=parse_user(data["owner"]) if data.get("owner") else None,
        html_url=data["html_url"],
        ssh_url=data["ssh_url"],
        https_url=data["clone_url"],
        description=data.get("description") or "",
        created_at=parse_timestamp(data.get("created_at")),
        updated_at=parse_timestamp(data.get("updated_at")),
        visibility=visibility,
        archived=bool(data.get("archived")),
        default_branch=data.get("default_branch") or "",
        forks_count=data.get("forks_count", 0),
        stars_count=data.get("stars_count", 0),
        forked_from=ForkedFromRepository(
            name=parent["name"],
            full_name=parent["full_name"],
            html_url=parent["html_url"],
        ) if parent else None,
    )


class Gitea(VersionControl):
    """Self-hosted Gitea and Forgejo instances, gitea.com and codeberg.org."""

    @property
    def base_url(self) -> str:
        return f"https://{self.hostname}/api/v1"

    def _authenticate(self, token: str) -> None:
        self.session.headers["Authorization"] = f"token {token}"

    def _repository_url(self, path: str = "") -> str:
        return f"/repos/{self.repo}{path}"

    def login_url(self) -> str:
        return f"https://{self.hostname}/user/settings/applications"

    def validate_token(self, token: str) -> None:
        if len(token) != 40:
            raise InvalidToken("Your Gitea token has to be 40 characters long.")

    def create_pr(self, pr: CreatePullRequest) -> PullRequest:
        # Usernames are the reviewer ids here, only their existence is checked
        if pr.reviewers:
            self.check_usernames(pr.reviewers)

        target = self.resolve_target(pr.target)
        url = self._repository_url("/pulls")
        payload: dict[str, Any] = {
            "title": pr.title,
            "body": pr.description,
            "head": pr.source,
            "base": target,
        }

        if self.settings.fork:
            repo = self.get_repository()
            if repo.forked_from:
                logger.info("Creating pull request on upstream %s.", repo.forked_from.full_name)
                url = f"/repos/{repo.forked_from.full_name}/pulls"
                payload["head"] = f"{self.owner}:{pr.source}"

        new_pr = self.parse(parse_pull_request, self.call("POST", url, body=payload))

        if pr.reviewers:
            self.call(
                "POST",
                f"{url}/{new_pr.id}/requested_reviewers",
                body={"reviewers": pr.reviewers},
            )

        new_pr.delete_source_branch = pr.delete_source_branch
        return new_pr

    def get_pr_by_id(self, id: int) -> PullRequest:
        data = self.call("GET", self._repository_url(f"/pulls/{id}"))
        return self.parse(parse_pull_request, data)

    def get_pr_by_branch(self, branch: str) -> PullRequest:
        prs = self.call_paginated(self._repository_url("/pulls"), params={"state": "all"})
        for pr in prs:
            if pr.get("head", {}).get("ref") == branch:
                return self.parse(parse_pull_request, pr)
        raise PullRequestNotFound(branch)

    def list_prs(self, filters: ListPullRequestFilters) -> list[PullRequest]:
        prs = self.call_paginated(
            self._repository_url("/pulls"),
            params={"state": LIST_STATES[filters.state]},
        )
        return [self.parse(parse_pull_request, pr) for pr in prs]

    def approve_pr(self, id: int) -> None:
        self.call("POST", self._repository_url(f"/pulls/{id}/reviews"), body={"event": "APPROVED"})

    def close_pr(self, id: int) -> PullRequest:
        data = self.call("PATCH", self._repository_url(f"/pulls/{id}"), body={"state": "closed"})
        return self.parse(parse_pull_request, data)

    def merge_pr(self, id: int, delete_source_branch: bool = False) -> PullRequest:
        self.call(
            "POST",
            self._repository_url(f"/pulls/{id}/merge"),
            body={"Do": "merge", "delete_branch_after_merge": delete_source_branch},
        )
        pr = self.get_pr_by_id(id)
        pr.delete_source_branch = delete_source_branch
        return pr

    def get_repository(self) -> Repository:
        return self.parse(parse_repository, self.call("GET", self._repository_url()))

    def create_repository(self, repo: CreateRepository) -> Repository:
        payload: dict[str, Any] = {
            "name": repo.name,
            "private": repo.visibility != RepositoryVisibility.PUBLIC,
            "auto_init": repo.init,
        }
        if repo.description is not None:
            payload["description"] = repo.description
        if repo.default_branch is not None:
            payload["default_branch"] = repo.default_branch
        if repo.gitignore is not None:
            payload["gitignores"] = repo.gitignore
        if repo.license is not None:
            payload["license"] = repo.license

        url = f"/orgs/{repo.organization}/repos" if repo.organization else "/user/repos"
        return self.parse(parse_repository, self.call("POST", url, body=payload))

    def fork_repository(self, repo: ForkRepository) -> Repository:
        payload: dict[str, Any] = {}
        if repo.name is not None:
            payload["name"] = repo.name
        if repo.organization is not None:
            payload["organization"] = repo.organization
        data = self.call("POST", self._repository_url("/forks"), body=payload)
        return self.parse(parse_repository, data)

    def delete_repository(self) -> None:
        self.call("DELETE", self._repository_url())
