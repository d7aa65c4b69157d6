"""
GitLab REST API adapter (v4).

Documentation: https://docs.gitlab.com/ee/api/api_resources.html

Projects are addressed by their URL-encoded path, merge requests by
their project-local iid. Reviewers are resolved with the user search.

List filter support: every state (opened, closed, merged, locked) and
both author scopes are supported natively.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from ..errors import InvalidToken, PullRequestNotFound, ReviewerNotFound
from ..models import (
    CreatePullRequest,
    CreateRepository,
    ForkedFromRepository,
    ForkRepository,
    ListPullRequestFilters,
    PullRequest,
    PullRequestState,
    PullRequestStateFilter,
    PullRequestUserFilter,
    Repository,
    RepositoryVisibility,
    User,
    parse_timestamp,
)
from .base import VersionControl

logger = logging.getLogger(__name__)

STATES = {
    "opened": PullRequestState.OPEN,
    "closed": PullRequestState.CLOSED,
    "merged": PullRequestState.MERGED,
    "locked": PullRequestState.LOCKED,
}

LIST_STATES = {
    PullRequestStateFilter.OPEN: "opened",
    PullRequestStateFilter.CLOSED: "closed",
    PullRequestStateFilter.MERGED: "merged",
    PullRequestStateFilter.LOCKED: "locked",
    PullRequestStateFilter.ALL: None,
}

LIST_SCOPES = {
    PullRequestUserFilter.ME: "created_by_me",
    PullRequestUserFilter.ALL: "all",
}


def parse_user(data: dict[str, Any]) -> User:
    return User(id=str(data["id"]), username=data["username"])


def parse_pull_request(data: dict[str, Any]) -> PullRequest:
    # diff_refs is missing while GitLab is still computing the diff
    diff_refs = data.get("diff_refs") or {}
    closed_by = data.get("closed_by") or data.get("merged_by")
    reviewers = data.get("reviewers")

    return PullRequest(
        id=data["iid"],
        state=STATES[data["state"]],
        title=data["title"],
        description=data.get("description") or "",
        source=data["source_branch"],
        source_sha=diff_refs.get("head_sha") or data.get("sha") or "",
        target=data["target_branch"],
        target_sha=diff_refs.get("base_sha") or "",
        url=data["web_url"],
        created_at=parse_timestamp(data.get("created_at")),
        updated_at=parse_timestamp(data.get("updated_at")),
        author=parse_user(data["author"]),
        closed_by=parse_user(closed_by) if closed_by else None,
        reviewers=[parse_user(r) for r in reviewers] if reviewers is not None else None,
        delete_source_branch=bool(
            data.get("should_remove_source_branch") or data.get("force_remove_source_branch")
        ),
    )


def parse_repository(data: dict[str, Any]) -> Repository:
    forked = data.get("forked_from_project")
    return Repository(
        name=data["name"],
        full_name=data["path_with_namespace"],
        owner=parse_user(data["owner"]) if data.get("owner") else None,
        html_url=data["web_url"],
        ssh_url=data["ssh_url_to_repo"],
        https_url=data["http_url_to_repo"],
        description=data.get("description") or "",
        created_at=parse_timestamp(data.get("created_at")),
        updated_at=parse_timestamp(data.get("last_activity_at")),
        visibility=RepositoryVisibility(data["visibility"]),
        archived=bool(data.get("archived")),
        default_branch=data.get("default_branch") or "",
        forks_count=data.get("forks_count", 0),
        stars_count=data.get("star_count", 0),
        forked_from=ForkedFromRepository(
            name=forked["name"],
            full_name=forked["path_with_namespace"],
            html_url=forked["web_url"],
        ) if forked else None,
    )


class GitLab(VersionControl):
    """gitlab.com and self-hosted GitLab instances."""

    @property
    def base_url(self) -> str:
        return f"https://{self.hostname}/api/v4"

    def _authenticate(self, token: str) -> None:
        self.session.headers["Authorization"] = f"Bearer {token}"

    def _repository_url(self, path: str = "") -> str:
        return f"/projects/{quote(self.repo, safe='')}{path}"

    def _repository_data(self) -> dict[str, Any]:
        return self.call("GET", self._repository_url())

    def get_user_by_name(self, username: str) -> User:
        users = self.call("GET", "/users", params={"username": username})
        if not users:
            raise ReviewerNotFound(username)
        return self.parse(parse_user, users[0])

    def login_url(self) -> str:
        return (
            f"https://{self.hostname}/-/profile/personal_access_tokens"
            "?name=prhost&scopes=read_user,api"
        )

    def validate_token(self, token: str) -> None:
        if not token.startswith("glpat-"):
            raise InvalidToken("Your GitLab token has to start with `glpat-`.")
        if len(token) != 26:
            raise InvalidToken("Your GitLab token has to be 26 characters long.")

    def create_pr(self, pr: CreatePullRequest) -> PullRequest:
        # Resolve every reviewer before anything is created remotely
        reviewer_ids = [int(self.get_user_by_name(name).id) for name in pr.reviewers]
        target = self.resolve_target(pr.target)

        payload: dict[str, Any] = {
            "title": pr.title,
            "description": pr.description,
            "source_branch": pr.source,
            "target_branch": target,
            "remove_source_branch": pr.delete_source_branch,
            "reviewer_ids": reviewer_ids,
        }

        if self.settings.fork:
            forked = self._repository_data().get("forked_from_project")
            if forked:
                logger.info("Creating merge request on upstream %s.", forked.get("path_with_namespace"))
                payload["target_project_id"] = self.parse(lambda project: project["id"], forked)

        data = self.call("POST", self._repository_url("/merge_requests"), body=payload)
        return self.parse(parse_pull_request, data)

    def get_pr_by_id(self, id: int) -> PullRequest:
        data = self.call("GET", self._repository_url(f"/merge_requests/{id}"))
        return self.parse(parse_pull_request, data)

    def get_pr_by_branch(self, branch: str) -> PullRequest:
        prs = self.call(
            "GET",
            self._repository_url("/merge_requests"),
            params={"source_branch": branch},
        )
        if not prs:
            raise PullRequestNotFound(branch)
        return self.parse(parse_pull_request, prs[0])

    def list_prs(self, filters: ListPullRequestFilters) -> list[PullRequest]:
        params = {"scope": LIST_SCOPES[filters.author]}
        state = LIST_STATES[filters.state]
        if state:
            params["state"] = state
        prs = self.call("GET", self._repository_url("/merge_requests"), params=params)
        return [self.parse(parse_pull_request, pr) for pr in prs or []]

    def approve_pr(self, id: int) -> None:
        self.call("POST", self._repository_url(f"/merge_requests/{id}/approve"))

    def close_pr(self, id: int) -> PullRequest:
        data = self.call(
            "PUT",
            self._repository_url(f"/merge_requests/{id}"),
            body={"state_event": "close"},
        )
        return self.parse(parse_pull_request, data)

    def merge_pr(self, id: int, delete_source_branch: bool = False) -> PullRequest:
        data = self.call(
            "PUT",
            self._repository_url(f"/merge_requests/{id}/merge"),
            body={"should_remove_source_branch": delete_source_branch},
        )
        return self.parse(parse_pull_request, data)

    def get_repository(self) -> Repository:
        return self.parse(parse_repository, self._repository_data())

    def create_repository(self, repo: CreateRepository) -> Repository:
        payload: dict[str, Any] = {
            "name": repo.name,
            "path": repo.name,
            "visibility": repo.visibility.value,
            "initialize_with_readme": repo.init,
        }
        if repo.description is not None:
            payload["description"] = repo.description
        if repo.default_branch is not None:
            payload["default_branch"] = repo.default_branch
        if repo.organization:
            namespace = self.call("GET", f"/namespaces/{quote(repo.organization, safe='')}")
            payload["namespace_id"] = self.parse(lambda ns: ns["id"], namespace)

        return self.parse(parse_repository, self.call("POST", "/projects", body=payload))

    def fork_repository(self, repo: ForkRepository) -> Repository:
        payload: dict[str, Any] = {}
        if repo.name is not None:
            payload["name"] = repo.name
            payload["path"] = repo.name
        if repo.organization is not None:
            payload["namespace_path"] = repo.organization
        data = self.call("POST", self._repository_url("/fork"), body=payload)
        return self.parse(parse_repository, data)

    def delete_repository(self) -> None:
        self.call("DELETE", self._repository_url())
