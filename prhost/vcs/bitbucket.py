"""
Bitbucket Cloud REST API adapter (2.0).

Documentation: https://developer.atlassian.com/cloud/bitbucket/rest/intro/

Authentication is HTTP Basic with "username:app-password". Listings are
wrapped in {"values": [...], "next": ...} pages. Reviewers are resolved by
scanning the workspace members for matching nicknames.

List filter support:
- state: OPEN, MERGED and DECLINED (closed). Bitbucket has no locked
  filter, Locked is listed as All.
- author: not supported, Me is listed as All.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import DeserializationFailed, InvalidToken, PullRequestNotFound, ReviewerNotFound
from ..models import (
    CreatePullRequest,
    CreateRepository,
    ForkedFromRepository,
    ForkRepository,
    ListPullRequestFilters,
    PullRequest,
    PullRequestState,
    PullRequestStateFilter,
    Repository,
    RepositoryVisibility,
    User,
    parse_timestamp,
)
from .base import VersionControl

logger = logging.getLogger(__name__)

BITBUCKET_API_BASE = "https://api.bitbucket.org/2.0"

STATES = {
    "OPEN": PullRequestState.OPEN,
    "DECLINED": PullRequestState.CLOSED,
    "SUPERSEDED": PullRequestState.CLOSED,
    "MERGED": PullRequestState.MERGED,
    "LOCKED": PullRequestState.LOCKED,
}

ALL_STATES = ["OPEN", "MERGED", "DECLINED", "SUPERSEDED"]

LIST_STATES = {
    PullRequestStateFilter.OPEN: ["OPEN"],
    PullRequestStateFilter.CLOSED: ["DECLINED", "SUPERSEDED"],
    PullRequestStateFilter.MERGED: ["MERGED"],
    PullRequestStateFilter.LOCKED: ALL_STATES,
    PullRequestStateFilter.ALL: ALL_STATES,
}


def parse_user(data: dict[str, Any]) -> User:
    # Teams and workspaces have a username instead of a nickname
    return User(id=data["uuid"], username=data.get("nickname") or data["username"])


def parse_pull_request(data: dict[str, Any]) -> PullRequest:
    source = data["source"]
    destination = data["destination"]
    closed_by = data.get("closed_by")
    reviewers = data.get("reviewers")

    return PullRequest(
        id=data["id"],
        state=STATES[data["state"]],
        title=data["title"],
        description=data.get("description") or "",
        source=source["branch"]["name"],
        source_sha=(source.get("commit") or {}).get("hash", ""),
        target=destination["branch"]["name"],
        target_sha=(destination.get("commit") or {}).get("hash", ""),
        url=data["links"]["html"]["href"],
        created_at=parse_timestamp(data.get("created_on")),
        updated_at=parse_timestamp(data.get("updated_on")),
        author=parse_user(data["author"]),
        closed_by=parse_user(closed_by) if closed_by else None,
        reviewers=[parse_user(r) for r in reviewers] if reviewers is not None else None,
        delete_source_branch=bool(data.get("close_source_branch")),
    )


def parse_repository(data: dict[str, Any]) -> Repository:
    links = data["links"]
    clone_links = {link["name"]: link["href"] for link in links.get("clone", [])}
    if "ssh" not in clone_links or "https" not in clone_links:
        raise ValueError("repository is missing its ssh or https clone link")
    parent = data.get("parent")

    return Repository(
        name=data["name"],
        full_name=data["full_name"],
        owner=parse_user(data["owner"]) if data.get("owner") else None,
        html_url=links["html"]["href"],
        ssh_url=clone_links["ssh"],
        https_url=clone_links["https"],
        description=data.get("description") or "",
        created_at=parse_timestamp(data.get("created_on")),
        updated_at=parse_timestamp(data.get("updated_on")),
        visibility=RepositoryVisibility.PRIVATE if data.get("is_private") else RepositoryVisibility.PUBLIC,
        archived=False,
        default_branch=(data.get("mainbranch") or {}).get("name", ""),
        forked_from=ForkedFromRepository(
            name=parent["name"],
            full_name=parent["full_name"],
            html_url=parent["links"]["html"]["href"],
        ) if parent else None,
    )


class Bitbucket(VersionControl):
    """bitbucket.org"""

    @property
    def base_url(self) -> str:
        return BITBUCKET_API_BASE

    def _authenticate(self, token: str) -> None:
        username, sep, password = token.partition(":")
        if not sep:
            raise InvalidToken("Authentication has to contain a username and a token (user:ATBB...).")
        self.session.auth = (username, password)

    def _repository_url(self, path: str = "") -> str:
        return f"/repositories/{self.repo}{path}"

    def _page_values(self, data: Any) -> tuple[list[Any], bool]:
        if not isinstance(data, dict) or not isinstance(data.get("values"), list):
            raise DeserializationFailed("Expected a paginated response from Bitbucket.")
        return data["values"], data.get("next") is not None

    def get_workspace_users(self, usernames: list[str]) -> list[User]:
        """Resolve nicknames to workspace members, in the order given."""
        members = self.call_paginated(f"/workspaces/{self.owner}/members")
        users = {}
        for member in members:
            user = self.parse(lambda m: parse_user(m["user"]), member)
            users[user.username] = user

        resolved = []
        for name in usernames:
            if name not in users:
                raise ReviewerNotFound(name)
            resolved.append(users[name])
        return resolved

    def login_url(self) -> str:
        return "https://bitbucket.org/account/settings/app-passwords/new"

    def validate_token(self, token: str) -> None:
        if ":" not in token:
            raise InvalidToken(
                "Enter your Bitbucket username and the token, separated with a colon (user:ATBB...)."
            )

    def create_pr(self, pr: CreatePullRequest) -> PullRequest:
        reviewers = self.get_workspace_users(pr.reviewers) if pr.reviewers else []

        url = self._repository_url("/pullrequests")
        payload: dict[str, Any] = {
            "title": pr.title,
            "description": pr.description,
            "source": {"branch": {"name": pr.source}},
            "destination": {"branch": {"name": self.resolve_target(pr.target)}},
            "close_source_branch": pr.delete_source_branch,
            "reviewers": [{"uuid": user.id} for user in reviewers],
        }

        if self.settings.fork:
            repo = self.get_repository()
            if repo.forked_from:
                logger.info("Creating pull request on upstream %s.", repo.forked_from.full_name)
                url = f"/repositories/{repo.forked_from.full_name}/pullrequests"
                payload["source"]["repository"] = {"full_name": repo.full_name}

        return self.parse(parse_pull_request, self.call("POST", url, body=payload))

    def get_pr_by_id(self, id: int) -> PullRequest:
        data = self.call("GET", self._repository_url(f"/pullrequests/{id}"))
        return self.parse(parse_pull_request, data)

    def get_pr_by_branch(self, branch: str) -> PullRequest:
        prs = self.call_paginated(
            self._repository_url("/pullrequests"),
            params={"state": ALL_STATES},
        )
        for pr in prs:
            if pr.get("source", {}).get("branch", {}).get("name") == branch:
                return self.parse(parse_pull_request, pr)
        raise PullRequestNotFound(branch)

    def list_prs(self, filters: ListPullRequestFilters) -> list[PullRequest]:
        prs = self.call_paginated(
            self._repository_url("/pullrequests"),
            params={"state": LIST_STATES[filters.state]},
        )
        return [self.parse(parse_pull_request, pr) for pr in prs]

    def approve_pr(self, id: int) -> None:
        self.call("POST", self._repository_url(f"/pullrequests/{id}/approve"))

    def close_pr(self, id: int) -> PullRequest:
        data = self.call("POST", self._repository_url(f"/pullrequests/{id}/decline"))
        return self.parse(parse_pull_request, data)

    def merge_pr(self, id: int, delete_source_branch: bool = False) -> PullRequest:
        data = self.call(
            "POST",
            self._repository_url(f"/pullrequests/{id}/merge"),
            body={"close_source_branch": delete_source_branch},
        )
        return self.parse(parse_pull_request, data)

    def get_repository(self) -> Repository:
        return self.parse(parse_repository, self.call("GET", self._repository_url()))

    def create_repository(self, repo: CreateRepository) -> Repository:
        workspace = repo.organization or self.settings.auth.partition(":")[0]
        payload: dict[str, Any] = {
            "scm": "git",
            "is_private": repo.visibility != RepositoryVisibility.PUBLIC,
        }
        if repo.description is not None:
            payload["description"] = repo.description
        data = self.call("POST", f"/repositories/{workspace}/{repo.name}", body=payload)
        return self.parse(parse_repository, data)

    def fork_repository(self, repo: ForkRepository) -> Repository:
        payload: dict[str, Any] = {}
        if repo.name is not None:
            payload["name"] = repo.name
        if repo.organization is not None:
            payload["workspace"] = {"slug": repo.organization}
        data = self.call("POST", self._repository_url("/forks"), body=payload)
        return self.parse(parse_repository, data)

    def delete_repository(self) -> None:
        self.call("DELETE", self._repository_url())
