"""
Provider contract shared by all hosting backends.

A provider is bound to one hostname and one repository path for the
lifetime of a command. Subclasses supply the base URL, the authentication
scheme and the wire-format mapping; the HTTP plumbing lives here:
- one request per call, no retries
- non-2xx responses raise RequestFailed with the response body
- connection, DNS, TLS and timeout errors raise TransportFailed
- malformed JSON or missing fields raise DeserializationFailed
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, TypeVar

import requests

from .. import __version__
from ..errors import DeserializationFailed, RequestFailed, ReviewerNotFound, TransportFailed
from ..models import (
    CreatePullRequest,
    CreateRepository,
    ForkRepository,
    ListPullRequestFilters,
    PullRequest,
    Repository,
    VersionControlSettings,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VersionControl(ABC):
    """Base class every hosting provider adapter implements."""

    def __init__(self, hostname: str, repo: str, settings: VersionControlSettings):
        self.hostname = hostname
        self.repo = repo
        self.settings = settings
        self.session = requests.Session()
        self.session.headers["User-Agent"] = f"prhost/{__version__}"
        self.session.headers["Accept"] = "application/json"
        if settings.auth:
            self._authenticate(settings.auth)

    @property
    @abstractmethod
    def base_url(self) -> str:
        """Root of the REST API, without a trailing slash."""

    @abstractmethod
    def _authenticate(self, token: str) -> None:
        """Attach credentials to self.session."""

    def call(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        """Make one API request and return the decoded JSON (None for an empty body)."""
        url = f"{self.base_url}{path}"
        logger.info("Calling with %s on %s.", method, url)
        if body is not None:
            logger.debug("Sending body: %s.", body)

        try:
            response = self.session.request(method, url, params=params, json=body)
        except requests.RequestException as e:
            raise TransportFailed(f"Sending data to {self.hostname} failed: {e}") from e

        logger.info(
            "Received response with response code %s with body size %s.",
            response.status_code,
            len(response.content),
        )
        logger.debug("Response body: %s.", response.text)

        if not 200 <= response.status_code < 300:
            raise RequestFailed(response.text, response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DeserializationFailed(
                f"Response from {self.hostname} is not valid JSON: {e}"
            ) from e

    def _page_values(self, data: Any) -> tuple[list[Any], bool]:
        """Split a page into its items and whether another page may follow."""
        if not isinstance(data, list):
            raise DeserializationFailed(f"Expected a list page from {self.hostname}.")
        return data, True

    def call_paginated(self, path: str, params: dict[str, Any] | None = None) -> list[Any]:
        """
        Fetch every page of a listing, one request per page.

        Pages are requested with an incrementing `page` parameter until a page
        is empty or the provider reports that there is no next page.
        """
        params = params or {}
        collected: list[Any] = []
        page = 1

        while True:
            logger.info("Reading page %s.", page)
            data = self.call("GET", path, params={**params, "page": page})
            values, has_next = self._page_values(data)

            if not values:
                break

            collected.extend(values)

            if not has_next:
                break

            page += 1

        return collected

    def parse(self, converter: Callable[[Any], T], data: Any) -> T:
        """Map a wire object into the domain model."""
        try:
            return converter(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DeserializationFailed(
                f"Unexpected response shape from {self.hostname}: {e!r}"
            ) from e

    def resolve_target(self, target: str | None) -> str:
        """Explicit target, else the cached default branch, else the remote default."""
        if target:
            return target
        if self.settings.default_branch:
            return self.settings.default_branch
        default_branch = self.get_repository().default_branch
        logger.info("Using %s as target branch.", default_branch)
        return default_branch

    def check_usernames(self, usernames: list[str]) -> None:
        """Fail on the first username the provider does not know."""
        for name in usernames:
            try:
                self.call("GET", f"/users/{name}")
            except RequestFailed as e:
                if e.status_code == 404:
                    raise ReviewerNotFound(name) from e
                raise

    @property
    def owner(self) -> str:
        """First segment of the repository path (user, organization or workspace)."""
        return self.repo.split("/", 1)[0]

    # The contract

    @abstractmethod
    def login_url(self) -> str:
        """Page where the user can create a token."""

    @abstractmethod
    def validate_token(self, token: str) -> None:
        """Check the token format only; raise InvalidToken if it is off."""

    @abstractmethod
    def create_pr(self, pr: CreatePullRequest) -> PullRequest:
        ...

    @abstractmethod
    def get_pr_by_id(self, id: int) -> PullRequest:
        ...

    @abstractmethod
    def get_pr_by_branch(self, branch: str) -> PullRequest:
        ...

    @abstractmethod
    def list_prs(self, filters: ListPullRequestFilters) -> list[PullRequest]:
        ...

    @abstractmethod
    def approve_pr(self, id: int) -> None:
        ...

    @abstractmethod
    def close_pr(self, id: int) -> PullRequest:
        ...

    @abstractmethod
    def merge_pr(self, id: int, delete_source_branch: bool = False) -> PullRequest:
        ...

    @abstractmethod
    def get_repository(self) -> Repository:
        ...

    @abstractmethod
    def create_repository(self, repo: CreateRepository) -> Repository:
        ...

    @abstractmethod
    def fork_repository(self, repo: ForkRepository) -> Repository:
        ...

    @abstractmethod
    def delete_repository(self) -> None:
        ...
