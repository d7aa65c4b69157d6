"""
Command orchestration.

Each function here is one CLI command: it combines the local repository,
the configuration and a provider adapter, and performs the local side
effects (push, checkout, branch deletion) around the remote calls.

Every mutation of a pull request is preceded by a fresh lookup in the same
invocation. A failing step aborts the command without rolling back what
already happened; re-running is safe because an already pushed branch is
detected and not pushed again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Callable, TextIO

from .config import Configuration
from .errors import (
    DetachedHead,
    DirtyWorkingTree,
    NoUpstream,
    NotAGitRepository,
    RemoteNotFound,
    RepositoryConfirmationMismatch,
    UnpushedChanges,
)
from .git import LocalRepository, clone
from .models import (
    CreatePullRequest,
    CreateRepository,
    ForkRepository,
    ListPullRequestFilters,
    PullRequest,
    Repository,
    VersionControlSettings,
)
from .url import parse_url
from .vcs import VersionControl, init_vcs, select_provider

logger = logging.getLogger(__name__)

VcsFactory = Callable[[str, str, VersionControlSettings], VersionControl]


@dataclass
class Context:
    """Everything a command needs from the global CLI options."""
    config: Configuration
    branch: str | None = None
    dir: Path | None = None
    auth: str | None = None
    vcs_factory: VcsFactory = init_vcs
    progress: Callable[[str], None] | None = None
    settings: VersionControlSettings | None = field(default=None, init=False)

    @cached_property
    def repository(self) -> LocalRepository:
        return LocalRepository(self.dir)

    def connect(self, hostname: str, repo: str) -> VersionControl:
        self.settings = self.config.resolve_settings(hostname, repo, self.auth)
        return self.vcs_factory(hostname, repo, self.settings)

    def notify(self, message: str) -> None:
        logger.info(message)
        if self.progress is not None:
            self.progress(message)

    def local_branch(self) -> str:
        return self.branch or self.repository.current_branch()

    def on_current_branch(self) -> bool:
        """True when the command acts on the checked out branch."""
        if self.branch is None:
            return True
        try:
            return self.branch == self.repository.current_branch()
        except DetachedHead:
            return False

    def require_upstream(self) -> tuple[str, str, str]:
        """(hostname, repository path, remote branch) of a pushed branch."""
        hostname, repo, tracking = self.repository.resolve_remote(self.branch)
        if tracking is None:
            raise NoUpstream(self.local_branch())
        return hostname, repo, tracking


def read_description(stream: TextIO | None) -> str | None:
    """Description piped in on stdin; None for a terminal or empty input."""
    if stream is None or stream.isatty():
        return None
    content = stream.read().strip()
    return content or None


def describe_commits(commits: list[str]) -> str:
    return "\n".join(f"- {summary}" for summary in commits)


def _checkout_target(ctx: Context, target: str) -> None:
    ctx.notify(f"Checking out to {target} and pulling after merge.")
    ctx.repository.checkout_and_pull(target, quiet=ctx.progress is None)


def _delete_branch(ctx: Context, branch: str) -> None:
    ctx.repository.delete_local_branch(branch)
    ctx.notify(f"Deleted branch {branch}.")


# Pull requests

def create(
    ctx: Context,
    title: str,
    description: str | None = None,
    target: str | None = None,
    reviewers: list[str] | None = None,
    delete: bool = False,
    merge: bool = False,
) -> PullRequest:
    """
    Open a pull request for the local branch, pushing it first if needed.

    Without a description the summaries of the commits the branch adds on
    top of the target become a bullet list. A target resolved from the
    remote default branch is cached in the configuration.
    """
    repository = ctx.repository
    local_branch = ctx.local_branch()

    hostname, repo, source = repository.resolve_remote(ctx.branch)
    if source is None:
        remote = repository.sole_remote()
        ctx.notify(f"Pushing {local_branch} to {remote}.")
        repository.push(remote, local_branch)
        hostname, repo = parse_url(repository.remote_url(remote))
        source = local_branch

    vcs = ctx.connect(hostname, repo)
    settings = ctx.settings

    auto_target = not target
    if auto_target:
        target = vcs.resolve_target(None)

    if not description:
        commits = repository.commits_unique_to(local_branch, target)
        description = describe_commits(commits)

    pr = vcs.create_pr(CreatePullRequest(
        title=title,
        description=description,
        source=source,
        target=target,
        delete_source_branch=delete,
        reviewers=list(reviewers or []),
    ))
    logger.info("Created pull request #%s.", pr.id)

    if merge:
        ctx.notify(f"Merging pull request #{pr.id} instantly.")
        on_current = ctx.on_current_branch()
        pr = vcs.merge_pr(pr.id, delete)
        if on_current:
            _checkout_target(ctx, pr.target)
        if delete or pr.delete_source_branch:
            _delete_branch(ctx, local_branch)

    if auto_target and settings.default_branch != pr.target:
        ctx.config.set_default_branch(hostname, repo, pr.target)
        ctx.config.save()

    return pr


def get(ctx: Context) -> PullRequest:
    hostname, repo, tracking = ctx.require_upstream()
    return ctx.connect(hostname, repo).get_pr_by_branch(tracking)


def list_prs(ctx: Context, filters: ListPullRequestFilters) -> list[PullRequest]:
    """Pull requests of the repository behind the upstream, or any remote."""
    hostname, repo = ctx.repository.resolve_any_remote()
    return ctx.connect(hostname, repo).list_prs(filters)


def approve(ctx: Context) -> PullRequest:
    hostname, repo, tracking = ctx.require_upstream()
    vcs = ctx.connect(hostname, repo)
    pr = vcs.get_pr_by_branch(tracking)
    vcs.approve_pr(pr.id)
    return pr


def close(ctx: Context) -> PullRequest:
    hostname, repo, tracking = ctx.require_upstream()
    vcs = ctx.connect(hostname, repo)
    pr = vcs.get_pr_by_branch(tracking)
    return vcs.close_pr(pr.id)


def merge(ctx: Context, delete: bool = False, force: bool = False) -> PullRequest:
    """
    Merge the pull request of a branch and bring the working copy along.

    Refuses (unless forced) when the working tree is dirty or the local
    branch is not what the pull request was opened with. When the merged
    branch is the checked out one, the target is checked out and pulled.
    """
    repository = ctx.repository
    hostname, repo, tracking = ctx.require_upstream()
    local_branch = ctx.local_branch()
    on_current = ctx.on_current_branch()

    if on_current and not force and repository.has_local_modifications():
        raise DirtyWorkingTree()

    vcs = ctx.connect(hostname, repo)
    pr = vcs.get_pr_by_branch(tracking)

    if not force and pr.source_sha:
        local_sha = repository.branch_sha(local_branch)
        if not local_sha.startswith(pr.source_sha):
            raise UnpushedChanges(local_branch, local_sha, pr.source_sha)

    pr = vcs.merge_pr(pr.id, delete)

    if on_current:
        _checkout_target(ctx, pr.target)

    if delete or pr.delete_source_branch:
        _delete_branch(ctx, local_branch)

    return pr


# Repositories

def _split_name(full_name: str) -> tuple[str | None, str]:
    organization, _, name = full_name.rpartition("/")
    return organization or None, name


def repo_get(ctx: Context) -> Repository:
    hostname, repo = ctx.repository.resolve_any_remote()
    return ctx.connect(hostname, repo).get_repository()


def repo_new(
    ctx: Context,
    repository: str,
    request: CreateRepository,
    host: str | None = None,
    clone_to: Path | None = None,
    do_clone: bool = False,
) -> Repository:
    """
    Create a repository.

    `repository` may be a full URL, "organization/name" or a bare name. The
    host comes from the URL, then `host`, then the current repository's remote.
    """
    if ":" in repository:
        hostname, path = parse_url(repository)
    else:
        path = repository.strip("/")
        hostname = host
        if hostname is None:
            try:
                hostname, _ = ctx.repository.resolve_any_remote()
            except NotAGitRepository as e:
                raise RemoteNotFound(
                    "Cannot find the host of the new repository, pass --host."
                ) from e

    organization, name = _split_name(path)
    request.name = name
    request.organization = organization or request.organization

    vcs = ctx.connect(hostname, path)
    created = vcs.create_repository(request)
    logger.info("Created repository %s.", created.full_name)

    if do_clone:
        clone(created.ssh_url, clone_to)
    return created


def repo_fork(
    ctx: Context,
    source: str,
    target: str | None = None,
    clone_to: Path | None = None,
    do_clone: bool = False,
) -> Repository:
    hostname, original = parse_url(source)
    request = ForkRepository()
    if target:
        request.organization, request.name = _split_name(target)

    forked = ctx.connect(hostname, original).fork_repository(request)
    logger.info("Forked %s into %s.", original, forked.full_name)

    if do_clone:
        clone(forked.ssh_url, clone_to)
    return forked


def repo_delete(
    ctx: Context,
    confirm: Callable[[Repository], str] | None = None,
    force: bool = False,
) -> Repository:
    """
    Delete the remote repository of the working copy.

    Unless forced, `confirm` is shown the repository and must return its
    full name exactly; anything else aborts before the delete call.
    """
    hostname, repo = ctx.repository.resolve_any_remote()
    vcs = ctx.connect(hostname, repo)
    remote_repo = vcs.get_repository()

    if not force:
        entered = (confirm(remote_repo) if confirm else "").strip()
        if entered != remote_repo.full_name:
            raise RepositoryConfirmationMismatch(remote_repo.full_name, entered)

    vcs.delete_repository()
    logger.info("Deleted repository %s.", remote_repo.full_name)
    return remote_repo


# Login

def login_provider(
    ctx: Context,
    hostname: str | None = None,
    vcs_type: str | None = None,
    repo: str | None = None,
) -> tuple[str, VersionControl]:
    """Adapter used to show the token page and check token formats."""
    if hostname is None:
        hostname, detected_repo = ctx.repository.resolve_any_remote()
        repo = repo or detected_repo
    if vcs_type is None:
        host = ctx.config.hosts.get(hostname)
        vcs_type = host.vcs_type if host else None

    provider = select_provider(hostname, vcs_type)
    return hostname, provider(hostname, repo or "", VersionControlSettings(vcs_type=vcs_type))


def login(
    ctx: Context,
    hostname: str,
    token: str,
    vcs: VersionControl,
    vcs_type: str | None = None,
    repo: str | None = None,
) -> Path:
    """Validate the token format and store it for the host or one repository."""
    vcs.validate_token(token)
    ctx.config.set_token(hostname, repo, token, vcs_type)
    return ctx.config.save()
