"""
Local git repository access.

Thin wrapper over the git command line: resolves the current branch, its
upstream and remote, commit ranges, and performs the few mutations the
commands need (push, checkout + pull, branch deletion, clone).
Nothing is retried; failures of git itself are surfaced with git's stderr.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from .errors import (
    CheckoutFailed,
    DetachedHead,
    GitCommandFailed,
    NotAGitRepository,
    RemoteNotFound,
    UnknownBranch,
)
from .url import parse_url

logger = logging.getLogger(__name__)

DEFAULT_REMOTE = "origin"


def run_git(args: list[str], cwd: Path | None = None, quiet: bool = True) -> str:
    """Run a git command and return its stripped stdout."""
    logger.debug("Running git %s in %s.", " ".join(args), cwd or Path.cwd())
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=quiet,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        raise GitCommandFailed(args, e.stderr or "") from e
    return (result.stdout or "").strip()


def clone(url: str, directory: str | Path | None = None) -> Path:
    """Clone a repository and return the path of the new working copy."""
    args = ["clone", url]
    if directory is not None:
        args.append(str(directory))
    logger.info("Cloning %s.", url)
    run_git(args, quiet=False)
    if directory is not None:
        return Path(directory).resolve()
    _, repo = parse_url(url)
    return (Path.cwd() / repo.rsplit("/", 1)[-1]).resolve()


class LocalRepository:
    """A working copy on disk."""

    def __init__(self, path: str | Path | None = None):
        path = Path(path).expanduser() if path else Path.cwd()
        try:
            root = run_git(["rev-parse", "--show-toplevel"], cwd=path)
        except (GitCommandFailed, FileNotFoundError, NotADirectoryError) as e:
            raise NotAGitRepository(str(path)) from e
        self.path = Path(root)
        logger.info("Repository directory is %s.", self.path)

    def _git(self, *args: str, quiet: bool = True) -> str:
        return run_git(list(args), cwd=self.path, quiet=quiet)

    def _git_ok(self, *args: str) -> bool:
        try:
            self._git(*args)
        except GitCommandFailed:
            return False
        return True

    def _config(self, key: str) -> str | None:
        try:
            value = self._git("config", "--get", key)
        except GitCommandFailed:
            return None
        return value or None

    def current_branch(self) -> str:
        try:
            branch = self._git("symbolic-ref", "--quiet", "--short", "HEAD")
        except GitCommandFailed as e:
            raise DetachedHead() from e
        logger.info("Current branch is %s.", branch)
        return branch

    def branch_exists(self, branch: str) -> bool:
        return self._git_ok("rev-parse", "--verify", "--quiet", f"refs/heads/{branch}")

    def _local_branch(self, branch: str | None) -> str:
        if branch is None:
            return self.current_branch()
        if not self.branch_exists(branch):
            raise UnknownBranch(branch)
        return branch

    def remotes(self) -> list[str]:
        output = self._git("remote")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def default_remote(self) -> str:
        """origin if it exists, else the first configured remote."""
        remotes = self.remotes()
        if not remotes:
            raise RemoteNotFound("There are no remotes in the current repository.")
        if DEFAULT_REMOTE in remotes:
            return DEFAULT_REMOTE
        return remotes[0]

    def sole_remote(self) -> str:
        """The only configured remote; refuses to guess between several."""
        remotes = self.remotes()
        if not remotes:
            raise RemoteNotFound("There are no remotes in the current repository.")
        if len(remotes) > 1:
            raise RemoteNotFound(
                f"There are multiple remotes ({', '.join(remotes)}), "
                "push the branch to one of them first."
            )
        return remotes[0]

    def remote_url(self, remote: str | None = None) -> str:
        """The URL as configured, before any url.<base>.insteadOf rewriting."""
        remote = remote or self.default_remote()
        url = self._config(f"remote.{remote}.url")
        if url is None:
            raise RemoteNotFound(f"Remote URL with name {remote} not found.")
        logger.info("Using remote %s with url %s.", remote, url)
        return url

    def upstream(self, branch: str | None = None) -> tuple[str, str] | None:
        """
        The (remote name, remote branch name) a local branch tracks.

        Returns None when the branch has no upstream configured.
        """
        branch = self._local_branch(branch)
        remote = self._config(f"branch.{branch}.remote")
        merge = self._config(f"branch.{branch}.merge")
        if not remote or not merge or remote == ".":
            return None
        return remote, merge.removeprefix("refs/heads/")

    def resolve_remote(self, branch: str | None = None) -> tuple[str, str, str | None]:
        """
        Resolve (hostname, repository path, tracking branch) for a branch.

        Without an upstream the default remote is used and the tracking
        branch is None; the caller decides whether that is acceptable.
        """
        upstream = self.upstream(branch)
        if upstream is None:
            remote, tracking = self.default_remote(), None
        else:
            remote, tracking = upstream
        hostname, repo = parse_url(self.remote_url(remote))
        return hostname, repo, tracking

    def resolve_any_remote(self) -> tuple[str, str]:
        """(hostname, repository path) from the upstream, else any remote."""
        try:
            hostname, repo, _ = self.resolve_remote()
        except DetachedHead:
            hostname, repo = parse_url(self.remote_url())
        return hostname, repo

    def _resolve_revision(self, name: str) -> str:
        if self.branch_exists(name):
            return f"refs/heads/{name}"
        for remote in self.remotes():
            ref = f"refs/remotes/{remote}/{name}"
            if self._git_ok("rev-parse", "--verify", "--quiet", ref):
                return ref
        raise UnknownBranch(name)

    def commits_unique_to(self, branch: str | None, target: str) -> list[str]:
        """
        Summaries of commits reachable from branch but not from target, newest first.

        The target may be a local branch or only exist as a remote-tracking branch.
        """
        branch = self._local_branch(branch)
        target_ref = self._resolve_revision(target)
        if target_ref == f"refs/heads/{branch}":
            return []
        output = self._git("log", "--format=%s", f"{target_ref}..refs/heads/{branch}")
        return [line for line in output.splitlines() if line]

    def has_local_modifications(self) -> bool:
        return bool(self._git("status", "--porcelain", "--untracked-files=no"))

    def branch_sha(self, branch: str | None = None) -> str:
        branch = self._local_branch(branch)
        return self._git("rev-parse", f"refs/heads/{branch}")

    def checkout_and_pull(self, branch: str, quiet: bool = False) -> None:
        if not self.branch_exists(branch):
            raise CheckoutFailed(branch, "The branch does not exist locally.")
        logger.info("Checking out to %s and pulling.", branch)
        try:
            self._git("checkout", "--quiet", branch)
        except GitCommandFailed as e:
            raise CheckoutFailed(branch, e.stderr) from e
        pull = ["pull", "--quiet"] if quiet else ["pull"]
        self._git(*pull, quiet=quiet)

    def push(self, remote: str, branch: str) -> None:
        logger.info("Pushing %s to %s.", branch, remote)
        self._git("push", "--quiet", "--set-upstream", remote, branch)

    def delete_local_branch(self, branch: str) -> None:
        logger.info("Deleting local branch %s.", branch)
        self._git("branch", "-D", branch)
