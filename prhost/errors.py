"""
Error taxonomy for prhost.

Every failure the tool can report derives from PrHostError, so the CLI
can print the message and exit non-zero without knowing where it came from.
Context (hostname, repository, branch, response body) is kept on the
exception as attributes as well as in the message.
"""

from __future__ import annotations


class PrHostError(Exception):
    """Base class for all prhost errors."""


class InvalidUrl(PrHostError):
    """A remote URL that cannot be split into hostname and repository path."""
    def __init__(self, url: str, reason: str):
        super().__init__(f"Invalid remote URL {url!r}: {reason}")
        self.url = url
        self.reason = reason


# Local repository

class NotAGitRepository(PrHostError):
    def __init__(self, path: str):
        super().__init__(f"There is no git repository in {path}.")
        self.path = path


class GitCommandFailed(PrHostError):
    """A git subprocess exited non-zero. stderr is surfaced verbatim."""
    def __init__(self, args: list[str], stderr: str):
        command = " ".join(["git", *args])
        super().__init__(f"{command} failed: {stderr.strip()}")
        self.args_ = args
        self.stderr = stderr


class DetachedHead(PrHostError):
    def __init__(self):
        super().__init__("We are not on a branch currently (HEAD is detached).")


class UnknownBranch(PrHostError):
    def __init__(self, branch: str):
        super().__init__(f"Branch {branch} not found.")
        self.branch = branch


class CheckoutFailed(PrHostError):
    def __init__(self, branch: str, detail: str = ""):
        message = f"Cannot checkout to branch {branch}."
        if detail:
            message = f"{message} {detail.strip()}"
        super().__init__(message)
        self.branch = branch


class RemoteNotFound(PrHostError):
    """Zero remotes, or several remotes and no way to choose."""


class NoUpstream(PrHostError):
    def __init__(self, branch: str):
        super().__init__(
            f"Branch {branch} doesn't have an upstream branch. "
            "You have to push this branch first."
        )
        self.branch = branch


class DirtyWorkingTree(PrHostError):
    def __init__(self):
        super().__init__(
            "You can't merge while there are local modifications. "
            "If you are sure, pass the --force argument."
        )


class UnpushedChanges(PrHostError):
    def __init__(self, branch: str, local_sha: str, remote_sha: str):
        super().__init__(
            f"You can't merge while there are unpushed changes on {branch} "
            f"(local {local_sha[:8]}, pull request {remote_sha[:8]}). "
            "If you are sure, pass the --force argument."
        )
        self.branch = branch
        self.local_sha = local_sha
        self.remote_sha = remote_sha


# Configuration and provider selection

class ConfigError(PrHostError):
    """The configuration file exists but cannot be read."""


class AuthNotFound(PrHostError):
    def __init__(self, hostname: str, repo: str):
        super().__init__(
            f"Authentication not found for {hostname} in {repo}. "
            "Run `prhost login` or pass --auth."
        )
        self.hostname = hostname
        self.repo = repo


class InvalidToken(PrHostError):
    """A token that does not have the shape the provider hands out."""


class ProviderTypeUndetected(PrHostError):
    def __init__(self, hostname: str):
        super().__init__(
            f"Cannot detect the type of {hostname}. "
            f"Login with the type given explicitly, e.g. `prhost login {hostname} --type gitlab`."
        )
        self.hostname = hostname


class UnknownProviderType(PrHostError):
    def __init__(self, vcs_type: str, known: list[str]):
        super().__init__(
            f"Unknown provider type {vcs_type!r}, expected one of: {', '.join(known)}."
        )
        self.vcs_type = vcs_type


# Remote calls

class RequestFailed(PrHostError):
    """The provider answered with a non-2xx status."""
    def __init__(self, body: str, status_code: int | None = None):
        super().__init__(f"Request failed with status {status_code} (response: {body}).")
        self.body = body
        self.status_code = status_code


class TransportFailed(PrHostError):
    """DNS, TLS, connection or timeout failure; no response was received."""


class DeserializationFailed(PrHostError):
    """The response arrived but does not have the expected shape."""


class ReviewerNotFound(PrHostError):
    def __init__(self, name: str):
        super().__init__(f"Reviewer {name} not found.")
        self.name = name


class PullRequestNotFound(PrHostError):
    def __init__(self, branch: str):
        super().__init__(f"Pull request on branch {branch} not found.")
        self.branch = branch


class RepositoryConfirmationMismatch(PrHostError):
    def __init__(self, expected: str, entered: str):
        super().__init__(f"You cannot delete {expected}! You entered: {entered}.")
        self.expected = expected
        self.entered = entered
