"""
prhost CLI - Manage pull requests and repositories from the command line.

Commands:
    login     - Store a token for a host
    pr        - Create, get, list, approve, merge and close pull requests
    repo      - Get, create, fork and delete repositories
"""

from __future__ import annotations

import functools
import logging
import sys
import webbrowser
from pathlib import Path

import click
from dotenv import load_dotenv

# Load .env file from current directory (PRHOST_CONFIG, PRHOST_AUTH)
load_dotenv()

from . import __version__
from . import commands
from .commands import Context
from .config import Configuration
from .errors import PrHostError
from .models import (
    CreateRepository,
    ListPullRequestFilters,
    PullRequest,
    PullRequestStateFilter,
    PullRequestUserFilter,
    Repository,
    RepositoryVisibility,
)
from .render import render, render_list

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def setup_logging(verbose: int) -> None:
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


def handle_errors(func):
    """Print prhost errors as `Error: ...` on stderr and exit 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PrHostError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    return wrapper


def show(value: PullRequest | Repository, output: str, open_browser: bool = False) -> None:
    """Open the value in the browser, or print it if that is not wanted or fails."""
    url = value.url if isinstance(value, PullRequest) else value.html_url
    if open_browser and webbrowser.open(url):
        return
    click.echo(render(value, output))


@click.group()
@click.version_option(version=__version__)
@click.option("-b", "--branch", help="Use this local branch instead of the current one")
@click.option("--dir", "directory", type=click.Path(file_okay=False, path_type=Path),
              help="Repository directory (defaults to the current directory)")
@click.option("--auth", envvar="PRHOST_AUTH", help="Token to use instead of the stored one")
@click.option("-o", "--output", type=click.Choice(["normal", "json"]), default="normal",
              help="Output format")
@click.option("-v", "--verbose", count=True, help="Log more (-v info, -vv debug)")
@click.pass_context
@handle_errors
def main(ctx: click.Context, branch: str | None, directory: Path | None, auth: str | None,
         output: str, verbose: int):
    """prhost - Manage pull requests and repositories on GitHub, GitLab, Bitbucket and Gitea."""
    setup_logging(verbose)
    ctx.obj = Context(
        config=Configuration.load(),
        branch=branch,
        dir=directory,
        auth=auth,
        progress=click.echo if output == "normal" else None,
    )
    ctx.meta["output"] = output


def _output() -> str:
    return click.get_current_context().meta.get("output", "normal")


@main.command()
@click.argument("hostname", required=False)
@click.option("--type", "vcs_type", type=click.Choice(["github", "gitlab", "bitbucket", "gitea"]),
              help="Provider type, required for self-hosted instances")
@click.option("--repo", help="Store the token for this repository only (owner/repo)")
@click.option("--token", help="Token to store (skips the browser flow)")
@click.pass_obj
@handle_errors
def login(obj: Context, hostname: str | None, vcs_type: str | None, repo: str | None,
          token: str | None):
    """Store a token for a host.

    Without --token the page for creating a token is opened and the token
    is asked for on the terminal.

    Examples:

        prhost login                              # Host of the current repository
        prhost login github.com --token ghp_...
        prhost login git.example.com --type gitlab
    """
    hostname, vcs = commands.login_provider(obj, hostname, vcs_type, repo)

    if token is None:
        url = vcs.login_url()
        click.echo(f"To login to {hostname}, create a token and copy the token value.")
        if vcs_type == "bitbucket" or hostname == "bitbucket.org":
            click.echo("Enter your username and the token separated with a colon (e.g. user:ATBB...).")
        if not webbrowser.open(url):
            click.echo(f"Open this page: {url}")
        while True:
            token = click.prompt("Paste the token here", hide_input=True).strip()
            try:
                vcs.validate_token(token)
                break
            except PrHostError as e:
                click.echo(str(e), err=True)

    path = commands.login(obj, hostname, token, vcs, vcs_type=vcs_type, repo=repo)
    click.echo(f"Token for {hostname} saved to {path}.")


# Pull requests

@main.group(name="pr")
def pr_group() -> None:
    """Pull request commands for the current branch."""


@pr_group.command("create")
@click.option("-m", "--message", required=True, help="Title of the pull request")
@click.option("-d", "--description", help="Description (defaults to stdin, then the commit list)")
@click.option("-t", "--target", help="Target branch (defaults to the repository default branch)")
@click.option("-r", "--reviewer", "reviewers", multiple=True, help="Reviewer username, repeatable")
@click.option("--delete", is_flag=True, help="Delete the source branch after merge")
@click.option("--open", "open_browser", is_flag=True, help="Open the pull request in the browser")
@click.option("--merge", is_flag=True, help="Merge the pull request right away")
@click.pass_obj
@handle_errors
def pr_create(obj: Context, message: str, description: str | None, target: str | None,
              reviewers: tuple[str, ...], delete: bool, open_browser: bool, merge: bool):
    """Create a pull request from the current branch.

    The branch is pushed first if it has no upstream yet.
    """
    if description is None:
        description = commands.read_description(click.get_text_stream("stdin"))
    pr = commands.create(
        obj,
        title=message,
        description=description,
        target=target,
        reviewers=list(reviewers),
        delete=delete,
        merge=merge,
    )
    show(pr, _output(), open_browser)


@pr_group.command("get")
@click.option("--open", "open_browser", is_flag=True, help="Open the pull request in the browser")
@click.pass_obj
@handle_errors
def pr_get(obj: Context, open_browser: bool):
    """Show the pull request of the current branch."""
    show(commands.get(obj), _output(), open_browser)


@pr_group.command("open")
@click.pass_obj
@handle_errors
def pr_open(obj: Context):
    """Open the pull request of the current branch in the browser."""
    show(commands.get(obj), _output(), open_browser=True)


@pr_group.command("list")
@click.option("--author", type=click.Choice([f.value for f in PullRequestUserFilter]),
              default=PullRequestUserFilter.ALL.value, help="Only my pull requests, or all")
@click.option("--state", type=click.Choice([f.value for f in PullRequestStateFilter]),
              default=PullRequestStateFilter.OPEN.value, help="Pull request state")
@click.pass_obj
@handle_errors
def pr_list(obj: Context, author: str, state: str):
    """List pull requests of the repository."""
    filters = ListPullRequestFilters(
        author=PullRequestUserFilter(author),
        state=PullRequestStateFilter(state),
    )
    prs = commands.list_prs(obj, filters)
    if prs or _output() == "json":
        click.echo(render_list(prs, _output()))


@pr_group.command("approve")
@click.pass_obj
@handle_errors
def pr_approve(obj: Context):
    """Approve the pull request of the current branch."""
    pr = commands.approve(obj)
    if _output() == "json":
        click.echo(render(pr, "json"))
    else:
        click.echo(f"Pull request #{pr.id} approved.")


@pr_group.command("merge")
@click.option("--delete", is_flag=True, help="Delete the source branch, remotely and locally")
@click.option("--force", is_flag=True, help="Merge despite local modifications or unpushed commits")
@click.pass_obj
@handle_errors
def pr_merge(obj: Context, delete: bool, force: bool):
    """Merge the pull request of the current branch.

    Afterwards the target branch is checked out and pulled.
    """
    show(commands.merge(obj, delete=delete, force=force), _output())


@pr_group.command("close")
@click.pass_obj
@handle_errors
def pr_close(obj: Context):
    """Close (decline) the pull request of the current branch."""
    show(commands.close(obj), _output())


pr_group.add_command(pr_close, name="decline")


# Repositories

@main.group(name="repo")
def repo_group() -> None:
    """Repository commands."""


@repo_group.command("get")
@click.option("--open", "open_browser", is_flag=True, help="Open the repository in the browser")
@click.pass_obj
@handle_errors
def repo_get(obj: Context, open_browser: bool):
    """Show the repository of the current directory."""
    show(commands.repo_get(obj), _output(), open_browser)


@repo_group.command("open")
@click.pass_obj
@handle_errors
def repo_open(obj: Context):
    """Open the repository in the browser."""
    show(commands.repo_get(obj), _output(), open_browser=True)


@repo_group.command("new")
@click.argument("repository")
@click.option("--host", help="Hostname, when REPOSITORY is not a URL")
@click.option("--description", help="Repository description")
@click.option("--visibility", type=click.Choice([v.value for v in RepositoryVisibility]),
              default=RepositoryVisibility.PRIVATE.value, help="Repository visibility")
@click.option("--init", is_flag=True, help="Initialize the repository with a README")
@click.option("--default-branch", help="Name of the default branch")
@click.option("--gitignore", help="Gitignore template")
@click.option("--license", "license_", help="License template")
@click.option("--clone", "do_clone", is_flag=True, help="Clone the new repository")
@click.option("--open", "open_browser", is_flag=True, help="Open the repository in the browser")
@click.pass_obj
@handle_errors
def repo_new(obj: Context, repository: str, host: str | None, description: str | None,
             visibility: str, init: bool, default_branch: str | None, gitignore: str | None,
             license_: str | None, do_clone: bool, open_browser: bool):
    """Create a new repository.

    REPOSITORY is a URL, organization/name or name.
    """
    request = CreateRepository(
        name=repository,
        description=description,
        visibility=RepositoryVisibility(visibility),
        init=init,
        default_branch=default_branch,
        gitignore=gitignore,
        license=license_,
    )
    created = commands.repo_new(obj, repository, request, host=host, do_clone=do_clone)
    show(created, _output(), open_browser)


@repo_group.command("fork")
@click.argument("source")
@click.argument("target", required=False)
@click.option("--clone", "do_clone", is_flag=True, help="Clone the fork")
@click.pass_obj
@handle_errors
def repo_fork(obj: Context, source: str, target: str | None, do_clone: bool):
    """Fork SOURCE (a repository URL), optionally as TARGET (organization/name)."""
    show(commands.repo_fork(obj, source, target, do_clone=do_clone), _output())


@repo_group.command("delete")
@click.option("--yes-delete-permanently", "force", is_flag=True, hidden=True)
@click.pass_obj
@handle_errors
def repo_delete(obj: Context, force: bool):
    """Delete the repository. This cannot be undone."""
    def confirm(repo: Repository) -> str:
        click.echo(render(repo, _output()))
        click.echo(
            f"You are about to {click.style('delete', fg='red', bold=True)} this repository. "
            f"{click.style('This action cannot be undone!', bold=True)}"
        )
        return click.prompt("Please enter the repository name if you are absolutely sure")

    deleted = commands.repo_delete(obj, confirm=confirm, force=force)
    click.echo(f"Repository {deleted.full_name} deleted.")


if __name__ == "__main__":
    main()
