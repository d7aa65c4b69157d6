"""
Output formatting for pull requests and repositories.

Normal output is colored with click.style (click drops the colors when
stdout is not a terminal); JSON output is one document per value.
"""

from __future__ import annotations

import json
from datetime import datetime

import click

from .models import PullRequest, PullRequestState, Repository, to_dict

TITLE_WIDTH = 73

STATE_COLORS = {
    PullRequestState.OPEN: None,
    PullRequestState.CLOSED: "red",
    PullRequestState.MERGED: "green",
    PullRequestState.LOCKED: "magenta",
}


def _truncate(text: str, width: int) -> str:
    if len(text) > width:
        return f"{text[:width - 3]}..."
    return text


def _date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def _dim(text: str) -> str:
    return click.style(text, dim=True)


def pull_request_title(pr: PullRequest) -> str:
    title = _truncate(pr.title, TITLE_WIDTH).ljust(TITLE_WIDTH)
    return click.style(title, bold=True, fg=STATE_COLORS[pr.state])


def format_pull_request(pr: PullRequest) -> str:
    lines = [
        f"{pull_request_title(pr)} {_dim(f'#{pr.id}'.rjust(6))}",
        " ".join([
            _dim("opened by"), pr.author.username,
            _dim("on"), _date(pr.created_at),
            _dim("updated on"), _date(pr.updated_at),
        ]),
        f"{click.style(pr.source, fg='blue')} -> {click.style(pr.target, fg='blue')}",
        "",
    ]
    if pr.description:
        lines.extend([pr.description, "---"])
    lines.append(_dim(pr.url))
    return "\n".join(lines)


def format_pull_request_short(pr: PullRequest) -> str:
    """One line per pull request, for listings."""
    return " ".join([
        _dim(f"#{pr.id}".rjust(6)),
        pull_request_title(pr),
        _dim(pr.author.username.ljust(16)),
        click.style(pr.source, fg="blue"),
        _dim(_date(pr.updated_at)),
    ])


def format_repository(repo: Repository) -> str:
    lines = [
        click.style(repo.full_name, bold=True),
        _dim(f"{repo.stars_count} stars, {repo.forks_count} forks"),
    ]
    if repo.forked_from:
        lines.append(_dim(f"forked from {repo.forked_from.full_name}"))
    lines.append("")
    if repo.description:
        lines.extend([repo.description, "---"])
    lines.append(_dim(repo.html_url))
    return "\n".join(lines)


def to_json(value: PullRequest | Repository) -> str:
    return json.dumps(to_dict(value))


def render(value: PullRequest | Repository, output: str = "normal") -> str:
    """Text for one value in the requested output format."""
    if output == "json":
        return to_json(value)
    if isinstance(value, PullRequest):
        return format_pull_request(value)
    return format_repository(value)


def render_list(prs: list[PullRequest], output: str = "normal") -> str:
    if output == "json":
        return json.dumps([to_dict(pr) for pr in prs])
    return "\n".join(format_pull_request_short(pr) for pr in prs)
