from __future__ import annotations

from unittest.mock import patch

import pytest

from prhost.errors import InvalidToken, PullRequestNotFound, ReviewerNotFound
from prhost.models import (
    CreatePullRequest,
    ListPullRequestFilters,
    PullRequestState,
    PullRequestStateFilter,
    RepositoryVisibility,
    VersionControlSettings,
)
from prhost.vcs.bitbucket import Bitbucket, parse_pull_request

from conftest import make_response

API = "https://api.bitbucket.org/2.0"
REPO = f"{API}/repositories/workspace/repo"


def bitbucket_user(uuid, nickname):
    return {"uuid": uuid, "nickname": nickname, "display_name": nickname.title()}


def bitbucket_pr(**overrides):
    data = {
        "id": 12,
        "state": "OPEN",
        "title": "Add feature",
        "description": "Details",
        "source": {"branch": {"name": "feature"}, "commit": {"hash": "abc123"}},
        "destination": {"branch": {"name": "main"}, "commit": {"hash": "def456"}},
        "links": {"html": {"href": "https://bitbucket.org/workspace/repo/pull-requests/12"}},
        "created_on": "2024-01-01T00:00:00.000000+00:00",
        "updated_on": "2024-01-02T00:00:00.000000+00:00",
        "author": bitbucket_user("{1}", "alice"),
        "closed_by": None,
        "reviewers": [],
        "close_source_branch": False,
    }
    data.update(overrides)
    return data


def bitbucket_repo(**overrides):
    data = {
        "name": "repo",
        "full_name": "workspace/repo",
        "owner": {"uuid": "{w}", "username": "workspace"},
        "links": {
            "html": {"href": "https://bitbucket.org/workspace/repo"},
            "clone": [
                {"name": "https", "href": "https://bitbucket.org/workspace/repo.git"},
                {"name": "ssh", "href": "git@bitbucket.org:workspace/repo.git"},
            ],
        },
        "description": "",
        "created_on": "2024-01-01T00:00:00.000000+00:00",
        "updated_on": "2024-01-02T00:00:00.000000+00:00",
        "is_private": True,
        "mainbranch": {"name": "main"},
    }
    data.update(overrides)
    return data


def members_page(nicknames, next_url=None):
    page = {"values": [{"user": bitbucket_user(f"{{{n}}}", n)} for n in nicknames]}
    if next_url:
        page["next"] = next_url
    return page


def make_bitbucket(**settings):
    settings.setdefault("auth", "alice:ATBBsecret")
    settings.setdefault("default_branch", "main")
    return Bitbucket("bitbucket.org", "workspace/repo", VersionControlSettings(**settings))


@pytest.mark.parametrize(
    "state,expected",
    [
        ("OPEN", PullRequestState.OPEN),
        ("DECLINED", PullRequestState.CLOSED),
        ("SUPERSEDED", PullRequestState.CLOSED),
        ("MERGED", PullRequestState.MERGED),
    ],
)
def test_states(state, expected):
    assert parse_pull_request(bitbucket_pr(state=state)).state == expected


def test_basic_authentication():
    assert make_bitbucket().session.auth == ("alice", "ATBBsecret")


def test_authentication_requires_username():
    with pytest.raises(InvalidToken):
        make_bitbucket(auth="ATBBsecret")


def test_validate_token():
    vcs = make_bitbucket()
    vcs.validate_token("alice:ATBBsecret")
    with pytest.raises(InvalidToken):
        vcs.validate_token("ATBBsecret")


def test_workspace_members_follow_next_links():
    vcs = make_bitbucket()
    responses = [
        make_response(200, members_page(["alice", "bob"], next_url=f"{API}/workspaces/workspace/members?page=2")),
        make_response(200, members_page(["carol"])),
    ]

    with patch.object(vcs.session, "request", side_effect=responses) as request:
        users = vcs.get_workspace_users(["carol", "bob"])

    assert [u.username for u in users] == ["carol", "bob"]
    assert request.call_count == 2
    assert [c.kwargs["params"]["page"] for c in request.call_args_list] == [1, 2]


def test_create_pr_with_reviewers():
    vcs = make_bitbucket()
    responses = [make_response(200, members_page(["bob"])), make_response(201, bitbucket_pr())]

    with patch.object(vcs.session, "request", side_effect=responses) as request:
        pr = vcs.create_pr(CreatePullRequest(
            title="Add feature",
            description="Details",
            source="feature",
            delete_source_branch=True,
            reviewers=["bob"],
        ))

    create_call = request.call_args_list[-1]
    assert create_call.args == ("POST", f"{REPO}/pullrequests")
    assert create_call.kwargs["json"] == {
        "title": "Add feature",
        "description": "Details",
        "source": {"branch": {"name": "feature"}},
        "destination": {"branch": {"name": "main"}},
        "close_source_branch": True,
        "reviewers": [{"uuid": "{bob}"}],
    }
    assert pr.id == 12


def test_unknown_reviewer_creates_nothing():
    vcs = make_bitbucket()

    with patch.object(vcs.session, "request", return_value=make_response(200, members_page(["bob"]))) as request:
        with pytest.raises(ReviewerNotFound) as excinfo:
            vcs.create_pr(CreatePullRequest(title="t", description="", source="feature", reviewers=["bob", "ghost"]))

    assert excinfo.value.name == "ghost"
    assert all(call.args[0] == "GET" for call in request.call_args_list)


def test_create_pr_in_fork_mode_posts_to_upstream():
    vcs = make_bitbucket(fork=True)
    fork = bitbucket_repo(parent={
        "name": "repo",
        "full_name": "upstream/repo",
        "links": {"html": {"href": "https://bitbucket.org/upstream/repo"}},
    })
    responses = [make_response(200, fork), make_response(201, bitbucket_pr())]

    with patch.object(vcs.session, "request", side_effect=responses) as request:
        vcs.create_pr(CreatePullRequest(title="t", description="", source="feature"))

    create_call = request.call_args_list[-1]
    assert create_call.args[1] == f"{API}/repositories/upstream/repo/pullrequests"
    assert create_call.kwargs["json"]["source"]["repository"] == {"full_name": "workspace/repo"}


def test_get_pr_by_branch_scans_all_states():
    vcs = make_bitbucket()
    page = {"values": [bitbucket_pr(id=1, source={"branch": {"name": "other"}}), bitbucket_pr(id=2)]}

    with patch.object(vcs.session, "request", return_value=make_response(200, page)) as request:
        pr = vcs.get_pr_by_branch("feature")

    assert pr.id == 2
    assert request.call_args.kwargs["params"]["state"] == ["OPEN", "MERGED", "DECLINED", "SUPERSEDED"]


def test_get_pr_by_branch_not_found():
    vcs = make_bitbucket()

    with patch.object(vcs.session, "request", return_value=make_response(200, {"values": []})):
        with pytest.raises(PullRequestNotFound):
            vcs.get_pr_by_branch("feature")


def test_list_prs_closed_filter():
    vcs = make_bitbucket()

    with patch.object(vcs.session, "request", return_value=make_response(200, {"values": [bitbucket_pr()]})) as request:
        prs = vcs.list_prs(ListPullRequestFilters(state=PullRequestStateFilter.CLOSED))

    assert request.call_args.kwargs["params"]["state"] == ["DECLINED", "SUPERSEDED"]
    assert len(prs) == 1


def test_list_prs_closed_filter_includes_superseded():
    vcs = make_bitbucket()
    page = {"values": [bitbucket_pr(state="DECLINED"), bitbucket_pr(id=2, state="SUPERSEDED")]}

    with patch.object(vcs.session, "request", return_value=make_response(200, page)):
        prs = vcs.list_prs(ListPullRequestFilters(state=PullRequestStateFilter.CLOSED))

    assert [pr.state for pr in prs] == [PullRequestState.CLOSED, PullRequestState.CLOSED]


def test_decline_approve_merge():
    vcs = make_bitbucket()
    responses = [
        make_response(200, {"approved": True}),
        make_response(200, bitbucket_pr(state="DECLINED")),
        make_response(200, bitbucket_pr(state="MERGED", close_source_branch=True)),
    ]

    with patch.object(vcs.session, "request", side_effect=responses) as request:
        vcs.approve_pr(12)
        declined = vcs.close_pr(12)
        merged = vcs.merge_pr(12, delete_source_branch=True)

    approve_call, decline_call, merge_call = request.call_args_list
    assert approve_call.args == ("POST", f"{REPO}/pullrequests/12/approve")
    assert decline_call.args == ("POST", f"{REPO}/pullrequests/12/decline")
    assert merge_call.kwargs["json"] == {"close_source_branch": True}
    assert declined.state == PullRequestState.CLOSED
    assert merged.delete_source_branch is True


def test_get_repository():
    vcs = make_bitbucket()

    with patch.object(vcs.session, "request", return_value=make_response(200, bitbucket_repo())):
        repo = vcs.get_repository()

    assert repo.ssh_url == "git@bitbucket.org:workspace/repo.git"
    assert repo.https_url == "https://bitbucket.org/workspace/repo.git"
    assert repo.visibility == RepositoryVisibility.PRIVATE
    assert repo.default_branch == "main"
