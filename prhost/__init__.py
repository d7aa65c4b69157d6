"""
prhost - Manage pull requests and repositories on git hosting services.

Works from the local git repository: the current branch and its upstream
decide which host, repository and pull request a command talks about.

Supported hosts:
    GitHub     - github.com and GitHub Enterprise
    GitLab     - gitlab.com and self-hosted instances
    Bitbucket  - bitbucket.org
    Gitea      - gitea.com, codeberg.org and self-hosted instances

Usage:
    prhost login github.com     # Store a token for a host
    prhost pr create -m "..."   # Open a pull request for the current branch
    prhost pr get               # Show the pull request of the current branch
    prhost pr merge             # Merge it and check out the target branch
"""

__version__ = "0.1.0"
__author__ = "prhost"
