"""Forge backends for pull request creation.

This package provides pull request creation on:
- GitHub through the REST API
- Bitbucket Cloud through the REST API
- GitHub through the ``gh`` command-line tool
"""

from src.smarty.forge.base import (
    CreatedPullRequest,
    ForgeAPIError,
    PullRequestForge,
    PullRequestSpec,
)
from src.smarty.forge.bitbucket import BitbucketForge
from src.smarty.forge.factory import create_forge
from src.smarty.forge.gh_cli import GhCliForge
from src.smarty.forge.github import GitHubForge

__all__ = [
    "BitbucketForge",
    "CreatedPullRequest",
    "ForgeAPIError",
    "GhCliForge",
    "GitHubForge",
    "PullRequestForge",
    "PullRequestSpec",
    "create_forge",
]
