"""Builds the configured forge backend."""

from pathlib import Path

from src.smarty.config import AgentSettings, ForgeKind
from src.smarty.forge.base import PullRequestForge
from src.smarty.forge.bitbucket import BitbucketForge
from src.smarty.forge.gh_cli import GhCliForge
from src.smarty.forge.github import GitHubForge


def create_forge(settings: AgentSettings) -> PullRequestForge:
    """Create the forge selected by ``settings.forge``.

    Credentials were already validated by AgentSettings.
    """
    if settings.forge == ForgeKind.GITHUB:
        return GitHubForge(
            token=settings.github_token,
            owner=settings.github_owner,
            repo=settings.github_repo,
            base_url=settings.github_base_url,
        )

    if settings.forge == ForgeKind.BITBUCKET:
        return BitbucketForge(
            username=settings.bb_email or settings.bb_username,
            api_token=settings.bb_api_token,
            workspace=settings.bb_workspace,
            repo=settings.bb_repo,
            base_url=settings.bitbucket_base_url,
        )

    return GhCliForge(working_directory=Path(settings.repo_path))
