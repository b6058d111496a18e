"""Repository state synchronization.

Before any branch is created the shared checkout is brought back to the
remote's baseline: fetch, switch to the baseline branch, hard-reset it to
the remote tip. Any git failure propagates as GitCommandError and ends
the run; no retry or rollback is attempted.
"""

import logging

from src.smarty.git.client import GitClient

logger = logging.getLogger(__name__)


class RepositorySynchronizer:
    """Resets the working directory to a known upstream baseline.

    Attributes:
        git: Git client bound to the working directory.
        baseline_branch: Branch to reset (e.g. "master").
    """

    def __init__(self, git: GitClient, baseline_branch: str = "master"):
        self.git = git
        self.baseline_branch = baseline_branch

    @property
    def upstream_ref(self) -> str:
        return f"{self.git.remote}/{self.baseline_branch}"

    async def sync(self) -> None:
        """Fetch the remote and hard-reset the baseline branch to its tip.

        Raises:
            GitCommandError: If fetch, checkout or reset fails.
        """
        logger.info(
            "Fetching latest from %s",
            self.git.remote,
            extra={"working_directory": str(self.git.working_directory)},
        )
        await self.git.fetch()
        await self.git.checkout(self.baseline_branch)
        await self.git.reset_hard(self.upstream_ref)

        logger.info(
            "Working directory reset to %s",
            self.upstream_ref,
        )
