"""Safety verification after the agent has run.

Nothing is pushed unless both checks pass, in this order:

1. The working copy is still on a pipeline branch (``claude/`` prefix).
   Anything else is an integrity violation and fails the run fatally,
   even if commits exist.
2. The branch has at least one commit that the baseline does not. Zero
   commits is a reported, non-fatal outcome.
"""

import logging
from dataclasses import dataclass

from src.smarty.errors import NoChangesError, SafetyCheckError
from src.smarty.git.client import GitClient
from src.smarty.models import is_pipeline_branch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifiedBranch:
    """A branch that passed both safety checks."""

    name: str
    commit_count: int


class SafetyVerifier:
    """Checks the working copy before anything is published.

    Attributes:
        git: Git client bound to the working directory.
        baseline_branch: Branch commits are counted against.
    """

    def __init__(self, git: GitClient, baseline_branch: str = "master"):
        self.git = git
        self.baseline_branch = baseline_branch

    async def verify(self) -> VerifiedBranch:
        """Run the branch check and then the commit check.

        Returns:
            VerifiedBranch for the current branch.

        Raises:
            SafetyCheckError: If the current branch is not a pipeline branch.
            NoChangesError: If the branch has no commits beyond the baseline.
            GitCommandError: If git cannot answer either question.
        """
        current_branch = await self.git.current_branch()
        if not is_pipeline_branch(current_branch):
            logger.error(
                "Safety check failed: working copy left the pipeline branch",
                extra={"current_branch": current_branch},
            )
            raise SafetyCheckError(current_branch)

        commit_count = await self.git.count_commits_between(
            self.baseline_branch, current_branch
        )
        if commit_count == 0:
            logger.warning(
                "No commits produced by the agent",
                extra={"branch": current_branch},
            )
            raise NoChangesError(current_branch)

        logger.info(
            "Branch verified",
            extra={"branch": current_branch, "commit_count": commit_count},
        )
        return VerifiedBranch(name=current_branch, commit_count=commit_count)
