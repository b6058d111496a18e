"""Branch publishing and pull request creation.

Pushes a verified branch to the remote, then opens a pull request from
it into the baseline branch. A failed push raises PublishError. A failed
pull request after a successful push raises PullRequestCreationError;
the branch is left on the remote and is neither deleted nor retried.
"""

import logging

from src.smarty.errors import GitCommandError, PublishError, PullRequestCreationError
from src.smarty.forge.base import ForgeAPIError, PullRequestForge, PullRequestSpec
from src.smarty.git.client import GitClient
from src.smarty.models import PullRequestResult

logger = logging.getLogger(__name__)

PR_TITLE_MAX_LENGTH = 100
PR_ATTRIBUTION = "*This PR was automatically created by Smarty Agent using Claude Code.*"


def build_pr_title(request_text: str) -> str:
    """Derive a pull request title from the request text."""
    return request_text.strip()[:PR_TITLE_MAX_LENGTH]


def build_pr_body(request_text: str) -> str:
    """Full request text followed by the attribution marker."""
    return f"## Description\n\n{request_text}\n\n---\n{PR_ATTRIBUTION}"


class Publisher:
    """Pushes a branch and opens its pull request.

    Attributes:
        git: Git client bound to the working directory.
        forge: Backend that opens the pull request.
        baseline_branch: Target branch of every pull request.
    """

    def __init__(
        self,
        git: GitClient,
        forge: PullRequestForge,
        baseline_branch: str = "master",
    ):
        self.git = git
        self.forge = forge
        self.baseline_branch = baseline_branch

    async def publish(self, branch_name: str, request_text: str) -> PullRequestResult:
        """Push ``branch_name`` and open a pull request for it.

        Raises:
            PublishError: If the push is rejected.
            PullRequestCreationError: If the push succeeded but the forge
                did not create the pull request.
        """
        logger.info("Pushing branch %s", branch_name)
        try:
            await self.git.push(branch_name)
        except GitCommandError as exc:
            raise PublishError(f"Push failed: {exc.message}") from exc

        spec = PullRequestSpec(
            title=build_pr_title(request_text),
            body=build_pr_body(request_text),
            head_branch=branch_name,
            base_branch=self.baseline_branch,
        )

        logger.info("Creating pull request", extra={"branch": branch_name})
        try:
            created = await self.forge.create_pull_request(spec)
        except ForgeAPIError as exc:
            logger.error(
                "Pull request creation failed after push; branch left on remote",
                extra={"branch": branch_name, "status_code": exc.status_code},
            )
            raise PullRequestCreationError(
                branch_name, f"Pull request creation failed: {exc}"
            ) from exc

        logger.info(
            "PR created: %s",
            created.url,
            extra={"branch": branch_name},
        )
        return PullRequestResult(url=created.url, branch_name=branch_name)
