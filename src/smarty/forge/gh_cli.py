"""GitHub CLI forge.

Opens pull requests by running ``gh pr create`` inside the working
directory. The CLI authenticates from its own configuration (``GH_TOKEN``
or ``gh auth login``) and prints the new pull request's URL.
"""

import asyncio
import logging
from pathlib import Path

from src.smarty.forge.base import (
    CreatedPullRequest,
    ForgeAPIError,
    PullRequestForge,
    PullRequestSpec,
)

logger = logging.getLogger(__name__)

GH_TIMEOUT_SECONDS = 120


class GhCliForge(PullRequestForge):
    """Pull request creation through the ``gh`` command-line tool."""

    name = "gh"

    def __init__(self, working_directory: Path, gh_path: str = "gh"):
        self.working_directory = Path(working_directory)
        self.gh_path = gh_path

    async def create_pull_request(self, spec: PullRequestSpec) -> CreatedPullRequest:
        """Run ``gh pr create`` and return the printed URL.

        Raises:
            ForgeAPIError: If gh exits non-zero, times out, or prints no URL.
        """
        logger.info(
            "Creating pull request with gh",
            extra={"head": spec.head_branch, "base": spec.base_branch},
        )

        try:
            process = await asyncio.create_subprocess_exec(
                self.gh_path,
                "pr",
                "create",
                "--title",
                spec.title,
                "--body",
                spec.body,
                "--base",
                spec.base_branch,
                "--head",
                spec.head_branch,
                cwd=str(self.working_directory),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ForgeAPIError(f"Failed to execute gh: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=GH_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            raise ForgeAPIError(
                f"gh pr create timed out after {GH_TIMEOUT_SECONDS}s"
            ) from exc

        if process.returncode != 0:
            raise ForgeAPIError(
                message=f"gh pr create exited with code {process.returncode}",
                response_body=stderr.decode("utf-8", errors="replace").strip(),
            )

        url = self._parse_url(stdout.decode("utf-8", errors="replace"))
        if not url:
            raise ForgeAPIError("gh pr create did not print a pull request URL")

        logger.info("Pull request created successfully", extra={"pr_url": url})
        return CreatedPullRequest(url=url)

    def _parse_url(self, output: str) -> str:
        """Return the last line of output that looks like a URL."""
        for line in reversed(output.strip().splitlines()):
            line = line.strip()
            if line.startswith(("http://", "https://")):
                return line
        return ""
