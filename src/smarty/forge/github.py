"""GitHub REST API forge.

Opens pull requests with ``POST /repos/{owner}/{repo}/pulls`` and
supports both github.com and GitHub Enterprise Server base URLs.
"""

import logging
from typing import Dict, Optional

import httpx

from src.smarty.forge.base import (
    CreatedPullRequest,
    ForgeAPIError,
    HttpForge,
    PullRequestSpec,
)

logger = logging.getLogger(__name__)


class GitHubForge(HttpForge):
    """Async GitHub API client for pull request creation.

    Attributes:
        token: GitHub API token (PAT or GitHub App token).
        owner: Repository owner (user or organization).
        repo: Repository name.

    Example:
        >>> forge = GitHubForge(token="ghp_xxx", owner="acme", repo="web")
        >>> async with forge:
        ...     await forge.create_pull_request(spec)
    """

    name = "GitHub"

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, timeout=timeout, transport=transport)
        self.token = token
        self.owner = owner
        self.repo = repo

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "SmartyAgent/1.0",
        }

    async def create_pull_request(self, spec: PullRequestSpec) -> CreatedPullRequest:
        """Create a pull request.

        Returns:
            CreatedPullRequest with the PR number and its html URL.

        Raises:
            ForgeAPIError: If the request fails or the response has no URL.
        """
        path = f"/repos/{self.owner}/{self.repo}/pulls"

        logger.info(
            "Creating pull request",
            extra={
                "owner": self.owner,
                "repo": self.repo,
                "title": spec.title,
                "head": spec.head_branch,
                "base": spec.base_branch,
            },
        )

        response = await self._request(
            method="POST",
            path=path,
            json_data={
                "title": spec.title,
                "body": spec.body,
                "head": spec.head_branch,
                "base": spec.base_branch,
            },
        )

        data = self._json_object(response)
        url = data.get("html_url")
        if not url:
            raise ForgeAPIError(
                message="GitHub response did not include a pull request URL",
                status_code=response.status_code,
                response_body=response.text,
                request_url=str(response.url),
            )

        result = CreatedPullRequest(url=url, number=data.get("number"))
        logger.info(
            "Pull request created successfully",
            extra={"pr_number": result.number, "pr_url": result.url},
        )
        return result
