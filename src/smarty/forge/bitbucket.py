"""Bitbucket Cloud REST API forge.

Opens pull requests with
``POST /repositories/{workspace}/{repo}/pullrequests``, authenticating
with HTTP basic auth (Atlassian account email and API token).
"""

import logging
from typing import Optional

import httpx

from src.smarty.forge.base import (
    CreatedPullRequest,
    ForgeAPIError,
    HttpForge,
    PullRequestSpec,
)

logger = logging.getLogger(__name__)


class BitbucketForge(HttpForge):
    """Async Bitbucket Cloud client for pull request creation.

    Attributes:
        username: Account email (or username) used for basic auth.
        api_token: Bitbucket API token.
        workspace: Bitbucket workspace slug.
        repo: Repository slug.
    """

    name = "Bitbucket"

    def __init__(
        self,
        username: str,
        api_token: str,
        workspace: str,
        repo: str,
        base_url: str = "https://api.bitbucket.org/2.0",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, timeout=timeout, transport=transport)
        self.username = username
        self.api_token = api_token
        self.workspace = workspace
        self.repo = repo

    def _auth(self) -> Optional[httpx.Auth]:
        return httpx.BasicAuth(self.username, self.api_token)

    async def create_pull_request(self, spec: PullRequestSpec) -> CreatedPullRequest:
        """Create a pull request.

        Returns:
            CreatedPullRequest with the PR id and its web URL.

        Raises:
            ForgeAPIError: If the request fails or the response has no URL.
        """
        path = f"/repositories/{self.workspace}/{self.repo}/pullrequests"

        logger.info(
            "Creating pull request",
            extra={
                "workspace": self.workspace,
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
                "description": spec.body,
                "source": {"branch": {"name": spec.head_branch}},
                "destination": {"branch": {"name": spec.base_branch}},
                "close_source_branch": True,
            },
        )

        data = self._json_object(response)
        links = data.get("links")
        html = links.get("html") if isinstance(links, dict) else None
        url = html.get("href") if isinstance(html, dict) else None
        if not url:
            raise ForgeAPIError(
                message="Bitbucket response did not include a pull request URL",
                status_code=response.status_code,
                response_body=response.text,
                request_url=str(response.url),
            )

        result = CreatedPullRequest(url=url, number=data.get("id"))
        logger.info(
            "Pull request created successfully",
            extra={"pr_number": result.number, "pr_url": result.url},
        )
        return result
