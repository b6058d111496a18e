"""Shared forge abstractions for pull request creation.

A forge is the hosted git service that opens pull requests. Every forge
implements PullRequestForge.create_pull_request; the HTTP forges share
HttpForge's request handling, which surfaces any non-2xx response as a
ForgeAPIError carrying the forge's response body verbatim.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class ForgeAPIError(Exception):
    """Raised when a forge request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response, if any.
        response_body: Response body from the forge.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)

    def __str__(self) -> str:
        if self.response_body:
            return f"{self.message}: {self.response_body}"
        return self.message


@dataclass(frozen=True)
class PullRequestSpec:
    """What to open: title, body, and the branches involved."""

    title: str
    body: str
    head_branch: str
    base_branch: str


@dataclass(frozen=True)
class CreatedPullRequest:
    """A pull request the forge reported as created."""

    url: str
    number: Optional[int] = None


class PullRequestForge(ABC):
    """Interface every forge backend implements."""

    name: str = "forge"

    @abstractmethod
    async def create_pull_request(self, spec: PullRequestSpec) -> CreatedPullRequest:
        """Open a pull request from ``spec.head_branch`` into ``spec.base_branch``.

        Raises:
            ForgeAPIError: If the forge rejects or cannot process the request.
        """

    async def close(self) -> None:
        """Release resources held by the forge. Default does nothing."""


class HttpForge(PullRequestForge):
    """Base class for forges reached through a REST API with httpx.

    Requests are not retried: a pull request POST is not idempotent.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                auth=self._auth(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {"User-Agent": "SmartyAgent/1.0"}

    def _auth(self) -> Optional[httpx.Auth]:
        return None

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make one HTTP request and fail on any non-2xx response.

        Raises:
            ForgeAPIError: On transport errors or error responses.
        """
        try:
            response = await self.client.request(
                method=method,
                url=path,
                json=json_data,
            )
        except httpx.RequestError as exc:
            logger.error(
                "%s request failed",
                self.name,
                extra={"path": path, "method": method, "error": str(exc)},
            )
            raise ForgeAPIError(
                message=f"{self.name} request failed: {exc}",
                request_url=f"{self.base_url}{path}",
            ) from exc

        if response.status_code >= 300:
            error_body = response.text
            logger.error(
                "%s API error",
                self.name,
                extra={
                    "status_code": response.status_code,
                    "path": path,
                    "method": method,
                    "response_body": error_body[:500],
                },
            )
            raise ForgeAPIError(
                message=f"{self.name} API error: {response.status_code}",
                status_code=response.status_code,
                response_body=error_body,
                request_url=str(response.url),
            )

        return response

    def _json_object(self, response: httpx.Response) -> Dict[str, Any]:
        """Decode a successful response body that must be a JSON object.

        Raises:
            ForgeAPIError: If the body is not JSON or not an object.
        """
        try:
            data = response.json()
        except ValueError as exc:
            raise ForgeAPIError(
                message=f"{self.name} returned a non-JSON response",
                status_code=response.status_code,
                response_body=response.text,
                request_url=str(response.url),
            ) from exc

        if not isinstance(data, dict):
            raise ForgeAPIError(
                message=f"{self.name} returned an unexpected response",
                status_code=response.status_code,
                response_body=response.text,
                request_url=str(response.url),
            )
        return data
