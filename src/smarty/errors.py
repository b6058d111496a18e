"""Error taxonomy for the change-request pipeline.

Every failure that can reach a caller is a ChangeRequestError subclass
carrying the HTTP status it maps to. The application's exception
handlers render these as ``{"error": message}`` JSON bodies.

Taxonomy:
- Client errors (400): malformed request, undecodable attachment,
  zero commits produced by the agent
- Auth errors (401), rate-limit errors (429), not-ready errors (503)
- Fatal errors (500): safety-check failure, git failure, agent failure,
  push or pull request failure
"""

import re
from typing import Any, Dict, Optional

_URL_CREDENTIALS = re.compile(r"(://)[^/@\s]+@")


def redact_credentials(text: str) -> str:
    """Mask ``user:token@`` credentials embedded in URLs."""
    return _URL_CREDENTIALS.sub(r"\1***@", text)


class ChangeRequestError(Exception):
    """Base class for all pipeline and gate failures.

    Attributes:
        message: Human-readable error description returned to the caller.
        status_code: HTTP status the error maps to.
    """

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        """Build the JSON body returned to the caller."""
        return {"error": self.message}


class InvalidRequestError(ChangeRequestError):
    """Raised when the request body is missing or malformed."""

    status_code = 400


class AttachmentError(InvalidRequestError):
    """Raised when an attachment cannot be decoded or stored."""

    pass


class NoChangesError(ChangeRequestError):
    """Raised when the agent finished without committing anything.

    This is a reported outcome, not an infrastructure failure, so it maps
    to a client error.
    """

    status_code = 400

    def __init__(self, branch_name: str):
        self.branch_name = branch_name
        super().__init__("No changes were committed by Claude Code")


class AuthenticationError(ChangeRequestError):
    """Raised when the bearer credential is missing or wrong."""

    status_code = 401


class RateLimitExceededError(ChangeRequestError):
    """Raised when a client exceeds its request window.

    Attributes:
        retry_after: Seconds until the client's window resets.
    """

    status_code = 429

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


class RepositoryNotReadyError(ChangeRequestError):
    """Raised when the managed repository has not finished its checkout."""

    status_code = 503


class SafetyCheckError(ChangeRequestError):
    """Raised when the agent left the working copy off a pipeline branch."""

    status_code = 500

    def __init__(self, current_branch: str):
        self.current_branch = current_branch
        super().__init__(
            f'Safety check failed: current branch "{current_branch}" '
            "is not a claude/* branch"
        )


class GitCommandError(ChangeRequestError):
    """Raised when a git command exits non-zero or cannot be started.

    Attributes:
        command: The git arguments that were run.
        exit_code: Process exit code (-1 if the process never started).
        stderr: Captured standard error.
    """

    status_code = 500

    def __init__(self, command: list[str], exit_code: int, stderr: str):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        joined = " ".join(["git", *command])
        super().__init__(
            redact_credentials(
                f"Command failed: {joined} (exit {exit_code}): {stderr.strip()}"
            )
        )


class AgentExecutionError(ChangeRequestError):
    """Raised when the coding agent exits non-zero or fails to start."""

    status_code = 500

    def __init__(self, exit_code: int, stderr: str):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"Claude Code exited with code {exit_code}: {stderr}"
        )


class PublishError(ChangeRequestError):
    """Raised when the verified branch could not be published."""

    status_code = 500


class PullRequestCreationError(PublishError):
    """Raised when the push succeeded but the pull request was not created.

    The branch stays on the remote; the response names it so the pull
    request can be opened by hand.
    """

    def __init__(self, branch_name: str, message: str):
        self.branch_name = branch_name
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "branch": self.branch_name,
            "pushed": True,
        }
