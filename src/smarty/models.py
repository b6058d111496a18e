"""Request, run and result models for the change-request pipeline.

The HTTP body is validated with Pydantic (ChangeRequestBody) and then
converted into an immutable ChangeRequest. A PipelineRun tracks one
request's progress through the stages; a PullRequestResult is the only
output returned to the caller.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

# Prefix carried by every branch the pipeline creates. The safety check
# refuses to publish from any branch without it.
BRANCH_PREFIX = "claude/"


class PipelineStage(str, Enum):
    """Stages of one change-request run, in execution order."""

    SYNC = "sync"
    NAMING = "naming"
    BRANCH = "branch"
    AGENT = "agent"
    VERIFY = "verify"
    PUBLISH = "publish"
    COMPLETED = "completed"


class ImagePayload(BaseModel):
    """One base64-encoded attachment as received over HTTP."""

    name: Optional[str] = Field(
        default=None,
        description="Optional file name for the attachment",
    )

    data: str = Field(
        ...,
        min_length=1,
        description="Base64-encoded file content",
    )


class ChangeRequestBody(BaseModel):
    """JSON body of ``POST /``."""

    request: str = Field(
        ...,
        description="Natural-language description of the change",
    )

    images: list[ImagePayload] = Field(
        default_factory=list,
        description="Optional reference images for the agent",
    )

    @field_validator("request")
    @classmethod
    def validate_request(cls, v: str) -> str:
        """Reject blank requests."""
        if not v.strip():
            raise ValueError("request cannot be empty")
        return v


@dataclass(frozen=True)
class Attachment:
    """A decoded attachment ready to be written to disk."""

    name: str
    payload: bytes


@dataclass(frozen=True)
class ChangeRequest:
    """A parsed change request. Immutable once created.

    Attributes:
        text: The natural-language request.
        attachments: Decoded attachments in the order they were sent.
    """

    text: str
    attachments: tuple[Attachment, ...] = ()


@dataclass
class PipelineRun:
    """State of one request moving through the pipeline.

    Attributes:
        request_text: The natural-language request.
        branch_name: Full branch name including the claude/ prefix.
        baseline_branch: Branch the work diverges from.
        working_directory: Shared checkout the pipeline operates on.
        attachment_paths: Absolute paths of staged attachments.
    """

    request_text: str
    branch_name: str
    baseline_branch: str
    working_directory: Path
    attachment_paths: list[Path] = field(default_factory=list)


@dataclass(frozen=True)
class PullRequestResult:
    """The pull request opened for a completed run."""

    url: str
    branch_name: str

    def to_response(self) -> Dict[str, Any]:
        return {"pr": self.url, "branch": self.branch_name}


def is_pipeline_branch(branch_name: str) -> bool:
    """Return True if the branch was created by the pipeline."""
    return branch_name.startswith(BRANCH_PREFIX)
