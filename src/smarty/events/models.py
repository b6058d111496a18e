"""What a change-request run reports about itself.

Events give visibility into each change request's progress through the
stages and are consumed by the logging and metrics emitters.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the change-request pipeline.

    Attributes:
        STATE_TRANSITION: A run entered a new stage.
        ERROR: A stage failed fatally.
        REJECTED: A run ended with a reported client-level outcome
            (e.g. the agent committed nothing).
        COMPLETION: A pull request was opened.
    """

    STATE_TRANSITION = "state_transition"
    ERROR = "error"
    REJECTED = "rejected"
    COMPLETION = "completion"


class PipelineEvent(BaseModel):
    """Structured event emitted by the pipeline.

    Attributes:
        event_type: Kind of event.
        run_id: Identifier correlating all events of one run.
        repository: Label of the managed repository.
        timestamp: Emission time, timezone-aware UTC.
        details: Per-type payload.

    Details Field Conventions:
        STATE_TRANSITION: from_stage, to_stage
        ERROR: stage, error_message, error_type
        REJECTED: stage, reason
        COMPLETION: pr_url, branch, duration_seconds
    """

    event_type: EventType = Field(
        ...,
        description="Kind of event",
    )

    run_id: str = Field(
        ...,
        min_length=1,
        description="Identifier shared by all events of one run",
    )

    repository: str = Field(
        ...,
        min_length=1,
        description="Label of the managed repository",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Emission time, timezone-aware UTC",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Per-type payload",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event for structured logging.

        Example:
            >>> event = PipelineEvent(
            ...     event_type=EventType.ERROR,
            ...     run_id="run-1",
            ...     repository="acme/web",
            ...     details={"error_message": "push rejected"}
            ... )
            >>> event.to_log_dict()["event_type"]
            'error'
        """
        return {
            "event_type": self.event_type.value,
            "run_id": self.run_id,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
