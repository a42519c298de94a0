"""Pipeline event models for observability.

Events are emitted at the key points of a provisioning run so that
operators can see why a repository was (or was not) provisioned.

The models use Pydantic for validation, consistent with the bot's
approach in webhook/models.py.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the provisioning pipeline.

    Attributes:
        TRIGGERED: A webhook event started a provisioning run.
        NOT_APPLICABLE: The run halted without work (no descriptor,
            ``subscribe: false``, key already committed).
        PROVISIONED: A key pair was generated, published and committed.
        ERROR: A stage failed; ``details["stage"]`` names it.
    """

    TRIGGERED = "triggered"
    NOT_APPLICABLE = "not_applicable"
    PROVISIONED = "provisioned"
    ERROR = "error"


class PipelineEvent(BaseModel):
    """Structured event emitted by the provisioning pipeline.

    Attributes:
        event_type: The category of event.
        repository: Full repository path in format "{owner}/{repo}".
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For TRIGGERED events:
            - trigger: TriggerType value
        For NOT_APPLICABLE and PROVISIONED events:
            - outcome: ProvisioningOutcome value
            - duration_seconds: Time spent in the run
        For ERROR events:
            - stage: Pipeline stage where the error occurred
            - error_type: Exception class name
            - error_message: Human-readable error description
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    repository: str = Field(
        ...,
        min_length=1,
        description='Full repository path in format "{owner}/{repo}"',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event for structured logging.

        Returns:
            Dict[str, Any]: Event fields plus details, timestamp as ISO string.
        """
        return {
            "event_type": self.event_type.value,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
