"""GitHub webhook event models for the secret management bot.

The models use Pydantic for validation, consistent with the bot's
configuration approach in config.py.
"""

from enum import Enum

from pydantic import BaseModel, Field

DISPATCH_ACTION = "process-secret-management"


class TriggerType(str, Enum):
    """Webhook events that can start provisioning.

    Attributes:
        PUSH: A push added or modified the subscription descriptor.
        REPOSITORY_CREATED: A new repository was created.
        REPOSITORY_DISPATCH: A manual ``process-secret-management`` dispatch.
    """

    PUSH = "push"
    REPOSITORY_CREATED = "repository_created"
    REPOSITORY_DISPATCH = "repository_dispatch"


class ProvisioningRequest(BaseModel):
    """A repository the pipeline should process.

    Attributes:
        owner: The repository owner (user or organization).
        repo: The repository name without owner prefix.
        trigger: The webhook event that produced the request.
    """

    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)
    trigger: TriggerType

    @property
    def full_repository(self) -> str:
        """Repository path in format "{owner}/{repo}"."""
        return f"{self.owner}/{self.repo}"
