"""GitHub webhook routing for the secret management bot.

This module decides which GitHub webhook events start provisioning:
- push - only when the subscription descriptor was added or modified
- repository.created - always
- repository_dispatch - only for the ``process-secret-management`` action

The handler trusts that signature validation is performed before events
reach this service.
"""

from .handler import WebhookHandler, changed_files
from .models import DISPATCH_ACTION, ProvisioningRequest, TriggerType

__all__ = [
    "DISPATCH_ACTION",
    "ProvisioningRequest",
    "TriggerType",
    "WebhookHandler",
    "changed_files",
]
