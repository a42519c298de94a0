"""Subscription descriptor parsing and resolution.

Repositories opt into key provisioning through
``.github/secret-management.yaml``.
"""

from .models import (
    SUBSCRIPTION_FILE_PATH,
    ConfigError,
    SubscriptionDescriptor,
    parse_subscription_descriptor,
)
from .resolver import SubscriptionResolver

__all__ = [
    "SUBSCRIPTION_FILE_PATH",
    "ConfigError",
    "SubscriptionDescriptor",
    "SubscriptionResolver",
    "parse_subscription_descriptor",
]
