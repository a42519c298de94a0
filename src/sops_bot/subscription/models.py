"""Subscription descriptor model and parser.

A repository opts into secret management by committing
``.github/secret-management.yaml``::

    apiVersion: secret-management/v1
    subscribe: true
    optionalPathRegex: "^secrets/.*"   # advisory
    _extends: org/.github               # advisory

The descriptor is parsed into a strict model so that malformed documents
are rejected early instead of being treated as "not subscribed".
"""

from datetime import date
from typing import Any, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    ValidationError,
    field_validator,
)

SUBSCRIPTION_FILE_PATH = ".github/secret-management.yaml"


class ConfigError(Exception):
    """Raised when a subscription descriptor cannot be parsed."""

    pass


class SubscriptionDescriptor(BaseModel):
    """Parsed ``.github/secret-management.yaml``.

    Attributes:
        api_version: Version tag of the descriptor (YAML ``apiVersion``).
            Must be present; its value is not otherwise interpreted.
        subscribe: Whether the repository opts into key provisioning.
        optional_path_regex: Advisory path filter for downstream tooling
            (YAML ``optionalPathRegex``). Not used by the bot.
        extends: Advisory reference to a parent configuration
            (YAML ``_extends``). Never resolved.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str = Field(..., alias="apiVersion", min_length=1)
    subscribe: StrictBool
    optional_path_regex: Optional[str] = Field(default=None, alias="optionalPathRegex")
    extends: Optional[str] = Field(default=None, alias="_extends")

    @field_validator("api_version", mode="before")
    @classmethod
    def coerce_api_version(cls, v: Any) -> Any:
        """Accept any YAML scalar tag (`1`, `2024-01-01`) as its text."""
        if isinstance(v, (bool, int, float, date)):
            return str(v)
        return v


def parse_subscription_descriptor(content: str) -> SubscriptionDescriptor:
    """Parse the YAML text of a subscription descriptor.

    Args:
        content: Raw file content.

    Returns:
        The validated SubscriptionDescriptor.

    Raises:
        ConfigError: If the document is not valid YAML, is empty, is not a
            mapping, lacks ``apiVersion``, or lacks a boolean ``subscribe``.
    """
    try:
        document: Any = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}") from exc

    if not document:
        raise ConfigError("Empty YAML document")

    if not isinstance(document, dict):
        raise ConfigError(
            f"Expected a mapping at document root, got {type(document).__name__}"
        )

    if not document.get("apiVersion"):
        raise ConfigError("Missing apiVersion")

    if not isinstance(document.get("subscribe"), bool):
        raise ConfigError("Missing or invalid subscribe field")

    try:
        return SubscriptionDescriptor.model_validate(document)
    except ValidationError as exc:
        raise ConfigError(f"Invalid subscription descriptor: {exc}") from exc
