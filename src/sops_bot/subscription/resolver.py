"""Resolve a repository's secret-management subscription.

Reads ``.github/secret-management.yaml`` from the repository head and
parses it. A missing file is a normal outcome (the repository simply has
not opted in); any other API failure propagates to the caller.
"""

import logging
from typing import Optional

from src.sops_bot.github.client import GitHubClient
from src.sops_bot.subscription.models import (
    SUBSCRIPTION_FILE_PATH,
    ConfigError,
    SubscriptionDescriptor,
    parse_subscription_descriptor,
)

logger = logging.getLogger(__name__)


class SubscriptionResolver:
    """Fetches and parses subscription descriptors.

    Attributes:
        github_client: GitHub API client used to read repository content.
        ref: Git reference the descriptor is read from.
    """

    def __init__(self, github_client: GitHubClient, ref: str = "HEAD"):
        self.github_client = github_client
        self.ref = ref

    async def resolve(
        self, owner: str, repo: str
    ) -> Optional[SubscriptionDescriptor]:
        """Return the repository's descriptor, or None when it has none.

        A descriptor with ``subscribe: false`` is returned as-is; deciding
        what to do with it is left to the caller.

        Raises:
            ConfigError: If the descriptor exists but is malformed.
            GitHubAPIError: If reading the file fails for a reason other
                than the file being absent.
        """
        try:
            content = await self.github_client.get_file_text(
                owner, repo, SUBSCRIPTION_FILE_PATH, ref=self.ref
            )
        except UnicodeDecodeError as exc:
            raise ConfigError(
                f"{SUBSCRIPTION_FILE_PATH} is not valid UTF-8: {exc}"
            ) from exc

        if content is None:
            logger.info(
                "No subscription descriptor found",
                extra={"repository": f"{owner}/{repo}"},
            )
            return None

        descriptor = parse_subscription_descriptor(content)
        logger.debug(
            "Parsed subscription descriptor",
            extra={
                "repository": f"{owner}/{repo}",
                "api_version": descriptor.api_version,
                "subscribe": descriptor.subscribe,
            },
        )
        return descriptor
