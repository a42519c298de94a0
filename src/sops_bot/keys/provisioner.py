"""Key provisioning with a repository-derived idempotency gate.

Whether a repository has already been provisioned is derived from the
repository itself: a committed ``.github/.gpg`` means a key pair was
generated and published before. No separate status store exists.
"""

import logging
from typing import Optional

from src.sops_bot.github.client import GitHubClient
from src.sops_bot.keys.generator import KeyPair, KeyPairGenerator

logger = logging.getLogger(__name__)

PUBLIC_KEY_PATH = ".github/.gpg"


def key_identity(owner: str, repo: str) -> str:
    """Identity label bound to a repository's key."""
    return f"{owner}/{repo}"


class KeyProvisioner:
    """Generates a key pair for a repository unless one is committed.

    Attributes:
        github_client: GitHub API client used for the presence check.
        generator: Key generation capability.
        ref: Git reference the public key presence is checked at.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        generator: KeyPairGenerator,
        ref: str = "HEAD",
    ):
        self.github_client = github_client
        self.generator = generator
        self.ref = ref

    async def provision(self, owner: str, repo: str) -> Optional[KeyPair]:
        """Generate a key pair, or return None if already provisioned.

        Raises:
            KeyGenerationError: If the generator fails.
            GitHubAPIError: If the presence check fails for a reason other
                than the file being absent.
        """
        repository = f"{owner}/{repo}"

        if await self.github_client.file_exists(
            owner, repo, PUBLIC_KEY_PATH, ref=self.ref
        ):
            logger.info(
                "GPG public key already exists, skipping key generation",
                extra={"repository": repository, "path": PUBLIC_KEY_PATH},
            )
            return None

        logger.info("Generating GPG key pair", extra={"repository": repository})
        key_pair = await self.generator.generate(key_identity(owner, repo))
        logger.info(
            "Generated GPG key pair %s for %s",
            key_pair.fingerprint,
            repository,
            extra={"repository": repository, "fingerprint": key_pair.fingerprint},
        )
        return key_pair
