"""Publish the generated private key as a GitHub Actions secret.

GitHub requires secret values to be encrypted client-side with a
libsodium sealed box against the repository's current public key. The
key rotates independently of the bot and is fetched on every call.
"""

import base64
import logging

from nacl import encoding, exceptions, public

from src.sops_bot.github.client import GitHubClient

logger = logging.getLogger(__name__)

SECRET_NAME = "GPG_KEY"


class SecretPublishError(Exception):
    """Raised when a secret value cannot be encrypted for upload."""

    pass


def encrypt_secret(public_key: str, secret_value: str) -> str:
    """Seal ``secret_value`` for the holder of ``public_key``.

    Args:
        public_key: Base64-encoded Curve25519 public key.
        secret_value: Plain text to encrypt.

    Returns:
        Base64-encoded ciphertext.

    Raises:
        SecretPublishError: If the key is malformed or encryption fails.
    """
    try:
        recipient = public.PublicKey(
            public_key.encode("utf-8"), encoding.Base64Encoder()
        )
        sealed_box = public.SealedBox(recipient)
        encrypted = sealed_box.encrypt(secret_value.encode("utf-8"))
    except (exceptions.CryptoError, ValueError, TypeError) as exc:
        raise SecretPublishError(f"Failed to encrypt secret: {exc}") from exc
    return base64.b64encode(encrypted).decode("utf-8")


class SecretPublisher:
    """Upserts the armored private key under a fixed secret name.

    Attributes:
        github_client: GitHub API client for the secrets endpoints.
        secret_name: Name of the Actions secret to write.
    """

    def __init__(self, github_client: GitHubClient, secret_name: str = SECRET_NAME):
        self.github_client = github_client
        self.secret_name = secret_name

    async def publish(self, owner: str, repo: str, private_key_armored: str) -> None:
        """Encrypt and store the private key in the repository's secrets.

        The armored key is base64-encoded before encryption so the stored
        value is a single-line token.

        Raises:
            SecretPublishError: If encryption fails.
            GitHubAPIError: If fetching the key or the upsert fails.
        """
        repository = f"{owner}/{repo}"
        logger.info(
            "Storing private key in GitHub Secrets",
            extra={"repository": repository, "secret_name": self.secret_name},
        )

        encoded_key = base64.b64encode(
            private_key_armored.encode("utf-8")
        ).decode("utf-8")

        repo_key = await self.github_client.get_actions_public_key(owner, repo)
        logger.debug(
            "Fetched repository public key",
            extra={"repository": repository, "key_id": repo_key.key_id},
        )

        encrypted_value = encrypt_secret(repo_key.key, encoded_key)

        await self.github_client.put_actions_secret(
            owner,
            repo,
            secret_name=self.secret_name,
            encrypted_value=encrypted_value,
            key_id=repo_key.key_id,
        )

        logger.info(
            "Stored secret",
            extra={"repository": repository, "secret_name": self.secret_name},
        )
