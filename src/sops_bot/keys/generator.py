"""GPG key pair generation in a throwaway keyring.

The provisioning logic depends only on the KeyPairGenerator interface, so
the GnuPG-backed implementation can be replaced (a different tool, a
remote signing service) without touching the pipeline.

GpgKeyPairGenerator creates a temporary GNUPGHOME per call, generates a
single non-expiring, unprotected key whose user ID carries the given
identity, exports both halves armored, stops the gpg-agent it spawned, and
removes the keyring on every exit path.
"""

import asyncio
import logging
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Tuple

import gnupg

logger = logging.getLogger(__name__)

DEFAULT_KEY_COMMENT = "GitHub SOPS Secret Management"
DEFAULT_KEY_EMAIL = "noreply@github.com"
DEFAULT_KEY_LENGTH = 4096
AGENT_SHUTDOWN_TIMEOUT_SECONDS = 10


class KeyGenerationError(Exception):
    """Raised when a key pair cannot be generated or exported."""

    pass


@dataclass(frozen=True)
class KeyPair:
    """Freshly generated key pair.

    Attributes:
        identity: Human-readable identity bound to the key ("owner/repo").
        fingerprint: Fingerprint of the primary key.
        public_key_armored: ASCII-armored public key.
        private_key_armored: ASCII-armored, unprotected secret key.
    """

    identity: str
    fingerprint: str
    public_key_armored: str
    private_key_armored: str

    def __repr__(self) -> str:
        return (
            f"KeyPair(identity={self.identity!r}, "
            f"fingerprint={self.fingerprint!r})"
        )


class KeyPairGenerator(ABC):
    """Capability that produces a key pair bound to an identity label."""

    @abstractmethod
    async def generate(self, identity: str) -> KeyPair:
        """Generate a new long-lived key pair for ``identity``.

        Raises:
            KeyGenerationError: If generation or export fails.
        """


class GpgKeyPairGenerator(KeyPairGenerator):
    """Generates RSA key pairs with GnuPG via python-gnupg.

    Attributes:
        gpg_binary: Path or name of the gpg executable.
        key_length: RSA key length for the primary key and subkey.
        key_comment: Comment placed in the key's user ID.
        key_email: Placeholder email placed in the key's user ID.
    """

    def __init__(
        self,
        gpg_binary: str = "gpg",
        key_length: int = DEFAULT_KEY_LENGTH,
        key_comment: str = DEFAULT_KEY_COMMENT,
        key_email: str = DEFAULT_KEY_EMAIL,
    ):
        self.gpg_binary = gpg_binary
        self.key_length = key_length
        self.key_comment = key_comment
        self.key_email = key_email

    async def generate(self, identity: str) -> KeyPair:
        """Generate a key pair without blocking the event loop."""
        return await asyncio.to_thread(self._generate_sync, identity)

    def _generate_sync(self, identity: str) -> KeyPair:
        with tempfile.TemporaryDirectory(prefix="gpg-") as gnupg_home:
            logger.debug(
                "Created ephemeral keyring",
                extra={"identity": identity, "gnupg_home": gnupg_home},
            )
            try:
                gpg = gnupg.GPG(gpgbinary=self.gpg_binary, gnupghome=gnupg_home)
            except (OSError, ValueError) as exc:
                raise KeyGenerationError(
                    f"Unable to start gpg ({self.gpg_binary}): {exc}"
                ) from exc
            gpg.encoding = "utf-8"

            try:
                fingerprint, public_key, private_key = self._generate_in(
                    gpg, identity
                )
            finally:
                self._stop_agent(gnupg_home)

        return KeyPair(
            identity=identity,
            fingerprint=fingerprint,
            public_key_armored=public_key,
            private_key_armored=private_key,
        )

    def _generate_in(self, gpg: gnupg.GPG, identity: str) -> Tuple[str, str, str]:
        """Generate and export a key; returns (fingerprint, public, private)."""
        result = gpg.gen_key(self._build_key_input(gpg, identity))
        if not result:
            raise KeyGenerationError(
                f"gpg key generation failed for {identity}: "
                f"{getattr(result, 'status', None) or 'unknown status'}"
            )

        fingerprint = self._extract_fingerprint(gpg.list_keys())
        public_key = gpg.export_keys(fingerprint, armor=True)
        private_key = gpg.export_keys(
            fingerprint,
            secret=True,
            armor=True,
            expect_passphrase=False,
        )

        if not public_key or not private_key:
            raise KeyGenerationError(
                f"Failed to export key {fingerprint} for {identity}"
            )
        return fingerprint, public_key, private_key

    def _gpgconf_binary(self) -> str:
        """gpgconf installed next to the configured gpg, else from PATH."""
        directory = os.path.dirname(self.gpg_binary)
        return os.path.join(directory, "gpgconf") if directory else "gpgconf"

    def _stop_agent(self, gnupg_home: str) -> None:
        """Stop the gpg-agent that gpg 2.x started for ``gnupg_home``."""
        try:
            subprocess.run(
                [self._gpgconf_binary(), "--homedir", gnupg_home, "--kill", "gpg-agent"],
                capture_output=True,
                timeout=AGENT_SHUTDOWN_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            # gpg 1.x has no agent and no gpgconf
            logger.debug(
                "Could not stop gpg-agent",
                extra={"gnupg_home": gnupg_home, "error": str(exc)},
            )

    def _build_key_input(self, gpg: gnupg.GPG, identity: str) -> str:
        return gpg.gen_key_input(
            key_type="RSA",
            key_length=self.key_length,
            subkey_type="RSA",
            subkey_length=self.key_length,
            name_real=identity,
            name_comment=self.key_comment,
            name_email=self.key_email,
            expire_date=0,
            no_protection=True,
        )

    @staticmethod
    def _extract_fingerprint(keys: List[dict]) -> str:
        """Return the fingerprint of the single key in a fresh keyring."""
        if not keys:
            raise KeyGenerationError("Failed to extract fingerprint")

        if len(keys) > 1:
            logger.warning(
                "Ephemeral keyring holds more than one key, using the first",
                extra={"key_count": len(keys)},
            )

        fingerprint = keys[0].get("fingerprint")
        if not fingerprint:
            raise KeyGenerationError("Failed to extract fingerprint")
        return fingerprint
