"""GPG key pair generation and provisioning."""

from .generator import (
    GpgKeyPairGenerator,
    KeyGenerationError,
    KeyPair,
    KeyPairGenerator,
)
from .provisioner import PUBLIC_KEY_PATH, KeyProvisioner, key_identity

__all__ = [
    "PUBLIC_KEY_PATH",
    "GpgKeyPairGenerator",
    "KeyGenerationError",
    "KeyPair",
    "KeyPairGenerator",
    "KeyProvisioner",
    "key_identity",
]
