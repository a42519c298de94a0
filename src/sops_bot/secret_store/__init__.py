"""Sealed-box publication of private keys to GitHub Actions secrets."""

from .publisher import SECRET_NAME, SecretPublishError, SecretPublisher, encrypt_secret

__all__ = [
    "SECRET_NAME",
    "SecretPublishError",
    "SecretPublisher",
    "encrypt_secret",
]
