"""Single-file commits of the generated public key."""

from .public_key import DEFAULT_COMMIT_MESSAGE, CommitResult, PublicKeyCommitter

__all__ = [
    "DEFAULT_COMMIT_MESSAGE",
    "CommitResult",
    "PublicKeyCommitter",
]
