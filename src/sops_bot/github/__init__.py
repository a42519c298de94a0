"""GitHub API client for repository contents, git data and secrets.

Includes rate limiting and retry logic for API resilience.
"""

from src.sops_bot.github.client import (
    GitHubAPIError,
    GitHubClient,
    NotFoundError,
    RateLimitError,
)
from src.sops_bot.github.models import BranchHead, RepositoryPublicKey

__all__ = [
    "BranchHead",
    "GitHubAPIError",
    "GitHubClient",
    "NotFoundError",
    "RateLimitError",
    "RepositoryPublicKey",
]
