"""Data models for GitHub API responses used by the bot.

The models use Pydantic for validation, consistent with the rest of the
package.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field


class BranchHead(BaseModel):
    """Head commit of a branch and the tree it points at.

    Attributes:
        name: Branch name (e.g., "main").
        commit_sha: SHA of the commit the branch currently references.
        tree_sha: SHA of that commit's root tree.
    """

    name: str = Field(..., min_length=1)
    commit_sha: str = Field(..., min_length=1)
    tree_sha: str = Field(..., min_length=1)

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "BranchHead":
        """Build from a ``GET /repos/{owner}/{repo}/branches/{branch}`` body."""
        commit = data["commit"]
        return cls(
            name=data["name"],
            commit_sha=commit["sha"],
            tree_sha=commit["commit"]["tree"]["sha"],
        )


class RepositoryPublicKey(BaseModel):
    """Repository public key used to seal Actions secrets.

    Attributes:
        key_id: Identifier GitHub uses to select the decryption key.
        key: Base64-encoded Curve25519 public key.
    """

    key_id: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "RepositoryPublicKey":
        return cls(key_id=data["key_id"], key=data["key"])
