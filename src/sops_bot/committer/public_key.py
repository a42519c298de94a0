"""Commit the armored public key to the repository's default branch.

The commit is synthesized through the git data API: blob, tree layered
on the head tree, commit with the head as sole parent, then a
fast-forward of the branch reference. Nothing is checked out locally.
"""

import logging
from enum import Enum

from src.sops_bot.github.client import GitHubClient
from src.sops_bot.keys.provisioner import PUBLIC_KEY_PATH

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_MESSAGE = "chore: Add GPG public key for SOPS secret management"

# Regular, non-executable file
BLOB_FILE_MODE = "100644"


class CommitResult(str, Enum):
    """Result of a public key commit attempt."""

    COMMITTED = "committed"
    ALREADY_EXISTS = "already_exists"


class PublicKeyCommitter:
    """Writes ``.github/.gpg`` in a single-file commit.

    There is no optimistic-lock retry: if another writer moves the branch
    between reading the head and updating the ref, GitHub rejects the
    non-fast-forward update and the error propagates.

    Attributes:
        github_client: GitHub API client for git data calls.
        commit_message: Message used for the synthesized commit.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        commit_message: str = DEFAULT_COMMIT_MESSAGE,
    ):
        self.github_client = github_client
        self.commit_message = commit_message

    async def commit_public_key(
        self, owner: str, repo: str, public_key_armored: str
    ) -> CommitResult:
        """Commit the public key unless the file already exists.

        Raises:
            GitHubAPIError: If any API call fails.
        """
        repository = f"{owner}/{repo}"
        gh = self.github_client

        repo_data = await gh.get_repository(owner, repo)
        default_branch = repo_data["default_branch"]

        if await gh.file_exists(owner, repo, PUBLIC_KEY_PATH, ref=default_branch):
            logger.info(
                "Public key already exists",
                extra={"repository": repository, "path": PUBLIC_KEY_PATH},
            )
            return CommitResult.ALREADY_EXISTS

        head = await gh.get_branch(owner, repo, default_branch)

        blob_sha = await gh.create_blob(owner, repo, public_key_armored)
        tree_sha = await gh.create_tree(
            owner,
            repo,
            base_tree=head.tree_sha,
            entries=[
                {
                    "path": PUBLIC_KEY_PATH,
                    "mode": BLOB_FILE_MODE,
                    "type": "blob",
                    "sha": blob_sha,
                }
            ],
        )
        commit_sha = await gh.create_commit(
            owner,
            repo,
            message=self.commit_message,
            tree=tree_sha,
            parents=[head.commit_sha],
        )
        await gh.update_ref(owner, repo, f"heads/{default_branch}", commit_sha)

        logger.info(
            "Committed public key",
            extra={
                "repository": repository,
                "path": PUBLIC_KEY_PATH,
                "branch": default_branch,
                "commit_sha": commit_sha,
            },
        )
        return CommitResult.COMMITTED
