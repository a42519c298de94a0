"""Shared fixtures for the bot's tests.

FakeGitHub is an in-memory stand-in for GitHubClient that keeps one
default branch of files and records every call, so pipeline tests can
assert on side effects (secret upserts, commits) rather than mocks.
"""

import base64
from typing import Dict, List, Optional

import pytest
from nacl import public

from src.sops_bot.github.client import GitHubAPIError
from src.sops_bot.github.models import BranchHead, RepositoryPublicKey


class FakeGitHub:
    """In-memory GitHub with a single repository and branch."""

    def __init__(self, files: Optional[Dict[str, str]] = None, default_branch: str = "main"):
        self.files: Dict[str, str] = dict(files or {})
        self.default_branch = default_branch
        self.head_sha = "commit-0"
        self.secret_key = public.PrivateKey.generate()
        self.secrets: Dict[str, Dict[str, str]] = {}
        self.calls: List[str] = []
        self.commits: List[Dict] = []
        self.fail_on: Dict[str, Exception] = {}
        self._blobs: Dict[str, str] = {}
        self._trees: Dict[str, Dict[str, str]] = {}
        self._commit_trees: Dict[str, Dict[str, str]] = {}

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]

    async def get_file_text(self, owner, repo, path, ref=None):
        self._record("get_file_text")
        return self.files.get(path)

    async def file_exists(self, owner, repo, path, ref=None):
        self._record("file_exists")
        return path in self.files

    async def get_repository(self, owner, repo):
        self._record("get_repository")
        return {"name": repo, "default_branch": self.default_branch}

    async def get_branch(self, owner, repo, branch):
        self._record("get_branch")
        return BranchHead(name=branch, commit_sha=self.head_sha, tree_sha=f"tree-of-{self.head_sha}")

    async def create_blob(self, owner, repo, content):
        self._record("create_blob")
        sha = f"blob-{len(self._blobs)}"
        self._blobs[sha] = content
        return sha

    async def create_tree(self, owner, repo, base_tree, entries):
        self._record("create_tree")
        sha = f"tree-{len(self._trees)}"
        self._trees[sha] = {e["path"]: self._blobs[e["sha"]] for e in entries}
        return sha

    async def create_commit(self, owner, repo, message, tree, parents):
        self._record("create_commit")
        sha = f"commit-{len(self.commits) + 1}"
        self.commits.append({"sha": sha, "message": message, "tree": tree, "parents": parents})
        self._commit_trees[sha] = self._trees[tree]
        return sha

    async def update_ref(self, owner, repo, ref, sha):
        self._record("update_ref")
        self.files.update(self._commit_trees[sha])
        self.head_sha = sha
        return {"ref": f"refs/{ref}", "object": {"sha": sha}}

    async def get_actions_public_key(self, owner, repo):
        self._record("get_actions_public_key")
        key = base64.b64encode(bytes(self.secret_key.public_key)).decode("utf-8")
        return RepositoryPublicKey(key_id="key-123", key=key)

    async def put_actions_secret(self, owner, repo, secret_name, encrypted_value, key_id):
        self._record("put_actions_secret")
        self.secrets[secret_name] = {"encrypted_value": encrypted_value, "key_id": key_id}

    def decrypt_secret(self, secret_name: str) -> str:
        """Return the plain text the bot stored (before its base64 layer)."""
        sealed = base64.b64decode(self.secrets[secret_name]["encrypted_value"])
        return public.SealedBox(self.secret_key).decrypt(sealed).decode("utf-8")


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def api_error():
    return GitHubAPIError("GitHub API error: 500", status_code=500)
