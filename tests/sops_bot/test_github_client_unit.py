"""Unit tests for the GitHub API client.

Requests are served by httpx.MockTransport so the client's request
building, 404 mapping, retry and rate limit handling run unmodified.
"""

import asyncio
import base64
import json
from typing import Callable, List

import httpx
import pytest

from src.sops_bot.github.client import (
    GitHubAPIError,
    GitHubClient,
    NotFoundError,
    RateLimitError,
)
from src.sops_bot.github.models import BranchHead, RepositoryPublicKey


def run_async(coro):
    return asyncio.run(coro)


class RecordingTransport:
    """Wraps a handler and keeps the requests it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)


def _client(handler, max_retries: int = 2) -> tuple:
    recorder = RecordingTransport(handler)
    client = GitHubClient(
        token="ghp_test",
        base_url="https://github.example.com/api/v3/",
        max_retries=max_retries,
        base_delay=0.0,
        transport=httpx.MockTransport(recorder),
    )
    return client, recorder


async def _call(client: GitHubClient, method: str, *args, **kwargs):
    async with client:
        return await getattr(client, method)(*args, **kwargs)


class TestContents:

    def test_get_file_text_decodes_base64(self):
        text = "apiVersion: v1\nsubscribe: true\n"

        def handler(request):
            return httpx.Response(
                200,
                json={"content": base64.b64encode(text.encode()).decode(), "encoding": "base64"},
            )

        client, recorder = _client(handler)
        result = run_async(
            _call(client, "get_file_text", "acme", "widgets", ".github/secret-management.yaml", ref="HEAD")
        )

        assert result == text
        request = recorder.requests[0]
        assert request.url.path == "/api/v3/repos/acme/widgets/contents/.github/secret-management.yaml"
        assert request.url.params["ref"] == "HEAD"
        assert request.headers["Authorization"] == "Bearer ghp_test"

    def test_get_file_text_returns_none_on_404(self):
        client, _ = _client(lambda r: httpx.Response(404, json={"message": "Not Found"}))
        assert run_async(_call(client, "get_file_text", "acme", "widgets", "missing")) is None

    def test_get_file_text_rejects_directory_listing(self):
        listing = [{"name": "workflows", "type": "dir"}, {"name": ".gpg", "type": "file"}]
        client, _ = _client(lambda r: httpx.Response(200, json=listing))

        with pytest.raises(GitHubAPIError, match="directory"):
            run_async(_call(client, "get_file_text", "acme", "widgets", ".github"))

    def test_get_file_text_raises_on_invalid_utf8(self):
        raw = base64.b64encode(b"\xff\xfe").decode("ascii")
        client, _ = _client(lambda r: httpx.Response(200, json={"content": raw}))

        with pytest.raises(UnicodeDecodeError):
            run_async(_call(client, "get_file_text", "acme", "widgets", "blob.bin"))

    def test_get_content_raises_not_found(self):
        client, _ = _client(lambda r: httpx.Response(404, json={"message": "Not Found"}))
        with pytest.raises(NotFoundError) as exc_info:
            run_async(_call(client, "get_content", "acme", "widgets", "missing"))
        assert exc_info.value.status_code == 404

    def test_file_exists(self):
        def handler(request):
            if request.url.path.endswith("/.github/.gpg"):
                return httpx.Response(200, json={"sha": "abc", "content": ""})
            return httpx.Response(404)

        client, _ = _client(handler)
        assert run_async(_call(client, "file_exists", "acme", "widgets", ".github/.gpg")) is True

        client, _ = _client(handler)
        assert run_async(_call(client, "file_exists", "acme", "widgets", "other")) is False

    def test_get_branch_parses_head(self):
        body = {
            "name": "main",
            "commit": {"sha": "c1", "commit": {"tree": {"sha": "t1"}}},
        }
        client, recorder = _client(lambda r: httpx.Response(200, json=body))

        head = run_async(_call(client, "get_branch", "acme", "widgets", "main"))

        assert head == BranchHead(name="main", commit_sha="c1", tree_sha="t1")
        assert recorder.requests[0].url.path.endswith("/repos/acme/widgets/branches/main")


class TestGitData:

    def test_blob_tree_commit_ref_bodies(self):
        def handler(request):
            return httpx.Response(201, json={"sha": f"sha-{request.url.path.rsplit('/', 1)[-1]}"})

        client, recorder = _client(handler)

        async def scenario():
            async with client:
                blob = await client.create_blob("acme", "widgets", "key")
                tree = await client.create_tree(
                    "acme", "widgets", base_tree="t0",
                    entries=[{"path": ".github/.gpg", "mode": "100644", "type": "blob", "sha": blob}],
                )
                commit = await client.create_commit(
                    "acme", "widgets", message="msg", tree=tree, parents=["c0"]
                )
                await client.update_ref("acme", "widgets", "heads/main", commit)
                return blob, tree, commit

        blob, tree, commit = run_async(scenario())

        assert (blob, tree, commit) == ("sha-blobs", "sha-trees", "sha-commits")
        bodies = [json.loads(r.content) for r in recorder.requests]
        assert bodies[0] == {"content": "key", "encoding": "utf-8"}
        assert bodies[1]["base_tree"] == "t0"
        assert bodies[2] == {"message": "msg", "tree": "sha-trees", "parents": ["c0"]}
        assert bodies[3] == {"sha": "sha-commits", "force": False}
        assert recorder.requests[3].method == "PATCH"
        assert recorder.requests[3].url.path.endswith("/git/refs/heads/main")


class TestSecrets:

    def test_public_key_and_secret_upsert(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"key_id": "k1", "key": "AAAA"})
            return httpx.Response(201)

        client, recorder = _client(handler)

        async def scenario():
            async with client:
                key = await client.get_actions_public_key("acme", "widgets")
                await client.put_actions_secret("acme", "widgets", "GPG_KEY", "ciphertext", key.key_id)
                return key

        key = run_async(scenario())

        assert key == RepositoryPublicKey(key_id="k1", key="AAAA")
        put = recorder.requests[1]
        assert put.method == "PUT"
        assert put.url.path.endswith("/repos/acme/widgets/actions/secrets/GPG_KEY")
        assert json.loads(put.content) == {"encrypted_value": "ciphertext", "key_id": "k1"}


class TestErrorHandling:

    def test_retries_server_errors_then_succeeds(self):
        responses = [httpx.Response(502), httpx.Response(200, json={"default_branch": "main"})]
        client, recorder = _client(lambda r: responses.pop(0))

        result = run_async(_call(client, "get_repository", "acme", "widgets"))

        assert result["default_branch"] == "main"
        assert len(recorder.requests) == 2

    def test_server_error_after_retries_raises(self):
        client, recorder = _client(lambda r: httpx.Response(503, text="unavailable"), max_retries=2)

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(_call(client, "get_repository", "acme", "widgets"))

        assert exc_info.value.status_code == 503
        assert len(recorder.requests) == 3

    def test_client_error_not_retried(self):
        client, recorder = _client(lambda r: httpx.Response(422, json={"message": "bad"}))

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(_call(client, "get_repository", "acme", "widgets"))

        assert exc_info.value.status_code == 422
        assert not isinstance(exc_info.value, NotFoundError)
        assert len(recorder.requests) == 1

    def test_rate_limit_raises(self):
        def handler(request):
            return httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "0", "retry-after": "30"},
            )

        client, _ = _client(handler)
        with pytest.raises(RateLimitError) as exc_info:
            run_async(_call(client, "get_repository", "acme", "widgets"))
        assert exc_info.value.retry_after == 30

    def test_connection_errors_exhaust_retries(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, recorder = _client(handler, max_retries=1)
        with pytest.raises(GitHubAPIError, match="retries"):
            run_async(_call(client, "get_repository", "acme", "widgets"))
        assert len(recorder.requests) == 2
