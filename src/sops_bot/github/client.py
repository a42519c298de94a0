"""GitHub API client for repository contents, git data and Actions secrets.

This module provides an async wrapper around the GitHub REST API for:
- Reading repository metadata, branches and file contents
- Creating blobs, trees and commits and moving branch references
- Reading the Actions public key and upserting encrypted secrets

Includes rate limiting and retry logic for API resilience. A 404 is
raised as NotFoundError so callers can use it as a control-flow signal.

Source:
- src/sops_bot/github/models.py (BranchHead, RepositoryPublicKey)
- src/sops_bot/config.py (github_token, github_base_url)
"""

import asyncio
import base64
import logging
import random
import time
from typing import Any, Dict, List, Optional

import httpx

from src.sops_bot.github.models import BranchHead, RepositoryPublicKey


logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class NotFoundError(GitHubAPIError):
    """Raised when the requested resource does not exist (HTTP 404)."""


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class GitHubClient:
    """Async GitHub API client with rate limiting and retry logic.

    Retries transient failures (timeouts, connection errors, 5xx, 408)
    with exponential backoff and full jitter. Client errors other than
    rate limiting are raised immediately.

    Attributes:
        token: GitHub API token (PAT or GitHub App installation token).
        base_url: Base URL for GitHub API (default: https://api.github.com).
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubClient(token="ghp_xxx") as client:
        ...     repo = await client.get_repository("owner", "repo")
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            max_retries: Maximum number of retry attempts.
            base_delay: Base delay in seconds for exponential backoff.
            max_delay: Maximum delay in seconds between retries.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests to serve
                       canned responses.
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "SopsBot/1.0",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(
        self,
        exc_type: Any,
        exc_val: Any,
        exc_tb: Any,
    ) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate backoff delay with full jitter.

        Args:
            attempt: The current retry attempt (0-indexed).

        Returns:
            Delay in seconds before the next retry.
        """
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    def _parse_int_header(
        self,
        headers: httpx.Headers,
        name: str,
    ) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    async def _handle_rate_limit(
        self,
        response: httpx.Response,
    ) -> None:
        """Raise RateLimitError carrying the reset information.

        Args:
            response: The rate-limited response from GitHub.

        Raises:
            RateLimitError: With information about when to retry.
        """
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = retry_after_header

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={
                "reset_at": reset_at,
                "retry_after": retry_after,
                "limit": self._parse_int_header(
                    response.headers, "x-ratelimit-limit"
                ),
            },
        )

        raise RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
            request_url=str(response.url),
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH).
            path: API path (e.g., /repos/owner/repo/git/blobs).
            json_data: Optional JSON body for the request.
            params: Optional query parameters.

        Returns:
            The HTTP response from GitHub.

        Raises:
            NotFoundError: If GitHub answers 404.
            RateLimitError: If rate limit is exceeded.
            GitHubAPIError: If the request fails after all retries.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    params=params,
                )

                if response.status_code == 403:
                    remaining = self._parse_int_header(
                        response.headers,
                        "x-ratelimit-remaining",
                    )
                    if remaining is not None and remaining == 0:
                        await self._handle_rate_limit(response)

                if response.status_code == 429:
                    await self._handle_rate_limit(response)

                if response.status_code in self.RETRYABLE_STATUS_CODES:
                    if attempt < self.max_retries:
                        delay = self._calculate_backoff(attempt)
                        logger.warning(
                            "Retryable error from GitHub API",
                            extra={
                                "status_code": response.status_code,
                                "attempt": attempt + 1,
                                "max_retries": self.max_retries,
                                "delay": delay,
                                "path": path,
                            },
                        )
                        await asyncio.sleep(delay)
                        continue

                if response.status_code == 404:
                    logger.debug(
                        "GitHub resource not found",
                        extra={"path": path, "method": method},
                    )
                    raise NotFoundError(
                        message=f"GitHub resource not found: {path}",
                        status_code=404,
                        response_body=response.text,
                        request_url=str(response.url),
                    )

                if response.status_code >= 400:
                    error_body = response.text
                    logger.error(
                        "GitHub API error",
                        extra={
                            "status_code": response.status_code,
                            "path": path,
                            "method": method,
                            "response_body": error_body[:500],
                        },
                    )
                    raise GitHubAPIError(
                        message=f"GitHub API error: {response.status_code}",
                        status_code=response.status_code,
                        response_body=error_body,
                        request_url=str(response.url),
                    )

                return response

            except GitHubAPIError:
                raise
            except httpx.TimeoutException as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Request timeout, retrying",
                        extra={
                            "attempt": attempt + 1,
                            "max_retries": self.max_retries,
                            "delay": delay,
                            "path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue
            except httpx.RequestError as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Request error, retrying",
                        extra={
                            "error": str(e),
                            "attempt": attempt + 1,
                            "max_retries": self.max_retries,
                            "delay": delay,
                            "path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue

        logger.error(
            "GitHub API request failed after all retries",
            extra={
                "path": path,
                "method": method,
                "max_retries": self.max_retries,
                "last_error": str(last_exception),
            },
        )
        raise GitHubAPIError(
            message=f"Request failed after {self.max_retries} retries: {last_exception}",
            request_url=f"{self.base_url}{path}",
        )

    # ------------------------------------------------------------------
    # Repository contents
    # ------------------------------------------------------------------

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        """Get repository metadata (including ``default_branch``).

        Raises:
            GitHubAPIError: If the request fails.
        """
        response = await self._request("GET", f"/repos/{owner}/{repo}")
        return response.json()

    async def get_content(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: Optional[str] = None,
    ) -> Any:
        """Get the contents API entry for a file.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            path: File path inside the repository.
            ref: Branch, tag or commit to read from. Defaults to the
                 repository's default branch when omitted.

        Returns:
            The contents API response: a dict for a file, a list for a
            directory.

        Raises:
            NotFoundError: If the file does not exist at ``ref``.
            GitHubAPIError: If the request fails.
        """
        params = {"ref": ref} if ref else None
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/contents/{path}",
            params=params,
        )
        return response.json()

    async def get_file_text(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: Optional[str] = None,
    ) -> Optional[str]:
        """Read a file as UTF-8 text, or None if it does not exist.

        Raises:
            GitHubAPIError: For any failure other than 404.
            UnicodeDecodeError: If the file is not valid UTF-8.
        """
        try:
            data = await self.get_content(owner, repo, path, ref=ref)
        except NotFoundError:
            return None

        if not isinstance(data, dict):
            raise GitHubAPIError(
                message=f"Expected a file at {path}, got a directory listing",
                request_url=f"{self.base_url}/repos/{owner}/{repo}/contents/{path}",
            )

        content = data.get("content") or ""
        return base64.b64decode(content).decode("utf-8")

    async def file_exists(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: Optional[str] = None,
    ) -> bool:
        """Check whether a file exists at ``ref``.

        Raises:
            GitHubAPIError: For any failure other than 404.
        """
        try:
            await self.get_content(owner, repo, path, ref=ref)
        except NotFoundError:
            return False
        return True

    async def get_branch(
        self,
        owner: str,
        repo: str,
        branch: str,
    ) -> BranchHead:
        """Resolve a branch to its head commit and tree.

        Raises:
            GitHubAPIError: If the request fails.
        """
        response = await self._request(
            "GET", f"/repos/{owner}/{repo}/branches/{branch}"
        )
        return BranchHead.from_github_response(response.json())

    # ------------------------------------------------------------------
    # Git data
    # ------------------------------------------------------------------

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        """Create a UTF-8 blob and return its SHA."""
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/blobs",
            json_data={"content": content, "encoding": "utf-8"},
        )
        return response.json()["sha"]

    async def create_tree(
        self,
        owner: str,
        repo: str,
        base_tree: str,
        entries: List[Dict[str, str]],
    ) -> str:
        """Create a tree layered onto ``base_tree`` and return its SHA."""
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/trees",
            json_data={"base_tree": base_tree, "tree": entries},
        )
        return response.json()["sha"]

    async def create_commit(
        self,
        owner: str,
        repo: str,
        message: str,
        tree: str,
        parents: List[str],
    ) -> str:
        """Create a commit object and return its SHA."""
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/commits",
            json_data={"message": message, "tree": tree, "parents": parents},
        )
        return response.json()["sha"]

    async def update_ref(
        self,
        owner: str,
        repo: str,
        ref: str,
        sha: str,
    ) -> Dict[str, Any]:
        """Move a reference (e.g. ``heads/main``) to ``sha``.

        The update is a fast-forward; GitHub rejects it with 422 if the
        new commit does not descend from the current ref target.
        """
        response = await self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/{ref}",
            json_data={"sha": sha, "force": False},
        )
        return response.json()

    # ------------------------------------------------------------------
    # Actions secrets
    # ------------------------------------------------------------------

    async def get_actions_public_key(
        self,
        owner: str,
        repo: str,
    ) -> RepositoryPublicKey:
        """Fetch the repository's current Actions secret encryption key."""
        response = await self._request(
            "GET", f"/repos/{owner}/{repo}/actions/secrets/public-key"
        )
        return RepositoryPublicKey.from_github_response(response.json())

    async def put_actions_secret(
        self,
        owner: str,
        repo: str,
        secret_name: str,
        encrypted_value: str,
        key_id: str,
    ) -> None:
        """Create or update an encrypted Actions secret.

        Raises:
            GitHubAPIError: If the request fails.
        """
        await self._request(
            "PUT",
            f"/repos/{owner}/{repo}/actions/secrets/{secret_name}",
            json_data={"encrypted_value": encrypted_value, "key_id": key_id},
        )

    async def health_check(self) -> bool:
        """Check if the GitHub API is accessible.

        Returns:
            True if healthy, False otherwise.
        """
        try:
            response = await self.client.get("/rate_limit")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(
                "GitHub API health check failed",
                extra={"error": str(e)},
            )
            return False
