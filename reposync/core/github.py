"""Async GitHub API client with rate-limit handling, retries, and git-data writes."""

from __future__ import annotations

import asyncio
import base64
import os
import re
import time
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from reposync.exceptions import RateLimitError, UpstreamApiError

log = structlog.get_logger("reposync.github")

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
_MAX_COMMIT_FILE_PAGES = 10


class GitHubClient:
    """Thin async wrapper around the GitHub REST API.

    Reads are retried with exponential backoff; writes (ref creation,
    contents PUT/DELETE, pull requests) are sent exactly once so a
    half-applied request is never repeated.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str = "https://api.github.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_token = token or os.environ.get("GITHUB_TOKEN")
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if resolved_token:
            headers["Authorization"] = f"token {resolved_token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=30.0,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── git data ───────────────────────────────────────────────────────────

    async def get_ref(self, owner: str, repo: str, ref: str) -> dict[str, Any]:
        """GET /repos/{owner}/{repo}/git/ref/{ref} — *ref* like ``heads/main``."""
        return await self.get(f"/repos/{owner}/{repo}/git/ref/{ref}")

    async def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> dict[str, Any]:
        """POST /repos/{owner}/{repo}/git/refs — *ref* must be fully qualified."""
        return await self._send(
            "POST", f"/repos/{owner}/{repo}/git/refs", {"ref": ref, "sha": sha}
        )

    async def get_blob(self, owner: str, repo: str, file_sha: str) -> bytes:
        """Fetch a blob and return its raw bytes."""
        data = await self.get(f"/repos/{owner}/{repo}/git/blobs/{file_sha}")
        return _decode_blob(data)

    # ── repository contents ────────────────────────────────────────────────

    async def get_commit(self, owner: str, repo: str, ref: str) -> dict[str, Any]:
        """GET /repos/{owner}/{repo}/commits/{ref}, with every page of ``files``.

        GitHub caps the ``files`` array per page; additional pages are
        announced through the ``Link`` header and merged here.
        """
        path = f"/repos/{owner}/{repo}/commits/{ref}"
        response = await self._request_with_retry(path)
        await self._check_rate_limit(response)
        data = response.json()
        files = list(data.get("files") or [])

        url = self._parse_next_link(response.headers.get("Link", ""))
        pages = 1
        while url and pages < _MAX_COMMIT_FILE_PAGES:
            response = await self._request_with_retry(url)
            await self._check_rate_limit(response)
            files.extend(response.json().get("files") or [])
            url = self._parse_next_link(response.headers.get("Link", ""))
            pages += 1

        data["files"] = files
        return data

    async def get_content(
        self, owner: str, repo: str, path: str, ref: str | None = None
    ) -> Any:
        """GET /repos/{owner}/{repo}/contents/{path}.

        A file yields its metadata (incl. ``sha``); a directory yields a list.
        """
        params = {"ref": ref} if ref else None
        return await self.get(f"/repos/{owner}/{repo}/contents/{_quote_path(path)}", params)

    async def get_file_sha(
        self, owner: str, repo: str, path: str, ref: str | None = None
    ) -> str | None:
        """Return the blob sha of *path* at *ref*, or ``None`` if it does not exist."""
        try:
            data = await self.get_content(owner, repo, path, ref)
        except UpstreamApiError as exc:
            if exc.status_code == 404:
                return None
            raise
        if isinstance(data, list):
            # Directory listing, no single blob to overwrite.
            raise UpstreamApiError(
                f"{path} is a directory in {owner}/{repo}",
                method="GET",
                path=path,
                status_code=422,
            )
        return data.get("sha")

    async def create_or_update_file_contents(
        self,
        owner: str,
        repo: str,
        path: str,
        message: str,
        content: bytes,
        branch: str,
        sha: str | None = None,
    ) -> dict[str, Any]:
        """PUT /repos/{owner}/{repo}/contents/{path}.

        *content* is raw bytes; it is base64-encoded for the API.  *sha* is
        required by GitHub when *path* already exists on *branch*.
        """
        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha
        return await self._send(
            "PUT", f"/repos/{owner}/{repo}/contents/{_quote_path(path)}", payload
        )

    async def delete_file(
        self, owner: str, repo: str, path: str, message: str, sha: str, branch: str
    ) -> dict[str, Any]:
        """DELETE /repos/{owner}/{repo}/contents/{path}."""
        return await self._send(
            "DELETE",
            f"/repos/{owner}/{repo}/contents/{_quote_path(path)}",
            {"message": message, "sha": sha, "branch": branch},
        )

    # ── pull requests ──────────────────────────────────────────────────────

    async def create_pull(
        self, owner: str, repo: str, head: str, base: str, title: str, body: str
    ) -> dict[str, Any]:
        """POST /repos/{owner}/{repo}/pulls — returns ``html_url`` and ``number``."""
        return await self._send(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            {"head": head, "base": base, "title": title, "body": body},
        )

    async def request_reviewers(
        self, owner: str, repo: str, pull_number: int, reviewers: list[str]
    ) -> dict[str, Any]:
        return await self._send(
            "POST",
            f"/repos/{owner}/{repo}/pulls/{pull_number}/requested_reviewers",
            {"reviewers": reviewers},
        )

    # ── generic ────────────────────────────────────────────────────────────

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Single-resource GET, returns parsed JSON."""
        response = await self._request_with_retry(path, params)
        await self._check_rate_limit(response)
        return response.json()

    # ── internal ───────────────────────────────────────────────────────────

    async def _send(self, method: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """One-shot write request; any failure is raised as :class:`UpstreamApiError`."""
        log.debug("github.request", method=method, path=path)
        try:
            resp = await self._client.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamApiError(
                f"{method} {path} failed: {type(exc).__name__}: {exc}",
                method=method,
                path=path,
            ) from exc

        self._raise_for_status(resp, method, path)
        await self._check_rate_limit(resp)
        if not resp.content:
            return {}
        return resp.json()

    async def _request_with_retry(
        self,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """GET with exponential backoff on 5xx, 403 rate-limit, and timeout errors."""
        last_exc: UpstreamApiError | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.get(url, params=params)

                # 403 with rate-limit headers → sleep and retry
                if resp.status_code == 403 and self._is_rate_limited(resp):
                    wait = self._get_rate_limit_wait(resp)
                    log.warning(
                        "github.rate_limit",
                        url=url,
                        wait_seconds=wait,
                        attempt=attempt + 1,
                        max_retries=_MAX_RETRIES,
                    )
                    await asyncio.sleep(wait)
                    last_exc = RateLimitError(wait, path=url)
                    continue

                if resp.status_code < 500:
                    self._raise_for_status(resp, "GET", url)
                    return resp

                # 5xx, retry
                log.warning(
                    "github.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = UpstreamApiError(
                    f"GET {url} returned {resp.status_code}",
                    method="GET",
                    path=url,
                    status_code=resp.status_code,
                )
            except httpx.TimeoutException as exc:
                log.warning(
                    "github.timeout",
                    url=url,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = UpstreamApiError(f"GET {url} timed out: {exc}", method="GET", path=url)
            except httpx.TransportError as exc:
                raise UpstreamApiError(
                    f"GET {url} failed: {type(exc).__name__}: {exc}", method="GET", path=url
                ) from exc

            if attempt < _MAX_RETRIES - 1:
                delay = _RETRY_BASE_DELAY * (2**attempt)
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    @staticmethod
    def _raise_for_status(resp: httpx.Response, method: str, path: str) -> None:
        if resp.status_code < 400:
            return
        detail = ""
        try:
            body = resp.json()
            if isinstance(body, dict):
                detail = body.get("message", "")
        except ValueError:
            detail = resp.text[:200]
        message = f"{method} {path} returned {resp.status_code}"
        if detail:
            message = f"{message}: {detail}"
        raise UpstreamApiError(message, method=method, path=path, status_code=resp.status_code)

    async def _check_rate_limit(self, response: httpx.Response) -> None:
        """Sleep until rate-limit resets if remaining == 0."""
        remaining = self._parse_header_int(response.headers.get("X-RateLimit-Remaining"))
        if remaining is not None and remaining == 0:
            wait = self._get_rate_limit_wait(response)
            log.warning("github.rate_limit_wait", wait_seconds=wait)
            await asyncio.sleep(wait)

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        """Check if a 403 response is due to rate limiting."""
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is not None:
            try:
                return int(remaining) == 0
            except (ValueError, TypeError):
                pass
        # GitHub also uses Retry-After header for abuse rate limits
        return "Retry-After" in response.headers

    @staticmethod
    def _get_rate_limit_wait(response: httpx.Response) -> int:
        """Calculate how long to wait based on rate-limit headers."""
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return max(int(retry_after), 1)
            except (ValueError, TypeError):
                pass
        reset_ts = response.headers.get("X-RateLimit-Reset")
        if reset_ts is not None:
            try:
                return max(int(reset_ts) - int(time.time()), 1)
            except (ValueError, TypeError):
                pass
        return 60  # conservative fallback

    @staticmethod
    def _parse_header_int(value: str | None) -> int | None:
        if value is None:
            return None
        try:
            return int(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _parse_next_link(link_header: str) -> str | None:
        """Extract the ``next`` URL from a GitHub ``Link`` header."""
        match = _NEXT_LINK_RE.search(link_header)
        return match.group(1) if match else None


def _quote_path(path: str) -> str:
    return quote(path.lstrip("/"), safe="/")


def _decode_blob(data: dict[str, Any]) -> bytes:
    """Decode a ``git/blobs`` payload into raw bytes."""
    content = data.get("content") or ""
    if data.get("encoding", "base64") == "base64":
        return base64.b64decode(content)
    return content.encode("utf-8")
