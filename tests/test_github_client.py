"""Tests for the GitHub client (mocked responses and MockTransport, no network)."""

from __future__ import annotations

import base64
import json
import time
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from reposync.core.github import GitHubClient, _decode_blob
from reposync.exceptions import RateLimitError, UpstreamApiError


def _client_with(handler) -> GitHubClient:
    return GitHubClient(token="tok", transport=httpx.MockTransport(handler))


# ── TestHelpers ───────────────────────────────────────────────────────────


class TestHelpers:
    def test_parse_next_link(self):
        header = (
            '<https://api.github.com/repos/a/b/commits/x?page=2>; rel="next", '
            '<https://api.github.com/repos/a/b/commits/x?page=5>; rel="last"'
        )
        url = "https://api.github.com/repos/a/b/commits/x?page=2"
        assert GitHubClient._parse_next_link(header) == url

    def test_parse_next_link_empty(self):
        assert GitHubClient._parse_next_link("") is None

    def test_decode_base64_blob_with_newlines(self):
        encoded = base64.b64encode(b"hello world " * 10).decode()
        wrapped = "\n".join(encoded[i : i + 20] for i in range(0, len(encoded), 20))
        assert _decode_blob({"content": wrapped, "encoding": "base64"}) == b"hello world " * 10

    def test_decode_utf8_blob(self):
        assert _decode_blob({"content": "plain", "encoding": "utf-8"}) == b"plain"

    def test_authorization_header_from_env(self):
        with patch.dict("os.environ", {"GITHUB_TOKEN": "env-token"}):
            client = GitHubClient()
        assert client._client.headers["Authorization"] == "token env-token"


# ── TestRetry ─────────────────────────────────────────────────────────────


class TestRetry:
    @pytest.mark.anyio
    async def test_rate_limit_sleep(self):
        """When remaining=0, _check_rate_limit should sleep."""
        client = GitHubClient.__new__(GitHubClient)
        response = MagicMock()
        response.headers = {
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(time.time()) + 2),
        }
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await client._check_rate_limit(response)
            mock_sleep.assert_called_once()
            assert mock_sleep.call_args[0][0] >= 1

    @pytest.mark.anyio
    async def test_retry_on_server_error(self):
        client = GitHubClient.__new__(GitHubClient)
        client._client = AsyncMock()

        error_resp = MagicMock(spec=httpx.Response)
        error_resp.status_code = 502

        ok_resp = MagicMock(spec=httpx.Response)
        ok_resp.status_code = 200

        client._client.get = AsyncMock(side_effect=[error_resp, ok_resp])

        with patch("asyncio.sleep", new_callable=AsyncMock):
            result = await client._request_with_retry("/test")
        assert result.status_code == 200
        assert client._client.get.call_count == 2

    @pytest.mark.anyio
    async def test_retry_exhausted(self):
        client = GitHubClient.__new__(GitHubClient)
        client._client = AsyncMock()

        error_resp = MagicMock(spec=httpx.Response)
        error_resp.status_code = 503
        client._client.get = AsyncMock(return_value=error_resp)

        with patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(UpstreamApiError) as exc_info:
                await client._request_with_retry("/test")
        assert exc_info.value.status_code == 503
        assert client._client.get.call_count == 3

    @pytest.mark.anyio
    async def test_retry_on_timeout(self):
        client = GitHubClient.__new__(GitHubClient)
        client._client = AsyncMock()

        ok_resp = MagicMock(spec=httpx.Response)
        ok_resp.status_code = 200
        client._client.get = AsyncMock(side_effect=[httpx.ReadTimeout("timeout"), ok_resp])

        with patch("asyncio.sleep", new_callable=AsyncMock):
            result = await client._request_with_retry("/test")
        assert result.status_code == 200

    @pytest.mark.anyio
    async def test_403_rate_limit_exhausted(self):
        client = GitHubClient.__new__(GitHubClient)
        client._client = AsyncMock()

        rate_limited_resp = MagicMock(spec=httpx.Response)
        rate_limited_resp.status_code = 403
        rate_limited_resp.headers = {"X-RateLimit-Remaining": "0", "Retry-After": "60"}
        client._client.get = AsyncMock(return_value=rate_limited_resp)

        with patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(RateLimitError):
                await client._request_with_retry("/test")
        assert client._client.get.call_count == 3

    @pytest.mark.anyio
    async def test_writes_are_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(502, json={"message": "Bad Gateway"})

        client = _client_with(handler)
        with pytest.raises(UpstreamApiError) as exc_info:
            await client.create_ref("o", "r", "refs/heads/x", "sha")
        await client.close()
        assert len(calls) == 1
        assert exc_info.value.status_code == 502
        assert exc_info.value.method == "POST"


# ── TestEndpoints ─────────────────────────────────────────────────────────


class TestEndpoints:
    @pytest.mark.anyio
    async def test_get_ref(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/o/r/git/ref/heads/main"
            assert request.headers["Authorization"] == "token tok"
            return httpx.Response(200, json={"object": {"sha": "abc"}})

        async with _client_with(handler) as client:
            data = await client.get_ref("o", "r", "heads/main")
        assert data["object"]["sha"] == "abc"

    @pytest.mark.anyio
    async def test_get_commit_merges_file_pages(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json={"sha": "c1", "files": [{"filename": "b"}]})
            return httpx.Response(
                200,
                json={"sha": "c1", "files": [{"filename": "a"}]},
                headers={"Link": '<https://api.github.com/repos/o/r/commits/c1?page=2>; rel="next"'},
            )

        async with _client_with(handler) as client:
            data = await client.get_commit("o", "r", "c1")
        assert [f["filename"] for f in data["files"]] == ["a", "b"]

    @pytest.mark.anyio
    async def test_get_blob_decodes(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/o/r/git/blobs/s1"
            return httpx.Response(
                200, json={"content": base64.b64encode(b"\x00\x01bin").decode(), "encoding": "base64"}
            )

        async with _client_with(handler) as client:
            assert await client.get_blob("o", "r", "s1") == b"\x00\x01bin"

    @pytest.mark.anyio
    async def test_put_contents_encodes_and_passes_sha(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.raw_path.decode()
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"content": {"sha": "new"}})

        async with _client_with(handler) as client:
            await client.create_or_update_file_contents(
                "o", "r", "dir/my file.txt", "msg", b"data", "sync-1", sha="old"
            )
        assert seen["method"] == "PUT"
        assert seen["path"] == "/repos/o/r/contents/dir/my%20file.txt"
        assert seen["body"] == {
            "message": "msg",
            "content": base64.b64encode(b"data").decode(),
            "branch": "sync-1",
            "sha": "old",
        }

    @pytest.mark.anyio
    async def test_delete_file_sends_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"commit": {}})

        async with _client_with(handler) as client:
            await client.delete_file("o", "r", "a.txt", "rm", "sha1", "sync-1")
        assert seen["method"] == "DELETE"
        assert seen["body"] == {"message": "rm", "sha": "sha1", "branch": "sync-1"}

    @pytest.mark.anyio
    async def test_get_file_sha_missing_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["ref"] == "sync-1"
            return httpx.Response(404, json={"message": "Not Found"})

        async with _client_with(handler) as client:
            assert await client.get_file_sha("o", "r", "a.txt", ref="sync-1") is None

    @pytest.mark.anyio
    async def test_get_content_missing_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Not Found"})

        async with _client_with(handler) as client:
            with pytest.raises(UpstreamApiError) as exc_info:
                await client.get_content("o", "r", "a.txt", ref="sync-1")
        assert exc_info.value.status_code == 404
        assert "Not Found" in str(exc_info.value)

    @pytest.mark.anyio
    async def test_pull_and_reviewers(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append((request.method, request.url.path, json.loads(request.content)))
            if request.url.path.endswith("/pulls"):
                return httpx.Response(201, json={"number": 12, "html_url": "https://x/12"})
            return httpx.Response(201, json={})

        async with _client_with(handler) as client:
            pull = await client.create_pull("o", "r", head="sync-1", base="main", title="t", body="b")
            await client.request_reviewers("o", "r", pull["number"], ["o"])

        assert requests == [
            ("POST", "/repos/o/r/pulls", {"head": "sync-1", "base": "main", "title": "t", "body": "b"}),
            ("POST", "/repos/o/r/pulls/12/requested_reviewers", {"reviewers": ["o"]}),
        ]
