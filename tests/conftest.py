"""Shared pytest fixtures for reposync tests (no network access)."""

from unittest.mock import AsyncMock

import pytest

from reposync.core.github import GitHubClient
from reposync.engines.sync.models import RepositoryConfig, SyncServiceConfig


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def source_repo():
    return RepositoryConfig(owner="A", repo="a", path="models/", branch="main")


@pytest.fixture
def target_repo():
    return RepositoryConfig(owner="B", repo="b", path="src/models/", branch="develop")


@pytest.fixture
def sync_config(source_repo, target_repo):
    return SyncServiceConfig(
        repositories=(source_repo, target_repo),
        sync_branch_prefix="sync",
        access_token="ghp_test_token",
    )


@pytest.fixture
def github():
    """A GitHubClient double with happy-path responses for every call."""
    client = AsyncMock(spec=GitHubClient)
    client.get_ref.return_value = {"object": {"sha": "base-sha"}}
    client.create_ref.return_value = {}
    client.get_commit.return_value = {"files": []}
    client.get_blob.return_value = b"model weights"
    client.get_file_sha.return_value = None
    client.get_content.return_value = {"sha": "current-sha"}
    client.create_or_update_file_contents.return_value = {}
    client.delete_file.return_value = {}
    client.create_pull.return_value = {"html_url": "https://github.com/B/b/pull/7", "number": 7}
    client.request_reviewers.return_value = {}
    return client
