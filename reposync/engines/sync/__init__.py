"""Sync engine — replay pushed commits onto the other repositories of a sync group."""

from reposync.engines.sync.models import (
    ChangedFile,
    CommitActor,
    CommitInfo,
    RepositoryConfig,
    SyncServiceConfig,
    TargetState,
)
from reposync.engines.sync.service import RepoSyncService

__all__ = [
    "ChangedFile",
    "CommitActor",
    "CommitInfo",
    "RepoSyncService",
    "RepositoryConfig",
    "SyncServiceConfig",
    "TargetState",
]
