"""Data models for the sync engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Literal

FileStatus = Literal["added", "modified", "removed", "renamed", "copied", "changed", "unchanged"]


@dataclass(frozen=True)
class RepositoryConfig:
    """One member of the sync group.

    *path* is the subdirectory whose contents are kept in sync; it is
    treated as a directory prefix (see :func:`~reposync.engines.sync.paths.normalize_prefix`).
    *branch* is the base branch pull requests are opened against.
    """

    owner: str
    repo: str
    path: str
    branch: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class SyncServiceConfig:
    """Static configuration owned by a :class:`RepoSyncService`."""

    repositories: tuple[RepositoryConfig, ...]
    sync_branch_prefix: str
    access_token: str = field(repr=False)


@dataclass(frozen=True)
class CommitActor:
    name: str | None = None
    email: str | None = None
    username: str | None = None


@dataclass(frozen=True)
class CommitInfo:
    """A commit as reported by a ``push`` event.

    ``distinct`` comes from the event source and is never recomputed:
    only distinct commits are replayed.
    """

    id: str
    message: str = ""
    timestamp: str | None = None
    author: CommitActor | None = None
    committer: CommitActor | None = None
    tree_id: str | None = None
    distinct: bool = False
    url: str | None = None

    @property
    def short_id(self) -> str:
        return self.id[:7]

    @property
    def title(self) -> str:
        return self.message.split("\n", 1)[0]


@dataclass(frozen=True)
class ChangedFile:
    """A file touched by a commit, as listed in ``GET /commits/{ref}``."""

    filename: str
    status: FileStatus
    sha: str | None = None
    previous_filename: str | None = None

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> ChangedFile:
        return cls(
            filename=item["filename"],
            status=item.get("status", "modified"),
            sha=item.get("sha"),
            previous_filename=item.get("previous_filename") or None,
        )


class TargetState(str, enum.Enum):
    """Progress of one target repository through a sync run."""

    IDLE = "idle"
    BRANCH_CREATED = "branch_created"
    FILES_REPLAYED = "files_replayed"
    PULL_REQUEST_OPENED = "pull_request_opened"
    REVIEW_REQUESTED = "review_requested"
