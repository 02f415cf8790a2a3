"""Parse GitHub ``push`` webhook payloads into sync engine input."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from reposync.engines.sync.models import CommitActor, CommitInfo
from reposync.exceptions import EventPayloadError


@dataclass(frozen=True)
class PushEvent:
    source_repository: str
    commits: tuple[CommitInfo, ...]
    ref: str | None = None

    @property
    def branch(self) -> str | None:
        if self.ref and self.ref.startswith("refs/heads/"):
            return self.ref[len("refs/heads/") :]
        return None


def parse_push_event(payload: Any) -> PushEvent:
    """Build a :class:`PushEvent` from a ``push`` webhook body.

    ``repository.full_name`` names the source; ``commits[]`` carries the
    ``distinct`` flags exactly as GitHub computed them.
    """
    if not isinstance(payload, dict):
        raise EventPayloadError("push payload must be a JSON object")

    repository = payload.get("repository")
    if not isinstance(repository, dict):
        raise EventPayloadError("push payload has no 'repository' object")

    full_name = repository.get("full_name")
    if not full_name:
        owner = repository.get("owner") or {}
        owner_login = owner.get("login") or owner.get("name")
        if owner_login and repository.get("name"):
            full_name = f"{owner_login}/{repository['name']}"
    if not full_name:
        raise EventPayloadError("push payload repository has no 'full_name'")

    raw_commits = payload.get("commits")
    if raw_commits is None:
        raw_commits = []
    if not isinstance(raw_commits, list):
        raise EventPayloadError("push payload 'commits' must be a list")

    return PushEvent(
        source_repository=full_name,
        commits=tuple(parse_commits(raw_commits)),
        ref=payload.get("ref"),
    )


def parse_commits(raw_commits: list[Any]) -> list[CommitInfo]:
    """Convert push-event commit objects, in order."""
    commits: list[CommitInfo] = []
    for index, item in enumerate(raw_commits):
        if not isinstance(item, dict) or not item.get("id"):
            raise EventPayloadError(f"commit #{index} has no 'id'")
        commits.append(
            CommitInfo(
                id=item["id"],
                message=item.get("message") or "",
                timestamp=item.get("timestamp"),
                author=_actor(item.get("author")),
                committer=_actor(item.get("committer")),
                tree_id=item.get("tree_id"),
                distinct=item.get("distinct") is True,
                url=item.get("url"),
            )
        )
    return commits


def _actor(data: Any) -> CommitActor | None:
    if not isinstance(data, dict):
        return None
    return CommitActor(
        name=data.get("name"),
        email=data.get("email"),
        username=data.get("username"),
    )
