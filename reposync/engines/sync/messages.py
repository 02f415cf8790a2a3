"""Commit messages and pull request text for sync branches."""

from __future__ import annotations

from collections.abc import Sequence

from reposync.engines.sync.models import CommitInfo, RepositoryConfig

_MAX_BODY_COMMITS = 50


def file_commit_message(
    action: str, path: str, source_repository: str, commit: CommitInfo
) -> str:
    """Message for a single file write/delete on the sync branch."""
    return f"{action} {path} from {source_repository}@{commit.id}"


def pull_request_title(source_repository: str) -> str:
    return f"Sync models directory with {source_repository}"


def pull_request_body(
    source_repository: str,
    source: RepositoryConfig,
    target: RepositoryConfig,
    commits: Sequence[CommitInfo],
) -> str:
    """Markdown summary listing the commits replayed onto the sync branch."""
    lines = [
        f"This pull request syncs `{target.path or '/'}` with "
        f"`{source.path or '/'}` from {source_repository}.",
        "",
    ]
    if not commits:
        lines.append(f"No distinct commits were pushed; the branch matches `{target.branch}`.")
        return "\n".join(lines)

    lines.append(f"Synced commits ({len(commits)}):")
    lines.append("")
    for commit in commits[:_MAX_BODY_COMMITS]:
        ref = f"[`{commit.short_id}`]({commit.url})" if commit.url else f"`{commit.short_id}`"
        lines.append(f"- {ref} {commit.title}")
    if len(commits) > _MAX_BODY_COMMITS:
        lines.append(f"- … and {len(commits) - _MAX_BODY_COMMITS} more")
    return "\n".join(lines)
