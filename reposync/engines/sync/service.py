"""RepoSyncService — replay a push onto every other repository in the sync group."""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Sequence

import structlog

from reposync.core.github import GitHubClient
from reposync.engines.sync.messages import (
    file_commit_message,
    pull_request_body,
    pull_request_title,
)
from reposync.engines.sync.models import (
    ChangedFile,
    CommitInfo,
    RepositoryConfig,
    SyncServiceConfig,
    TargetState,
)
from reposync.engines.sync.paths import in_scope, map_path, normalize_prefix
from reposync.exceptions import InvalidFormatError, UnconfiguredSourceError, UpstreamApiError

log = structlog.get_logger("reposync.engine")

_SOURCE_RE = re.compile(r"^[^/]+/[^/]+$")

_WRITE_ACTIONS = {
    "added": "Add",
    "copied": "Add",
    "modified": "Update",
    "changed": "Update",
}


class _BranchNamer:
    """Hands out ``<prefix>-<epoch ms>`` names, strictly increasing within one run."""

    def __init__(self, prefix: str) -> None:
        self._prefix = prefix
        self._last_ms = 0

    def next(self) -> str:
        now_ms = time.time_ns() // 1_000_000
        if now_ms <= self._last_ms:
            now_ms = self._last_ms + 1
        self._last_ms = now_ms
        return f"{self._prefix}-{now_ms}"


class RepoSyncService:
    """Synchronize a subdirectory across a group of GitHub repositories.

    For each push to one member of the group, every other member receives a
    fresh branch carrying the replayed file changes and a pull request
    against its configured base branch, with the target owner requested as
    reviewer.
    """

    def __init__(
        self,
        config: SyncServiceConfig,
        *,
        client: GitHubClient | None = None,
        max_concurrency: int = 1,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client if client is not None else GitHubClient(token=config.access_token)
        self._max_concurrency = max(1, max_concurrency)

        self._by_name: dict[str, RepositoryConfig] = {}
        for repo_cfg in config.repositories:
            if repo_cfg.full_name in self._by_name:
                log.warning("sync.duplicate_repository", repository=repo_cfg.full_name)
            self._by_name[repo_cfg.full_name] = repo_cfg

    def get_config(self) -> SyncServiceConfig:
        return self._config

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close the GitHub client if this service created it."""
        if self._owns_client:
            await self._client.close()

    async def __aenter__(self) -> RepoSyncService:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def execute(self, source_repository: str, commits: Sequence[CommitInfo]) -> None:
        """Replay the distinct *commits* of *source_repository* onto every target.

        Precondition: ``commit.distinct`` is taken as reported by the push
        event; commits not flagged distinct are skipped without any API call.

        Raises :class:`InvalidFormatError` or :class:`UnconfiguredSourceError`
        before any side effect.  Any GitHub failure aborts the run and
        propagates; branches and pull requests already created are kept.
        """
        source = self._resolve_source(source_repository)
        targets = [
            repo_cfg
            for repo_cfg in self._config.repositories
            if repo_cfg.full_name != source.full_name
        ]
        distinct_commits = [commit for commit in commits if commit.distinct is True]
        namer = _BranchNamer(self._config.sync_branch_prefix)

        log.info(
            "sync.started",
            source=source_repository,
            targets=[t.full_name for t in targets],
            commits=len(commits),
            distinct=len(distinct_commits),
        )

        if self._max_concurrency == 1 or len(targets) <= 1:
            for target in targets:
                await self._sync_target(source_repository, source, target, distinct_commits, namer)
        else:
            await self._sync_concurrently(
                source_repository, source, targets, distinct_commits, namer
            )

        log.info("sync.completed", source=source_repository, targets=len(targets))

    # ── internal ───────────────────────────────────────────────────────────

    def _resolve_source(self, source_repository: str) -> RepositoryConfig:
        if not _SOURCE_RE.match(source_repository):
            raise InvalidFormatError()
        source = self._by_name.get(source_repository)
        if source is None:
            raise UnconfiguredSourceError(source_repository)
        return source

    async def _sync_concurrently(
        self,
        source_repository: str,
        source: RepositoryConfig,
        targets: list[RepositoryConfig],
        commits: list[CommitInfo],
        namer: _BranchNamer,
    ) -> None:
        """Run targets under a semaphore; the first failure cancels the rest."""
        sem = asyncio.Semaphore(self._max_concurrency)

        async def _run_one(target: RepositoryConfig) -> None:
            async with sem:
                await self._sync_target(source_repository, source, target, commits, namer)

        tasks = [
            asyncio.create_task(_run_one(target), name=f"sync-{target.full_name}")
            for target in targets
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _sync_target(
        self,
        source_repository: str,
        source: RepositoryConfig,
        target: RepositoryConfig,
        commits: list[CommitInfo],
        namer: _BranchNamer,
    ) -> None:
        """Branch → replay files → pull request → review request, for one target."""
        state = TargetState.IDLE
        bound = log.bind(source=source_repository, target=target.full_name)
        try:
            ref = await self._client.get_ref(target.owner, target.repo, f"heads/{target.branch}")
            base_sha = ref["object"]["sha"]
            branch = namer.next()
            await self._client.create_ref(
                target.owner, target.repo, f"refs/heads/{branch}", base_sha
            )
            state = self._advance(bound, TargetState.BRANCH_CREATED, branch=branch)

            for commit in commits:
                await self._replay_commit(source_repository, source, target, commit, branch)
            state = self._advance(bound, TargetState.FILES_REPLAYED, commits=len(commits))

            pull = await self._client.create_pull(
                target.owner,
                target.repo,
                head=branch,
                base=target.branch,
                title=pull_request_title(source_repository),
                body=pull_request_body(source_repository, source, target, commits),
            )
            state = self._advance(
                bound,
                TargetState.PULL_REQUEST_OPENED,
                number=pull.get("number"),
                url=pull.get("html_url"),
            )

            await self._client.request_reviewers(
                target.owner, target.repo, pull["number"], [target.owner]
            )
            state = self._advance(bound, TargetState.REVIEW_REQUESTED, reviewer=target.owner)
        except Exception as exc:
            bound.error("sync.target_failed", state=state.value, error=str(exc))
            exc.add_note(f"while syncing {target.full_name} (last state: {state.value})")
            raise

    @staticmethod
    def _advance(
        bound: structlog.stdlib.BoundLogger, state: TargetState, **kw: object
    ) -> TargetState:
        bound.info("sync.target_state", state=state.value, **kw)
        return state

    async def _replay_commit(
        self,
        source_repository: str,
        source: RepositoryConfig,
        target: RepositoryConfig,
        commit: CommitInfo,
        branch: str,
    ) -> None:
        data = await self._client.get_commit(source.owner, source.repo, commit.id)
        source_prefix = normalize_prefix(source.path)
        target_prefix = normalize_prefix(target.path)

        for item in data.get("files") or []:
            changed = ChangedFile.from_api(item)
            if not in_scope(changed.filename, source_prefix):
                continue
            await self._replay_file(
                source_repository,
                source,
                target,
                commit,
                changed,
                map_path(changed.filename, source_prefix, target_prefix),
                branch,
                source_prefix,
                target_prefix,
            )

    async def _replay_file(
        self,
        source_repository: str,
        source: RepositoryConfig,
        target: RepositoryConfig,
        commit: CommitInfo,
        changed: ChangedFile,
        target_path: str,
        branch: str,
        source_prefix: str,
        target_prefix: str,
    ) -> None:
        """Apply one in-scope changed file to the sync branch of *target*.

        A rename deletes the mapped old path and writes the new one.  When
        the old path lies outside the source prefix it has no counterpart in
        the target, so only the write is issued and no delete is counted.
        """
        if changed.status == "removed":
            await self._delete(
                target,
                target_path,
                branch,
                file_commit_message("Remove", target_path, source_repository, commit),
            )
        elif changed.status == "renamed":
            previous = changed.previous_filename
            if previous and in_scope(previous, source_prefix):
                old_path = map_path(previous, source_prefix, target_prefix)
                await self._delete(
                    target,
                    old_path,
                    branch,
                    file_commit_message("Remove", old_path, source_repository, commit),
                )
            await self._write(
                source,
                target,
                changed,
                target_path,
                branch,
                file_commit_message("Add", target_path, source_repository, commit),
            )
        elif changed.status in _WRITE_ACTIONS:
            action = _WRITE_ACTIONS[changed.status]
            await self._write(
                source,
                target,
                changed,
                target_path,
                branch,
                file_commit_message(action, target_path, source_repository, commit),
            )
        else:
            log.debug(
                "sync.file_skipped",
                target=target.full_name,
                path=target_path,
                status=changed.status,
            )

    async def _write(
        self,
        source: RepositoryConfig,
        target: RepositoryConfig,
        changed: ChangedFile,
        target_path: str,
        branch: str,
        message: str,
    ) -> None:
        if not changed.sha:
            raise UpstreamApiError(
                f"{changed.filename} has no blob sha in {source.full_name}",
                method="GET",
                path=changed.filename,
            )
        content = await self._client.get_blob(source.owner, source.repo, changed.sha)
        existing_sha = await self._client.get_file_sha(
            target.owner, target.repo, target_path, ref=branch
        )
        await self._client.create_or_update_file_contents(
            target.owner,
            target.repo,
            target_path,
            message,
            content,
            branch,
            sha=existing_sha,
        )
        log.debug("sync.file_written", target=target.full_name, path=target_path, branch=branch)

    async def _delete(
        self,
        target: RepositoryConfig,
        target_path: str,
        branch: str,
        message: str,
    ) -> None:
        current = await self._client.get_content(target.owner, target.repo, target_path, ref=branch)
        sha = current.get("sha") if isinstance(current, dict) else None
        if not sha:
            raise UpstreamApiError(
                f"{target_path} is not a file in {target.full_name}",
                method="GET",
                path=target_path,
            )
        await self._client.delete_file(
            target.owner, target.repo, target_path, message, sha, branch
        )
        log.debug("sync.file_deleted", target=target.full_name, path=target_path, branch=branch)
