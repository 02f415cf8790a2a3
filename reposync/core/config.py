"""Sync group configuration — JSON file + environment variables."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from reposync.engines.sync.models import RepositoryConfig, SyncServiceConfig
from reposync.engines.sync.paths import normalize_prefix
from reposync.exceptions import ConfigError

DEFAULT_BRANCH_PREFIX = "sync"


class RepositorySchema(BaseModel):
    owner: str
    repo: str
    path: str = ""
    branch: str = "main"

    @field_validator("owner", "repo", "branch", mode="before")
    @classmethod
    def _strip_whitespace(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @field_validator("owner", "repo")
    @classmethod
    def _single_segment(cls, v: str) -> str:
        if not v or "/" in v:
            raise ValueError("must be a non-empty name without '/'")
        return v


class SyncConfigSchema(BaseModel):
    """On-disk layout; camelCase keys are accepted for the two scalar settings."""

    model_config = ConfigDict(populate_by_name=True)

    repositories: list[RepositorySchema] = Field(min_length=1)
    sync_branch_prefix: str | None = Field(default=None, alias="syncBranchPrefix")
    access_token: str | None = Field(default=None, alias="accessToken", repr=False)


def config_from_dict(
    data: Mapping[str, Any], env: Mapping[str, str] | None = None
) -> SyncServiceConfig:
    """Validate *data* and resolve the token / branch prefix against *env*.

    Token precedence: ``REPOSYNC_ACCESS_TOKEN`` → file ``access_token`` →
    ``GITHUB_TOKEN``.  Branch prefix: file → ``REPOSYNC_BRANCH_PREFIX`` →
    ``"sync"``.
    """
    env = os.environ if env is None else env
    try:
        schema = SyncConfigSchema.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid sync configuration: {exc}") from exc

    token = env.get("REPOSYNC_ACCESS_TOKEN") or schema.access_token or env.get("GITHUB_TOKEN")
    if not token:
        raise ConfigError(
            "no access token: set access_token in the config, REPOSYNC_ACCESS_TOKEN or GITHUB_TOKEN"
        )

    prefix = schema.sync_branch_prefix or env.get("REPOSYNC_BRANCH_PREFIX") or DEFAULT_BRANCH_PREFIX

    return SyncServiceConfig(
        repositories=tuple(
            RepositoryConfig(
                owner=r.owner,
                repo=r.repo,
                path=normalize_prefix(r.path),
                branch=r.branch,
            )
            for r in schema.repositories
        ),
        sync_branch_prefix=prefix,
        access_token=token,
    )


def load_config(path: str | Path, env: Mapping[str, str] | None = None) -> SyncServiceConfig:
    """Load a sync group from a JSON file."""
    config_path = Path(path)
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {config_path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"config file {config_path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {config_path} must contain a JSON object")
    return config_from_dict(data, env)


def max_concurrency_from_env(env: Mapping[str, str] | None = None) -> int:
    env = os.environ if env is None else env
    raw = env.get("REPOSYNC_MAX_CONCURRENCY", "1")
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"REPOSYNC_MAX_CONCURRENCY must be an integer, got {raw!r}") from exc
    return max(value, 1)
