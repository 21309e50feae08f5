# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

Container names and credentials are looked up in environment variables
distinguished by the role of the store:

- plain (``STORAGE_CONTAINER``) for the normal primary store
- ``SOURCE_`` for the source store of a copy operation
- ``SECONDARY_`` for the secondary endpoint of a dual store

Secondary credentials that are not set fall back to the primary ones.
"""

from __future__ import annotations

import os
from datetime import datetime, UTC
from pathlib import Path
from typing import Iterable

from snapstore.config import (
    DEFAULT_MAX_PARALLEL_CHUNKS,
    DEFAULT_TEMP_DIR,
    MIN_CHUNK_SIZE,
    Provider,
    SecondaryConfig,
    StoreConfig,
)
from snapstore.errors import (
    explain_invalid_bool_env,
    explain_invalid_int_env,
    explain_missing_env_var,
    explain_unsupported_provider,
)
from snapstore.exceptions import ConfigurationError

ENV_STORAGE_PROVIDER = "STORAGE_PROVIDER"
ENV_STORAGE_CONTAINER = "STORAGE_CONTAINER"
ENV_STORAGE_PREFIX = "STORAGE_PREFIX"
ENV_TEMP_DIR = "SNAPSTORE_TEMP_DIR"
ENV_MAX_PARALLEL_CHUNKS = "MAX_PARALLEL_CHUNK_UPLOADS"
ENV_MIN_CHUNK_SIZE = "MIN_CHUNK_SIZE"

SOURCE_PREFIX = "SOURCE_"
SECONDARY_PREFIX = "SECONDARY_"

SOURCE_ENV_STORAGE_CONTAINER = SOURCE_PREFIX + ENV_STORAGE_CONTAINER
SECONDARY_ENV_STORAGE_CONTAINER = SECONDARY_PREFIX + ENV_STORAGE_CONTAINER
SECONDARY_ENV_STORAGE_PROVIDER = SECONDARY_PREFIX + ENV_STORAGE_PROVIDER
SECONDARY_ENV_STORAGE_PREFIX = SECONDARY_PREFIX + ENV_STORAGE_PREFIX

_TRUE_VALUES = {"1", "t", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "f", "false", "no", "n", "off"}


def get_env_var_or_error(name: str) -> str:
    """
    Return the value of an environment variable.

    Raises:
        ConfigurationError: If the variable is unset or empty
    """
    value = os.getenv(name, "")
    if not value:
        raise ConfigurationError(explain_missing_env_var(name))
    return value


def get_env_var_to_bool(name: str) -> bool:
    """Parse a true/false environment variable."""
    value = get_env_var_or_error(name)
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(explain_invalid_bool_env(name, value))


def env_prefix(is_source: bool = False, is_secondary: bool = False) -> str:
    """Environment variable prefix for a store role."""
    if is_source:
        return SOURCE_PREFIX
    if is_secondary:
        return SECONDARY_PREFIX
    return ""


def env_prefix_for_config(config: StoreConfig) -> str:
    """Environment variable prefix for the role of a configured store."""
    return env_prefix(config.is_source, config.is_secondary)


def container_env_var(config: StoreConfig) -> str:
    """Name of the container fallback variable for a store role."""
    return env_prefix_for_config(config) + ENV_STORAGE_CONTAINER


def getenv_for_role(name: str, prefix: str) -> str | None:
    """
    Look up a role-prefixed variable.

    Unset ``SECONDARY_`` variables fall back to the unprefixed (primary)
    variable so a secondary endpoint can share the primary's credentials.
    """
    value = os.getenv(prefix + name)
    if value:
        return value
    if prefix == SECONDARY_PREFIX:
        return os.getenv(name) or None
    return None


def latest_modified_time(files: Iterable[Path | str]) -> datetime:
    """
    Latest modification time across credential files.

    Raises:
        ConfigurationError: If a directory is found where a file is expected
    """
    latest = datetime.fromtimestamp(0, UTC)
    for name in files:
        # stat() follows symlinks, which is how mounted secrets appear
        path = Path(name)
        if path.is_dir():
            raise ConfigurationError(
                f"a directory {path.name} found in place of a credential file",
                details={"path": str(path)},
            )
        modified = datetime.fromtimestamp(path.stat().st_mtime, UTC)
        if modified > latest:
            latest = modified
    return latest


def _parse_provider(value: str | None, default: Provider = Provider.LOCAL) -> Provider:
    if not value:
        return default
    for provider in Provider:
        if provider.value.lower() == value.lower():
            return provider
    raise ConfigurationError(explain_unsupported_provider(value))


def _parse_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_int_env(name, value)) from exc
    if parsed < 1:
        raise ConfigurationError(explain_invalid_int_env(name, value))
    return parsed


def create_config_from_env(*, is_source: bool = False) -> StoreConfig:
    """
    Create a StoreConfig from environment variables.

    Optional environment variables:
        - STORAGE_PROVIDER: 'Local' | 'S3' | 'ECS' | 'OCS' (default: Local)
        - STORAGE_CONTAINER / SOURCE_STORAGE_CONTAINER: bucket name
        - STORAGE_PREFIX: key prefix (default: v2)
        - SNAPSTORE_TEMP_DIR: staging directory (default: /tmp)
        - MAX_PARALLEL_CHUNK_UPLOADS: parallel chunk uploads (default: 5)
        - MIN_CHUNK_SIZE: minimum chunk size in bytes (default: 5 MiB)
        - SECONDARY_STORAGE_PROVIDER: enables the secondary endpoint
        - SECONDARY_STORAGE_CONTAINER / SECONDARY_STORAGE_PREFIX
    """
    provider = _parse_provider(os.getenv(ENV_STORAGE_PROVIDER))
    container_var = SOURCE_ENV_STORAGE_CONTAINER if is_source else ENV_STORAGE_CONTAINER
    temp_dir = os.getenv(ENV_TEMP_DIR)

    secondary = None
    secondary_provider = os.getenv(SECONDARY_ENV_STORAGE_PROVIDER)
    secondary_container = os.getenv(SECONDARY_ENV_STORAGE_CONTAINER, "")
    if not is_source and (secondary_provider or secondary_container):
        secondary = SecondaryConfig(
            provider=_parse_provider(secondary_provider, default=provider),
            container=secondary_container,
            prefix=os.getenv(SECONDARY_ENV_STORAGE_PREFIX, ""),
        )

    return StoreConfig(
        provider=provider,
        container=os.getenv(container_var, ""),
        prefix=os.getenv(ENV_STORAGE_PREFIX, ""),
        temp_dir=Path(temp_dir) if temp_dir else DEFAULT_TEMP_DIR,
        max_parallel_chunks=_parse_positive_int(ENV_MAX_PARALLEL_CHUNKS, DEFAULT_MAX_PARALLEL_CHUNKS),
        min_chunk_size=_parse_positive_int(ENV_MIN_CHUNK_SIZE, MIN_CHUNK_SIZE),
        is_source=is_source,
        secondary=secondary,
    )
