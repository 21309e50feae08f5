# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapstore Builder - Functional builder pattern for configuration.

This module provides pure functions for building StoreConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from snapstore.config import (
    DEFAULT_MAX_PARALLEL_CHUNKS,
    DEFAULT_TEMP_DIR,
    MIN_CHUNK_SIZE,
    Provider,
    SecondaryConfig,
    StoreConfig,
)


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial empty configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "provider": Provider.LOCAL,
        "container": "",
        "prefix": "",
        "temp_dir": DEFAULT_TEMP_DIR,
        "max_parallel_chunks": DEFAULT_MAX_PARALLEL_CHUNKS,
        "min_chunk_size": MIN_CHUNK_SIZE,
        "is_source": False,
        "is_secondary": False,
        "secondary": None,
    }


def with_provider(config: ConfigDict, provider: Provider | str) -> ConfigDict:
    """
    Set the storage provider.

    Args:
        config: Current configuration dictionary
        provider: Provider kind (e.g., Provider.S3)

    Returns:
        New configuration dictionary with provider set
    """
    return {**config, "provider": Provider(provider)}


def with_container(config: ConfigDict, container: str) -> ConfigDict:
    """Set the bucket / container name."""
    return {**config, "container": container}


def with_prefix(config: ConfigDict, prefix: str) -> ConfigDict:
    """Set the key prefix inside the container."""
    return {**config, "prefix": prefix}


def with_temp_dir(config: ConfigDict, temp_dir: Path | str) -> ConfigDict:
    """Set the staging directory for writes."""
    return {**config, "temp_dir": Path(temp_dir)}


def with_chunking(
    config: ConfigDict,
    max_parallel_chunks: int | None = None,
    min_chunk_size: int | None = None,
) -> ConfigDict:
    """
    Set chunked upload parameters.

    Args:
        config: Current configuration dictionary
        max_parallel_chunks: Maximum chunks uploaded at once
        min_chunk_size: Minimum chunk size in bytes

    Returns:
        New configuration dictionary with chunk parameters set
    """
    updated = dict(config)
    if max_parallel_chunks is not None:
        updated["max_parallel_chunks"] = max_parallel_chunks
    if min_chunk_size is not None:
        updated["min_chunk_size"] = min_chunk_size
    return updated


def as_source(config: ConfigDict) -> ConfigDict:
    """Mark the store as the source of a copy (SOURCE_ env variables)."""
    return {**config, "is_source": True}


def with_secondary(
    config: ConfigDict,
    provider: Provider | str,
    container: str = "",
    prefix: str = "",
    max_parallel_chunks: int | None = None,
    min_chunk_size: int | None = None,
) -> ConfigDict:
    """
    Add a secondary endpoint for dual operation.

    Writes go to the primary first and fail over to this endpoint;
    listings merge both.

    Returns:
        New configuration dictionary with the secondary block set
    """
    secondary = SecondaryConfig(
        provider=Provider(provider),
        container=container,
        prefix=prefix,
        max_parallel_chunks=max_parallel_chunks,
        min_chunk_size=min_chunk_size,
    )
    return {**config, "secondary": secondary}


def without_secondary(config: ConfigDict) -> ConfigDict:
    """Remove the secondary endpoint."""
    return {**config, "secondary": None}


def build_config(config: ConfigDict) -> StoreConfig:
    """
    Convert a configuration dictionary to a StoreConfig.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    return StoreConfig(**config)


def create_config(*builders: BuilderFunc, **overrides: Any) -> StoreConfig:
    """
    Build a StoreConfig from builder functions and keyword overrides.

    Example:
        config = create_config(
            lambda c: with_provider(c, Provider.S3),
            lambda c: with_secondary(c, Provider.S3, "backup-dr"),
            container="etcd-backups",
        )
    """
    config = create_empty_config()
    for builder in builders:
        config = builder(config)
    config.update(overrides)
    return build_config(config)
