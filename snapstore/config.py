# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapstore Configuration - Immutable store configuration.

All configuration is frozen (immutable) after creation. Environment
fallbacks and credential lookup happen before a StoreConfig reaches the
resolver (see snapstore.env).
"""

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import List

# Default key prefix for the current backup layout
BACKUP_VERSION_V1 = "v1"
BACKUP_VERSION_V2 = "v2"
DEFAULT_PREFIX = BACKUP_VERSION_V2

# S3 rejects multipart parts smaller than 5 MiB
MIN_CHUNK_SIZE = 5 * (1 << 20)
DEFAULT_MAX_PARALLEL_CHUNKS = 5
DEFAULT_TEMP_DIR = Path("/tmp")


class Provider(str, Enum):
    """Storage provider kind."""

    LOCAL = "Local"
    S3 = "S3"
    ECS = "ECS"  # S3-compatible, custom endpoint
    OCS = "OCS"  # S3-compatible, custom endpoint
    FAILED = "FAILED"  # Fault injection: every operation fails


# Providers reached through the S3 API
S3_COMPATIBLE_PROVIDERS = frozenset({Provider.S3, Provider.ECS, Provider.OCS})


@dataclass(frozen=True)
class SecondaryConfig:
    """
    Secondary endpoint block.

    Chunk parameters left as None inherit the primary's values.
    """

    provider: Provider
    container: str = ""
    prefix: str = ""
    max_parallel_chunks: int | None = None
    min_chunk_size: int | None = None


def _validate_chunking(max_parallel_chunks: int, min_chunk_size: int, provider: Provider, label: str) -> List[str]:
    errors: List[str] = []
    if max_parallel_chunks < 1:
        errors.append(f"{label}max_parallel_chunks must be >= 1, got {max_parallel_chunks}")
    if min_chunk_size < 1:
        errors.append(f"{label}min_chunk_size must be >= 1, got {min_chunk_size}")
    elif provider in S3_COMPATIBLE_PROVIDERS and min_chunk_size < MIN_CHUNK_SIZE:
        errors.append(
            f"{label}min_chunk_size must be >= {MIN_CHUNK_SIZE} for {provider.value}, got {min_chunk_size}"
        )
    return errors


@dataclass(frozen=True)
class StoreConfig:
    """
    Immutable configuration for one snapstore endpoint, plus an optional
    secondary endpoint block.

    A secondary block is present if and only if dual operation is requested.
    """

    # Storage provider kind
    provider: Provider = Provider.LOCAL

    # Bucket / container name (falls back to the role's env variable)
    container: str = ""

    # Key prefix inside the container (default: v2)
    prefix: str = ""

    # Directory for staged writes
    temp_dir: Path = field(default_factory=lambda: DEFAULT_TEMP_DIR)

    # Maximum chunks uploaded in parallel
    max_parallel_chunks: int = DEFAULT_MAX_PARALLEL_CHUNKS

    # Minimum size of one uploaded chunk in bytes
    min_chunk_size: int = MIN_CHUNK_SIZE

    # Store is the source of a copy operation (SOURCE_ env variables)
    is_source: bool = False

    # Store is the secondary endpoint (SECONDARY_ env variables)
    is_secondary: bool = False

    # Secondary endpoint block for dual operation
    secondary: SecondaryConfig | None = None

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        try:
            object.__setattr__(self, "provider", Provider(self.provider))
        except ValueError:
            errors.append(f"Unsupported storage provider: {self.provider}")

        if not isinstance(self.temp_dir, Path):
            object.__setattr__(self, "temp_dir", Path(self.temp_dir))

        provider = self.provider if isinstance(self.provider, Provider) else Provider.LOCAL
        errors.extend(_validate_chunking(self.max_parallel_chunks, self.min_chunk_size, provider, ""))

        if self.is_source and self.is_secondary:
            errors.append("A store cannot be both source and secondary")

        if self.secondary is not None:
            try:
                secondary_provider = Provider(self.secondary.provider)
            except ValueError:
                errors.append(f"Unsupported secondary storage provider: {self.secondary.provider}")
            else:
                errors.extend(
                    _validate_chunking(
                        self.secondary.max_parallel_chunks or self.max_parallel_chunks,
                        self.secondary.min_chunk_size or self.min_chunk_size,
                        secondary_provider,
                        "secondary ",
                    )
                )

        # Raise all errors at once
        if errors:
            from snapstore.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def has_secondary_endpoint(self) -> bool:
        """True if a secondary endpoint is configured."""
        return self.secondary is not None

    def secondary_config(self) -> "StoreConfig | None":
        """
        Derive the complete configuration of the secondary endpoint.

        Returns:
            StoreConfig flagged as secondary, or None without a secondary block
        """
        if self.secondary is None:
            return None

        return StoreConfig(
            provider=Provider(self.secondary.provider),
            container=self.secondary.container,
            prefix=self.secondary.prefix or self.prefix,
            temp_dir=self.temp_dir,
            max_parallel_chunks=self.secondary.max_parallel_chunks or self.max_parallel_chunks,
            min_chunk_size=self.secondary.min_chunk_size or self.min_chunk_size,
            is_source=False,
            is_secondary=True,
            secondary=None,
        )

    def with_updates(self, **kwargs) -> "StoreConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        return replace(self, **kwargs)

    def to_dict(self) -> dict:
        """Plain-dict view for logging and admin endpoints."""
        data = asdict(self)
        data["provider"] = self.provider.value
        data["temp_dir"] = str(self.temp_dir)
        if self.secondary is not None:
            data["secondary"]["provider"] = Provider(self.secondary.provider).value
        return data
