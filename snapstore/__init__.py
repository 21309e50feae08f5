# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Etcd Snapstore - Storage layer for etcd backup and restore.

Persists snapshot artifacts to local disk or S3-compatible object
storage, optionally across two endpoints with automatic failover,
merged listings and a primary circuit breaker. Package name: snapstore.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from snapstore.builder import create_config
from snapstore.config import Provider, SecondaryConfig, StoreConfig

# Environment-based configuration
from snapstore.env import create_config_from_env

# Store construction
from snapstore.resolver import (
    get_dual_snapstore,
    get_resilient_snapstore,
    get_secret_modified_time,
    get_single_snapstore,
    get_snapstore,
    register_provider,
)

# Snapshot model and composites
from snapstore.dual import DualStore
from snapstore.resilient import ResilientStore
from snapstore.types import Snapshot, SnapshotKind, SnapStore, parse_snapshot

__all__ = [
    # Version
    "__version__",
    # Configuration
    "create_config",
    "create_config_from_env",
    "Provider",
    "SecondaryConfig",
    "StoreConfig",
    # Store construction
    "get_snapstore",
    "get_single_snapstore",
    "get_dual_snapstore",
    "get_resilient_snapstore",
    "get_secret_modified_time",
    "register_provider",
    # Stores and snapshots
    "DualStore",
    "ResilientStore",
    "Snapshot",
    "SnapshotKind",
    "SnapStore",
    "parse_snapshot",
]
