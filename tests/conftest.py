# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for snapstore tests.

Provides spy store fixtures, a sample snapshot, and environment helpers.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from helpers import SpyStore, make_snapshot
from snapstore.types import Snapshot

# Set test environment variables
os.environ["SNAPSTORE_ADMIN_API_KEY"] = "test-api-key-12345"

# Variables read by snapstore.env and the S3 credential loader
SNAPSTORE_ENV_VARS = [
    "STORAGE_PROVIDER",
    "STORAGE_CONTAINER",
    "STORAGE_PREFIX",
    "SNAPSTORE_TEMP_DIR",
    "MAX_PARALLEL_CHUNK_UPLOADS",
    "MIN_CHUNK_SIZE",
    "SOURCE_STORAGE_CONTAINER",
    "SECONDARY_STORAGE_CONTAINER",
    "SECONDARY_STORAGE_PROVIDER",
    "SECONDARY_STORAGE_PREFIX",
    "AWS_APPLICATION_CREDENTIALS_JSON",
    "AWS_APPLICATION_CREDENTIALS",
    "SOURCE_AWS_APPLICATION_CREDENTIALS_JSON",
    "SOURCE_AWS_APPLICATION_CREDENTIALS",
    "SECONDARY_AWS_APPLICATION_CREDENTIALS_JSON",
    "SECONDARY_AWS_APPLICATION_CREDENTIALS",
]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every snapstore environment variable for the test."""
    for name in SNAPSTORE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def primary() -> SpyStore:
    return SpyStore("primary")


@pytest.fixture
def secondary() -> SpyStore:
    return SpyStore("secondary")


@pytest.fixture
def snapshot() -> Snapshot:
    return make_snapshot(1, 100)
