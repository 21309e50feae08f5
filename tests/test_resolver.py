# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for store construction.

The S3 constructor is replaced through register_provider so the
decision table can be driven without a network.
"""

import os
from datetime import datetime, UTC
from pathlib import Path

import pytest

from helpers import SpyStore, fatal_error, transient_error
from snapstore.backends import FailedStore, LocalStore
from snapstore.config import Provider, SecondaryConfig, StoreConfig
from snapstore.dual import DualStore
from snapstore.exceptions import (
    ConfigurationError,
    EndpointsUnavailableError,
    StoreConstructionError,
    StoreOperationError,
)
from snapstore.resilient import ResilientStore
from snapstore.resolver import (
    apply_defaults,
    get_dual_snapstore,
    get_resilient_snapstore,
    get_secret_modified_time,
    get_single_snapstore,
    get_snapstore,
    register_provider,
)


@pytest.fixture
def fake_s3(clean_env):
    """
    Install a fake S3 constructor.

    Yields (outcomes, created): ``outcomes`` maps an endpoint identifier
    to the exception its construction raises, ``created`` collects the
    stores that were built.
    """
    outcomes = {}
    created = {}

    async def constructor(config: StoreConfig, identifier: str):
        error = outcomes.get(identifier)
        if error is not None:
            raise error
        store = SpyStore(identifier)
        store.config = config
        created[identifier] = store
        return store

    original = register_provider(Provider.S3, constructor)
    yield outcomes, created
    register_provider(Provider.S3, original)


def _dual_config(temp_dir: Path) -> StoreConfig:
    return StoreConfig(
        provider=Provider.S3,
        container="primary-bucket",
        temp_dir=temp_dir / "staging",
        secondary=SecondaryConfig(provider=Provider.S3, container="secondary-bucket"),
    )


# ============================================================================
# Resilient construction decision table
# ============================================================================

@pytest.mark.asyncio
async def test_resilient_both_succeed_builds_dual_store(fake_s3, temp_dir):
    store = await get_resilient_snapstore(_dual_config(temp_dir))

    assert isinstance(store, DualStore)
    assert isinstance(store.primary, ResilientStore)
    assert isinstance(store.secondary, ResilientStore)
    assert store.primary.identifier == "primary"
    assert store.secondary.identifier == "secondary"


@pytest.mark.asyncio
async def test_resilient_secondary_uses_its_own_container_and_inherited_prefix(fake_s3, temp_dir):
    _, created = fake_s3
    config = _dual_config(temp_dir).with_updates(prefix="etcd/v2")

    await get_resilient_snapstore(config)

    assert created["primary"].config.container == "primary-bucket"
    assert created["secondary"].config.container == "secondary-bucket"
    assert created["secondary"].config.prefix == "etcd/v2"
    assert created["secondary"].config.is_secondary


@pytest.mark.asyncio
@pytest.mark.parametrize("make_error", [transient_error, fatal_error])
async def test_resilient_primary_failure_degrades_to_secondary(fake_s3, temp_dir, make_error):
    outcomes, _ = fake_s3
    outcomes["primary"] = make_error()

    store = await get_resilient_snapstore(_dual_config(temp_dir))

    assert isinstance(store, ResilientStore)
    assert store.identifier == "secondary"


@pytest.mark.asyncio
async def test_resilient_secondary_failure_degrades_to_primary(fake_s3, temp_dir):
    outcomes, _ = fake_s3
    outcomes["secondary"] = fatal_error()

    store = await get_resilient_snapstore(_dual_config(temp_dir))

    assert isinstance(store, ResilientStore)
    assert store.identifier == "primary"


@pytest.mark.asyncio
async def test_resilient_both_fatal_raises_construction_error(fake_s3, temp_dir):
    outcomes, _ = fake_s3
    outcomes["primary"] = fatal_error()
    outcomes["secondary"] = StoreOperationError("InvalidBucketName")

    with pytest.raises(StoreConstructionError, match="failed to create both primary and secondary snapstores"):
        await get_resilient_snapstore(_dual_config(temp_dir))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "primary_error, secondary_error",
    [
        (transient_error, transient_error),
        (transient_error, fatal_error),
        (fatal_error, transient_error),
    ],
)
async def test_resilient_both_fail_with_transient_raises_unavailable(
    fake_s3, temp_dir, primary_error, secondary_error
):
    outcomes, _ = fake_s3
    outcomes["primary"] = primary_error()
    outcomes["secondary"] = secondary_error()

    with pytest.raises(EndpointsUnavailableError, match="all endpoints temporarily unavailable"):
        await get_resilient_snapstore(_dual_config(temp_dir))


@pytest.mark.asyncio
async def test_resilient_construction_uses_extended_signatures(fake_s3, temp_dir):
    """Credential errors at startup count as transient for the decision."""
    outcomes, _ = fake_s3
    outcomes["primary"] = StoreOperationError("NoCredentialsErr: no valid providers in chain")
    outcomes["secondary"] = fatal_error()

    with pytest.raises(EndpointsUnavailableError):
        await get_resilient_snapstore(_dual_config(temp_dir))


@pytest.mark.asyncio
async def test_resilient_single_s3_is_wrapped(fake_s3, temp_dir):
    config = StoreConfig(provider=Provider.S3, container="bucket", temp_dir=temp_dir)

    store = await get_resilient_snapstore(config)

    assert isinstance(store, ResilientStore)
    assert isinstance(store.store, SpyStore)


@pytest.mark.asyncio
async def test_resilient_single_failure_propagates(fake_s3, temp_dir):
    outcomes, _ = fake_s3
    outcomes["primary"] = fatal_error()
    config = StoreConfig(provider=Provider.S3, container="bucket", temp_dir=temp_dir)

    with pytest.raises(StoreOperationError, match="AccessDenied"):
        await get_resilient_snapstore(config)


@pytest.mark.asyncio
async def test_resilient_local_store_is_not_wrapped(clean_env, temp_dir):
    config = StoreConfig(provider=Provider.LOCAL, container=str(temp_dir / "snaps"), temp_dir=temp_dir)

    store = await get_resilient_snapstore(config)

    assert isinstance(store, LocalStore)


# ============================================================================
# Plain construction
# ============================================================================

@pytest.mark.asyncio
async def test_get_snapstore_without_secondary_is_single(fake_s3, temp_dir):
    config = StoreConfig(provider=Provider.S3, container="bucket", temp_dir=temp_dir)

    store = await get_snapstore(config)

    assert isinstance(store, SpyStore)


@pytest.mark.asyncio
async def test_get_snapstore_with_secondary_is_unwrapped_dual(fake_s3, temp_dir):
    store = await get_snapstore(_dual_config(temp_dir))

    assert isinstance(store, DualStore)
    assert isinstance(store.primary, SpyStore)
    assert isinstance(store.secondary, SpyStore)


@pytest.mark.asyncio
async def test_get_dual_snapstore_fails_when_either_side_fails(fake_s3, temp_dir):
    outcomes, created = fake_s3
    outcomes["secondary"] = transient_error()

    with pytest.raises(StoreOperationError, match="failed to create secondary snapstore"):
        await get_dual_snapstore(_dual_config(temp_dir))

    assert created["primary"].closed


@pytest.mark.asyncio
async def test_failed_provider_builds_failing_store(clean_env, temp_dir):
    store = await get_single_snapstore(StoreConfig(provider=Provider.FAILED, container="faulty", temp_dir=temp_dir))

    assert isinstance(store, FailedStore)


@pytest.mark.asyncio
async def test_local_store_under_absolute_container(clean_env, temp_dir):
    config = StoreConfig(provider=Provider.LOCAL, container=str(temp_dir / "backups"), temp_dir=temp_dir)

    store = await get_single_snapstore(config)

    assert isinstance(store, LocalStore)
    assert store.root == temp_dir / "backups" / "v2"


@pytest.mark.asyncio
async def test_local_store_defaults_under_home(clean_env, temp_dir):
    clean_env.setenv("HOME", str(temp_dir))

    store = await get_single_snapstore(StoreConfig(provider=Provider.LOCAL, temp_dir=temp_dir))

    assert store.root == temp_dir / "default.bkp" / "v2"


@pytest.mark.asyncio
async def test_temp_dir_created_with_owner_only_permissions(clean_env, temp_dir):
    staging = temp_dir / "staging"
    config = StoreConfig(provider=Provider.FAILED, container="faulty", temp_dir=staging)

    await get_single_snapstore(config)

    assert staging.is_dir()
    assert staging.stat().st_mode & 0o777 == 0o700


# ============================================================================
# Defaults
# ============================================================================

def test_apply_defaults_prefix_and_container_env(clean_env):
    clean_env.setenv("STORAGE_CONTAINER", "env-bucket")

    config = apply_defaults(StoreConfig(provider=Provider.S3))

    assert config.prefix == "v2"
    assert config.container == "env-bucket"


def test_apply_defaults_uses_role_specific_container_variable(clean_env):
    clean_env.setenv("STORAGE_CONTAINER", "primary-bucket")
    clean_env.setenv("SECONDARY_STORAGE_CONTAINER", "secondary-bucket")
    clean_env.setenv("SOURCE_STORAGE_CONTAINER", "source-bucket")

    secondary = apply_defaults(StoreConfig(provider=Provider.S3, is_secondary=True))
    source = apply_defaults(StoreConfig(provider=Provider.S3, is_source=True))

    assert secondary.container == "secondary-bucket"
    assert source.container == "source-bucket"


def test_apply_defaults_keeps_explicit_values(clean_env):
    clean_env.setenv("STORAGE_CONTAINER", "env-bucket")

    config = apply_defaults(StoreConfig(provider=Provider.S3, container="explicit", prefix="custom"))

    assert config.container == "explicit"
    assert config.prefix == "custom"


def test_apply_defaults_remote_provider_requires_container(clean_env):
    with pytest.raises(ConfigurationError, match="storage container name not specified"):
        apply_defaults(StoreConfig(provider=Provider.S3))


def test_apply_defaults_failed_provider_requires_container(clean_env):
    with pytest.raises(ConfigurationError, match="storage container name not specified"):
        apply_defaults(StoreConfig(provider=Provider.FAILED))


# ============================================================================
# Credential modification time
# ============================================================================

def test_secret_modified_time_local_is_epoch(clean_env):
    assert get_secret_modified_time(Provider.LOCAL) == datetime.fromtimestamp(0, UTC)


def test_secret_modified_time_reads_credential_files(clean_env, temp_dir):
    creds = temp_dir / "creds"
    creds.mkdir()
    (creds / "accessKeyID").write_text("AKIA")
    (creds / "secretAccessKey").write_text("secret")
    os.utime(creds / "accessKeyID", (1_700_000_000, 1_700_000_000))
    os.utime(creds / "secretAccessKey", (1_800_000_000, 1_800_000_000))
    clean_env.setenv("AWS_APPLICATION_CREDENTIALS", str(creds))

    modified = get_secret_modified_time(Provider.S3)

    assert modified == datetime.fromtimestamp(1_800_000_000, UTC)


def test_secret_modified_time_secondary_falls_back_to_primary(clean_env, temp_dir):
    creds = temp_dir / "creds"
    creds.mkdir()
    (creds / "region").write_text("eu-west-1")
    os.utime(creds / "region", (1_750_000_000, 1_750_000_000))
    clean_env.setenv("AWS_APPLICATION_CREDENTIALS", str(creds))

    modified = get_secret_modified_time(Provider.S3, is_secondary=True)

    assert modified == datetime.fromtimestamp(1_750_000_000, UTC)
