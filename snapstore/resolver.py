# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapstore Resolver - Startup-time store construction.

Decides, from configuration alone, whether the program gets a single
store or a dual store, and wires the resilient wrapper around backends
whose errors need reshaping for failover. The resulting shape is fixed
for the lifetime of the process.

The provider table below is the only place mapping a provider kind to a
constructor.
"""

import os
from datetime import datetime, UTC
from pathlib import Path
from typing import Awaitable, Callable, Dict, Tuple

import structlog

from snapstore.backends.failed import FailedStore
from snapstore.backends.local import LocalStore
from snapstore.backends.s3 import S3Store, get_s3_credentials_modified_time
from snapstore.classifier import is_transient
from snapstore.config import DEFAULT_PREFIX, DEFAULT_TEMP_DIR, S3_COMPATIBLE_PROVIDERS, Provider, StoreConfig
from snapstore.dual import DualStore
from snapstore.env import container_env_var
from snapstore.errors import explain_missing_container, explain_unsupported_provider
from snapstore.exceptions import (
    ConfigurationError,
    EndpointsUnavailableError,
    StoreConstructionError,
    StoreOperationError,
)
from snapstore.resilient import ResilientStore
from snapstore.types import SnapStore

logger = structlog.get_logger()

# Container used by local stores when none is configured
DEFAULT_LOCAL_STORE = "default.bkp"

# Providers whose errors are reshaped by the resilient wrapper
RESILIENT_PROVIDERS = frozenset({Provider.S3})

ProviderConstructor = Callable[[StoreConfig, str], Awaitable[SnapStore]]


async def _new_local_store(config: StoreConfig, identifier: str) -> SnapStore:
    container = Path(config.container or DEFAULT_LOCAL_STORE)
    root = container if container.is_absolute() else Path.home() / container
    return LocalStore(root / config.prefix)


async def _new_s3_store(config: StoreConfig, identifier: str) -> SnapStore:
    return await S3Store.create(config, identifier)


async def _new_failed_store(config: StoreConfig, identifier: str) -> SnapStore:
    return FailedStore()


_PROVIDERS: Dict[Provider, ProviderConstructor] = {
    Provider.LOCAL: _new_local_store,
    Provider.S3: _new_s3_store,
    Provider.ECS: _new_s3_store,
    Provider.OCS: _new_s3_store,
    Provider.FAILED: _new_failed_store,
}


def register_provider(provider: Provider, constructor: ProviderConstructor) -> ProviderConstructor | None:
    """
    Install the constructor used for a provider kind.

    Returns:
        The previously registered constructor, if any
    """
    previous = _PROVIDERS.get(Provider(provider))
    _PROVIDERS[Provider(provider)] = constructor
    return previous


def apply_defaults(config: StoreConfig) -> StoreConfig:
    """
    Fill in prefix, container and temp dir defaults for one endpoint.

    Raises:
        ConfigurationError: If a remote provider has no container name
    """
    updates: Dict[str, object] = {}
    if not config.prefix:
        updates["prefix"] = DEFAULT_PREFIX

    container = config.container or os.getenv(container_env_var(config), "")
    if container != config.container:
        updates["container"] = container

    if not container and config.provider is not Provider.LOCAL:
        raise ConfigurationError(
            explain_missing_container(container_env_var(config)),
            details={"provider": config.provider.value},
        )

    if str(config.temp_dir) in ("", "."):
        updates["temp_dir"] = DEFAULT_TEMP_DIR

    return config.with_updates(**updates) if updates else config


def _ensure_temp_dir(temp_dir: Path) -> None:
    if temp_dir.exists():
        return
    logger.info("temp_dir_created", temp_dir=str(temp_dir))
    try:
        temp_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(
            f"failed to create temporary directory {temp_dir}: {e}",
            details={"temp_dir": str(temp_dir)},
        ) from e


async def get_single_snapstore(config: StoreConfig, identifier: str = "primary") -> SnapStore:
    """
    Construct the backend for one endpoint, unwrapped.

    Args:
        config: Endpoint configuration (secondary block ignored)
        identifier: Endpoint label used in logs

    Returns:
        Concrete backend for the configured provider
    """
    config = apply_defaults(config)
    _ensure_temp_dir(config.temp_dir)

    constructor = _PROVIDERS.get(config.provider)
    if constructor is None:
        raise ConfigurationError(explain_unsupported_provider(config.provider.value))
    return await constructor(config, identifier)


async def get_dual_snapstore(config: StoreConfig) -> DualStore:
    """
    Construct primary and secondary backends and compose them.

    Either constructor failing fails the whole call.
    """
    try:
        primary = await get_single_snapstore(config, "primary")
    except Exception as e:
        raise StoreOperationError(f"failed to create primary snapstore: {e}") from e

    secondary_config = config.secondary_config()
    if secondary_config is None:
        await primary.close()
        raise ConfigurationError("secondary configuration is invalid")

    try:
        secondary = await get_single_snapstore(secondary_config, "secondary")
    except Exception as e:
        await primary.close()
        raise StoreOperationError(f"failed to create secondary snapstore: {e}") from e

    return DualStore(primary, secondary)


async def get_snapstore(config: StoreConfig) -> SnapStore:
    """Return a dual store when a secondary endpoint is configured, else a single store."""
    if config.has_secondary_endpoint():
        return await get_dual_snapstore(config)
    return await get_single_snapstore(config)


async def _create_resilient_single(config: StoreConfig, identifier: str) -> SnapStore:
    store = await get_single_snapstore(config, identifier)
    if config.provider in RESILIENT_PROVIDERS:
        return ResilientStore(store, identifier)
    return store


async def _try_create(config: StoreConfig, identifier: str, log) -> Tuple[SnapStore | None, Exception | None]:
    try:
        store = await _create_resilient_single(config, identifier)
    except Exception as e:
        if is_transient(e, extended=True):
            log.warning("snapstore_creation_transient_error", endpoint=identifier, error=str(e))
        else:
            log.error("snapstore_creation_failed", endpoint=identifier, error=str(e))
        return None, e

    log.info("snapstore_created", endpoint=identifier)
    return store, None


async def _create_resilient_dual(config: StoreConfig, log) -> SnapStore:
    secondary_config = config.secondary_config()
    log.info(
        "dual_snapstore_creating",
        primary_provider=config.provider.value,
        primary_container=config.container,
        secondary_provider=secondary_config.provider.value if secondary_config else None,
        secondary_container=secondary_config.container if secondary_config else None,
    )

    primary, primary_err = await _try_create(config, "primary", log)

    if secondary_config is None:
        log.warning("secondary_config_missing")
        if primary_err is not None:
            raise StoreOperationError(
                f"primary snapstore failed and no secondary configured: {primary_err}"
            ) from primary_err
        return primary

    secondary, secondary_err = await _try_create(secondary_config, "secondary", log)

    if primary_err is not None and secondary_err is not None:
        if not is_transient(primary_err, extended=True) and not is_transient(secondary_err, extended=True):
            raise StoreConstructionError(
                "failed to create both primary and secondary snapstores",
                primary_error=primary_err,
                secondary_error=secondary_err,
            )
        log.warning("both_endpoints_degraded")

    if primary is not None and secondary is not None:
        log.info("dual_snapstore_created")
        return DualStore(primary, secondary)
    if primary is not None:
        log.warning("degraded_to_single_endpoint", endpoint="primary")
        return primary
    if secondary is not None:
        log.warning("degraded_to_single_endpoint", endpoint="secondary")
        return secondary

    log.error("all_endpoints_unavailable")
    raise EndpointsUnavailableError(
        "all endpoints temporarily unavailable",
        primary_error=primary_err,
        secondary_error=secondary_err,
    )


async def get_resilient_snapstore(config: StoreConfig) -> SnapStore:
    """
    Construct stores with resilient error handling.

    S3 backends are wrapped in ResilientStore. With a secondary endpoint
    configured, each endpoint is constructed independently and a failed
    endpoint degrades the result to a single store instead of failing
    startup, unless both endpoints failed fatally.

    Raises:
        StoreConstructionError: Both endpoints failed with fatal errors
        EndpointsUnavailableError: Both failed and neither store exists
    """
    log = logger.bind(actor="snapstore-resolver")
    log.info(
        "snapstore_configuration",
        provider=config.provider.value,
        container=config.container,
        prefix=config.prefix,
        has_secondary=config.has_secondary_endpoint(),
    )

    if config.has_secondary_endpoint():
        return await _create_resilient_dual(config, log)

    log.info("single_snapstore_creating")
    return await _create_resilient_single(config, "primary")


def get_secret_modified_time(provider: Provider, is_secondary: bool = False) -> datetime:
    """
    Latest modification time of the credential files for a provider.

    Providers without credential files report the epoch.
    """
    if Provider(provider) in S3_COMPATIBLE_PROVIDERS:
        return get_s3_credentials_modified_time(is_secondary)
    return datetime.fromtimestamp(0, UTC)
