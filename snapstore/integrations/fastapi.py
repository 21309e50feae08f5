# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapstore FastAPI Integration - Admin endpoints for a running snapstore.

This module provides:
- Lifespan management (store construction on startup, close on shutdown)
- Protected admin endpoints
- Health checks of every endpoint, including circuit-breaker state
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, UTC
from typing import Any, Dict, List

import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from snapstore.config import StoreConfig
from snapstore.dual import DualStore
from snapstore.exceptions import (
    DualStoreError,
    EndpointsUnavailableError,
    HealthCheckError,
    SnapshotNotFoundError,
    SnapstoreError,
    TransientHealthCheckError,
)
from snapstore.resilient import ResilientStore
from snapstore.resolver import get_resilient_snapstore
from snapstore.types import Snapshot, SnapStore

logger = structlog.get_logger()

ENV_ADMIN_API_KEY = "SNAPSTORE_ADMIN_API_KEY"

# Security
security = HTTPBearer(auto_error=False)


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the SNAPSTORE_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv(ENV_ADMIN_API_KEY)

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail=f"{ENV_ADMIN_API_KEY} environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


def snapstore_http_error(error: SnapstoreError) -> HTTPException:
    """
    Map a store error to the HTTP error an admin client should see.

    Status codes:
        503: both endpoints temporarily unavailable
        404: snapshot missing from every endpoint
        502: any other failure on both endpoints
    """
    if isinstance(error, EndpointsUnavailableError):
        return HTTPException(status_code=503, detail=error.message)
    if isinstance(error, SnapshotNotFoundError):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, DualStoreError):
        if isinstance(error.primary_error, SnapshotNotFoundError) and isinstance(
            error.secondary_error, SnapshotNotFoundError
        ):
            return HTTPException(status_code=404, detail=error.message)
        return HTTPException(status_code=502, detail=error.message)
    return HTTPException(status_code=500, detail=error.message)


def _snapshot_to_dict(snap: Snapshot) -> Dict[str, Any]:
    return {
        "kind": snap.kind.value,
        "name": snap.snap_name,
        "dir": snap.snap_dir,
        "start_revision": snap.start_revision,
        "last_revision": snap.last_revision,
        "created_on": snap.created_on.isoformat(),
        "is_final": snap.is_final,
    }


async def _endpoint_health(label: str, store: SnapStore) -> Dict[str, Any]:
    """Health of one endpoint; only resilient-wrapped stores are probed."""
    if not isinstance(store, ResilientStore):
        return {"endpoint": label, "checked": False, "healthy": None, "error": None}

    try:
        await store.health_check()
    except HealthCheckError as e:
        return {
            "endpoint": label,
            "checked": True,
            "healthy": False,
            "transient": isinstance(e, TransientHealthCheckError),
            "error": e.message,
        }
    return {"endpoint": label, "checked": True, "healthy": True, "error": None}


def register_snapstore_routes(
    app: FastAPI,
    store: SnapStore,
    prefix: str = "/admin/snapstore",
) -> None:
    """
    Register snapstore admin endpoints on a FastAPI app.

    All endpoints require Bearer token authentication.

    Args:
        app: FastAPI application
        store: Store returned by the resolver
        prefix: URL prefix for endpoints (default: /admin/snapstore)
    """

    @app.get(f"{prefix}/health", dependencies=[Depends(verify_api_key)])
    async def health_check() -> dict:
        """
        Health check endpoint.

        Reports the store shape, the primary circuit breaker for dual
        stores, and a bounded health check per resilient endpoint.
        """
        endpoints: List[Dict[str, Any]] = []
        breaker = None

        if isinstance(store, DualStore):
            shape = "dual"
            state = store.breaker.state()
            breaker = {
                "primary_disabled": state.disabled,
                "primary_failure_count": state.failure_count,
            }
            endpoints.append(await _endpoint_health("primary", store.primary))
            endpoints.append(await _endpoint_health("secondary", store.secondary))
        else:
            shape = "single"
            label = store.identifier if isinstance(store, ResilientStore) else "primary"
            endpoints.append(await _endpoint_health(label, store))

        unhealthy = [e for e in endpoints if e["healthy"] is False]
        status = "healthy"
        if unhealthy:
            status = "degraded"
        if unhealthy and len(unhealthy) == len(endpoints):
            status = "unhealthy"
        if breaker and breaker["primary_disabled"] and status == "healthy":
            status = "degraded"

        return {
            "status": status,
            "shape": shape,
            "circuit_breaker": breaker,
            "endpoints": endpoints,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get(f"{prefix}/snapshots", dependencies=[Depends(verify_api_key)])
    async def list_snapshots(include_all: bool = False) -> dict:
        """
        List snapshots (merged across endpoints for dual stores).

        Args:
            include_all: Include snapshots tagged for exclusion
        """
        try:
            snaps = await store.list(include_all)
        except EndpointsUnavailableError as e:
            logger.warning("admin_snapshot_list_unavailable", error=str(e))
            raise snapstore_http_error(e)
        except DualStoreError as e:
            logger.error("admin_snapshot_list_failed", error=str(e))
            raise snapstore_http_error(e)

        return {
            "count": len(snaps),
            "snapshots": [_snapshot_to_dict(snap) for snap in snaps],
        }


@asynccontextmanager
async def snapstore_lifespan(app: FastAPI, config: StoreConfig, prefix: str = "/admin/snapstore"):
    """
    Lifespan context manager for FastAPI.

    Builds the store once at startup, registers the admin routes, and
    closes the store on shutdown:

        app = FastAPI(lifespan=lambda app: snapstore_lifespan(app, config))

    Args:
        app: FastAPI application
        config: Store configuration
        prefix: URL prefix for admin endpoints
    """
    logger.info("snapstore_lifespan_starting", provider=config.provider.value)

    store = await get_resilient_snapstore(config)
    app.state.snapstore = store
    register_snapstore_routes(app, store, prefix)

    logger.info("snapstore_lifespan_started")

    try:
        yield
    finally:
        logger.info("snapstore_lifespan_stopping")
        await store.close()
        logger.info("snapstore_lifespan_stopped")


def get_snapstore_from_app(app: FastAPI) -> SnapStore:
    """
    Get the snapstore from a FastAPI app.

    Useful for accessing the store in custom endpoints.

    Raises:
        RuntimeError: If the snapstore is not initialized
    """
    store = getattr(app.state, "snapstore", None)
    if store is None:
        raise RuntimeError("Snapstore not initialized. Use snapstore_lifespan first.")
    return store
