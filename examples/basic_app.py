# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI Application with a dual snapstore.

Snapshots are written to a primary S3 bucket and fail over to a
secondary bucket; the admin endpoints expose health and listings.

Run with:
    uvicorn examples.basic_app:app --reload

Environment variables:
    STORAGE_CONTAINER: primary bucket
    SECONDARY_STORAGE_CONTAINER: secondary bucket (enables dual operation)
    AWS_APPLICATION_CREDENTIALS_JSON: primary credentials
    SECONDARY_AWS_APPLICATION_CREDENTIALS_JSON: secondary credentials (optional)
    SNAPSTORE_ADMIN_API_KEY: API key for admin endpoints
"""

import os

from fastapi import FastAPI, HTTPException

from snapstore.builder import (
    create_empty_config,
    build_config,
    with_chunking,
    with_container,
    with_provider,
    with_secondary,
)
from snapstore.config import Provider
from snapstore.exceptions import SnapstoreError
from snapstore.integrations.fastapi import get_snapstore_from_app, snapstore_http_error, snapstore_lifespan
from snapstore.types import BytesReader, Snapshot, SnapshotKind, read_all


def create_snapstore_config():
    """
    Create the store configuration.

    This uses the functional builder pattern for clean, composable configuration.
    """
    config = create_empty_config()
    config = with_provider(config, Provider.S3)
    config = with_container(config, os.getenv("STORAGE_CONTAINER", "etcd-backups"))
    config = with_chunking(config, max_parallel_chunks=5)

    secondary = os.getenv("SECONDARY_STORAGE_CONTAINER")
    if secondary:
        config = with_secondary(config, Provider.S3, secondary)

    return build_config(config)


config = create_snapstore_config()

app = FastAPI(
    title="Etcd Backup Sidecar",
    description="Example application demonstrating a dual snapstore",
    version="1.0.0",
    lifespan=lambda app: snapstore_lifespan(app, config),
)


@app.post("/snapshots/full")
async def take_full_snapshot(start_revision: int, last_revision: int) -> dict:
    """Store a (fake) full snapshot."""
    store = get_snapstore_from_app(app)
    snapshot = Snapshot.new(SnapshotKind.FULL, start_revision, last_revision)
    payload = f"etcd data {start_revision}-{last_revision}".encode()
    try:
        await store.save(snapshot, BytesReader(payload))
    except SnapstoreError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return {"saved": snapshot.snap_name}


@app.get("/snapshots/latest")
async def latest_snapshot() -> dict:
    """Fetch the most recent snapshot."""
    store = get_snapstore_from_app(app)
    snaps = await store.list()
    if not snaps:
        raise HTTPException(status_code=404, detail="no snapshots")
    latest = snaps[-1]
    try:
        data = await read_all(await store.fetch(latest))
    except SnapstoreError as e:
        raise snapstore_http_error(e)
    return {"name": latest.snap_name, "size": len(data)}


# ============================================================================
# Snapstore Admin Endpoints (registered by snapstore_lifespan)
# ============================================================================
#
# GET /admin/snapstore/health    - Store shape, breaker state, endpoint health
# GET /admin/snapstore/snapshots - Merged snapshot listing
#
# All admin endpoints require: Authorization: Bearer <SNAPSTORE_ADMIN_API_KEY>


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
