# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for the resilient wrapper.
"""

import asyncio

import pytest
from structlog.testing import capture_logs

from helpers import SpyStore, fatal_error, make_snapshot, transient_error
from snapstore.exceptions import FatalHealthCheckError, TransientHealthCheckError
from snapstore.resilient import ResilientStore
from snapstore.types import BytesReader, read_all


@pytest.mark.asyncio
async def test_list_transient_failure_returns_empty(primary):
    primary.fail["list"] = transient_error()
    store = ResilientStore(primary, "primary")

    with capture_logs() as logs:
        assert await store.list() == []

    assert logs[0]["event"] == "transient_list_error"
    assert logs[0]["log_level"] == "warning"
    assert logs[0]["endpoint"] == "primary"


@pytest.mark.asyncio
async def test_list_fatal_failure_propagates(primary):
    error = fatal_error()
    primary.fail["list"] = error
    store = ResilientStore(primary)

    with capture_logs() as logs:
        with pytest.raises(type(error)) as exc_info:
            await store.list()

    assert exc_info.value is error
    assert logs[0]["event"] == "fatal_list_error"
    assert logs[0]["log_level"] == "error"


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", ["save", "fetch", "delete"])
async def test_other_operations_reraise_unchanged(primary, snapshot, operation):
    """Save, fetch and delete errors must reach the dual store untouched."""
    error = transient_error()
    primary.fail[operation] = error
    store = ResilientStore(primary)

    with pytest.raises(ConnectionError) as exc_info:
        if operation == "save":
            await store.save(snapshot, BytesReader(b"x"))
        elif operation == "fetch":
            await store.fetch(snapshot)
        else:
            await store.delete(snapshot)

    assert exc_info.value is error


@pytest.mark.asyncio
async def test_successful_operations_pass_through(primary, snapshot):
    store = ResilientStore(primary)

    await store.save(snapshot, BytesReader(b"data"))
    assert [s.key for s in await store.list()] == [snapshot.key]
    assert await read_all(await store.fetch(snapshot)) == b"data"
    await store.delete(snapshot)
    assert await store.list() == []


@pytest.mark.asyncio
async def test_health_check_uses_probe_when_available():
    class ProbedStore(SpyStore):
        probes = 0

        async def probe(self):
            self.probes += 1

    backend = ProbedStore()
    await ResilientStore(backend).health_check()

    assert backend.probes == 1
    assert backend.calls["list"] == 0


@pytest.mark.asyncio
async def test_health_check_falls_back_to_listing(primary):
    primary.add(make_snapshot(1, 2))

    await ResilientStore(primary).health_check()

    assert primary.calls["list"] == 1


@pytest.mark.asyncio
async def test_health_check_timeout_is_transient():
    class HangingStore(SpyStore):
        async def probe(self):
            await asyncio.sleep(10)

    with pytest.raises(TransientHealthCheckError):
        await ResilientStore(HangingStore()).health_check(timeout=0.01)


@pytest.mark.asyncio
async def test_health_check_connectivity_failure_is_transient(primary):
    primary.fail["list"] = transient_error()

    with pytest.raises(TransientHealthCheckError, match="transient error during health check"):
        await ResilientStore(primary).health_check()


@pytest.mark.asyncio
async def test_health_check_other_failure_is_fatal(primary):
    primary.fail["list"] = fatal_error()

    with pytest.raises(FatalHealthCheckError, match="fatal error during health check"):
        await ResilientStore(primary).health_check()


@pytest.mark.asyncio
async def test_close_delegates(primary):
    await ResilientStore(primary).close()
    assert primary.closed
