# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Shared test helpers: in-memory spy stores, sample snapshots and error factories.
"""

from collections import defaultdict
from datetime import datetime, timedelta, UTC
from typing import Dict, Tuple

from snapstore.exceptions import SnapshotNotFoundError, StoreOperationError
from snapstore.types import AsyncReader, BytesReader, SnapList, SnapStore, Snapshot, SnapshotKind, read_all, sort_snapshots

AUTH_HEADERS = {"Authorization": "Bearer test-api-key-12345"}

BASE_TIME = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


def transient_error() -> Exception:
    """Error the classifier treats as a connectivity failure."""
    return ConnectionError("dial tcp: lookup s3.example.com: no such host")


def fatal_error() -> Exception:
    """Error the classifier treats as a permanent failure."""
    return StoreOperationError("AccessDenied: access denied")


class SpyStore(SnapStore):
    """
    In-memory snapstore that records calls and can be told to fail.

    Set ``fail[operation]`` to an exception to make that operation raise it.
    """

    def __init__(self, name: str = "spy"):
        self.name = name
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.snapshots: Dict[Tuple[str, str], Snapshot] = {}
        self.calls: Dict[str, int] = defaultdict(int)
        self.fail: Dict[str, BaseException] = {}
        self.closed = False

    def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        error = self.fail.get(operation)
        if error is not None:
            raise error

    def add(self, snapshot: Snapshot, data: bytes = b"") -> None:
        self.snapshots[snapshot.key] = snapshot
        self.objects[snapshot.key] = data

    async def save(self, snapshot: Snapshot, content: AsyncReader) -> None:
        self._enter("save")
        self.add(snapshot, await read_all(content))

    async def fetch(self, snapshot: Snapshot) -> AsyncReader:
        self._enter("fetch")
        if snapshot.key not in self.objects:
            raise SnapshotNotFoundError(f"snapshot {snapshot.snap_name} not found")
        return BytesReader(self.objects[snapshot.key])

    async def list(self, include_all: bool = False) -> SnapList:
        self._enter("list")
        return sort_snapshots(self.snapshots.values())

    async def delete(self, snapshot: Snapshot) -> None:
        self._enter("delete")
        if snapshot.key not in self.objects:
            raise SnapshotNotFoundError(f"snapshot {snapshot.snap_name} not found")
        del self.objects[snapshot.key]
        del self.snapshots[snapshot.key]

    async def close(self) -> None:
        self.closed = True


def make_snapshot(
    start: int,
    last: int,
    kind: SnapshotKind = SnapshotKind.FULL,
    minutes: int = 0,
    prefix: str = "",
) -> Snapshot:
    """Snapshot created ``minutes`` after BASE_TIME."""
    return Snapshot.new(kind, start, last, created_on=BASE_TIME + timedelta(minutes=minutes), prefix=prefix)
