# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapstore Dual Store - Primary/secondary failover over two snapstores.

Writes and reads go to the primary first and fall back to the secondary.
Listings and deletions run against both endpoints concurrently; listings
are merged with primary precedence. A circuit breaker stops attempting
the primary after repeated transient failures.

There is no cross-endpoint transaction: the endpoints may diverge, and
the merged listing is recomputed on every call.
"""

import asyncio
import threading
from dataclasses import dataclass
from typing import Dict, Tuple

import structlog

from snapstore.classifier import ErrorClass, classify, is_transient
from snapstore.exceptions import DualStoreError, EndpointsUnavailableError, StoreOperationError
from snapstore.types import (
    AsyncReader,
    BytesReader,
    Endpoint,
    OperationResult,
    SnapList,
    SnapStore,
    Snapshot,
    read_all,
    sort_snapshots,
)

logger = structlog.get_logger()

# Consecutive transient primary failures that disable the primary
PRIMARY_FAILURE_THRESHOLD = 3


class _ReadWriteLock:
    """Many readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    def acquire_read(self) -> None:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True

    def release_write(self) -> None:
        with self._cond:
            self._writing = False
            self._cond.notify_all()


@dataclass(frozen=True)
class BreakerState:
    """Point-in-time view of the primary circuit breaker."""

    primary_failed: bool
    failure_count: int
    disabled: bool


class PrimaryCircuitBreaker:
    """
    Tracks consecutive transient failures of the primary endpoint.

    Once the count reaches the threshold the primary is skipped by
    save/fetch. Only a primary success resets it, and a skipped primary
    never gets the chance to succeed, so disablement lasts for the life
    of the store.
    """

    def __init__(self, threshold: int = PRIMARY_FAILURE_THRESHOLD):
        self._threshold = threshold
        self._lock = _ReadWriteLock()
        self._failed = False
        self._count = 0

    def is_disabled(self) -> bool:
        self._lock.acquire_read()
        try:
            return self._failed and self._count >= self._threshold
        finally:
            self._lock.release_read()

    def state(self) -> BreakerState:
        self._lock.acquire_read()
        try:
            return BreakerState(
                primary_failed=self._failed,
                failure_count=self._count,
                disabled=self._failed and self._count >= self._threshold,
            )
        finally:
            self._lock.release_read()

    def record_failure(self, err: BaseException) -> int:
        """
        Record a primary failure.

        Transient failures increment the count; any other failure resets it.

        Returns:
            The failure count after recording
        """
        transient = is_transient(err)
        self._lock.acquire_write()
        try:
            if transient:
                self._failed = True
                self._count += 1
            else:
                self._count = 0
            return self._count
        finally:
            self._lock.release_write()

    def reset(self) -> None:
        self._lock.acquire_write()
        try:
            self._failed = False
            self._count = 0
        finally:
            self._lock.release_write()


def merge_snapshots(primary_snaps: SnapList, secondary_snaps: SnapList) -> SnapList:
    """
    Merge two listings, de-duplicated by (dir, name).

    Primary entries win on collision; the result is in revision order.
    """
    merged: Dict[Tuple[str, str], Snapshot] = {}
    for snap in primary_snaps:
        merged[snap.key] = snap
    for snap in secondary_snaps:
        if snap.key not in merged:
            merged[snap.key] = snap
    return sort_snapshots(merged.values())


class DualStore(SnapStore):
    """Composes a primary and a secondary snapstore into one."""

    def __init__(
        self,
        primary: SnapStore,
        secondary: SnapStore,
        failure_threshold: int = PRIMARY_FAILURE_THRESHOLD,
    ):
        self.primary = primary
        self.secondary = secondary
        self.breaker = PrimaryCircuitBreaker(failure_threshold)
        self._logger = logger.bind(actor="dual-snapstore")

    def _record_primary_failure(self, err: BaseException) -> None:
        count = self.breaker.record_failure(err)
        if is_transient(err):
            self._logger.warning("primary_failure_recorded", count=count, error=str(err))

    async def save(self, snapshot: Snapshot, content: AsyncReader) -> None:
        """
        Save to the primary, failing over to the secondary.

        The content is buffered once in memory so both endpoints receive
        identical bytes. The secondary is not contacted when the primary
        succeeds.
        """
        try:
            data = await read_all(content)
        except Exception as e:
            raise StoreOperationError(
                f"failed to read snapshot data: {e}",
                details={"snapshot": snapshot.snap_name},
            ) from e

        name = snapshot.snap_name
        if not self.breaker.is_disabled():
            self._logger.info("snapshot_save_attempt", snapshot=name, endpoint=Endpoint.PRIMARY.value)
            try:
                await self.primary.save(snapshot, BytesReader(data))
            except Exception as e:
                self._logger.error(
                    "snapshot_save_failed", snapshot=name, endpoint=Endpoint.PRIMARY.value, error=str(e)
                )
                primary = OperationResult(Endpoint.PRIMARY, False, e)
                self._record_primary_failure(e)
            else:
                self._logger.info("snapshot_saved", snapshot=name, endpoint=Endpoint.PRIMARY.value)
                self.breaker.reset()
                return
        else:
            self._logger.info("primary_skipped", operation="save", reason="disabled due to repeated failures")
            primary = OperationResult(
                Endpoint.PRIMARY,
                False,
                StoreOperationError("primary endpoint disabled due to repeated failures"),
            )

        self._logger.info("snapshot_save_attempt", snapshot=name, endpoint=Endpoint.SECONDARY.value)
        try:
            await self.secondary.save(snapshot, BytesReader(data))
        except Exception as e:
            self._logger.error(
                "snapshot_save_failed", snapshot=name, endpoint=Endpoint.SECONDARY.value, error=str(e)
            )
            raise DualStoreError(
                f"failed to save snapshot {name} to both endpoints",
                primary_error=primary.error,
                secondary_error=e,
                details={"snapshot": name},
            ) from e

        self._logger.info("snapshot_saved", snapshot=name, endpoint=Endpoint.SECONDARY.value)

    async def fetch(self, snapshot: Snapshot) -> AsyncReader:
        """Fetch from the primary, failing over to the secondary."""
        name = snapshot.snap_name
        if not self.breaker.is_disabled():
            try:
                reader = await self.primary.fetch(snapshot)
            except Exception as e:
                self._logger.warning(
                    "snapshot_fetch_failed", snapshot=name, endpoint=Endpoint.PRIMARY.value, error=str(e)
                )
                primary_error: BaseException = e
                self._record_primary_failure(e)
            else:
                self._logger.info("snapshot_fetched", snapshot=name, endpoint=Endpoint.PRIMARY.value)
                self.breaker.reset()
                return reader
        else:
            self._logger.info("primary_skipped", operation="fetch", reason="disabled due to repeated failures")
            primary_error = StoreOperationError("primary endpoint disabled due to repeated failures")

        try:
            reader = await self.secondary.fetch(snapshot)
        except Exception as e:
            self._logger.error("snapshot_fetch_failed_both", snapshot=name)
            raise DualStoreError(
                f"failed to fetch snapshot {name} from both endpoints",
                primary_error=primary_error,
                secondary_error=e,
                details={"snapshot": name},
            ) from e

        self._logger.info("snapshot_fetched", snapshot=name, endpoint=Endpoint.SECONDARY.value)
        return reader

    async def _list_endpoint(self, endpoint: Endpoint, store: SnapStore, include_all: bool) -> OperationResult:
        try:
            snaps = await store.list(include_all)
        except Exception as e:
            if classify(e) is ErrorClass.TRANSIENT:
                self._logger.warning("snapshot_list_transient_error", endpoint=endpoint.value, error=str(e))
            else:
                self._logger.error("snapshot_list_failed", endpoint=endpoint.value, error=str(e))
            return OperationResult(endpoint, False, e)

        self._logger.debug("snapshots_listed", endpoint=endpoint.value, count=len(snaps))
        return OperationResult(endpoint, True, snapshots=list(snaps))

    async def list(self, include_all: bool = False) -> SnapList:
        """
        List both endpoints concurrently and merge the results.

        Raises:
            EndpointsUnavailableError: Both endpoints failed transiently
            DualStoreError: Both endpoints failed and one failure is fatal
        """
        primary, secondary = await asyncio.gather(
            self._list_endpoint(Endpoint.PRIMARY, self.primary, include_all),
            self._list_endpoint(Endpoint.SECONDARY, self.secondary, include_all),
        )

        if not primary.success and not secondary.success:
            if is_transient(primary.error) and is_transient(secondary.error):
                self._logger.error(
                    "both_endpoints_unavailable",
                    primary_error=str(primary.error),
                    secondary_error=str(secondary.error),
                )
                raise EndpointsUnavailableError(
                    "both endpoints temporarily unavailable",
                    primary_error=primary.error,
                    secondary_error=secondary.error,
                )
            raise DualStoreError(
                "failed to list snapshots from both endpoints",
                primary_error=primary.error,
                secondary_error=secondary.error,
            )

        merged = merge_snapshots(primary.snapshots, secondary.snapshots)
        self._logger.info(
            "snapshot_list_merged",
            total=len(merged),
            primary=len(primary.snapshots),
            secondary=len(secondary.snapshots),
        )
        return merged

    async def _delete_endpoint(self, endpoint: Endpoint, store: SnapStore, snapshot: Snapshot) -> OperationResult:
        try:
            await store.delete(snapshot)
        except Exception as e:
            self._logger.error(
                "snapshot_delete_failed", snapshot=snapshot.snap_name, endpoint=endpoint.value, error=str(e)
            )
            return OperationResult(endpoint, False, e)

        self._logger.info("snapshot_deleted", snapshot=snapshot.snap_name, endpoint=endpoint.value)
        return OperationResult(endpoint, True)

    async def delete(self, snapshot: Snapshot) -> None:
        """
        Delete from both endpoints concurrently.

        Succeeds if at least one endpoint deleted the snapshot.
        """
        primary, secondary = await asyncio.gather(
            self._delete_endpoint(Endpoint.PRIMARY, self.primary, snapshot),
            self._delete_endpoint(Endpoint.SECONDARY, self.secondary, snapshot),
        )
        name = snapshot.snap_name

        if primary.success and secondary.success:
            self._logger.info("snapshot_deleted_from_both", snapshot=name)
            return

        if not primary.success and not secondary.success:
            raise DualStoreError(
                f"failed to delete snapshot {name} from both endpoints",
                primary_error=primary.error,
                secondary_error=secondary.error,
                details={"snapshot": name},
            )

        self._logger.warning(
            "snapshot_deleted_partially",
            snapshot=name,
            primary=primary.success,
            secondary=secondary.success,
        )

    async def close(self) -> None:
        await asyncio.gather(self.primary.close(), self.secondary.close())
