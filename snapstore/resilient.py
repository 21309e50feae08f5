# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapstore Resilient Wrapper - Failover-friendly error behavior for one backend.

Inside a dual store, a listing that fails because an endpoint is briefly
unreachable should not abort the whole listing. The wrapper turns
transient List failures into an empty result and leaves every other
operation's errors untouched so the dual store can fail over.
"""

import asyncio

import structlog

from snapstore.classifier import ErrorClass, classify
from snapstore.exceptions import FatalHealthCheckError, TransientHealthCheckError
from snapstore.types import AsyncReader, SnapList, SnapStore, Snapshot

logger = structlog.get_logger()

# Upper bound for one health check round-trip, in seconds
HEALTH_CHECK_TIMEOUT = 10.0


class ResilientStore(SnapStore):
    """Wraps one concrete backend for safe use inside a DualStore."""

    def __init__(self, store: SnapStore, identifier: str = "primary"):
        self.store = store
        self.identifier = identifier
        self._logger = logger.bind(actor="resilient-snapstore", endpoint=identifier)

    def _log_failure(self, operation: str, err: BaseException, **context) -> ErrorClass | None:
        error_class = classify(err)
        if error_class is ErrorClass.TRANSIENT:
            self._logger.warning(f"transient_{operation}_error", error=str(err), **context)
        else:
            self._logger.error(f"fatal_{operation}_error", error=str(err), **context)
        return error_class

    async def list(self, include_all: bool = False) -> SnapList:
        try:
            return await self.store.list(include_all)
        except Exception as e:
            if self._log_failure("list", e) is ErrorClass.TRANSIENT:
                # Treated as "currently empty" so the other endpoint still answers
                return []
            raise

    async def fetch(self, snapshot: Snapshot) -> AsyncReader:
        try:
            return await self.store.fetch(snapshot)
        except Exception as e:
            self._log_failure("fetch", e, snapshot=snapshot.snap_name)
            raise

    async def save(self, snapshot: Snapshot, content: AsyncReader) -> None:
        try:
            await self.store.save(snapshot, content)
        except Exception as e:
            self._log_failure("save", e, snapshot=snapshot.snap_name)
            raise

    async def delete(self, snapshot: Snapshot) -> None:
        try:
            await self.store.delete(snapshot)
        except Exception as e:
            self._log_failure("delete", e, snapshot=snapshot.snap_name)
            raise

    async def health_check(self, timeout: float = HEALTH_CHECK_TIMEOUT) -> None:
        """
        Perform one bounded administrative round-trip to the backend.

        Raises:
            TransientHealthCheckError: On connectivity errors and timeouts
            FatalHealthCheckError: On any other error
        """
        probe = getattr(self.store, "probe", None)
        try:
            if probe is not None:
                await asyncio.wait_for(probe(), timeout=timeout)
            else:
                await asyncio.wait_for(self.store.list(True), timeout=timeout)
        except Exception as e:
            if self._log_failure("health_check", e) is ErrorClass.TRANSIENT:
                raise TransientHealthCheckError(
                    f"transient error during health check: {e}",
                    details={"endpoint": self.identifier},
                ) from e
            raise FatalHealthCheckError(
                f"fatal error during health check: {e}",
                details={"endpoint": self.identifier},
            ) from e

    async def close(self) -> None:
        await self.store.close()
