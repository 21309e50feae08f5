# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Fault-injection snapstore: every operation fails.
"""

from snapstore.exceptions import StoreOperationError
from snapstore.types import AsyncReader, SnapList, SnapStore, Snapshot


class FailedStore(SnapStore):
    """Snapstore used to exercise failure paths."""

    def __init__(self, message: str = "failed snapstore"):
        self.message = message

    def _error(self, operation: str) -> StoreOperationError:
        return StoreOperationError(f"{operation} failed: {self.message}", details={"operation": operation})

    async def save(self, snapshot: Snapshot, content: AsyncReader) -> None:
        raise self._error("save")

    async def fetch(self, snapshot: Snapshot) -> AsyncReader:
        raise self._error("fetch")

    async def list(self, include_all: bool = False) -> SnapList:
        raise self._error("list")

    async def delete(self, snapshot: Snapshot) -> None:
        raise self._error("delete")
