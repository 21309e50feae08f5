# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Local filesystem snapstore.

Snapshots are stored as plain files under ``<root>/[<snap_dir>/]<name>``.
Writes go to a temporary file first and are renamed into place, so a
crashed save never leaves a partial snapshot behind.
"""

from pathlib import Path

import aiofiles
import aiofiles.os
import structlog

from snapstore.exceptions import SnapshotNotFoundError, SnapshotParseError, StoreOperationError
from snapstore.types import AsyncReader, SnapList, SnapStore, Snapshot, parse_snapshot, sort_snapshots

logger = structlog.get_logger()

# Read size when copying snapshot content to disk
COPY_BUFFER_SIZE = 1 << 20

TMP_SUFFIX = ".tmp"


class LocalStore(SnapStore):
    """Snapstore backed by a local directory."""

    def __init__(self, root: Path | str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, snapshot: Snapshot) -> Path:
        return self.root / snapshot.relative_path

    async def save(self, snapshot: Snapshot, content: AsyncReader) -> None:
        path = self._path(snapshot)
        temp_path = path.with_name(path.name + TMP_SUFFIX)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            written = 0
            async with aiofiles.open(temp_path, "wb") as f:
                while True:
                    data = await content.read(COPY_BUFFER_SIZE)
                    if not data:
                        break
                    await f.write(data)
                    written += len(data)
            await aiofiles.os.replace(temp_path, path)
        except Exception as e:
            if temp_path.exists():
                temp_path.unlink()
            raise StoreOperationError(
                f"failed to save snapshot {snapshot.snap_name}: {e}",
                details={"path": str(path)},
            ) from e

        logger.debug("local_snapshot_saved", path=str(path), size=written)

    async def fetch(self, snapshot: Snapshot) -> AsyncReader:
        path = self._path(snapshot)
        if not path.is_file():
            raise SnapshotNotFoundError(
                f"snapshot {snapshot.snap_name} not found",
                details={"path": str(path)},
            )
        return await aiofiles.open(path, "rb")

    async def list(self, include_all: bool = False) -> SnapList:
        snaps = []
        for path in self.root.rglob("*"):
            if not path.is_file() or path.name.endswith(TMP_SUFFIX):
                continue
            relative = path.relative_to(self.root).as_posix()
            try:
                snaps.append(parse_snapshot(relative))
            except SnapshotParseError as e:
                logger.warning("invalid_snapshot_skipped", path=str(path), error=str(e))
        return sort_snapshots(snaps)

    async def delete(self, snapshot: Snapshot) -> None:
        path = self._path(snapshot)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError as e:
            raise SnapshotNotFoundError(
                f"snapshot {snapshot.snap_name} not found",
                details={"path": str(path)},
            ) from e
        logger.debug("local_snapshot_deleted", path=str(path))

    async def probe(self) -> None:
        """Verify the root directory is still accessible."""
        if not await aiofiles.os.path.isdir(self.root):
            raise StoreOperationError(
                f"snapstore directory {self.root} is not accessible",
                details={"root": str(self.root)},
            )
