# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapstore Types - Snapshot model and the storage capability contract.

Every backend (local, S3, fault injection) and every composite
(resilient wrapper, dual store) implements the same asynchronous
SnapStore interface, so the rest of the program never needs to know
which shape it was handed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Iterable, List, Protocol, Tuple

from snapstore.exceptions import SnapshotParseError

# Directory prefix used by the v1 backup layout
BACKUP_DIR_PREFIX = "Backup-"

# Marker appended to the last snapshot taken before shutdown
FINAL_SUFFIX = ".final"


class SnapshotKind(str, Enum):
    """Kind of snapshot artifact."""

    FULL = "Full"
    INCR = "Incr"  # Delta snapshot of events since the previous snapshot


class Endpoint(str, Enum):
    """Endpoint label used when aggregating dual-store outcomes."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class Snapshot:
    """
    One backup artifact.

    Snapshots are immutable values: the snapshotting logic creates them
    and passes them by value into store operations.
    """

    kind: SnapshotKind
    start_revision: int
    last_revision: int
    created_on: datetime
    snap_name: str
    snap_dir: str = ""
    prefix: str = ""
    compression_suffix: str = ""
    is_final: bool = False

    @classmethod
    def new(
        cls,
        kind: SnapshotKind,
        start_revision: int,
        last_revision: int,
        created_on: datetime | None = None,
        compression_suffix: str = "",
        is_final: bool = False,
        snap_dir: str = "",
        prefix: str = "",
    ) -> "Snapshot":
        """Create a snapshot and generate its canonical name."""
        created_on = (created_on or datetime.now(UTC)).replace(microsecond=0)
        name = generate_snapshot_name(
            kind, start_revision, last_revision, created_on, compression_suffix, is_final
        )
        return cls(
            kind=kind,
            start_revision=start_revision,
            last_revision=last_revision,
            created_on=created_on,
            snap_name=name,
            snap_dir=snap_dir,
            prefix=prefix,
            compression_suffix=compression_suffix,
            is_final=is_final,
        )

    @property
    def key(self) -> Tuple[str, str]:
        """Identity used to de-duplicate snapshots across endpoints."""
        return (self.snap_dir, self.snap_name)

    @property
    def relative_path(self) -> str:
        """Path of the snapshot below a store's prefix."""
        if self.snap_dir:
            return f"{self.snap_dir}/{self.snap_name}"
        return self.snap_name


# Ordered sequence of snapshots (see sort_snapshots)
SnapList = List[Snapshot]


def _sort_key(snap: Snapshot) -> tuple:
    return (snap.last_revision, snap.created_on, snap.snap_dir, snap.snap_name)


def sort_snapshots(snaps: Iterable[Snapshot]) -> SnapList:
    """
    Return snapshots in revision order.

    Ordered by last revision, then creation time, then (dir, name) so the
    result is total and independent of input order.
    """
    return sorted(snaps, key=_sort_key)


def generate_snapshot_name(
    kind: SnapshotKind,
    start_revision: int,
    last_revision: int,
    created_on: datetime,
    compression_suffix: str = "",
    is_final: bool = False,
) -> str:
    """Build a name like ``Full-00000001-00000042-1700000000.gz``."""
    name = (
        f"{SnapshotKind(kind).value}-{start_revision:08d}-{last_revision:08d}-"
        f"{int(created_on.timestamp())}{compression_suffix}"
    )
    if is_final:
        name += FINAL_SUFFIX
    return name


def parse_snapshot(path: str) -> Snapshot:
    """
    Parse an object key of the form ``[prefix/][Backup-<ts>/]<name>``.

    Raises:
        SnapshotParseError: If the name, kind or revisions are malformed
    """
    head, _, snap_name = path.rpartition("/")
    snap_dir = ""
    prefix = head
    if head:
        parent, _, last_dir = head.rpartition("/")
        if last_dir.startswith(BACKUP_DIR_PREFIX):
            snap_dir = last_dir
            prefix = parent

    tokens = snap_name.split("-")
    if len(tokens) != 4:
        raise SnapshotParseError(f"invalid snapshot name: {snap_name}", details={"path": path})

    try:
        kind = SnapshotKind(tokens[0])
    except ValueError:
        raise SnapshotParseError(f"unknown snapshot kind: {tokens[0]}", details={"path": path})

    try:
        start_revision = int(tokens[1])
        last_revision = int(tokens[2])
    except ValueError:
        raise SnapshotParseError(f"invalid revision in snapshot name: {snap_name}", details={"path": path})

    if start_revision > last_revision:
        raise SnapshotParseError(
            f"invalid revision range in snapshot name: {snap_name}",
            details={"start_revision": start_revision, "last_revision": last_revision},
        )

    # "<ts>[.<compression>][.final]"
    time_parts = tokens[3].split(".")
    is_final = len(time_parts) > 1 and f".{time_parts[-1]}" == FINAL_SUFFIX
    if is_final:
        time_parts = time_parts[:-1]
    compression_suffix = f".{time_parts[1]}" if len(time_parts) > 1 else ""

    try:
        created_on = datetime.fromtimestamp(int(time_parts[0]), UTC)
    except (ValueError, OverflowError, OSError):
        raise SnapshotParseError(f"invalid creation time in snapshot name: {snap_name}", details={"path": path})

    return Snapshot(
        kind=kind,
        start_revision=start_revision,
        last_revision=last_revision,
        created_on=created_on,
        snap_name=snap_name,
        snap_dir=snap_dir,
        prefix=prefix,
        compression_suffix=compression_suffix,
        is_final=is_final,
    )


@dataclass
class OperationResult:
    """Outcome of one endpoint's part in a dual-store operation."""

    endpoint: Endpoint
    success: bool
    error: BaseException | None = None
    snapshots: SnapList = field(default_factory=list)


class AsyncReader(Protocol):
    """Readable snapshot content (aiofiles handles, S3 bodies, BytesReader)."""

    async def read(self, n: int = -1) -> bytes: ...


class BytesReader:
    """In-memory AsyncReader used to replay buffered content."""

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    async def read(self, n: int = -1) -> bytes:
        if n is None or n < 0:
            end = len(self._data)
        else:
            end = min(self._pos + n, len(self._data))
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def close(self) -> None:
        self._pos = len(self._data)


async def read_all(reader: AsyncReader) -> bytes:
    """Drain a reader and close it if it supports closing."""
    try:
        return await reader.read()
    finally:
        close = getattr(reader, "close", None)
        if close is not None:
            result = close()
            if hasattr(result, "__await__"):
                await result


class SnapStore(ABC):
    """
    Storage capability contract.

    Implementations raise on failure instead of returning error values.
    """

    @abstractmethod
    async def save(self, snapshot: Snapshot, content: AsyncReader) -> None:
        """Persist the snapshot content."""

    @abstractmethod
    async def fetch(self, snapshot: Snapshot) -> AsyncReader:
        """Open the snapshot content for reading."""

    @abstractmethod
    async def list(self, include_all: bool = False) -> SnapList:
        """List snapshots in revision order."""

    @abstractmethod
    async def delete(self, snapshot: Snapshot) -> None:
        """Remove the snapshot."""

    async def close(self) -> None:
        """Release clients held by the store."""
        return None
