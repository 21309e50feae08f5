# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapstore Chunked Upload - Bounded worker pool with per-chunk retries.

Large snapshots are uploaded as independent chunks. A fixed number of
workers consume chunks from an input queue and report results to a
shared result queue. A coordinator counts successes, re-submits failed
chunks after an exponential backoff, and stops the pool either when
every chunk succeeded or when one chunk ran out of attempts.
"""

import asyncio
import math
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, List, Sequence

import structlog

logger = structlog.get_logger()

# Attempts per chunk before the whole upload is aborted
MAX_RETRY_ATTEMPTS = 5

# S3 allows at most 10000 parts per multipart upload
MAX_CHUNK_COUNT = 10000


@dataclass(frozen=True)
class Chunk:
    """One slice of a snapshot's byte stream."""

    id: int  # 1-based, doubles as the multipart part number
    offset: int
    size: int
    attempt: int = 1


@dataclass(frozen=True)
class ChunkUploadResult:
    """Outcome of one upload attempt for a chunk."""

    chunk: Chunk
    error: BaseException | None = None


ChunkUploader = Callable[[Chunk], Awaitable[None]]


def compute_chunk_size(total_size: int, min_chunk_size: int) -> int:
    """Smallest chunk size that keeps the part count within MAX_CHUNK_COUNT."""
    return max(min_chunk_size, math.ceil(total_size / MAX_CHUNK_COUNT))


def split_into_chunks(total_size: int, chunk_size: int) -> List[Chunk]:
    """
    Split a byte range into chunks.

    Args:
        total_size: Size of the content in bytes
        chunk_size: Size of every chunk except possibly the last

    Returns:
        Chunks in offset order, ids starting at 1
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

    chunks: List[Chunk] = []
    offset = 0
    while offset < total_size:
        size = min(chunk_size, total_size - offset)
        chunks.append(Chunk(id=len(chunks) + 1, offset=offset, size=size))
        offset += size
    return chunks


async def _chunk_worker(
    upload: ChunkUploader,
    chunk_queue: "asyncio.Queue[Chunk]",
    result_queue: "asyncio.Queue[ChunkUploadResult]",
    stop: asyncio.Event,
) -> None:
    while not stop.is_set():
        chunk = await chunk_queue.get()
        if stop.is_set():
            break
        try:
            await upload(chunk)
        except Exception as e:
            await result_queue.put(ChunkUploadResult(chunk=chunk, error=e))
        else:
            await result_queue.put(ChunkUploadResult(chunk=chunk))


def _resubmit(chunk_queue: "asyncio.Queue[Chunk]", stop: asyncio.Event, chunk: Chunk) -> None:
    # A retry timer firing after the pipeline ended must not re-enqueue
    if stop.is_set():
        return
    chunk_queue.put_nowait(chunk)


async def collect_chunk_upload_error(
    chunk_queue: "asyncio.Queue[Chunk]",
    result_queue: "asyncio.Queue[ChunkUploadResult]",
    stop: asyncio.Event,
    chunk_count: int,
    max_attempts: int = MAX_RETRY_ATTEMPTS,
    backoff_unit: float = 1.0,
) -> ChunkUploadResult | None:
    """
    Coordinate chunk results until the upload succeeds or a chunk gives up.

    Failed chunks are re-submitted after ``2**attempt * backoff_unit``
    seconds with their attempt counter incremented.

    Returns:
        None on full success, otherwise the result that exhausted its attempts
    """
    loop = asyncio.get_running_loop()
    remaining = chunk_count
    timers: List[asyncio.TimerHandle] = []

    logger.info("chunk_upload_started", chunks=chunk_count)
    try:
        while remaining > 0:
            result = await result_queue.get()
            chunk = result.chunk

            if result.error is None:
                remaining -= 1
                continue

            logger.info(
                "chunk_upload_failed",
                chunk_id=chunk.id,
                offset=chunk.offset,
                attempt=chunk.attempt,
                error=str(result.error),
            )
            if chunk.attempt >= max_attempts:
                logger.error(
                    "chunk_upload_exhausted",
                    chunk_id=chunk.id,
                    attempts=chunk.attempt,
                )
                stop.set()
                return result

            delay = (1 << chunk.attempt) * backoff_unit
            retry = replace(chunk, attempt=chunk.attempt + 1)
            logger.warning(
                "chunk_upload_retry_scheduled",
                chunk_id=chunk.id,
                offset=chunk.offset,
                attempt=retry.attempt,
                delay_seconds=delay,
            )
            timers.append(loop.call_later(delay, _resubmit, chunk_queue, stop, retry))

        logger.info("chunk_upload_complete", chunks=chunk_count)
        stop.set()
        return None
    finally:
        stop.set()
        for timer in timers:
            timer.cancel()


async def upload_chunks(
    chunks: Sequence[Chunk],
    upload: ChunkUploader,
    max_parallel: int,
    max_attempts: int = MAX_RETRY_ATTEMPTS,
    backoff_unit: float = 1.0,
) -> ChunkUploadResult | None:
    """
    Upload chunks with a bounded pool of workers.

    Args:
        chunks: Chunks to upload
        upload: Coroutine function uploading one chunk (raises on failure)
        max_parallel: Number of workers
        max_attempts: Attempts per chunk before aborting
        backoff_unit: Seconds per backoff unit

    Returns:
        None on success, otherwise the failing ChunkUploadResult
    """
    if not chunks:
        return None

    chunk_queue: "asyncio.Queue[Chunk]" = asyncio.Queue()
    result_queue: "asyncio.Queue[ChunkUploadResult]" = asyncio.Queue()
    stop = asyncio.Event()

    for chunk in chunks:
        chunk_queue.put_nowait(chunk)

    workers = [
        asyncio.create_task(_chunk_worker(upload, chunk_queue, result_queue, stop))
        for _ in range(max(1, min(max_parallel, len(chunks))))
    ]
    try:
        return await collect_chunk_upload_error(
            chunk_queue,
            result_queue,
            stop,
            len(chunks),
            max_attempts=max_attempts,
            backoff_unit=backoff_unit,
        )
    finally:
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
