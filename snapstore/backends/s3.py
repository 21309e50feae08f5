# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 snapstore (also used for S3-compatible providers).

Snapshots are stored as objects under ``<prefix>/[<snap_dir>/]<name>``.
Content is first staged into a temporary file; objects that fit in one
chunk are written with a single PUT, larger ones with a multipart upload
driven by the chunked upload pipeline.

Credentials are read from the environment, using the role prefix of the
store (``SOURCE_``, ``SECONDARY_`` or none):

- ``<P>AWS_APPLICATION_CREDENTIALS_JSON``: JSON document, or
- ``<P>AWS_APPLICATION_CREDENTIALS``: directory with one file per field
"""

import base64
import json
import os
import tempfile
from contextlib import AsyncExitStack
from dataclasses import dataclass
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, List

import aiofiles
import aiofiles.os
import structlog
from aiobotocore.config import AioConfig
from aiobotocore.session import get_session
from botocore.exceptions import ClientError

from snapstore.chunked import Chunk, MAX_RETRY_ATTEMPTS, compute_chunk_size, split_into_chunks, upload_chunks
from snapstore.config import BACKUP_VERSION_V1, BACKUP_VERSION_V2, StoreConfig
from snapstore.env import env_prefix, env_prefix_for_config, getenv_for_role, latest_modified_time
from snapstore.errors import explain_missing_credentials
from snapstore.exceptions import (
    ChunkUploadError,
    ConfigurationError,
    SnapshotNotFoundError,
    SnapshotParseError,
    StoreOperationError,
)
from snapstore.types import AsyncReader, SnapList, SnapStore, Snapshot, parse_snapshot, sort_snapshots

logger = structlog.get_logger()

ENV_CREDENTIALS_JSON = "AWS_APPLICATION_CREDENTIALS_JSON"
ENV_CREDENTIALS_DIR = "AWS_APPLICATION_CREDENTIALS"

# Objects carrying this tag are hidden from listings unless include_all
EXCLUDE_TAG_KEY = "x-etcd-snapshot-exclude"

TMP_BACKUP_FILE_PREFIX = "s3-tmp-"

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}

_CREDENTIAL_FIELDS = (
    "accessKeyID",
    "secretAccessKey",
    "sessionToken",
    "region",
    "endpoint",
    "s3ForcePathStyle",
    "bucketName",
    "SSECustomerKey",
    "SSECustomerAlgorithm",
)


@dataclass(frozen=True)
class S3Credentials:
    """Credentials and connection details for one S3 endpoint."""

    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    region: str = "us-east-1"
    endpoint: str | None = None
    force_path_style: bool = False
    sse_customer_key: str | None = None
    sse_customer_algorithm: str | None = None

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "S3Credentials":
        force_path_style = data.get("s3ForcePathStyle", False)
        if isinstance(force_path_style, str):
            force_path_style = force_path_style.strip().lower() == "true"
        return cls(
            access_key_id=data.get("accessKeyID") or None,
            secret_access_key=data.get("secretAccessKey") or None,
            session_token=data.get("sessionToken") or None,
            region=data.get("region") or "us-east-1",
            endpoint=data.get("endpoint") or None,
            force_path_style=bool(force_path_style),
            sse_customer_key=data.get("SSECustomerKey") or None,
            sse_customer_algorithm=data.get("SSECustomerAlgorithm") or None,
        )

    def sse_params(self) -> Dict[str, Any]:
        """Server-side encryption (SSE-C) request parameters, if configured."""
        if not self.sse_customer_key or not self.sse_customer_algorithm:
            return {}
        # The key is configured base64-encoded; botocore expects the raw key
        return {
            "SSECustomerAlgorithm": self.sse_customer_algorithm,
            "SSECustomerKey": base64.b64decode(self.sse_customer_key),
        }


def _read_credentials_dir(directory: Path) -> Dict[str, str]:
    data: Dict[str, str] = {}
    for name in _CREDENTIAL_FIELDS:
        path = directory / name
        if path.is_file():
            data[name] = path.read_text().strip()
    return data


def load_s3_credentials(prefix: str = "") -> S3Credentials:
    """
    Load S3 credentials for a store role.

    Unset SECONDARY_ variables fall back to the primary credentials.

    Raises:
        ConfigurationError: If no credential source is set or it is invalid
    """
    raw_json = getenv_for_role(ENV_CREDENTIALS_JSON, prefix)
    if raw_json:
        try:
            return S3Credentials.from_mapping(json.loads(raw_json))
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in {prefix}{ENV_CREDENTIALS_JSON}: {e}",
            ) from e

    directory = getenv_for_role(ENV_CREDENTIALS_DIR, prefix)
    if directory:
        return S3Credentials.from_mapping(_read_credentials_dir(Path(directory)))

    raise ConfigurationError(explain_missing_credentials("S3", prefix))


def credentials_modified_time(prefix: str = "") -> datetime:
    """Latest modification time of the credential files of a store role."""
    directory = getenv_for_role(ENV_CREDENTIALS_DIR, prefix)
    if not directory:
        return datetime.fromtimestamp(0, UTC)
    files = [Path(directory) / name for name in _CREDENTIAL_FIELDS if (Path(directory) / name).exists()]
    return latest_modified_time(files)


def adapt_prefix(snapshot: Snapshot, store_prefix: str) -> str:
    """Read v1-layout snapshots from the v1 prefix of a v2 store."""
    if f"/{BACKUP_VERSION_V1}" in snapshot.prefix and f"/{BACKUP_VERSION_V2}" in store_prefix:
        return store_prefix.replace(f"/{BACKUP_VERSION_V2}", f"/{BACKUP_VERSION_V1}", 1)
    return store_prefix


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


class S3Store(SnapStore):
    """Snapstore backed by an S3 bucket."""

    def __init__(
        self,
        client: Any,
        bucket: str,
        prefix: str,
        temp_dir: Path | str = "/tmp",
        max_parallel_chunks: int = 5,
        min_chunk_size: int = 5 * (1 << 20),
        credentials: S3Credentials | None = None,
        identifier: str = "primary",
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        backoff_unit: float = 1.0,
    ):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.temp_dir = Path(temp_dir)
        self.max_parallel_chunks = max_parallel_chunks
        self.min_chunk_size = min_chunk_size
        self.credentials = credentials or S3Credentials()
        self.identifier = identifier
        self.max_attempts = max_attempts
        self.backoff_unit = backoff_unit
        self._exit_stack: AsyncExitStack | None = None
        self._logger = logger.bind(endpoint=identifier, bucket=bucket)

    @classmethod
    async def create(
        cls,
        config: StoreConfig,
        identifier: str = "primary",
        session: Any = None,
        verify: bool = True,
    ) -> "S3Store":
        """
        Create a store with its own aiobotocore client.

        Args:
            config: Resolved store configuration
            identifier: Endpoint label used in logs
            session: aiobotocore session (a new one by default)
            verify: Check that the bucket is reachable

        Returns:
            Connected S3Store
        """
        credentials = load_s3_credentials(env_prefix_for_config(config))
        session = session or get_session()

        client_kwargs: Dict[str, Any] = {"region_name": credentials.region}
        if credentials.endpoint:
            client_kwargs["endpoint_url"] = credentials.endpoint
        if credentials.access_key_id:
            client_kwargs["aws_access_key_id"] = credentials.access_key_id
            client_kwargs["aws_secret_access_key"] = credentials.secret_access_key
        if credentials.session_token:
            client_kwargs["aws_session_token"] = credentials.session_token
        if credentials.force_path_style:
            client_kwargs["config"] = AioConfig(s3={"addressing_style": "path"})
        if credentials.sse_params():
            logger.info(
                "sse_customer_key_applied",
                endpoint=identifier,
                algorithm=credentials.sse_customer_algorithm,
            )

        exit_stack = AsyncExitStack()
        client = await exit_stack.enter_async_context(session.create_client("s3", **client_kwargs))
        store = cls(
            client,
            config.container,
            config.prefix,
            temp_dir=config.temp_dir,
            max_parallel_chunks=config.max_parallel_chunks,
            min_chunk_size=config.min_chunk_size,
            credentials=credentials,
            identifier=identifier,
        )
        store._exit_stack = exit_stack

        if verify:
            try:
                await client.head_bucket(Bucket=config.container)
            except Exception:
                await exit_stack.aclose()
                raise

        logger.info("s3_snapstore_created", endpoint=identifier, bucket=config.container, prefix=config.prefix)
        return store

    def _key(self, snapshot: Snapshot) -> str:
        prefix = adapt_prefix(snapshot, self.prefix)
        if prefix:
            return f"{prefix}/{snapshot.relative_path}"
        return snapshot.relative_path

    async def _stage_to_temp_file(self, content: AsyncReader) -> tuple[Path, int]:
        """Copy snapshot content into a temp file; the caller removes it."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix=TMP_BACKUP_FILE_PREFIX, dir=self.temp_dir)
        os.close(fd)
        temp_path = Path(name)
        written = 0
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                while True:
                    data = await content.read(1 << 20)
                    if not data:
                        break
                    await f.write(data)
                    written += len(data)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise
        return temp_path, written

    async def save(self, snapshot: Snapshot, content: AsyncReader) -> None:
        key = self._key(snapshot)
        try:
            temp_path, size = await self._stage_to_temp_file(content)
        except Exception as e:
            raise StoreOperationError(
                f"failed to save snapshot to tempFile: {e}",
                details={"key": key},
            ) from e

        try:
            chunk_size = compute_chunk_size(size, self.min_chunk_size)
            if size <= chunk_size:
                async with aiofiles.open(temp_path, "rb") as f:
                    body = await f.read()
                await self.client.put_object(
                    Bucket=self.bucket, Key=key, Body=body, **self.credentials.sse_params()
                )
            else:
                await self._multipart_upload(key, temp_path, split_into_chunks(size, chunk_size))
        finally:
            await aiofiles.os.remove(temp_path)

        self._logger.info("s3_snapshot_saved", key=key, size=size)

    async def _multipart_upload(self, key: str, temp_path: Path, chunks: List[Chunk]) -> None:
        sse = self.credentials.sse_params()
        upload = await self.client.create_multipart_upload(Bucket=self.bucket, Key=key, **sse)
        upload_id = upload["UploadId"]
        etags: Dict[int, str] = {}

        async def upload_part(chunk: Chunk) -> None:
            async with aiofiles.open(temp_path, "rb") as f:
                await f.seek(chunk.offset)
                body = await f.read(chunk.size)
            response = await self.client.upload_part(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=chunk.id,
                Body=body,
                **sse,
            )
            etags[chunk.id] = response["ETag"]

        self._logger.info("multipart_upload_started", key=key, chunks=len(chunks))
        failed = await upload_chunks(
            chunks,
            upload_part,
            self.max_parallel_chunks,
            max_attempts=self.max_attempts,
            backoff_unit=self.backoff_unit,
        )
        if failed is not None:
            try:
                await self.client.abort_multipart_upload(Bucket=self.bucket, Key=key, UploadId=upload_id)
            except Exception as e:
                self._logger.error("multipart_upload_abort_failed", key=key, error=str(e))
            raise ChunkUploadError(
                f"failed uploading chunk, id: {failed.chunk.id}, offset: {failed.chunk.offset}, "
                f"error: {failed.error}",
                result=failed,
                details={"key": key, "attempts": failed.chunk.attempt},
            ) from failed.error

        parts = [{"ETag": etags[part], "PartNumber": part} for part in sorted(etags)]
        await self.client.complete_multipart_upload(
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={"Parts": parts},
        )

    async def fetch(self, snapshot: Snapshot) -> AsyncReader:
        key = self._key(snapshot)
        try:
            response = await self.client.get_object(
                Bucket=self.bucket, Key=key, **self.credentials.sse_params()
            )
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise SnapshotNotFoundError(
                    f"snapshot {snapshot.snap_name} not found",
                    details={"key": key},
                ) from e
            raise
        return response["Body"]

    async def _is_excluded(self, key: str) -> bool:
        response = await self.client.get_object_tagging(Bucket=self.bucket, Key=key)
        for tag in response.get("TagSet", []):
            if tag.get("Key") == EXCLUDE_TAG_KEY and str(tag.get("Value", "")).lower() == "true":
                return True
        return False

    async def list(self, include_all: bool = False) -> SnapList:
        list_prefix = f"{self.prefix}/" if self.prefix else ""
        # Under a nested prefix (etcd/v2) the parent is listed so etcd/v1 snapshots
        # show up too; a top-level prefix (v2) lists only itself
        parent = self.prefix.rpartition("/")[0]
        if parent:
            list_prefix = f"{parent}/"

        snaps = []
        paginator = self.client.get_paginator("list_objects_v2")
        async for page in paginator.paginate(Bucket=self.bucket, Prefix=list_prefix):
            for obj in page.get("Contents", []):
                key = obj["Key"]
                try:
                    snap = parse_snapshot(key)
                except SnapshotParseError as e:
                    self._logger.warning("invalid_snapshot_skipped", key=key, error=str(e))
                    continue
                if not include_all and await self._is_excluded(key):
                    self._logger.debug("excluded_snapshot_skipped", key=key)
                    continue
                snaps.append(snap)

        return sort_snapshots(snaps)

    async def delete(self, snapshot: Snapshot) -> None:
        key = self._key(snapshot)
        await self.client.delete_object(Bucket=self.bucket, Key=key)
        self._logger.info("s3_snapshot_deleted", key=key)

    async def probe(self) -> None:
        """Lightweight administrative round-trip used by health checks."""
        await self.client.get_bucket_versioning(Bucket=self.bucket)

    async def close(self) -> None:
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._exit_stack = None


def get_s3_credentials_modified_time(is_secondary: bool = False) -> datetime:
    """Modification time of the S3 credential files for a role."""
    return credentials_modified_time(env_prefix(is_secondary=is_secondary))
