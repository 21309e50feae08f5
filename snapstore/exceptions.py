# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapstore Exceptions - Custom exceptions for the snapstore package.
"""

from typing import Any


class SnapstoreError(Exception):
    """Base exception for all snapstore errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(SnapstoreError):
    """Raised when store configuration is invalid."""

    pass


class SnapshotParseError(SnapstoreError):
    """Raised when an object key is not a valid snapshot path."""

    pass


class SnapshotNotFoundError(SnapstoreError):
    """Raised when a snapshot does not exist in a store."""

    pass


class StoreOperationError(SnapstoreError):
    """Raised when a backend operation fails."""

    pass


class ChunkUploadError(SnapstoreError):
    """Raised when a chunk exhausted its retry attempts."""

    def __init__(self, message: str, result: Any = None, details: dict | None = None):
        self.result = result
        super().__init__(message, details)


class HealthCheckError(SnapstoreError):
    """Raised when an endpoint health check fails."""

    pass


class TransientHealthCheckError(HealthCheckError):
    """Health check failed with a connectivity error."""

    pass


class FatalHealthCheckError(HealthCheckError):
    """Health check failed with a non-connectivity error."""

    pass


class DualStoreError(SnapstoreError):
    """
    Raised when an operation failed on both endpoints.

    The message embeds both underlying causes; the exceptions themselves
    are kept on ``primary_error`` and ``secondary_error``.
    """

    def __init__(
        self,
        message: str,
        primary_error: BaseException | None = None,
        secondary_error: BaseException | None = None,
        details: dict | None = None,
    ):
        self.primary_error = primary_error
        self.secondary_error = secondary_error
        super().__init__(
            f"{message} - Primary: {primary_error}, Secondary: {secondary_error}",
            details,
        )


class EndpointsUnavailableError(DualStoreError):
    """Raised when both endpoints are only temporarily unreachable."""

    pass


class StoreConstructionError(DualStoreError):
    """Raised when neither endpoint store could be constructed."""

    pass
