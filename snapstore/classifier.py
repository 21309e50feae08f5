# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapstore Error Classifier - Transient vs fatal error classification.

Decides whether a failure means "endpoint temporarily unreachable"
(worth failing over or retrying) or "endpoint permanently wrong"
(configuration, permission, missing object).

Classification is heuristic: it matches the error text against known
connectivity signatures and checks a few well-known network exception
types. A change in a library's error wording will silently reclassify
its errors, so every caller goes through classify() and the signature
lists below live nowhere else.
"""

import asyncio
import socket
from enum import Enum
from typing import Tuple

from botocore.exceptions import ConnectionError as BotocoreConnectionError
from botocore.exceptions import HTTPClientError


class ErrorClass(str, Enum):
    """Classification of a backend error."""

    TRANSIENT = "transient"
    FATAL = "fatal"


# Host resolution, request send, refused connections and timeouts
TRANSIENT_SIGNATURES: Tuple[str, ...] = (
    "no such host",
    "dial tcp: lookup",
    "request send failed",
    "connection refused",
    "connection timeout",
    "i/o timeout",
    "Name or service not known",
    "Temporary failure in name resolution",
    "nodename nor servname provided",
    "Could not connect to the endpoint URL",
    "Connect timeout on endpoint URL",
    "Read timeout on endpoint URL",
)

# Additional markers consulted while constructing stores
CONSTRUCTION_SIGNATURES: Tuple[str, ...] = (
    "RequestError",
    "NoCredentialsErr",
    "Unable to locate credentials",
    "dial tcp",
)

_NETWORK_ERROR_TYPES = (
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    socket.gaierror,
    BotocoreConnectionError,
    HTTPClientError,
)


def _indicator(err: BaseException, name: str) -> bool:
    flag = getattr(err, name, None)
    if callable(flag):
        try:
            return bool(flag())
        except TypeError:
            return False
    return False


def _is_network_error(err: BaseException) -> bool:
    if isinstance(err, _NETWORK_ERROR_TYPES):
        return True
    # Errors that expose net.Error-style timeout()/temporary() indicators
    return _indicator(err, "timeout") or _indicator(err, "temporary")


def classify(err: BaseException | None, extended: bool = False) -> ErrorClass | None:
    """
    Classify an error as transient or fatal.

    Args:
        err: Error raised by a backend (None yields None)
        extended: Also match the construction-time signatures

    Returns:
        ErrorClass.TRANSIENT or ErrorClass.FATAL
    """
    if err is None:
        return None

    text = str(err)
    signatures = TRANSIENT_SIGNATURES + CONSTRUCTION_SIGNATURES if extended else TRANSIENT_SIGNATURES
    if any(sig in text for sig in signatures):
        return ErrorClass.TRANSIENT

    if _is_network_error(err):
        return ErrorClass.TRANSIENT

    # Wrapped errors keep the root cause on __cause__
    cause = err.__cause__
    if cause is not None and cause is not err and classify(cause, extended) is ErrorClass.TRANSIENT:
        return ErrorClass.TRANSIENT

    return ErrorClass.FATAL


def is_transient(err: BaseException | None, extended: bool = False) -> bool:
    """True if the error is classified as transient."""
    return classify(err, extended) is ErrorClass.TRANSIENT
