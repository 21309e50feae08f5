# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Concrete snapstore backends.
"""

from snapstore.backends.failed import FailedStore
from snapstore.backends.local import LocalStore
from snapstore.backends.s3 import S3Credentials, S3Store, load_s3_credentials

__all__ = [
    "FailedStore",
    "LocalStore",
    "S3Credentials",
    "S3Store",
    "load_s3_credentials",
]
