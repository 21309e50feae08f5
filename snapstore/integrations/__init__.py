# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI admin plugin.
"""

from snapstore.integrations.fastapi import (
    get_snapstore_from_app,
    register_snapstore_routes,
    snapstore_lifespan,
    verify_api_key,
)

__all__ = [
    "get_snapstore_from_app",
    "register_snapstore_routes",
    "snapstore_lifespan",
    "verify_api_key",
]
