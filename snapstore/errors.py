# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for snapstore.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_missing_container(env_var: str) -> str:
    """
    Explain that no container/bucket name could be resolved.
    """

    return (
        "storage container name not specified. "
        f"Set the {env_var} environment variable or pass container=... to create_config()."
    )


def explain_unsupported_provider(value: str | None) -> str:
    """
    Explain that the storage provider is unknown.
    """

    return (
        f"unsupported storage provider : {value}. "
        "Expected one of: 'Local', 'S3', 'ECS', 'OCS', or a registered provider."
    )


def explain_missing_env_var(name: str) -> str:
    """
    Explain that a required environment variable is missing.
    """

    return f"missing environment variable {name}"


def explain_invalid_bool_env(name: str, value: str | None) -> str:
    """
    Explain that an environment variable is not a boolean.
    """

    return f"Invalid {name} value: {value!r}. Expected 'true' or 'false'."


def explain_invalid_int_env(name: str, value: str | None) -> str:
    """
    Explain that an environment variable is not a positive integer.
    """

    return f"Invalid {name} value: {value!r}. It must be a positive integer."


def explain_missing_credentials(provider: str, env_prefix: str) -> str:
    """
    Explain that no credentials were found for an S3-compatible provider.
    """

    return (
        f"No credentials found for {provider}. "
        f"Set {env_prefix}AWS_APPLICATION_CREDENTIALS_JSON or "
        f"{env_prefix}AWS_APPLICATION_CREDENTIALS (a directory of credential files)."
    )
