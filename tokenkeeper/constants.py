"""
Configuration constants for the session token keeper

This module contains all configurable constants used throughout the package.
Each constant can be overridden by setting an environment variable with the same name.
"""

import os


def _get_env_int(name: str, default: int) -> int:
    """Retrieve an integer value from an environment variable.

    Attempts to parse the environment variable as an integer. If the variable
    is not set or cannot be parsed, prints a warning and returns the default value.

    Args:
        name: The name of the environment variable to read.
        default: The default integer value to return if parsing fails.

    Returns:
        The parsed integer value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            print(
                f"Warning: Invalid integer value for {name}='{value}', using default {default}"
            )
    return default


def _get_env_float(name: str, default: float) -> float:
    """Retrieve a float value from an environment variable.

    Attempts to parse the environment variable as a float. If the variable
    is not set or cannot be parsed, prints a warning and returns the default value.

    Args:
        name: The name of the environment variable to read.
        default: The default float value to return if parsing fails.

    Returns:
        The parsed float value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            print(
                f"Warning: Invalid float value for {name}='{value}', using default {default}"
            )
    return default


def _get_env_str(name: str, default: str) -> str:
    """Retrieve a string value from an environment variable (blank means default)."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


# Identity provider endpoints
API_BASE_URL = _get_env_str("API_BASE_URL", "https://yufin-backend.vercel.app")
AUTH_LOGIN_PATH = _get_env_str("AUTH_LOGIN_PATH", "/auth/login")
AUTH_REGISTER_PATH = _get_env_str("AUTH_REGISTER_PATH", "/auth/register")
TOKEN_REFRESH_PATH = _get_env_str("TOKEN_REFRESH_PATH", "/token/refresh")
TOKEN_REVOKE_PATH = _get_env_str("TOKEN_REVOKE_PATH", "/token/logout")

# Network timeouts
RENEWAL_TIMEOUT_SECONDS = _get_env_float(
    "RENEWAL_TIMEOUT_SECONDS", 30.0
)  # Upper bound for one renewal call; exceeding it is a renewal failure
REQUEST_TIMEOUT_SECONDS = _get_env_float(
    "REQUEST_TIMEOUT_SECONDS", 30.0
)  # Default total timeout for gateway requests

# Preemptive renewal
WATCHER_INTERVAL_SECONDS = _get_env_float(
    "WATCHER_INTERVAL_SECONDS", 240.0
)  # Seconds between expiration checks (4 min default)
PREEMPTIVE_THRESHOLD_SECONDS = _get_env_float(
    "PREEMPTIVE_THRESHOLD_SECONDS", 300.0
)  # Renew when fewer than this many seconds remain (5 min default)

# Session termination
REDIRECT_DELAY_SECONDS = _get_env_float(
    "REDIRECT_DELAY_SECONDS", 1.5
)  # Delay before redirecting to the unauthenticated entry point
UNAUTHENTICATED_ENTRY_POINT = _get_env_str("UNAUTHENTICATED_ENTRY_POINT", "/")
REVOKE_MAX_ATTEMPTS = _get_env_int(
    "REVOKE_MAX_ATTEMPTS", 2
)  # Best-effort revoke attempts after termination

# Persistence
TOKEN_STORE_PATH = _get_env_str(
    "TOKEN_STORE_PATH", ""
)  # Empty selects the in-memory store
