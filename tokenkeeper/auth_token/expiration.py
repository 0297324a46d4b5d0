"""Access token expiration inspection.

Reads the ``exp`` claim of a JWT without verifying its signature and without
touching the network. Signature checks are the identity provider's job.
"""

from __future__ import annotations

import time

import jwt

from ..errors.internal import DecodeError


def decode_claims(access_token: str) -> dict:
    """Return the unverified claim set of ``access_token``.

    Raises:
        DecodeError: If the token is not a decodable JWT.
    """
    if not isinstance(access_token, str) or not access_token:
        raise DecodeError("Access token is empty")
    try:
        claims = jwt.decode(
            access_token,
            options={"verify_signature": False, "verify_exp": False},
        )
    except jwt.PyJWTError as e:
        raise DecodeError(f"Malformed access token: {e}") from e
    if not isinstance(claims, dict):
        raise DecodeError("Access token claims are not an object")
    return claims


def time_remaining(access_token: str, *, now: float | None = None) -> float:
    """Return seconds until the token's ``exp`` instant (negative once expired).

    Args:
        access_token: Encoded JWT access token.
        now: Reference epoch seconds; defaults to the current time.

    Raises:
        DecodeError: If the token is malformed or has no numeric ``exp``.
    """
    exp = decode_claims(access_token).get("exp")
    if isinstance(exp, bool) or not isinstance(exp, int | float):
        raise DecodeError("Access token has no numeric exp claim")
    current = time.time() if now is None else now
    return float(exp) - current


def is_expired(access_token: str, *, leeway: float = 0.0, now: float | None = None) -> bool:
    """True when the token is expired, expires within ``leeway`` or cannot be decoded."""
    try:
        return time_remaining(access_token, now=now) <= leeway
    except DecodeError:
        return True
