"""Centralized internal error hierarchy.

These exceptions give the session core semantic failure categories. Raw
aiohttp / JSON / PyJWT errors never cross a component boundary; they are
wrapped into one of these first.

Classes:
  InternalError         – Base for all internal errors.
  NetworkError          – Transport level failure (connection, timeout).
  ParsingError          – Response body missing fields or not JSON.
  DecodeError           – Access token claims could not be decoded.
  RenewalError          – Remote renewal rejected or timed out (terminal).
  NoRefreshCredential   – No refresh token stored when renewal was needed.
  UnauthorizedResponse  – Outbound call rejected after the one allowed retry.
  IssueError            – Login / register call failed.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class InternalError(Exception):
    """Base class for all internal errors with metadata support.

    Attributes:
        data: Dictionary containing arbitrary structured context data.

    Args:
        message: Descriptive error message.
        data: Optional mapping of additional context data.
    """

    data: dict[str, object]

    def __init__(
        self, message: str, *, data: Mapping[str, object] | None = None
    ) -> None:
        super().__init__(message)
        # Copy into a plain dict to avoid unexpected mutations from caller.
        self.data = dict(data) if data else {}


class NetworkError(InternalError):
    """Transport layer failure such as a connection reset or timeout."""


class ParsingError(InternalError):
    """Response body could not be parsed or lacked required fields."""


class DecodeError(InternalError):
    """The access token is malformed or carries no usable expiration claim.

    Callers treat this exactly like an expired token.
    """


class RenewalError(InternalError):
    """The renewal call failed.

    Rejections, timeouts, transport errors and malformed responses all
    collapse into this one error. It is always terminal for the session.
    """


class NoRefreshCredential(RenewalError):
    """No refresh token was available when a renewal was attempted."""

    def __init__(self, message: str = "No refresh token available") -> None:
        super().__init__(message)


class UnauthorizedResponse(InternalError):
    """An outbound request was rejected as unauthorized and cannot be recovered.

    Args:
        message: Error message.
        response: The final response object that carried the 401, if any.
    """

    def __init__(self, message: str, *, response: Any = None) -> None:
        status = getattr(response, "status", None)
        super().__init__(message, data={"status": status} if status else None)
        self.response = response


class IssueError(InternalError):
    """Login or registration was refused by the identity provider."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message, data={"status": status} if status else None)
        self.status = status


__all__ = [
    "InternalError",
    "NetworkError",
    "ParsingError",
    "DecodeError",
    "RenewalError",
    "NoRefreshCredential",
    "UnauthorizedResponse",
    "IssueError",
]
