"""Credential persistence.

The store holds exactly two opaque strings under fixed keys. It performs no
validation; pairing the two members is the caller's responsibility
(``set_pair`` exists so that the coordinator can do it in one call).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from .types import CredentialPair, TokenKind


class TokenStore(ABC):
    """Synchronous key-value holder for the current credential pair."""

    @abstractmethod
    def get(self, kind: TokenKind) -> str | None:
        """Return the stored credential of ``kind`` or None."""

    @abstractmethod
    def set(self, kind: TokenKind, value: str) -> None:
        """Persist ``value`` as the credential of ``kind``."""

    @abstractmethod
    def delete(self, kind: TokenKind) -> None:
        """Remove the credential of ``kind`` if present."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every stored credential."""

    def set_pair(self, pair: CredentialPair) -> None:
        self.set(TokenKind.ACCESS, pair.access_token)
        self.set(TokenKind.REFRESH, pair.refresh_token)

    def get_pair(self) -> CredentialPair | None:
        access = self.get(TokenKind.ACCESS)
        refresh = self.get(TokenKind.REFRESH)
        if not access or not refresh:
            return None
        return CredentialPair(access, refresh)

    def has_session(self) -> bool:
        """A session exists while a non-empty pair is stored."""
        return self.get_pair() is not None


class MemoryTokenStore(TokenStore):
    """Process-local store backed by a dict."""

    def __init__(self, initial: CredentialPair | None = None) -> None:
        self._values: dict[TokenKind, str] = {}
        if initial is not None:
            self.set_pair(initial)

    def get(self, kind: TokenKind) -> str | None:
        return self._values.get(kind)

    def set(self, kind: TokenKind, value: str) -> None:
        self._values[kind] = value

    def delete(self, kind: TokenKind) -> None:
        self._values.pop(kind, None)

    def clear(self) -> None:
        self._values.clear()


class FileTokenStore(TokenStore):
    """JSON file store with atomic writes.

    The file holds a single object keyed by ``TokenKind`` values. Every write
    goes to a temp file in the same directory and is moved into place with
    ``os.replace`` so readers never observe a partially written file.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        if not isinstance(path, str | os.PathLike):
            raise TypeError("path must be str or os.PathLike")
        self.path = Path(path)

    def get(self, kind: TokenKind) -> str | None:
        value = self._load().get(kind.value)
        return value if isinstance(value, str) and value else None

    def set(self, kind: TokenKind, value: str) -> None:
        data = self._load()
        data[kind.value] = value
        self._atomic_write(data)

    def set_pair(self, pair: CredentialPair) -> None:
        # Single write so the file never holds members of two different pairs.
        data = self._load()
        data[TokenKind.ACCESS.value] = pair.access_token
        data[TokenKind.REFRESH.value] = pair.refresh_token
        self._atomic_write(data)

    def delete(self, kind: TokenKind) -> None:
        data = self._load()
        if data.pop(kind.value, None) is not None:
            self._atomic_write(data)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            logging.warning(f"⚠️ Token store unlink failed, overwriting path={self.path} error={e}")
            self._atomic_write({})

    def _load(self) -> dict[str, Any]:
        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logging.error(f"💥 Token store load error path={self.path} error={e}")
            return {}
        if not isinstance(data, dict):
            logging.warning(f"⚠️ Token store content is not an object path={self.path}")
            return {}
        return data

    def _atomic_write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, separators=(",", ":"))
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


def create_token_store(path: str | None = None) -> TokenStore:
    """Return a file store for ``path`` or a memory store when it is empty."""
    if path:
        return FileTokenStore(path)
    return MemoryTokenStore()
