from __future__ import annotations

import json
import os
import stat

import pytest

from tokenkeeper.auth_token.store import (
    FileTokenStore,
    MemoryTokenStore,
    create_token_store,
)
from tokenkeeper.auth_token.types import CredentialPair, TokenKind


def test_memory_store_roundtrip_and_clear():
    store = MemoryTokenStore()
    assert store.get_pair() is None
    assert not store.has_session()

    store.set_pair(CredentialPair("access-1", "refresh-1"))
    assert store.get(TokenKind.ACCESS) == "access-1"
    assert store.has_session()

    store.delete(TokenKind.ACCESS)
    assert store.get_pair() is None
    assert store.get(TokenKind.REFRESH) == "refresh-1"

    store.clear()
    assert store.get(TokenKind.REFRESH) is None


def test_file_store_persists_pair(tmp_path):
    path = tmp_path / "nested" / "tokens.json"
    store = FileTokenStore(path)

    store.set_pair(CredentialPair("access-1", "refresh-1"))

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data == {"accessToken": "access-1", "refreshToken": "refresh-1"}
    assert FileTokenStore(path).get_pair() == CredentialPair("access-1", "refresh-1")
    if os.name == "posix":
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
    # No temp files left behind.
    assert [p.name for p in path.parent.iterdir()] == ["tokens.json"]


def test_file_store_delete_and_clear(tmp_path):
    path = tmp_path / "tokens.json"
    store = FileTokenStore(path)
    store.set_pair(CredentialPair("access-1", "refresh-1"))

    store.delete(TokenKind.ACCESS)
    assert store.get(TokenKind.ACCESS) is None
    assert store.get(TokenKind.REFRESH) == "refresh-1"

    store.clear()
    assert not path.exists()
    store.clear()
    assert store.get_pair() is None


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"accessToken": 5}'])
def test_file_store_tolerates_bad_content(tmp_path, content):
    path = tmp_path / "tokens.json"
    path.write_text(content, encoding="utf-8")
    store = FileTokenStore(path)

    assert store.get(TokenKind.ACCESS) is None

    store.set(TokenKind.REFRESH, "refresh-2")
    assert store.get(TokenKind.REFRESH) == "refresh-2"


def test_file_store_rejects_bad_path():
    with pytest.raises(TypeError):
        FileTokenStore(42)  # type: ignore[arg-type]


def test_create_token_store(tmp_path):
    assert isinstance(create_token_store(""), MemoryTokenStore)
    assert isinstance(create_token_store(None), MemoryTokenStore)
    file_store = create_token_store(str(tmp_path / "t.json"))
    assert isinstance(file_store, FileTokenStore)
