from __future__ import annotations

import time
from pathlib import Path

import pytest

from jobdraft.auth import SessionManager, api_host
from jobdraft.errors import AuthError


@pytest.fixture
def manager(tmp_path: Path) -> SessionManager:
    return SessionManager(sessions_dir=tmp_path / "sessions", host="jobs.example:3000")


def test_api_host():
    assert api_host("https://jobs.example:3000/api") == "jobs.example:3000"
    assert api_host("not a url") == "default"


def test_missing_session(manager):
    with pytest.raises(AuthError, match="Not authenticated"):
        manager.access_token()


def test_saved_session_is_returned(manager):
    path = manager.save_session("abc", expires_in=3600)
    assert path.name == "jobs.example_3000.json"
    assert manager.access_token() == "abc"


def test_expired_session(manager):
    manager.save_session("abc", expires_in=60)
    with pytest.raises(AuthError, match="Session expired"):
        manager.access_token(now=time.time() + 120)


def test_clear_session(manager):
    manager.save_session("abc")
    manager.clear_session()
    manager.clear_session()
    assert manager.load_state() is None


def test_corrupt_session_file_counts_as_missing(manager):
    manager.state_path_for("jobs.example:3000").parent.mkdir(parents=True)
    manager.state_path_for("jobs.example:3000").write_text("{oops", encoding="utf-8")
    with pytest.raises(AuthError):
        manager.access_token()


@pytest.mark.asyncio
async def test_async_token_lookup(manager):
    manager.save_session("abc")
    assert await manager.get_access_token() == "abc"
