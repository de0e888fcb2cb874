from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import orjson

from .errors import AuthError
from .settings import settings


def api_host(url: Optional[str] = None) -> str:
    try:
        return urlparse(url or settings.api["base_url"]).netloc or "default"
    except ValueError:
        return "default"


class SessionManager:
    """Stores the bearer session used against the job API, one file per host."""

    def __init__(self, sessions_dir: Optional[Path] = None, host: Optional[str] = None) -> None:
        self._dir = sessions_dir or settings.sessions_dir()
        self._host = host or api_host()

    def state_path_for(self, host: str) -> Path:
        safe = host.replace(":", "_")
        return self._dir / f"{safe}.json"

    def load_state(self, host: Optional[str] = None) -> Optional[Dict[str, Any]]:
        p = self.state_path_for(host or self._host)
        if p.exists():
            try:
                state = orjson.loads(p.read_bytes())
            except (OSError, orjson.JSONDecodeError):
                return None
            return state if isinstance(state, dict) else None
        return None

    def save_session(self, access_token: str, expires_in: Optional[int] = None, host: Optional[str] = None) -> Path:
        state: Dict[str, Any] = {"access_token": access_token}
        if expires_in:
            state["expires_at"] = int(time.time()) + int(expires_in)
        p = self.state_path_for(host or self._host)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(orjson.dumps(state))
        return p

    def clear_session(self, host: Optional[str] = None) -> None:
        p = self.state_path_for(host or self._host)
        if p.exists():
            p.unlink()

    def access_token(self, now: Optional[float] = None) -> str:
        state = self.load_state()
        if not state or not state.get("access_token"):
            raise AuthError("Not authenticated. Please log in again.")
        expires_at = state.get("expires_at")
        if expires_at is not None and float(expires_at) <= (now if now is not None else time.time()):
            raise AuthError("Session expired. Please log in again.")
        return str(state["access_token"])

    async def get_access_token(self) -> str:
        return self.access_token()
