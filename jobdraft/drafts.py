from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

import orjson
from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import StorageError
from .hashing import canonical_json
from .schemas import FormDraft
from .settings import settings
from . import storage

logger = logging.getLogger(__name__)

NEW_JOB_SENTINEL = "new"


def draft_key(job_id: Optional[str]) -> str:
    prefix = settings.drafts.get("key_prefix", "job-draft-")
    return f"{prefix}{job_id or NEW_JOB_SENTINEL}"


def baseline_key(key: str) -> str:
    return f"{key}.baseline"


class DraftStore:
    """Durable slot per job holding an in-progress FormDraft.

    Storage problems never raise out of this class: reads degrade to
    "no draft", writes and clears log a warning and report False.
    """

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self._engine = engine

    def load(self, key: str) -> Optional[FormDraft]:
        raw = self.load_raw(key)
        if raw is None:
            return None
        try:
            return FormDraft.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError, TypeError) as exc:
            logger.warning("Ignoring unreadable draft %s: %s", key, exc)
            return None

    def load_raw(self, key: str) -> Optional[bytes]:
        try:
            return storage.read_draft(key, engine=self._engine)
        except SQLAlchemyError as exc:
            logger.warning("Could not read draft %s: %s", key, exc)
            return None

    def save(self, key: str, draft: FormDraft) -> bool:
        try:
            payload = canonical_json(draft.model_dump(mode="json"))
        except (TypeError, orjson.JSONEncodeError) as exc:
            logger.warning("Draft %s not persisted, serialization failed: %s", key, exc)
            return False
        try:
            storage.write_draft(key, payload, engine=self._engine)
        except (StorageError, SQLAlchemyError) as exc:
            logger.warning("Draft %s not persisted, changes will not survive a reload: %s", key, exc)
            return False
        return True

    def clear(self, key: str) -> bool:
        try:
            storage.delete_draft(key, engine=self._engine)
        except SQLAlchemyError as exc:
            logger.warning("Could not clear draft %s: %s", key, exc)
            return False
        return True


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


class DebouncedDraftWriter:
    """Trailing-edge debounce in front of DraftStore.save.

    Each schedule() replaces the pending snapshot and restarts the timer,
    so a burst of edits produces a single write of the last state.
    """

    def __init__(
        self,
        store: DraftStore,
        key: str,
        delay: Optional[float] = None,
        scheduler: Optional[Scheduler] = None,
        on_write: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self._store = store
        self._key = key
        self._delay = settings.debounce_seconds if delay is None else delay
        self._scheduler = scheduler
        self._on_write = on_write
        self._pending: Optional[FormDraft] = None
        self._handle: Optional[TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def schedule(self, draft: FormDraft) -> None:
        self._pending = draft.model_copy(deep=True)
        if self._handle is not None:
            self._handle.cancel()
        scheduler = self._scheduler or asyncio.get_running_loop()
        self._handle = scheduler.call_later(self._delay, self.flush)

    def flush(self) -> bool:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._pending is None:
            return True
        draft, self._pending = self._pending, None
        ok = self._store.save(self._key, draft)
        if self._on_write is not None:
            self._on_write(ok)
        return ok

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None
