"""Hash-chained trail of one edit session.

Every event goes to ``<audit dir>/<session_id>/audit.jsonl`` and to the
``audit`` table. Save events carry the change set the user confirmed
(``input_digest``) and the digest of the payload that was sent
(``output_digest``); draft events carry the digest of the stored draft.
"""
from __future__ import annotations

import datetime as _dt
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import orjson
from sqlalchemy.engine import Engine

from .hashing import canonical_json, chain_next, changeset_digest, draft_digest, payload_digest
from .schemas import AuditEvent, FormDraft
from .settings import settings
from . import storage

SESSION_STEPS = (
    "session.opened",
    "session.open_failed",
    "draft.restored",
    "draft.seeded",
    "save.requested",
    "save.cancelled",
    "save.auth_failed",
    "save.validation_failed",
    "save.persist_failed",
    "save.succeeded",
    "session.discarded",
    "session.closed",
)
# Steps that answer an open confirmation prompt.
SAVE_OUTCOMES = ("save.auth_failed", "save.validation_failed", "save.persist_failed", "save.succeeded")
# Nothing may follow these in a session.
TERMINAL_STEPS = ("session.open_failed", "save.succeeded", "session.discarded", "session.closed")


def audit_log_path(session_id: str) -> Path:
    return settings.audit_dir_for(session_id) / "audit.jsonl"


def read_events(path: Path) -> List[Dict[str, Any]]:
    return [orjson.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


class AuditTrail:
    def __init__(self, engine: Optional[Engine] = None) -> None:
        self._engine = engine
        self._heads: Dict[str, str] = {}

    def _head(self, session_id: str) -> str:
        if session_id not in self._heads:
            self._heads[session_id] = storage.get_last_audit_hash(session_id, engine=self._engine) or ""
        return self._heads[session_id]

    def log_event(
        self,
        session_id: str,
        step: str,
        status: str = "ok",
        details: Optional[Dict[str, Any]] = None,
        input_digest: Optional[str] = None,
        output_digest: Optional[str] = None,
    ) -> AuditEvent:
        if step not in SESSION_STEPS:
            raise ValueError(f"Unknown audit step: {step}")
        body = {
            "session_id": session_id,
            "step": step,
            "status": status,
            "ts_iso": _dt.datetime.now(tz=_dt.timezone.utc).isoformat(timespec="seconds"),
            "ts_ns": time.time_ns(),
            "input_digest": input_digest,
            "output_digest": output_digest,
            "details": details or {},
            "prev_event_hash": self._head(session_id),
        }
        event = AuditEvent(**body, event_hash=chain_next(body["prev_event_hash"], body))

        with open(audit_log_path(session_id), "ab") as f:
            f.write(canonical_json(event.model_dump()) + b"\n")
        storage.append_audit(event, engine=self._engine)
        self._heads[session_id] = event.event_hash
        return event

    def log_draft(self, session_id: str, step: str, key: str, draft: FormDraft) -> AuditEvent:
        return self.log_event(session_id, step, details={"draft_key": key}, output_digest=draft_digest(draft))

    def log_save(
        self,
        session_id: str,
        step: str,
        changes: Sequence[str],
        payload: Optional[Dict[str, Any]] = None,
        status: str = "ok",
        **details: Any,
    ) -> AuditEvent:
        return self.log_event(
            session_id,
            step,
            status=status,
            details={"changes": list(changes), **details},
            input_digest=changeset_digest(changes),
            output_digest=payload_digest(payload) if payload is not None else None,
        )
