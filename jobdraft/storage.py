from __future__ import annotations

import datetime as _dt
import uuid
from pathlib import Path
from typing import Optional

import orjson
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import StorageError
from .hashing import sha256_bytes
from .schemas import AuditEvent, SessionSummary
from .settings import settings

Base = declarative_base()

_default_engine: Optional[Engine] = None


def _utc_now_iso() -> str:
    return _dt.datetime.now(tz=_dt.timezone.utc).isoformat()


class EditSessionRow(Base):
    __tablename__ = "edit_sessions"
    session_id = Column(String, primary_key=True)
    job_id = Column(String, nullable=True)
    draft_key = Column(String, nullable=False)
    started_at = Column(String, nullable=False)
    finished_at = Column(String, nullable=True)
    status = Column(String, nullable=False)
    error_message = Column(Text, nullable=True)


class Draft(Base):
    __tablename__ = "drafts"
    key = Column(String, primary_key=True)
    payload = Column(Text, nullable=False)
    sha256 = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class Audit(Base):
    __tablename__ = "audit"
    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, nullable=False)
    step = Column(String, nullable=False)
    status = Column(String, nullable=False)
    ts_iso = Column(String, nullable=False)
    ts_ns = Column(Integer, nullable=False)
    input_digest = Column(String, nullable=True)
    output_digest = Column(String, nullable=True)
    prev_event_hash = Column(String, nullable=False)
    event_hash = Column(String, nullable=False)
    details_json = Column(Text, nullable=False)


def make_engine(path: Path) -> Engine:
    """Open (and create if needed) the SQLite file at ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{path}", echo=False, future=True)
    Base.metadata.create_all(engine)
    return engine


def get_engine() -> Engine:
    global _default_engine
    if _default_engine is None:
        _default_engine = make_engine(settings.db_path())
    return _default_engine


def _session(engine: Optional[Engine]):
    factory = sessionmaker(bind=engine or get_engine(), autoflush=False, autocommit=False, future=True)
    return factory()


# Edit sessions

def create_session(job_id: Optional[str], draft_key: str, engine: Optional[Engine] = None) -> str:
    session_id = str(uuid.uuid4())
    with _session(engine) as db:
        db.add(
            EditSessionRow(
                session_id=session_id,
                job_id=job_id,
                draft_key=draft_key,
                started_at=_utc_now_iso(),
                finished_at=None,
                status="open",
                error_message=None,
            )
        )
        db.commit()
    return session_id


def finish_session(session_id: str, status: str, error_message: Optional[str] = None, engine: Optional[Engine] = None) -> None:
    with _session(engine) as db:
        stmt = (
            update(EditSessionRow)
            .where(EditSessionRow.session_id == session_id)
            .values(
                finished_at=_utc_now_iso(),
                status=status,
                error_message=error_message,
            )
        )
        db.execute(stmt)
        db.commit()


def get_session(session_id: str, engine: Optional[Engine] = None) -> Optional[SessionSummary]:
    with _session(engine) as db:
        row = db.get(EditSessionRow, session_id)
        if not row:
            return None
        return SessionSummary(
            session_id=row.session_id,
            job_id=row.job_id,
            draft_key=row.draft_key,
            started_at=row.started_at,
            finished_at=row.finished_at,
            status=row.status,
            error_message=row.error_message,
        )


# Draft slots

def read_draft(key: str, engine: Optional[Engine] = None) -> Optional[bytes]:
    with _session(engine) as db:
        row = db.get(Draft, key)
        return row.payload.encode("utf-8") if row else None


def write_draft(key: str, payload: bytes, engine: Optional[Engine] = None) -> str:
    """Upsert the slot in a single transaction; return the payload digest."""
    digest = sha256_bytes(payload)
    text = payload.decode("utf-8")
    with _session(engine) as db:
        try:
            row = db.get(Draft, key)
            if row is None:
                db.add(Draft(key=key, payload=text, sha256=digest, updated_at=_utc_now_iso()))
            else:
                row.payload = text
                row.sha256 = digest
                row.updated_at = _utc_now_iso()
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageError(f"Could not write draft {key}: {exc}") from exc
    return digest


def delete_draft(key: str, engine: Optional[Engine] = None) -> bool:
    with _session(engine) as db:
        result = db.execute(delete(Draft).where(Draft.key == key))
        db.commit()
        return bool(result.rowcount)


# Audit rows

def append_audit(event: AuditEvent, engine: Optional[Engine] = None) -> None:
    with _session(engine) as db:
        db.add(
            Audit(
                session_id=event.session_id,
                step=event.step,
                status=event.status,
                ts_iso=event.ts_iso,
                ts_ns=event.ts_ns,
                input_digest=event.input_digest,
                output_digest=event.output_digest,
                prev_event_hash=event.prev_event_hash,
                event_hash=event.event_hash,
                details_json=orjson.dumps(event.details, option=orjson.OPT_SORT_KEYS).decode(),
            )
        )
        db.commit()


def get_last_audit_hash(session_id: str, engine: Optional[Engine] = None) -> Optional[str]:
    with _session(engine) as db:
        stmt = select(Audit).where(Audit.session_id == session_id).order_by(Audit.id.desc()).limit(1)
        row = db.execute(stmt).scalars().first()
        return row.event_hash if row else None
