from __future__ import annotations

import datetime as _dt
import logging
import traceback
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .audit import AuditTrail
from .auth import SessionManager
from .changes import detect_changes
from .coordinator import ConfirmationPrompt, SaveCoordinator, SaveState
from .defaults import load_job_defaults
from .drafts import DebouncedDraftWriter, DraftStore, Scheduler, baseline_key, draft_key
from .form import FormModel
from .hashing import changeset_digest, sha256_bytes
from .jobs_api import JobsApi
from .schemas import FormDraft, SaveOutcome
from .settings import JobPostingDefaults, settings
from . import storage

logger = logging.getLogger(__name__)

DRAFT_NOT_PERSISTED = "Changes could not be saved locally and will not survive a reload."


class EditSession:
    """One open editor for one job posting.

    Wires the form to its draft slot (debounced), keeps the change list
    current and hands saving to a SaveCoordinator.
    """

    def __init__(
        self,
        session_id: str,
        job_id: Optional[str],
        key: str,
        form: FormModel,
        baseline: FormDraft,
        store: DraftStore,
        audit: AuditTrail,
        engine: Optional[Engine] = None,
        scheduler: Optional[Scheduler] = None,
        debounce_s: Optional[float] = None,
    ) -> None:
        self.session_id = session_id
        self.job_id = job_id
        self.key = key
        self.form = form
        self._baseline = baseline.model_copy(deep=True)
        self.store = store
        self.writer = DebouncedDraftWriter(store, key, delay=debounce_s, scheduler=scheduler, on_write=self._on_draft_written)
        self.audit = audit
        self._engine = engine
        self.warnings: List[str] = []
        self.closed = False
        self.coordinator: Optional[SaveCoordinator] = None
        self._changes = detect_changes(self._baseline, form.draft)
        form.subscribe(self._on_form_change)

    @classmethod
    async def open(
        cls,
        job_id: Optional[str],
        api: Optional[JobsApi] = None,
        auth: Optional[SessionManager] = None,
        store: Optional[DraftStore] = None,
        defaults: Optional[JobPostingDefaults] = None,
        scheduler: Optional[Scheduler] = None,
        audit: Optional[AuditTrail] = None,
        engine: Optional[Engine] = None,
        on_saved: Optional[Callable[[Dict[str, Any]], None]] = None,
        debounce_s: Optional[float] = None,
        now: Optional[_dt.datetime] = None,
    ) -> "EditSession":
        api = api or JobsApi()
        auth = auth or SessionManager()
        store = store or DraftStore(engine)
        audit = audit or AuditTrail(engine)
        defaults = defaults or load_job_defaults()
        key = draft_key(job_id)

        session_id = storage.create_session(job_id, key, engine=engine)
        audit.log_event(session_id, step="session.opened", details={"job_id": job_id, "draft_key": key, "cfg_hash": settings.cfg_hash})

        try:
            job = None
            if job_id:
                token = await auth.get_access_token()
                job = await api.get_job(job_id, token)
            form = FormModel.seed(job, defaults, now=now)
        except Exception as exc:
            tb_digest = sha256_bytes(traceback.format_exc().encode("utf-8"))
            audit.log_event(
                session_id,
                step="session.open_failed",
                status="error",
                details={"error_type": type(exc).__name__, "error_message": str(exc), "traceback_digest": tb_digest},
            )
            storage.finish_session(session_id, status="error", error_message=str(exc), engine=engine)
            raise

        baseline = form.snapshot()
        stored = store.load(key)
        seeded_ok = True
        if stored is not None:
            if job_id is None:
                # a new posting has no server copy; compare against the one it was started from
                kept = store.load(baseline_key(key))
                if kept is not None:
                    baseline = kept
            form.replace(stored)
            audit.log_draft(session_id, "draft.restored", key, stored)
        else:
            seeded_ok = store.save(key, baseline)
            if job_id is None:
                seeded_ok = store.save(baseline_key(key), baseline) and seeded_ok
            audit.log_draft(session_id, "draft.seeded", key, baseline)

        session = cls(
            session_id=session_id,
            job_id=job_id,
            key=key,
            form=form,
            baseline=baseline,
            store=store,
            audit=audit,
            engine=engine,
            scheduler=scheduler,
            debounce_s=debounce_s,
        )
        if not seeded_ok:
            session._on_draft_written(False)

        def _saved(job_row: Dict[str, Any]) -> None:
            session.store.clear(baseline_key(key))
            session._finish("saved")
            if on_saved is not None:
                on_saved(job_row)

        session.coordinator = SaveCoordinator(
            job_id=job_id,
            form=form,
            baseline=baseline,
            auth=auth,
            persist=api.put_job,
            store=store,
            key=key,
            writer=session.writer,
            on_saved=_saved,
            audit=audit,
            session_id=session_id,
        )
        return session

    @property
    def baseline(self) -> FormDraft:
        return self._baseline.model_copy(deep=True)

    @property
    def changes(self) -> List[str]:
        return list(self._changes)

    @property
    def has_unsaved_changes(self) -> bool:
        return bool(self._changes)

    @property
    def state(self) -> SaveState:
        return self.coordinator.state

    def _on_form_change(self, form: FormModel) -> None:
        self._changes = detect_changes(self._baseline, form.draft)
        if not self.closed:
            self.writer.schedule(form.draft)

    def _on_draft_written(self, ok: bool) -> None:
        if not ok and DRAFT_NOT_PERSISTED not in self.warnings:
            self.warnings.append(DRAFT_NOT_PERSISTED)

    def request_save(self) -> ConfirmationPrompt:
        return self.coordinator.request_save()

    async def confirm_and_save(self) -> Optional[SaveOutcome]:
        return await self.coordinator.confirm_and_save()

    def cancel_save(self) -> None:
        self.coordinator.cancel()

    def discard(self) -> None:
        """Drop the draft and close; only valid when no save is in flight."""
        if self.closed:
            return
        if self.coordinator.state is SaveState.SAVING:
            raise RuntimeError("Cannot close the editor while a save is in progress")
        self.writer.cancel()
        self.store.clear(self.key)
        self.store.clear(baseline_key(self.key))
        self.audit.log_event(
            self.session_id,
            step="session.discarded",
            details={"changes": len(self._changes)},
            input_digest=changeset_digest(self._changes),
        )
        self._finish("discarded")

    def close(self) -> None:
        """Close keeping the draft; pending edits are flushed first."""
        if self.closed:
            return
        if self.coordinator.state is SaveState.SAVING:
            raise RuntimeError("Cannot close the editor while a save is in progress")
        ok = self.writer.flush()
        self.audit.log_event(
            self.session_id,
            step="session.closed",
            status="ok" if ok else "error",
            details={"changes": len(self._changes)},
            input_digest=changeset_digest(self._changes),
        )
        self._finish("closed")

    def _finish(self, status: str) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            storage.finish_session(self.session_id, status=status, engine=self._engine)
        except SQLAlchemyError as exc:
            logger.warning("Could not record session %s as %s: %s", self.session_id, status, exc)
