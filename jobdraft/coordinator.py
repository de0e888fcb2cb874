from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from .audit import AuditTrail
from .changes import detect_changes
from .drafts import DebouncedDraftWriter, DraftStore
from .errors import AuthError, PersistError
from .form import FormModel
from .normalize import to_payload
from .schemas import FieldError, FormDraft, SaveFailure, SaveOutcome, SaveSuccess


GENERIC_PERSIST_FAILURE = "Failed to update job. Please try again."
SUCCESS_MESSAGE = "Job updated successfully!"

Persist = Callable[[Optional[str], Dict[str, Any], str], Awaitable[Dict[str, Any]]]


class TokenSource(Protocol):
    async def get_access_token(self) -> str: ...


class SaveState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    SAVING = "saving"
    CLEARED = "cleared"


@dataclass
class ConfirmationPrompt:
    """What a confirmation dialog needs to render and act."""

    changes: List[str]
    is_loading: bool
    on_confirm: Callable[[], Awaitable[Optional[SaveOutcome]]]
    on_close: Callable[[], None]
    errors: List[str] = field(default_factory=list)


def _guard_errors(payload: Dict[str, Any]) -> List[FieldError]:
    errors = []
    for name in ("title", "description", "location"):
        if not payload.get(name):
            errors.append(FieldError(field=name, message=f"{name.capitalize()} is required"))
    return errors


class SaveCoordinator:
    def __init__(
        self,
        job_id: Optional[str],
        form: FormModel,
        baseline: FormDraft,
        auth: TokenSource,
        persist: Persist,
        store: DraftStore,
        key: str,
        writer: Optional[DebouncedDraftWriter] = None,
        on_saved: Optional[Callable[[Dict[str, Any]], None]] = None,
        audit: Optional[AuditTrail] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.job_id = job_id
        self._form = form
        self._baseline = baseline.model_copy(deep=True)
        self._auth = auth
        self._persist = persist
        self._store = store
        self._key = key
        self._writer = writer
        self._on_saved = on_saved
        self._audit = audit
        self._session_id = session_id
        self.state = SaveState.IDLE
        self.last_outcome: Optional[SaveOutcome] = None
        self.persist_calls = 0

    def _log(self, step: str, changes: List[str], payload: Optional[Dict[str, Any]] = None, status: str = "ok", **details: Any) -> None:
        if self._audit is not None and self._session_id:
            self._audit.log_save(self._session_id, step, changes, payload=payload, status=status, **details)

    @property
    def changes(self) -> List[str]:
        return detect_changes(self._baseline, self._form.draft)

    def prompt(self) -> ConfirmationPrompt:
        errors = []
        if isinstance(self.last_outcome, SaveFailure):
            errors = [self.last_outcome.message]
        return ConfirmationPrompt(
            changes=self.changes,
            is_loading=self.state is SaveState.SAVING,
            on_confirm=self.confirm_and_save,
            on_close=self.cancel,
            errors=errors,
        )

    def request_save(self) -> ConfirmationPrompt:
        if self.state is SaveState.IDLE:
            if self._writer is not None:
                self._writer.flush()
            self.state = SaveState.AWAITING_CONFIRMATION
            self.last_outcome = None
            self._log("save.requested", self.changes)
        return self.prompt()

    def cancel(self) -> None:
        if self.state is SaveState.AWAITING_CONFIRMATION:
            self.state = SaveState.IDLE
            self._log("save.cancelled", self.changes)

    def _fail(self, failure: SaveFailure, step: str, changes: List[str], payload: Optional[Dict[str, Any]] = None) -> SaveFailure:
        self.state = SaveState.AWAITING_CONFIRMATION
        self.last_outcome = failure
        self._log(step, changes, payload=payload, status="error", kind=failure.kind, message=failure.message)
        return failure

    async def confirm_and_save(self) -> Optional[SaveOutcome]:
        """Run the single save attempt.

        Returns None when the call is ignored: a save is already in flight
        or the confirmation step was never opened.
        """
        if self.state is not SaveState.AWAITING_CONFIRMATION:
            return None
        self.state = SaveState.SAVING
        changes = self.changes

        try:
            token = await self._auth.get_access_token()
        except AuthError as exc:
            return self._fail(SaveFailure(kind="auth", message=str(exc) or "Authentication error. Please refresh and try again."), "save.auth_failed", changes)
        except Exception as exc:
            return self._fail(SaveFailure(kind="auth", message=f"Authentication error: {exc}"), "save.auth_failed", changes)
        if not token:
            return self._fail(SaveFailure(kind="auth", message="Not authenticated. Please log in again."), "save.auth_failed", changes)

        payload = to_payload(self._form.draft)
        field_errors = _guard_errors(payload)
        if field_errors:
            return self._fail(
                SaveFailure(kind="validation", message="Title, description, and location are required", field_errors=field_errors),
                "save.validation_failed",
                changes,
                payload,
            )

        self.persist_calls += 1
        try:
            job = await self._persist(self.job_id, payload, token)
        except PersistError as exc:
            return self._fail(SaveFailure(kind="persist", message=str(exc) or GENERIC_PERSIST_FAILURE), "save.persist_failed", changes, payload)
        except Exception:
            return self._fail(SaveFailure(kind="persist", message=GENERIC_PERSIST_FAILURE), "save.persist_failed", changes, payload)

        if self._writer is not None:
            self._writer.cancel()
        self._store.clear(self._key)
        self.state = SaveState.CLEARED
        success = SaveSuccess(message=SUCCESS_MESSAGE, job=job or None)
        self.last_outcome = success
        self._log("save.succeeded", changes, payload=payload)
        if self._on_saved is not None:
            self._on_saved(job or {})
        return success
