from __future__ import annotations

import asyncio

import orjson
import pytest

from jobdraft.audit import AuditTrail
from jobdraft.coordinator import GENERIC_PERSIST_FAILURE, SaveCoordinator, SaveState
from jobdraft.errors import AuthError, PersistError
from jobdraft.form import FormModel
from jobdraft.hashing import payload_digest
from jobdraft.normalize import to_payload
from jobdraft.schemas import SaveFailure, SaveSuccess
from jobdraft.settings import settings

from conftest import FakeAuth, FakePersist

KEY = "job-draft-job-1"


def _coordinator(job, defaults, store, auth=None, persist=None, **kwargs):
    form = FormModel.seed(job, defaults)
    coord = SaveCoordinator(
        job_id="job-1",
        form=form,
        baseline=form.snapshot(),
        auth=auth or FakeAuth(),
        persist=persist or FakePersist(),
        store=store,
        key=KEY,
        **kwargs,
    )
    store.save(KEY, form.draft)
    return coord, form


def test_request_and_cancel_leave_draft_alone(job, defaults, store):
    coord, form = _coordinator(job, defaults, store)
    form.set_field("title", "Senior Backend Engineer")
    store.save(KEY, form.draft)
    before = store.load_raw(KEY)

    prompt = coord.request_save()
    assert coord.state is SaveState.AWAITING_CONFIRMATION
    assert prompt.changes == ['Title: "Backend Engineer" → "Senior Backend Engineer"']
    assert prompt.is_loading is False

    prompt.on_close()
    assert coord.state is SaveState.IDLE
    assert store.load_raw(KEY) == before
    assert form.draft.title == "Senior Backend Engineer"


@pytest.mark.asyncio
async def test_confirm_without_prompt_is_ignored(job, defaults, store):
    persist = FakePersist()
    coord, _ = _coordinator(job, defaults, store, persist=persist)
    assert await coord.confirm_and_save() is None
    assert persist.calls == []


@pytest.mark.asyncio
async def test_success_clears_draft_and_notifies(job, defaults, store):
    saved = []
    persist = FakePersist(result={"id": "job-1", "title": "Senior Backend Engineer"})
    coord, form = _coordinator(job, defaults, store, persist=persist, on_saved=saved.append)
    form.set_field("title", "Senior Backend Engineer")

    coord.request_save()
    outcome = await coord.confirm_and_save()

    assert isinstance(outcome, SaveSuccess)
    assert outcome.message == "Job updated successfully!"
    assert coord.state is SaveState.CLEARED
    assert store.load(KEY) is None
    assert saved == [{"id": "job-1", "title": "Senior Backend Engineer"}]
    call = persist.calls[0]
    assert call["job_id"] == "job-1"
    assert call["token"] == "token-123"
    assert call["payload"]["title"] == "Senior Backend Engineer"
    assert call["payload"]["job_type"] == "full_time"


@pytest.mark.asyncio
async def test_empty_changeset_still_saves(job, defaults, store):
    persist = FakePersist()
    coord, _ = _coordinator(job, defaults, store, persist=persist)
    prompt = coord.request_save()
    assert prompt.changes == []
    outcome = await prompt.on_confirm()
    assert isinstance(outcome, SaveSuccess)
    assert len(persist.calls) == 1


@pytest.mark.asyncio
async def test_only_one_save_in_flight(job, defaults, store):
    gate = asyncio.Event()
    calls = []

    async def slow_persist(job_id, payload, token):
        calls.append(payload)
        await gate.wait()
        return {"id": job_id}

    coord, _ = _coordinator(job, defaults, store, persist=slow_persist)
    coord.request_save()
    first = asyncio.create_task(coord.confirm_and_save())
    second = asyncio.create_task(coord.confirm_and_save())
    await asyncio.sleep(0)
    assert coord.state is SaveState.SAVING
    assert coord.prompt().is_loading is True

    gate.set()
    results = await asyncio.gather(first, second)
    assert len(calls) == 1
    assert coord.persist_calls == 1
    assert isinstance(results[0], SaveSuccess)
    assert results[1] is None


@pytest.mark.asyncio
async def test_persist_failure_keeps_draft_and_reports_server_message(job, defaults, store):
    persist = FakePersist(error=PersistError("salary_min must be positive", status_code=400))
    coord, form = _coordinator(job, defaults, store, persist=persist)
    form.set_field("title", "Senior Backend Engineer")
    store.save(KEY, form.draft)
    before = store.load_raw(KEY)

    coord.request_save()
    outcome = await coord.confirm_and_save()

    assert isinstance(outcome, SaveFailure)
    assert outcome.kind == "persist"
    assert outcome.message == "salary_min must be positive"
    assert coord.state is SaveState.AWAITING_CONFIRMATION
    assert store.load_raw(KEY) == before
    assert coord.prompt().errors == ["salary_min must be positive"]


@pytest.mark.asyncio
async def test_unexpected_failure_gets_generic_message_and_can_retry(job, defaults, store):
    persist = FakePersist(error=ConnectionResetError("peer reset"))
    coord, _ = _coordinator(job, defaults, store, persist=persist)
    coord.request_save()
    outcome = await coord.confirm_and_save()
    assert outcome.message == GENERIC_PERSIST_FAILURE

    persist.error = None
    outcome = await coord.confirm_and_save()
    assert isinstance(outcome, SaveSuccess)
    assert len(persist.calls) == 2


@pytest.mark.asyncio
async def test_missing_session_aborts_before_persist(job, defaults, store):
    persist = FakePersist()
    coord, _ = _coordinator(job, defaults, store, auth=FakeAuth(token=None), persist=persist)
    coord.request_save()
    outcome = await coord.confirm_and_save()
    assert outcome.kind == "auth"
    assert outcome.message == "Not authenticated. Please log in again."
    assert persist.calls == []
    assert coord.state is SaveState.AWAITING_CONFIRMATION
    assert store.load(KEY) is not None


@pytest.mark.asyncio
async def test_session_lookup_error_is_reported_as_auth(job, defaults, store):
    persist = FakePersist()
    coord, _ = _coordinator(job, defaults, store, auth=FakeAuth(error=AuthError("Session expired. Please log in again.")), persist=persist)
    coord.request_save()
    outcome = await coord.confirm_and_save()
    assert (outcome.kind, outcome.message) == ("auth", "Session expired. Please log in again.")
    assert persist.calls == []


@pytest.mark.asyncio
async def test_empty_title_never_reaches_persist(job, defaults, store):
    persist = FakePersist()
    coord, form = _coordinator(job, defaults, store, persist=persist)
    form.set_field("title", "   ")
    coord.request_save()
    outcome = await coord.confirm_and_save()
    assert outcome.kind == "validation"
    assert [e.field for e in outcome.field_errors] == ["title"]
    assert persist.calls == []
    assert coord.state is SaveState.AWAITING_CONFIRMATION


@pytest.mark.asyncio
async def test_pending_debounced_write_dropped_after_success(job, defaults, store, scheduler):
    from jobdraft.drafts import DebouncedDraftWriter

    writer = DebouncedDraftWriter(store, KEY, delay=0.5, scheduler=scheduler)
    coord, form = _coordinator(job, defaults, store, writer=writer)
    coord.request_save()
    form.set_field("title", "Typed while the dialog was open")
    writer.schedule(form.draft)

    await coord.confirm_and_save()
    scheduler.advance(1)
    assert store.load(KEY) is None


@pytest.mark.asyncio
async def test_save_steps_are_audited(job, defaults, store, engine):
    audit = AuditTrail(engine)
    coord, form = _coordinator(job, defaults, store, audit=audit, session_id="sess-1", persist=FakePersist(error=PersistError("nope")))
    coord.request_save()
    await coord.confirm_and_save()
    coord.cancel()

    lines = (settings.audit_dir_for("sess-1") / "audit.jsonl").read_text(encoding="utf-8").splitlines()
    assert [orjson.loads(line)["step"] for line in lines] == [
        "save.requested",
        "save.persist_failed",
        "save.cancelled",
    ]
    failed = orjson.loads(lines[1])
    assert failed["status"] == "error"
    assert failed["details"]["message"] == "nope"
    assert failed["details"]["changes"] == []
    assert failed["output_digest"] == payload_digest(to_payload(form.draft))
