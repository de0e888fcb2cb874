from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from jobdraft import storage
from jobdraft.drafts import DraftStore
from jobdraft.errors import AuthError
from jobdraft.schemas import JobPosting
from jobdraft.settings import JobPostingDefaults, settings


class _Timer:
    def __init__(self, when: float, callback: Callable[[], Any]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock standing in for the event loop's call_later."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: List[_Timer] = []

    def call_later(self, delay: float, callback: Callable[[], Any]) -> _Timer:
        timer = _Timer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> List[_Timer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = sorted((t for t in self.active if t.when <= self.now), key=lambda t: t.when)
        for timer in due:
            self.timers.remove(timer)
            timer.callback()


class FakeAuth:
    def __init__(self, token: Optional[str] = "token-123", error: Optional[Exception] = None) -> None:
        self.token = token
        self.error = error

    async def get_access_token(self) -> str:
        if self.error is not None:
            raise self.error
        if self.token is None:
            raise AuthError("Not authenticated. Please log in again.")
        return self.token


class FakePersist:
    """Records every call; optionally fails with ``error``."""

    def __init__(self, error: Optional[Exception] = None, result: Optional[Dict[str, Any]] = None) -> None:
        self.error = error
        self.result = result if result is not None else {"id": "job-1"}
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, job_id: Optional[str], payload: Dict[str, Any], token: str) -> Dict[str, Any]:
        self.calls.append({"job_id": job_id, "payload": payload, "token": token})
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture(autouse=True)
def _audit_dir(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(settings, "audit_base_dir", str(tmp_path / "audit"))


@pytest.fixture
def engine(tmp_path: Path):
    return storage.make_engine(tmp_path / "jobdraft-test.db")


@pytest.fixture
def store(engine) -> DraftStore:
    return DraftStore(engine)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def defaults() -> JobPostingDefaults:
    return JobPostingDefaults()


@pytest.fixture
def job() -> JobPosting:
    return JobPosting(
        id="job-1",
        title="Backend Engineer",
        location="Addis Ababa",
        job_type="full_time",
        is_remote=False,
        salary_type="range",
        salary_min=30000,
        salary_max=50000,
        salary_currency="ETB",
        application_deadline="2026-12-01T00:00:00.000Z",
        description="Build and run our APIs.",
        skills_required=["SQL", "Go"],
        requirements=["3+ years of backend work"],
        application_method="platform",
    )
