from __future__ import annotations

import datetime as _dt
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


SalaryType = Literal["range", "fixed", "custom"]
ApplicationMethod = Literal["platform", "website", "email"]
AnswerType = Literal["yes-no", "multiple-choice", "checkbox", "short-answer"]


class AuditEvent(BaseModel):
    session_id: str
    step: str
    status: Literal["ok", "error"]
    ts_iso: str  # UTC ISO 8601
    ts_ns: int   # wall clock nanoseconds
    input_digest: Optional[str] = None
    output_digest: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    prev_event_hash: str
    event_hash: str


class SessionSummary(BaseModel):
    session_id: str
    job_id: Optional[str]
    draft_key: str
    started_at: str
    finished_at: Optional[str]
    status: str
    error_message: Optional[str] = None


class JobPosting(BaseModel):
    """A job row as the job API returns it (external vocabulary)."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    title: str = ""
    location: Optional[str] = None
    job_type: Optional[str] = None
    is_remote: Optional[bool] = None
    salary_type: Optional[str] = None
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    salary_fixed: Optional[float] = None
    salary_currency: Optional[str] = None
    custom_salary_message: Optional[str] = None
    application_deadline: Optional[str] = None
    description: Optional[str] = None
    skills_required: Optional[List[str]] = None
    requirements: Optional[List[str]] = None
    screening_questions: Optional[List[Dict[str, Any]]] = None
    application_method: Optional[str] = None
    application_url: Optional[str] = None
    application_email: Optional[str] = None
    status: Optional[str] = None
    company_id: Optional[str] = None
    updated_at: Optional[str] = None


class ScreeningQuestion(BaseModel):
    id: str
    text: str
    answer_type: AnswerType = "yes-no"
    options: List[str] = Field(default_factory=list)
    required: bool = False
    auto_filter: bool = False


def _coerce_deadline(v: Any) -> Optional[_dt.datetime]:
    if v is None or v == "":
        return None
    if isinstance(v, _dt.datetime):
        dt = v
    elif isinstance(v, _dt.date):
        dt = _dt.datetime(v.year, v.month, v.day)
    elif isinstance(v, str):
        try:
            dt = _dt.datetime.fromisoformat(v.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=_dt.timezone.utc)
    return dt


class FormDraft(BaseModel):
    """Editable copy of a job posting, in form vocabulary."""

    model_config = ConfigDict(validate_assignment=True)

    title: str = ""
    location: str = ""
    job_type: str = ""
    is_remote: bool = False
    salary_type: SalaryType = "range"
    salary: Optional[float] = None
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    currency: str = "ETB"
    custom_salary_message: str = ""
    deadline: Optional[_dt.datetime] = None
    description: str = ""
    skills: List[str] = Field(default_factory=list)
    requirements: List[str] = Field(default_factory=list)
    screening_questions: List[ScreeningQuestion] = Field(default_factory=list)
    application_method: ApplicationMethod = "platform"
    application_url: str = ""
    application_email: str = ""

    @field_validator("deadline", mode="before")
    @classmethod
    def _deadline(cls, v: Any) -> Optional[_dt.datetime]:
        # Unparseable dates are treated as unset rather than rejected.
        return _coerce_deadline(v)


class FieldError(BaseModel):
    field: str
    message: str


class SaveSuccess(BaseModel):
    kind: Literal["ok"] = "ok"
    message: str
    job: Optional[Dict[str, Any]] = None


class SaveFailure(BaseModel):
    kind: Literal["validation", "auth", "persist", "storage"]
    message: str
    field_errors: List[FieldError] = Field(default_factory=list)


SaveOutcome = Union[SaveSuccess, SaveFailure]
