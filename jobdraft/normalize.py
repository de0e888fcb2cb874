"""Translation between the job API's vocabulary and the form's vocabulary."""
from __future__ import annotations

import datetime as _dt
import re
from typing import Any, Dict, List, Optional

from .schemas import FormDraft, JobPosting, ScreeningQuestion
from .settings import JobPostingDefaults


_ws_re = re.compile(r"\s+")

# external job_type -> form job_type
JOB_TYPE_TO_FORM: Dict[str, str] = {
    "full_time": "full-time",
    "part_time": "part-time",
    "contract": "contract",
    "freelance": "freelance",
    "internship": "internship",
}
JOB_TYPE_TO_API: Dict[str, str] = {v: k for k, v in JOB_TYPE_TO_FORM.items()}

JOB_TYPE_DISPLAY: Dict[str, str] = {
    "full-time": "Full-time",
    "part-time": "Part-time",
    "contract": "Contract",
    "freelance": "Freelance",
    "internship": "Internship",
}

SALARY_TYPE_TO_FORM: Dict[str, str] = {
    "range": "range",
    "fixed": "fixed",
    "competitive": "custom",
}
SALARY_TYPE_TO_API: Dict[str, str] = {v: k for k, v in SALARY_TYPE_TO_FORM.items()}

# Fields owned by each salary shape; currency is shared by fixed and range.
SALARY_SHAPE_FIELDS: Dict[str, tuple] = {
    "fixed": ("salary",),
    "range": ("salary_min", "salary_max"),
    "custom": ("custom_salary_message",),
}


def normalize_ws(s: Optional[str]) -> str:
    return _ws_re.sub(" ", (s or "").strip())


def job_type_to_form(value: Optional[str]) -> str:
    value = value or ""
    # unknown values pass through untouched
    return JOB_TYPE_TO_FORM.get(value, value)


def job_type_to_api(value: Optional[str]) -> str:
    value = value or ""
    return JOB_TYPE_TO_API.get(value, value)


def display_job_type(value: Optional[str]) -> str:
    value = value or ""
    return JOB_TYPE_DISPLAY.get(value, value)


def salary_type_to_form(value: Optional[str]) -> str:
    return SALARY_TYPE_TO_FORM.get(value or "", "custom")


def application_method_to_form(value: Optional[str]) -> str:
    return value if value in ("platform", "website", "email") else "platform"


def deadline_to_iso(value: Optional[_dt.datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=_dt.timezone.utc)
    return value.astimezone(_dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# Seeding accepts looser spellings; saving always writes these.
ANSWER_TYPE_TO_API: Dict[str, str] = {
    "yes-no": "yes_no",
    "multiple-choice": "multiple_choice",
    "checkbox": "checkbox",
    "short-answer": "text",
}


def _answer_type(raw: Optional[str]) -> str:
    qt = (raw or "").lower()
    if "yes" in qt:
        return "yes-no"
    if "multiple" in qt:
        return "multiple-choice"
    if "checkbox" in qt:
        return "checkbox"
    return "short-answer"


def _option_label(opt: Any) -> str:
    if isinstance(opt, dict):
        return str(opt.get("label") or opt.get("value") or "")
    return str(opt)


def questions_to_form(raw: Optional[List[Dict[str, Any]]]) -> List[ScreeningQuestion]:
    out: List[ScreeningQuestion] = []
    for idx, q in enumerate(raw or []):
        out.append(
            ScreeningQuestion(
                id=str(q.get("id") if q.get("id") is not None else idx),
                text=q.get("question_text") or q.get("text") or "",
                answer_type=_answer_type(q.get("question_type") or q.get("type")),
                options=[_option_label(o) for o in (q.get("options") or [])],
                required=bool(q.get("is_required") or q.get("required")),
                auto_filter=bool(q.get("auto_filter")),
            )
        )
    return out


def questions_to_api(questions: List[ScreeningQuestion]) -> List[Dict[str, Any]]:
    return [
        {
            "id": q.id,
            "question_text": q.text,
            "question_type": ANSWER_TYPE_TO_API.get(q.answer_type, "text"),
            "options": list(q.options),
            "is_required": q.required,
            "auto_filter": q.auto_filter,
        }
        for q in questions
    ]


def draft_from_job(job: JobPosting, defaults: JobPostingDefaults) -> FormDraft:
    salary_type = salary_type_to_form(job.salary_type)
    return FormDraft(
        title=job.title or "",
        location=job.location or "",
        job_type=job_type_to_form(job.job_type),
        is_remote=bool(job.is_remote),
        salary_type=salary_type,
        salary=(job.salary_fixed or None) if salary_type == "fixed" else None,
        salary_min=(job.salary_min or None) if salary_type == "range" else None,
        salary_max=(job.salary_max or None) if salary_type == "range" else None,
        currency=job.salary_currency or defaults.currency,
        custom_salary_message=(
            (job.custom_salary_message or defaults.custom_salary_message)
            if salary_type == "custom"
            else ""
        ),
        deadline=job.application_deadline,
        description=job.description or "",
        skills=list(job.skills_required or []),
        requirements=list(job.requirements or []),
        screening_questions=questions_to_form(job.screening_questions),
        application_method=application_method_to_form(job.application_method),
        application_url=job.application_url or "",
        application_email=job.application_email or "",
    )


def draft_from_defaults(defaults: JobPostingDefaults, now: Optional[_dt.datetime] = None) -> FormDraft:
    now = now or _dt.datetime.now(tz=_dt.timezone.utc)
    deadline = None
    if defaults.deadline_days:
        deadline = now + _dt.timedelta(days=defaults.deadline_days)
    return FormDraft(
        is_remote=defaults.remote_work,
        salary_type=defaults.salary_type,
        currency=defaults.currency,
        custom_salary_message=defaults.custom_salary_message if defaults.salary_type == "custom" else "",
        deadline=deadline,
    )


def _amount(value: Optional[float]) -> Optional[float]:
    return value if value else None


def to_payload(draft: FormDraft) -> Dict[str, Any]:
    """Full replacement payload for the job API.

    Fields of the inactive salary shape and the unused application
    destination are sent as null.
    """
    shape = draft.salary_type
    method = draft.application_method
    return {
        "title": draft.title.strip(),
        "description": draft.description.strip(),
        "location": draft.location.strip(),
        "job_type": job_type_to_api(draft.job_type),
        "is_remote": bool(draft.is_remote),
        "salary_type": SALARY_TYPE_TO_API.get(shape, "competitive"),
        "salary_min": _amount(draft.salary_min) if shape == "range" else None,
        "salary_max": _amount(draft.salary_max) if shape == "range" else None,
        "salary_fixed": _amount(draft.salary) if shape == "fixed" else None,
        "salary_currency": draft.currency or "ETB",
        "custom_salary_message": (draft.custom_salary_message.strip() or None) if shape == "custom" else None,
        "application_deadline": deadline_to_iso(draft.deadline),
        "requirements": list(draft.requirements) or None,
        "skills_required": list(draft.skills) or None,
        "screening_questions": questions_to_api(draft.screening_questions),
        "application_method": method,
        "application_url": (draft.application_url.strip() or None) if method == "website" else None,
        "application_email": (draft.application_email.strip() or None) if method == "email" else None,
        "status": "active",
    }
