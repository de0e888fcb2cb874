"""Human-readable diff between the baseline and the current draft.

The returned list is shown verbatim in the confirmation prompt before a
live posting is overwritten, so the field order and wording below are
fixed.
"""
from __future__ import annotations

import datetime as _dt
from typing import List, Optional

from .hashing import canonical_json
from .normalize import SALARY_SHAPE_FIELDS, display_job_type
from .schemas import FormDraft


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _same_set(a: List[str], b: List[str]) -> bool:
    return canonical_json(sorted(a)) == canonical_json(sorted(b))


def _salary_key(d: FormDraft) -> tuple:
    fields = SALARY_SHAPE_FIELDS.get(d.salary_type, ())
    currency = d.currency if d.salary_type != "custom" else None
    return (d.salary_type, currency) + tuple(getattr(d, f) for f in fields)


def _application_key(d: FormDraft) -> tuple:
    if d.application_method == "website":
        return ("website", d.application_url)
    if d.application_method == "email":
        return ("email", d.application_email)
    return (d.application_method,)


def _timestamp(value: Optional[_dt.datetime]) -> Optional[float]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=_dt.timezone.utc)
    return value.timestamp()


def detect_changes(baseline: FormDraft, current: FormDraft) -> List[str]:
    changes: List[str] = []

    if baseline.title != current.title:
        changes.append(f'Title: "{baseline.title}" → "{current.title}"')
    if baseline.location != current.location:
        changes.append(f'Location: "{baseline.location}" → "{current.location}"')
    if display_job_type(baseline.job_type) != display_job_type(current.job_type):
        changes.append(
            f'Job Type: "{display_job_type(baseline.job_type)}" → "{display_job_type(current.job_type)}"'
        )
    if baseline.is_remote != current.is_remote:
        changes.append(f"Remote: {_yes_no(baseline.is_remote)} → {_yes_no(current.is_remote)}")
    if baseline.description != current.description:
        changes.append("Description updated")
    if not _same_set(baseline.skills, current.skills):
        changes.append("Skills changed")
    if not _same_set(baseline.requirements, current.requirements):
        changes.append("Requirements changed")
    if _salary_key(baseline) != _salary_key(current):
        changes.append("Salary information updated")
    if _application_key(baseline) != _application_key(current):
        changes.append("Application method updated")

    before_q = canonical_json([q.model_dump() for q in baseline.screening_questions])
    after_q = canonical_json([q.model_dump() for q in current.screening_questions])
    if before_q != after_q:
        count = len(current.screening_questions)
        changes.append(f"Screening questions ({count})" if count > 0 else "Screening questions removed")

    if _timestamp(baseline.deadline) != _timestamp(current.deadline):
        changes.append("Application deadline changed")
    return changes
