from __future__ import annotations

import datetime as _dt
import re
import uuid
from typing import Any, Callable, Dict, List, Optional, Union

from .normalize import SALARY_SHAPE_FIELDS, draft_from_defaults, draft_from_job, normalize_ws
from .schemas import FieldError, FormDraft, JobPosting, ScreeningQuestion
from .settings import JobPostingDefaults


_URL_RE = re.compile(r"^https?://\S+$", re.I)
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_STRING_LISTS = ("skills", "requirements")
_COLLECTIONS = _STRING_LISTS + ("screening_questions",)

Listener = Callable[["FormModel"], None]


class FormModel:
    """Mutable form state for one job posting.

    Every mutation goes through this class so listeners (draft persistence,
    change detection) see each edit exactly once.
    """

    def __init__(self, draft: Optional[FormDraft] = None) -> None:
        self._draft = draft.model_copy(deep=True) if draft is not None else FormDraft()
        self._listeners: List[Listener] = []

    @classmethod
    def seed(
        cls,
        source: Optional[JobPosting],
        defaults: JobPostingDefaults,
        now: Optional[_dt.datetime] = None,
    ) -> "FormModel":
        if source is None:
            return cls(draft_from_defaults(defaults, now=now))
        return cls(draft_from_job(source, defaults))

    @property
    def draft(self) -> FormDraft:
        return self._draft

    def snapshot(self) -> FormDraft:
        return self._draft.model_copy(deep=True)

    def replace(self, draft: FormDraft) -> None:
        """Swap in a restored draft wholesale."""
        self._draft = draft.model_copy(deep=True)
        self._emit()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # Field edits

    def set_field(self, name: str, value: Any) -> None:
        if name not in FormDraft.model_fields:
            raise KeyError(f"Unknown form field: {name}")
        if name in _COLLECTIONS:
            raise KeyError(f"{name} is a collection; use add_to_collection/remove_from_collection")
        if name == "salary_type":
            self._switch_salary_shape(value)
        else:
            setattr(self._draft, name, value)
        self._emit()

    def _switch_salary_shape(self, shape: str) -> None:
        previous = self._draft.salary_type
        self._draft.salary_type = shape
        if shape == previous:
            return
        for field in SALARY_SHAPE_FIELDS.get(previous, ()):
            setattr(self._draft, field, "" if field == "custom_salary_message" else None)

    # Collections

    def add_to_collection(self, field: str, item: Union[str, ScreeningQuestion, Dict[str, Any]]) -> bool:
        """Append ``item``; returns False when it was rejected as blank or duplicate."""
        if field in _STRING_LISTS:
            value = normalize_ws(str(item))
            current: List[str] = getattr(self._draft, field)
            if not value or value in current:
                return False
            setattr(self._draft, field, current + [value])
        elif field == "screening_questions":
            question = self._make_question(item)
            if question is None:
                return False
            self._draft.screening_questions = self._draft.screening_questions + [question]
        else:
            raise KeyError(f"Not a collection field: {field}")
        self._emit()
        return True

    def remove_from_collection(self, field: str, item: Union[str, ScreeningQuestion]) -> bool:
        if field in _STRING_LISTS:
            current = getattr(self._draft, field)
            kept = [x for x in current if x != item]
        elif field == "screening_questions":
            qid = item.id if isinstance(item, ScreeningQuestion) else str(item)
            current = self._draft.screening_questions
            kept = [q for q in current if q.id != qid]
        else:
            raise KeyError(f"Not a collection field: {field}")
        if len(kept) == len(current):
            return False
        setattr(self._draft, field, kept)
        self._emit()
        return True

    @staticmethod
    def _make_question(item: Union[ScreeningQuestion, Dict[str, Any], str]) -> Optional[ScreeningQuestion]:
        if isinstance(item, ScreeningQuestion):
            data = item.model_dump()
        elif isinstance(item, dict):
            data = dict(item)
        else:
            data = {"text": str(item)}
        data["text"] = normalize_ws(data.get("text"))
        if not data["text"]:
            return None
        if not data.get("id"):
            data["id"] = uuid.uuid4().hex
        question = ScreeningQuestion.model_validate(data)
        if question.answer_type == "yes-no":
            question.options = ["Yes", "No"]
        else:
            question.options = [o.strip() for o in question.options if o.strip()]
        return question

    def _question(self, question_id: str) -> ScreeningQuestion:
        for q in self._draft.screening_questions:
            if q.id == question_id:
                return q
        raise KeyError(f"Unknown screening question: {question_id}")

    def add_question_option(self, question_id: str, option: str) -> bool:
        question = self._question(question_id)
        option = option.strip()
        if not option or question.answer_type == "yes-no":
            return False
        question.options = question.options + [option]
        self._emit()
        return True

    def remove_question_option(self, question_id: str, option: str) -> bool:
        question = self._question(question_id)
        if question.answer_type == "yes-no" or option not in question.options:
            return False
        idx = question.options.index(option)
        question.options = question.options[:idx] + question.options[idx + 1:]
        self._emit()
        return True

    # Validation

    def validate_for_submit(self) -> List[FieldError]:
        """Every violated rule, in field order. An empty list means valid."""
        d = self._draft
        errors: List[FieldError] = []
        if not d.title.strip():
            errors.append(FieldError(field="title", message="Job title is required"))
        if not d.description.strip():
            errors.append(FieldError(field="description", message="Description is required"))
        if not d.job_type.strip():
            errors.append(FieldError(field="job_type", message="Job type is required"))

        if d.salary_type == "range":
            lo, hi = d.salary_min, d.salary_max
            if not lo or lo <= 0 or not hi or hi <= 0:
                errors.append(FieldError(field="salary_range", message="Minimum and maximum salary must both be greater than 0"))
            elif lo > hi:
                errors.append(FieldError(field="salary_range", message="Minimum salary cannot exceed maximum salary"))
        elif d.salary_type == "fixed":
            if not d.salary or d.salary <= 0:
                errors.append(FieldError(field="salary", message="Salary must be greater than 0"))

        if d.application_method == "website":
            if not _URL_RE.match(d.application_url.strip()):
                errors.append(FieldError(field="application_url", message="Please provide a valid application URL starting with http or https"))
        elif d.application_method == "email":
            if not _EMAIL_RE.match(d.application_email.strip()):
                errors.append(FieldError(field="application_email", message="Please provide a valid application email address"))
        return errors
