"""Employer-level defaults for new job postings.

Loaded once at startup (config section overlaid with the user's saved
file) and handed to FormModel.seed; saving merges and rewrites the file.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import orjson
from pydantic import ValidationError

from .settings import JobPostingDefaults, settings

logger = logging.getLogger(__name__)


def load_job_defaults(path: Optional[Path] = None, base: Optional[JobPostingDefaults] = None) -> JobPostingDefaults:
    base = base or settings.job_defaults
    path = path or settings.job_defaults_file()
    if not path.exists():
        return base.model_copy()
    try:
        stored = orjson.loads(path.read_bytes())
        return JobPostingDefaults.model_validate({**base.model_dump(), **stored})
    except (OSError, orjson.JSONDecodeError, ValidationError, TypeError) as exc:
        logger.warning("Failed to load job posting defaults from %s: %s", path, exc)
        return base.model_copy()


def save_job_defaults(path: Optional[Path] = None, current: Optional[JobPostingDefaults] = None, **updates: Any) -> JobPostingDefaults:
    path = path or settings.job_defaults_file()
    current = current or load_job_defaults(path)
    updated = JobPostingDefaults.model_validate({**current.model_dump(), **updates})
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(orjson.dumps(updated.model_dump(), option=orjson.OPT_SORT_KEYS))
    except OSError as exc:
        logger.warning("Failed to save job posting defaults to %s: %s", path, exc)
    return updated
