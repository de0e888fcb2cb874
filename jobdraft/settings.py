from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import orjson
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator


_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "config" / "config.json"


def _config_path() -> Path:
    override = os.getenv("JOBDRAFT_CONFIG")
    return Path(override) if override else _DEFAULT_CONFIG_PATH


class _ApiCfg(BaseModel):
    base_url: str
    request_timeout_s: int = 15
    read_max_attempts: int = 3

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")


class _DraftsCfg(BaseModel):
    db_path: str
    debounce_ms: int = 500
    key_prefix: str = "job-draft-"


class JobPostingDefaults(BaseModel):
    """Posting defaults applied when a brand new job form is seeded."""

    salary_type: Literal["range", "fixed", "custom"] = "range"
    remote_work: bool = False
    custom_salary_message: str = "Competitive salary based on experience"
    currency: str = "ETB"
    deadline_days: Optional[int] = 30


class _RawConfig(BaseModel):
    api: _ApiCfg
    drafts: _DraftsCfg
    auth: Optional[Dict[str, Any]] = None
    audit: Optional[Dict[str, Any]] = None
    defaults: Optional[Dict[str, Any]] = None
    job_defaults: Optional[JobPostingDefaults] = None


class Settings(BaseModel):
    api: Dict[str, Any]
    drafts: Dict[str, Any]
    auth: Dict[str, Any]
    audit_base_dir: str = Field(..., description="Base directory for session audit trails")
    defaults_path: str
    job_defaults: JobPostingDefaults

    @classmethod
    def load(cls) -> "Settings":
        load_dotenv(dotenv_path=_PROJECT_ROOT / ".env", override=False)

        path = _config_path()
        try:
            raw_bytes = path.read_bytes()
        except FileNotFoundError as e:
            raise FileNotFoundError(f"Missing config file at {path}") from e
        try:
            raw_obj = orjson.loads(raw_bytes)
        except orjson.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file: {path}") from e
        try:
            validated = _RawConfig.model_validate(raw_obj)
        except ValidationError as e:
            raise ValueError(f"Invalid config structure: {e}") from e

        api_cfg = validated.api.model_dump()
        env_base = os.getenv("JOBDRAFT_API_BASE_URL")
        if env_base:
            api_cfg["base_url"] = env_base.rstrip("/")

        auth_cfg = {"sessions_dir": "sessions"}
        if validated.auth:
            auth_cfg.update(validated.auth)

        audit_cfg = {"base_dir": "audit"}
        if validated.audit:
            audit_cfg.update(validated.audit)

        defaults_cfg = {"path": "job_posting_defaults.json"}
        if validated.defaults:
            defaults_cfg.update(validated.defaults)

        return cls(
            api=api_cfg,
            drafts=validated.drafts.model_dump(),
            auth=auth_cfg,
            audit_base_dir=audit_cfg["base_dir"],
            defaults_path=defaults_cfg["path"],
            job_defaults=validated.job_defaults or JobPostingDefaults(),
        )

    @property
    def cfg_hash(self) -> str:
        from hashlib import sha256

        try:
            raw_bytes = _config_path().read_bytes()
        except FileNotFoundError:
            raw_bytes = b"{}"
        try:
            obj = orjson.loads(raw_bytes)
        except orjson.JSONDecodeError:
            obj = {}
        canonical = orjson.dumps(obj, option=orjson.OPT_SORT_KEYS)
        return sha256(canonical).hexdigest()

    @property
    def debounce_seconds(self) -> float:
        return int(self.drafts.get("debounce_ms", 500)) / 1000.0

    def _resolve(self, value: str) -> Path:
        p = Path(value)
        if not p.is_absolute():
            p = _PROJECT_ROOT / p
        return p

    def db_path(self) -> Path:
        p = self._resolve(self.drafts["db_path"])
        p.parent.mkdir(parents=True, exist_ok=True)
        return p

    def audit_dir_for(self, session_id: str) -> Path:
        base = self._resolve(self.audit_base_dir)
        session_dir = base / session_id
        session_dir.mkdir(parents=True, exist_ok=True)
        return session_dir

    def sessions_dir(self) -> Path:
        p = self._resolve(self.auth.get("sessions_dir", "sessions"))
        p.mkdir(parents=True, exist_ok=True)
        return p

    def job_defaults_file(self) -> Path:
        return self._resolve(self.defaults_path)


settings = Settings.load()
