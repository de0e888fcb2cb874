from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Dict, List, Tuple

import orjson

from .editor import EditSession
from .errors import EditorError
from .schemas import SaveSuccess

_NULLABLE = {"salary", "salary_min", "salary_max", "deadline"}


def _parse_assignment(raw: str) -> Tuple[str, Any]:
    if "=" not in raw:
        raise argparse.ArgumentTypeError(f"expected field=value, got {raw!r}")
    name, value = raw.split("=", 1)
    name = name.strip().replace("-", "_")
    if value == "" and name in _NULLABLE:
        return name, None
    return name, value


def _apply_edits(session: EditSession, args: argparse.Namespace) -> None:
    form = session.form
    for name, value in args.set or []:
        form.set_field(name, value)
    for skill in args.add_skill or []:
        form.add_to_collection("skills", skill)
    for skill in args.remove_skill or []:
        form.remove_from_collection("skills", skill)
    for req in args.add_requirement or []:
        form.add_to_collection("requirements", req)
    for req in args.remove_requirement or []:
        form.remove_from_collection("requirements", req)


async def run(args: argparse.Namespace) -> Tuple[int, Dict[str, Any]]:
    try:
        session = await EditSession.open(args.job_id)
    except EditorError as exc:
        return 1, {"status": "error", "error_type": type(exc).__name__, "error_message": str(exc)}

    summary: Dict[str, Any] = {"session_id": session.session_id, "job_id": args.job_id, "draft_key": session.key}
    if args.discard:
        session.discard()
        return 0, {**summary, "status": "discarded"}

    try:
        _apply_edits(session, args)
    except (KeyError, ValueError) as exc:
        session.close()
        return 1, {**summary, "status": "invalid", "error_message": str(exc)}

    errors: List[Dict[str, str]] = [e.model_dump() for e in session.form.validate_for_submit()]
    prompt = session.request_save()
    summary["changes"] = prompt.changes
    summary["warnings"] = session.warnings
    if errors:
        session.cancel_save()
        session.close()
        return 1, {**summary, "status": "invalid", "field_errors": errors}
    if not args.yes:
        session.cancel_save()
        session.close()
        return 0, {**summary, "status": "draft_saved"}

    outcome = await prompt.on_confirm()
    if isinstance(outcome, SaveSuccess):
        return 0, {**summary, "status": "saved", "message": outcome.message}
    session.cancel_save()
    session.close()
    return 1, {**summary, "status": "error", "error": outcome.model_dump() if outcome else None}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Edit a job posting from the command line")
    parser.add_argument("--job-id", default=None, help="Job to edit; omit to work on the new-posting draft")
    parser.add_argument("--set", action="append", type=_parse_assignment, metavar="FIELD=VALUE")
    parser.add_argument("--add-skill", action="append")
    parser.add_argument("--remove-skill", action="append")
    parser.add_argument("--add-requirement", action="append")
    parser.add_argument("--remove-requirement", action="append")
    parser.add_argument("--yes", action="store_true", help="Confirm and publish the changes")
    parser.add_argument("--discard", action="store_true", help="Throw away the stored draft")
    args = parser.parse_args(argv)

    code, summary = asyncio.run(run(args))
    out = orjson.dumps(summary, option=orjson.OPT_SORT_KEYS).decode()
    print(out, file=sys.stderr if code else sys.stdout)
    return code


if __name__ == "__main__":
    raise SystemExit(main())
