from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson
from sqlalchemy.engine import Engine

from .audit import SAVE_OUTCOMES, TERMINAL_STEPS, audit_log_path, read_events
from .hashing import chain_next, changeset_digest
from . import storage

# edit_sessions.status -> the step that must appear in the trail
_STATUS_STEPS = {
    "saved": "save.succeeded",
    "discarded": "session.discarded",
    "closed": "session.closed",
    "error": "session.open_failed",
}


def _chain_break(events: List[Dict[str, Any]]) -> Optional[int]:
    prev = ""
    for idx, ev in enumerate(events):
        body = {k: v for k, v in ev.items() if k != "event_hash"}
        if ev.get("prev_event_hash") != prev or chain_next(prev, body) != ev.get("event_hash"):
            return idx
        prev = ev["event_hash"]
    return None


def lifecycle_problems(events: List[Dict[str, Any]]) -> List[str]:
    """Ordering rules of an edit session that the hash chain alone cannot catch."""
    problems: List[str] = []
    if events and events[0]["step"] != "session.opened":
        problems.append("trail does not start with session.opened")
    awaiting = False
    ended_at: Optional[int] = None
    for idx, ev in enumerate(events):
        step = ev["step"]
        if ended_at is not None:
            problems.append(f"{step} at {idx} after the session ended at {ended_at}")
            continue
        if step == "save.requested":
            if awaiting:
                problems.append(f"save.requested at {idx} while a confirmation was already open")
            awaiting = True
        elif step == "save.cancelled" or step in SAVE_OUTCOMES:
            if not awaiting:
                problems.append(f"{step} at {idx} without an open confirmation")
            if step == "save.cancelled" or step == "save.succeeded":
                awaiting = False
        if step == "save.succeeded":
            if not ev.get("output_digest"):
                problems.append(f"save.succeeded at {idx} has no payload digest")
            changes = (ev.get("details") or {}).get("changes", [])
            if ev.get("input_digest") != changeset_digest(changes):
                problems.append(f"save.succeeded at {idx} change set does not match its digest")
        if step in TERMINAL_STEPS:
            ended_at = idx
    return problems


def verify_session(audit_path: Path, engine: Optional[Engine] = None) -> Dict[str, Any]:
    events = read_events(audit_path)
    break_index = _chain_break(events)
    intact = events if break_index is None else events[:break_index]
    session_id = intact[0]["session_id"] if intact else None

    problems = lifecycle_problems(intact)
    row = storage.get_session(session_id, engine=engine) if session_id else None
    steps = [e["step"] for e in intact]
    if row is not None and row.status in _STATUS_STEPS and _STATUS_STEPS[row.status] not in steps:
        problems.append(f"session is {row.status} but the trail has no {_STATUS_STEPS[row.status]}")

    db_head = storage.get_last_audit_hash(session_id, engine=engine) if session_id else None
    db_in_sync = break_index is None and db_head == (intact[-1]["event_hash"] if intact else None)
    return {
        "session_id": session_id,
        "session_status": row.status if row else None,
        "events": len(intact),
        "steps": steps,
        "saves": steps.count("save.succeeded"),
        "chain_valid": break_index is None,
        "break_index": break_index,
        "db_in_sync": db_in_sync,
        "problems": problems,
        "valid": break_index is None and db_in_sync and not problems,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Verify an edit session's audit trail")
    parser.add_argument("--session", required=True, help="Session id or a directory holding audit.jsonl")
    args = parser.parse_args(argv)

    target = Path(args.session)
    audit = target / "audit.jsonl" if target.is_dir() else audit_log_path(args.session)
    if not audit.exists():
        print(orjson.dumps({"valid": False, "error": "audit.jsonl not found", "path": str(audit)}).decode())
        return 2
    result = verify_session(audit)
    print(orjson.dumps(result, option=orjson.OPT_SORT_KEYS).decode())
    return 0 if result["valid"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
