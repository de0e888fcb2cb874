"""Digests used by draft slots and the edit-session audit trail."""
from __future__ import annotations

from hashlib import sha256
from typing import Any, Dict, Iterable

import orjson

from .schemas import FormDraft


def sha256_bytes(b: bytes) -> str:
    return sha256(b).hexdigest()


def canonical_json(payload: Any) -> bytes:
    return orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)


def payload_digest(payload: Dict[str, Any]) -> str:
    """Digest of an outgoing job payload, independent of key order."""
    return sha256_bytes(canonical_json(payload))


def draft_digest(draft: FormDraft) -> str:
    """Same bytes DraftStore writes, so it matches the drafts.sha256 column."""
    return sha256_bytes(canonical_json(draft.model_dump(mode="json")))


def changeset_digest(changes: Iterable[str]) -> str:
    # order is part of the change set
    return sha256_bytes("\n".join(changes).encode("utf-8"))


def chain_next(prev_hash: str, event: Dict[str, Any]) -> str:
    """Hash of ``event`` linked to the previous event's hash ("" starts a chain)."""
    return sha256_bytes((prev_hash or "").encode("utf-8") + canonical_json(event))
