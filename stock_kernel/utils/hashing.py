"""
Canonical JSON and SHA-256 digests for the audit chain.

Audit payloads are hashed over a canonical JSON form (sorted keys, compact
separators) so that a verifier re-serializing the stored JSON reaches the
same digest.  Quantities may arrive as ``Decimal`` from package conversion;
they are normalized so ``Decimal("5.0")`` and ``Decimal("5")`` agree.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS_HASH = "GENESIS"

_CONVERTERS: tuple[tuple[type | tuple[type, ...], Any], ...] = (
    (Enum, lambda v: v.value),
    (UUID, str),
    (Decimal, lambda v: str(v.normalize())),
    ((datetime, date), lambda v: v.isoformat()),
    (bytes, bytes.hex),
)


def _encode(obj: Any) -> Any:
    for types, convert in _CONVERTERS:
        if isinstance(obj, types):
            return convert(obj)
    raise TypeError(f"Cannot canonicalize {type(obj).__name__}")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def to_json_safe(data: Any) -> Any:
    """Plain JSON types only, as they will read back from a JSON column."""
    return json.loads(canonicalize_json(data))


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    """64-char hex digest of the canonical form of ``payload``."""
    return _sha256(canonicalize_json(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Chain digest of one audit event.

    Links the event to its predecessor; the first event in the chain is
    linked to ``GENESIS_HASH``.
    """
    link = prev_hash or GENESIS_HASH
    return _sha256("|".join((entity_type, str(entity_id), action, payload_hash, link)))
