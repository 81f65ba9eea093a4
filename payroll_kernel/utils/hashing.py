"""
Hashes for the audit log chain.

Each audit row stores two digests:

* ``payload_hash`` covers what changed: the before/after snapshots, the
  acting user and the reason.
* ``hash`` links the row into the chain: it covers the row's identity
  (entity type, entity id, action), its ``payload_hash`` and the previous
  row's ``hash``.  The first row links to the literal ``GENESIS``.

Snapshots are hashed in their stored JSON form, so a row read back from the
database recomputes to the digest computed when it was written.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"


def _encode(value: Any) -> Any:
    if isinstance(value, Decimal):
        # 6000 and 6000.00 are the same amount
        return str(value.normalize())
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"cannot hash value of type {type(value).__name__}")


def canonical_json(data: Any) -> str:
    """Sorted-key, whitespace-free JSON; the only form that is ever hashed."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_audit_payload(
    before: dict | None,
    after: dict | None,
    actor_id: UUID | str | None,
    reason: str | None,
) -> str:
    return _sha256(
        canonical_json(
            {
                "before": before,
                "after": after,
                "actor_id": str(actor_id) if actor_id else None,
                "reason": reason,
            }
        )
    )


def hash_audit_entry(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """SHA-256 of ``entity_type|entity_id|action|payload_hash|prev_hash``."""
    return _sha256(
        "|".join((entity_type, str(entity_id), action, payload_hash, prev_hash or GENESIS))
    )
