# Overview: Append-only audit trail for receipt transitions.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import Receipt, ReceiptAuditEntry
from ..time_utils import utcnow
from .errors import NotFoundError
from .scope_service import Scope, apply_scope

"""
Audit invariants (authoritative)

- Exactly one entry per transition, written in the same DB transaction as the
  status change it records.
- Entries are never updated or deleted (enforced by ORM listeners on the model).
- Read order is most-recent-first: created_at DESC, id DESC.
"""

ACTION_CREATED = "created"
ACTION_APPROVED = "approved"
ACTION_REJECTED = "rejected"


def record_transition(
    *,
    receipt: Receipt,
    action: str,
    from_status: Optional[str],
    to_status: Optional[str],
    actor_user_id: int,
    note: Optional[str] = None,
    at: Optional[datetime] = None,
) -> ReceiptAuditEntry:
    """
    Append an audit entry.

    - No domain logic here.
    - Flushes so the id is assigned; never commits.
    """
    entry = ReceiptAuditEntry(
        receipt_id=receipt.id,
        company_id=receipt.company_id,
        action=action,
        from_status=from_status,
        to_status=to_status,
        actor_user_id=actor_user_id,
        note=note,
        created_at=at or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_audit(receipt_id: int, scope: Scope) -> list[ReceiptAuditEntry]:
    """
    Audit history of one receipt, most recent first.

    Raises NotFoundError when the receipt is not visible in scope.
    """
    visible = apply_scope(db.session.query(Receipt.id), Receipt, scope).filter(
        Receipt.id == receipt_id
    ).first()
    if visible is None:
        raise NotFoundError(f"Receipt {receipt_id} not found")

    return (
        db.session.query(ReceiptAuditEntry)
        .filter(ReceiptAuditEntry.receipt_id == receipt_id)
        .order_by(ReceiptAuditEntry.created_at.desc(), ReceiptAuditEntry.id.desc())
        .all()
    )
