# Overview: Receiving approval state machine; the only code path that moves received goods into stock.

"""
Receiving Approval State Machine

LIFECYCLE:
    PENDING --approve--> APPROVED   (terminal, stock incremented)
    PENDING --reject---> REJECTED   (terminal, no stock effect)

CONCURRENCY:
- The transition is a compare-and-swap: one UPDATE conditioned on
  status='PENDING' (and on the caller's scope). rowcount tells us whether we won.
- Losers get ConflictError and cause no side effects. Conflicts are never
  retried; a human re-checks the receipt.
- On approve, the status change, every stock increment and the audit entry
  commit together or not at all. Any failure (ProductMissing, storage error)
  rolls the whole unit back and the receipt stays PENDING.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Product, Receipt, ReceiptLine
from ..models.inventory import (
    RECEIPT_STATUSES,
    RECEIPT_STATUS_APPROVED,
    RECEIPT_STATUS_PENDING,
    RECEIPT_STATUS_REJECTED,
)
from ..time_utils import utcnow
from . import stock_service
from .attachment_service import resolve_for_receipt
from .audit_service import ACTION_APPROVED, ACTION_REJECTED, record_transition
from .concurrency import atomic, run_with_retry
from .errors import ConflictError, NotFoundError, ProductMissingError, ValidationError
from .scope_service import (
    Scope,
    apply_scope,
    log_branch_scope_attempt,
    log_cross_tenant_attempt,
    scope_filters,
)

MAX_REASON_LENGTH = 500


def _require_id(value, label: str = "receipt_id") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{label} must be a positive integer")
    return value


def _cas_transition(receipt_id: int, scope: Scope, values: dict) -> int:
    """UPDATE receipts SET ... WHERE id=? AND status='PENDING' AND <scope>."""
    result = db.session.execute(
        update(Receipt)
        .where(
            Receipt.id == receipt_id,
            Receipt.status == RECEIPT_STATUS_PENDING,
            *scope_filters(Receipt, scope),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _explain_lost_cas(receipt_id: int, scope: Scope, actor_user_id: int) -> Exception:
    """Work out why the CAS touched no row: not visible (NotFound) or already processed (Conflict)."""
    status = apply_scope(db.session.query(Receipt.status), Receipt, scope).filter(
        Receipt.id == receipt_id
    ).scalar()
    if status is not None:
        return ConflictError(
            f"Receipt {receipt_id} was already {status.lower()}",
            current_status=status,
        )

    owner_company_id = db.session.query(Receipt.company_id).filter(Receipt.id == receipt_id).scalar()
    if owner_company_id == scope.tenant_id:
        log_branch_scope_attempt(
            f"Receipt {receipt_id} belongs to another branch",
            scope=scope,
            actor_id=actor_user_id,
        )
    elif owner_company_id is not None:
        log_cross_tenant_attempt(
            f"Receipt {receipt_id} is outside the caller's scope",
            scope=scope,
            actor_id=actor_user_id,
        )
    return NotFoundError(f"Receipt {receipt_id} not found")


def _reload(receipt_id: int) -> Receipt:
    # populate_existing: the CAS bypassed the identity map
    return db.session.query(Receipt).populate_existing().filter(Receipt.id == receipt_id).one()


def _approve_once(receipt_id: int, actor_user_id: int, scope: Scope) -> Receipt:
    now = utcnow()
    with atomic():
        won = _cas_transition(
            receipt_id,
            scope,
            {
                "status": RECEIPT_STATUS_APPROVED,
                "approved_by_user_id": actor_user_id,
                "approved_at": now,
            },
        )
        if won != 1:
            raise _explain_lost_cas(receipt_id, scope, actor_user_id)

        receipt = _reload(receipt_id)
        lines = db.session.query(ReceiptLine).filter(ReceiptLine.receipt_id == receipt_id).all()
        totals = stock_service.aggregate_lines(lines)

        # Products must still exist in the receipt's own branch
        receipt_scope = Scope(receipt.company_id, receipt.branch_id)
        present = stock_service.lock_products(totals.keys(), receipt_scope)
        missing = [pid for pid in totals if pid not in present]
        if missing:
            raise ProductMissingError(
                f"Receipt {receipt_id} references missing products: {', '.join(map(str, missing))}",
                product_ids=missing,
            )

        for product_id, quantity in totals.items():
            if stock_service.increment(product_id, quantity) != 1:
                raise ProductMissingError(
                    f"Product {product_id} disappeared during approval",
                    product_ids=[product_id],
                )

        record_transition(
            receipt=receipt,
            action=ACTION_APPROVED,
            from_status=RECEIPT_STATUS_PENDING,
            to_status=RECEIPT_STATUS_APPROVED,
            actor_user_id=actor_user_id,
            at=now,
        )
    return receipt


def approve_receipt(receipt_id: int, *, actor_user_id: int, scope: Scope) -> Receipt:
    """
    Approve a PENDING receipt and move its quantities into stock.

    Returns:
        The APPROVED receipt

    Raises:
        NotFoundError: receipt does not exist in scope
        ConflictError: receipt is no longer PENDING
        ProductMissingError: a line's product was deleted; nothing was applied
    """
    _require_id(receipt_id)
    _require_id(actor_user_id, "actor_user_id")

    try:
        receipt = run_with_retry(lambda: _approve_once(receipt_id, actor_user_id, scope))
    except ConflictError as exc:
        current_app.logger.info("Approve conflict receipt=%s actor=%s status=%s", receipt_id, actor_user_id, exc.current_status)
        raise
    except ProductMissingError as exc:
        current_app.logger.warning(
            "Approve rolled back receipt=%s actor=%s missing_products=%s", receipt_id, actor_user_id, exc.product_ids
        )
        raise

    current_app.logger.info("Receipt %s approved by user=%s", receipt_id, actor_user_id)
    return receipt


def _normalize_reason(reason) -> str | None:
    if reason is None:
        return None
    if not isinstance(reason, str):
        raise ValidationError("reason must be a string")
    reason = reason.strip()
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f"reason must be at most {MAX_REASON_LENGTH} characters")
    return reason or None


def _reject_once(receipt_id: int, actor_user_id: int, scope: Scope, reason: str | None) -> Receipt:
    now = utcnow()
    with atomic():
        won = _cas_transition(
            receipt_id,
            scope,
            {
                "status": RECEIPT_STATUS_REJECTED,
                "rejected_by_user_id": actor_user_id,
                "rejected_at": now,
                "rejection_reason": reason,
            },
        )
        if won != 1:
            raise _explain_lost_cas(receipt_id, scope, actor_user_id)

        receipt = _reload(receipt_id)
        record_transition(
            receipt=receipt,
            action=ACTION_REJECTED,
            from_status=RECEIPT_STATUS_PENDING,
            to_status=RECEIPT_STATUS_REJECTED,
            actor_user_id=actor_user_id,
            note=reason,
            at=now,
        )
    return receipt


def reject_receipt(
    receipt_id: int,
    *,
    actor_user_id: int,
    scope: Scope,
    reason: str | None = None,
) -> Receipt:
    """
    Reject a PENDING receipt. Never touches stock.

    Raises:
        NotFoundError, ConflictError, ValidationError (bad reason)
    """
    _require_id(receipt_id)
    _require_id(actor_user_id, "actor_user_id")
    reason = _normalize_reason(reason)

    try:
        receipt = run_with_retry(lambda: _reject_once(receipt_id, actor_user_id, scope, reason))
    except ConflictError as exc:
        current_app.logger.info("Reject conflict receipt=%s actor=%s status=%s", receipt_id, actor_user_id, exc.current_status)
        raise

    current_app.logger.info("Receipt %s rejected by user=%s", receipt_id, actor_user_id)
    return receipt


# =============================================================================
# READS
# =============================================================================

def get_receipt(receipt_id: int, scope: Scope) -> Receipt:
    _require_id(receipt_id)
    receipt = apply_scope(db.session.query(Receipt), Receipt, scope).filter(Receipt.id == receipt_id).first()
    if receipt is None:
        raise NotFoundError(f"Receipt {receipt_id} not found")
    return receipt


def list_receipts(
    scope: Scope,
    *,
    status: str | None = None,
    created_by_user_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Receipt], int]:
    """
    List receipts visible in scope, most recent first.

    created_by_user_id restricts to receipts one user recorded ("my receipts").

    Returns:
        Tuple of (receipts, total count)
    """
    query = apply_scope(db.session.query(Receipt), Receipt, scope)

    if created_by_user_id is not None:
        query = query.filter(Receipt.created_by_user_id == _require_id(created_by_user_id, "created_by_user_id"))

    if status:
        status = status.upper()
        if status not in RECEIPT_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(RECEIPT_STATUSES)}")
        query = query.filter(Receipt.status == status)

    total = query.count()
    query = query.order_by(Receipt.created_at.desc(), Receipt.id.desc())
    return query.offset(offset).limit(limit).all(), total


def get_receipt_with_lines(receipt_id: int, scope: Scope, *, resolve_attachments: bool = True) -> dict:
    """Receipt dict with its lines (plus product names) and signed attachment URLs."""
    receipt = get_receipt(receipt_id, scope)

    product_ids = [line.product_id for line in receipt.lines]
    products = {}
    if product_ids:
        products = {
            p.id: p
            for p in db.session.query(Product).filter(
                Product.id.in_(product_ids),
                Product.company_id == receipt.company_id,
            )
        }

    result = receipt.to_dict()
    result["lines"] = []
    for line in receipt.lines:
        row = line.to_dict()
        product = products.get(line.product_id)
        row["product_name"] = product.name if product else None
        row["product_sku"] = product.sku if product else None
        result["lines"].append(row)
    result["total_quantity"] = sum(line.quantity for line in receipt.lines)

    if resolve_attachments:
        result["attachments"] = [a.to_dict() for a in resolve_for_receipt(receipt.attachments)]
    return result
