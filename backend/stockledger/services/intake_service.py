# Overview: Intake boundary that records newly received goods as PENDING receipts.

"""
Receipt intake

WHY: Received goods must not become usable stock until an approver confirms
them. Intake only records what arrived; it never touches quantity_in_stock.

VALIDATION lives here, not in the approval engine:
- reference is required (carrier / vehicle id), max 64 chars
- at least one line; quantities are positive integers
- products exist in the receipt's company and branch
- a product appears at most once per receipt
- attachments are parsed once into the canonical path list
"""

from __future__ import annotations

from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import Product, Receipt, ReceiptLine
from ..models.inventory import RECEIPT_STATUS_PENDING
from ..time_utils import utcnow
from .attachment_service import parse_attachments
from .audit_service import ACTION_CREATED, record_transition
from .concurrency import atomic
from .errors import ValidationError
from .scope_service import Scope, require_branch_in_scope

MAX_LINES = 200


def _positive_int(value, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer")
    if value <= 0:
        raise ValidationError(f"{label} must be positive")
    return value


def _parse_lines(lines: Iterable) -> list[tuple[int, int]]:
    if lines is None:
        raise ValidationError("At least one line is required")
    if not isinstance(lines, (list, tuple)):
        raise ValidationError("lines must be a list")
    if not lines:
        raise ValidationError("At least one line is required")
    if len(lines) > MAX_LINES:
        raise ValidationError(f"At most {MAX_LINES} lines per receipt")

    parsed = []
    seen = set()
    for idx, line in enumerate(lines, start=1):
        if not isinstance(line, dict):
            raise ValidationError(f"Line {idx} must be an object")
        product_id = _positive_int(line.get("product_id"), f"Line {idx} product_id")
        quantity = _positive_int(line.get("quantity"), f"Line {idx} quantity")
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once")
        seen.add(product_id)
        parsed.append((product_id, quantity))
    return parsed


def create_receipt(
    *,
    scope: Scope,
    branch_id: int,
    reference: str,
    lines: list[dict],
    created_by_user_id: int,
    attachments=None,
    notes: str | None = None,
) -> Receipt:
    """
    Record a PENDING receipt with its lines and a "created" audit entry.

    Args:
        scope: Caller's scope; branch_id must fall inside it
        branch_id: Receiving branch
        reference: Carrier / vehicle reference
        lines: [{"product_id": int, "quantity": int}, ...]
        created_by_user_id: Actor recording the receipt
        attachments: Path, list of paths, or wrapped list (see attachment_service)
        notes: Free text

    Raises:
        ValidationError, NotFoundError, PermissionDenied
    """
    if reference is not None and not isinstance(reference, str):
        raise ValidationError("reference must be a string")
    reference = (reference or "").strip()
    if not reference:
        raise ValidationError("reference is required")
    if len(reference) > 64:
        raise ValidationError("reference must be at most 64 characters")

    branch = require_branch_in_scope(branch_id, scope)
    parsed_lines = _parse_lines(lines)
    paths = parse_attachments(attachments, bucket=current_app.config.get("ATTACHMENT_BUCKET"))

    product_ids = [pid for pid, _ in parsed_lines]
    found = {
        row.id
        for row in db.session.query(Product.id).filter(
            Product.id.in_(product_ids),
            Product.company_id == branch.company_id,
            Product.branch_id == branch.id,
        )
    }
    missing = [pid for pid in product_ids if pid not in found]
    if missing:
        raise ValidationError(f"Products not found in this branch: {', '.join(map(str, missing))}")

    now = utcnow()
    with atomic():
        receipt = Receipt(
            company_id=branch.company_id,
            branch_id=branch.id,
            reference=reference,
            notes=(notes or "").strip() or None,
            status=RECEIPT_STATUS_PENDING,
            created_by_user_id=created_by_user_id,
            created_at=now,
            attachments=paths,
        )
        db.session.add(receipt)
        db.session.flush()

        for product_id, quantity in parsed_lines:
            db.session.add(ReceiptLine(receipt_id=receipt.id, product_id=product_id, quantity=quantity))

        record_transition(
            receipt=receipt,
            action=ACTION_CREATED,
            from_status=None,
            to_status=RECEIPT_STATUS_PENDING,
            actor_user_id=created_by_user_id,
            note=f"{len(parsed_lines)} line(s), {len(paths)} attachment(s)",
            at=now,
        )

    current_app.logger.info(
        "Receipt %s recorded company=%s branch=%s lines=%s by user=%s",
        receipt.id, receipt.company_id, receipt.branch_id, len(parsed_lines), created_by_user_id,
    )
    return receipt
