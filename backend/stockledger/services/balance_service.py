# Overview: Point-in-time stock balance reconstruction from current stock and forward movement logs.

"""
Balance Reconstructor

Answers "what was the stock level at the end of day D" without a snapshot
table, by undoing everything that happened after D:

    balance(p, D) = max(0, current_stock(p)
                           + sales_after(p)        # sales took stock out; add back
                           - receipts_after(p)     # approved receipts put stock in; take out
                           - returns_after(p))     # approved returns put stock in; take out

- "after D" means timestamp > end of day D (UTC).
- Voided sales are excluded from sales_after.
- A negative raw result is clamped to 0, flagged and logged as a data-quality
  problem (older movement logs may be incomplete). It is never raised.
- Read-only, lock-free, best effort: approvals committing while this runs
  may or may not be reflected.
- Cost: one product query plus one grouped query per movement kind.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Product
from ..time_utils import end_of_day, to_utc_z
from .errors import DataIntegrityWarning, ValidationError
from .movement_service import MovementLog, get_movement_log
from .scope_service import Scope, apply_scope


@dataclass
class BalanceRow:
    product_id: int
    sku: str
    name: str
    branch_id: int
    current_stock: int
    sales_after: int
    receipts_after: int
    returns_after: int
    balance_as_at: int
    clamped: bool
    reorder_level: int
    below_reorder: bool

    def to_dict(self) -> dict:
        return asdict(self)


def compute_balances(
    as_of: date,
    scope: Scope,
    *,
    movement_log: MovementLog | None = None,
) -> list[BalanceRow]:
    """
    Reconstruct the end-of-day balance of every product in scope.

    Args:
        as_of: Calendar day (UTC). Today or later yields current stock.
        scope: Tenant/branch boundary
        movement_log: Defaults to the app's configured movement log

    Returns:
        One BalanceRow per product, ordered by product name
    """
    if not isinstance(as_of, date):
        raise ValidationError("as_of must be a date")

    log = movement_log or get_movement_log()
    cutoff = end_of_day(as_of)

    products = (
        apply_scope(
            db.session.query(
                Product.id,
                Product.sku,
                Product.name,
                Product.branch_id,
                Product.quantity_in_stock,
                Product.reorder_level,
            ),
            Product,
            scope,
        )
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    if not products:
        return []

    sales_after: dict[int, int] = defaultdict(int)
    for movement in log.sales_since(scope, cutoff):
        if movement.voided:
            continue
        sales_after[movement.product_id] += movement.quantity

    receipts_after: dict[int, int] = defaultdict(int)
    for movement in log.receipts_since(scope, cutoff):
        receipts_after[movement.product_id] += movement.quantity

    returns_after: dict[int, int] = defaultdict(int)
    for movement in log.approved_returns_since(scope, cutoff):
        returns_after[movement.product_id] += movement.quantity

    rows = []
    clamped_ids = []
    for p in products:
        current = int(p.quantity_in_stock or 0)
        sold = sales_after.get(p.id, 0)
        received = receipts_after.get(p.id, 0)
        returned = returns_after.get(p.id, 0)

        raw = current + sold - received - returned
        clamped = raw < 0
        if clamped:
            clamped_ids.append((p.id, raw))
        balance = 0 if clamped else raw

        rows.append(
            BalanceRow(
                product_id=p.id,
                sku=p.sku,
                name=p.name,
                branch_id=p.branch_id,
                current_stock=current,
                sales_after=sold,
                receipts_after=received,
                returns_after=returned,
                balance_as_at=balance,
                clamped=clamped,
                reorder_level=int(p.reorder_level or 0),
                below_reorder=balance <= int(p.reorder_level or 0),
            )
        )

    if clamped_ids:
        current_app.logger.warning(
            "%s: %s negative reconstructed balance(s) clamped to 0 as_of=%s scope=%s products=%s",
            DataIntegrityWarning.__name__,
            len(clamped_ids),
            as_of.isoformat(),
            scope.to_dict(),
            clamped_ids,
        )

    return rows


def summarize(rows: list[BalanceRow]) -> dict:
    return {
        "product_count": len(rows),
        "total_balance": sum(r.balance_as_at for r in rows),
        "total_current_stock": sum(r.current_stock for r in rows),
        "clamped_count": sum(1 for r in rows if r.clamped),
        "below_reorder_count": sum(1 for r in rows if r.below_reorder),
    }


def balance_report(as_of: date, scope: Scope) -> dict:
    rows = compute_balances(as_of, scope)
    return {
        "as_of": as_of.isoformat(),
        "cutoff": to_utc_z(end_of_day(as_of)),
        "scope": scope.to_dict(),
        "summary": summarize(rows),
        "rows": [r.to_dict() for r in rows],
    }
