# Overview: Atomic stock counter adjustments applied when a receipt is approved.

from __future__ import annotations

from collections import OrderedDict
from typing import Iterable

from sqlalchemy import update

from ..extensions import db
from ..models import Product, ReceiptLine
from .concurrency import lock_for_update
from .errors import ValidationError
from .scope_service import Scope, apply_scope

"""
Stock mutation invariants:

- increment() is a single UPDATE ... SET quantity_in_stock = quantity_in_stock + :qty;
  no read-modify-write in Python, so concurrent sales/returns never lose updates.
- It has no dedup key of its own. The approval CAS guarantees it runs exactly
  once per (receipt, line); callers must never invoke it outside that path.
- Never commits. The caller owns the transaction.
"""


def aggregate_lines(lines: Iterable[ReceiptLine]) -> "OrderedDict[int, int]":
    """Sum line quantities per product, in first-seen order."""
    totals: "OrderedDict[int, int]" = OrderedDict()
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + int(line.quantity)
    return totals


def lock_products(product_ids: Iterable[int], scope: Scope) -> dict[int, Product]:
    """Load (and, where the DB supports it, row-lock) the scoped products by id."""
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    query = apply_scope(db.session.query(Product), Product, scope).filter(Product.id.in_(ids))
    query = lock_for_update(query.order_by(Product.id))
    return {p.id: p for p in query.all()}


def increment(product_id: int, quantity: int) -> int:
    """
    Add quantity to a product's stock counter.

    Returns the number of rows touched (0 when the product is gone).
    """
    if quantity <= 0:
        raise ValidationError("Stock increment must be positive")

    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(quantity_in_stock=Product.quantity_in_stock + quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
