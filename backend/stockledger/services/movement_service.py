# Overview: Read-only batched aggregates over the sales, receipt and return movement logs.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from flask import current_app
from sqlalchemy import case, func

from ..extensions import db
from ..models import Receipt, ReceiptLine, Sale, SaleLine, SaleReturn
from ..models.inventory import RECEIPT_STATUS_APPROVED
from ..models.movements import RETURN_STATUS_APPROVED, VOIDED_SALE_STATUSES
from .scope_service import Scope, scope_filters

"""
Movement log semantics:

- Every query is ONE grouped aggregate, scoped by company/branch and by
  timestamp > after. Never a per-product round trip.
- Sales use the sale's created_at. A sale is voided when its status is
  VOIDED or RETURNED; the flag is reported, the caller decides what to do.
- Receipts count only APPROVED receipts, timed at approved_at (the moment
  stock was incremented), not at intake.
- Returns count every APPROVED return, timed at approved_at, whatever the
  status of the sale it reverses.
- No locks, no snapshot: rows committed while these run may or may not be seen.
"""

MOVEMENT_LOG_EXTENSION_KEY = "stockledger.movement_log"


@dataclass(frozen=True)
class SaleMovement:
    product_id: int
    quantity: int
    voided: bool


@dataclass(frozen=True)
class StockMovement:
    product_id: int
    quantity: int


class MovementLog(Protocol):
    def sales_since(self, scope: Scope, after: datetime) -> list[SaleMovement]: ...

    def receipts_since(self, scope: Scope, after: datetime) -> list[StockMovement]: ...

    def approved_returns_since(self, scope: Scope, after: datetime) -> list[StockMovement]: ...


class SqlMovementLog:
    """MovementLog backed by the sales, receipts and returns tables."""

    def sales_since(self, scope: Scope, after: datetime) -> list[SaleMovement]:
        voided = case((Sale.status.in_(VOIDED_SALE_STATUSES), True), else_=False)
        rows = (
            db.session.query(
                SaleLine.product_id.label("product_id"),
                voided.label("voided"),
                func.coalesce(func.sum(SaleLine.quantity), 0).label("qty"),
            )
            .join(Sale, Sale.id == SaleLine.sale_id)
            .filter(*scope_filters(Sale, scope), Sale.created_at > after)
            .group_by(SaleLine.product_id, voided)
            .all()
        )
        return [SaleMovement(int(r.product_id), int(r.qty or 0), bool(r.voided)) for r in rows]

    def receipts_since(self, scope: Scope, after: datetime) -> list[StockMovement]:
        rows = (
            db.session.query(
                ReceiptLine.product_id.label("product_id"),
                func.coalesce(func.sum(ReceiptLine.quantity), 0).label("qty"),
            )
            .join(Receipt, Receipt.id == ReceiptLine.receipt_id)
            .filter(
                *scope_filters(Receipt, scope),
                Receipt.status == RECEIPT_STATUS_APPROVED,
                Receipt.approved_at > after,
            )
            .group_by(ReceiptLine.product_id)
            .all()
        )
        return [StockMovement(int(r.product_id), int(r.qty or 0)) for r in rows]

    def approved_returns_since(self, scope: Scope, after: datetime) -> list[StockMovement]:
        rows = (
            db.session.query(
                SaleReturn.product_id.label("product_id"),
                func.coalesce(func.sum(SaleReturn.quantity), 0).label("qty"),
            )
            .filter(
                *scope_filters(SaleReturn, scope),
                SaleReturn.status == RETURN_STATUS_APPROVED,
                SaleReturn.approved_at.isnot(None),
                SaleReturn.approved_at > after,
            )
            .group_by(SaleReturn.product_id)
            .all()
        )
        return [StockMovement(int(r.product_id), int(r.qty or 0)) for r in rows]


def get_movement_log() -> MovementLog:
    return current_app.extensions[MOVEMENT_LOG_EXTENSION_KEY]
