from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


RECEIPT_STATUS_PENDING = "PENDING"
RECEIPT_STATUS_APPROVED = "APPROVED"
RECEIPT_STATUS_REJECTED = "REJECTED"

RECEIPT_STATUSES = (RECEIPT_STATUS_PENDING, RECEIPT_STATUS_APPROVED, RECEIPT_STATUS_REJECTED)


class ImmutableRowError(Exception):
    """Raised when code tries to update or delete an append-only row."""
    pass


class Product(db.Model):
    """
    Product with a live stock counter.

    MULTI-TENANT: products are scoped to a company and a branch.

    quantity_in_stock is the running balance. It is changed by receipt
    approval here and by sales/returns elsewhere, always through an in-SQL
    increment so concurrent writers never lose updates.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "sku", name="uq_products_branch_sku"),
        db.Index("ix_products_company_branch", "company_id", "branch_id"),
        db.CheckConstraint("quantity_in_stock >= 0", name="stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False, default="piece")

    quantity_in_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.quantity_in_stock} branch_id={self.branch_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "branch_id": self.branch_id,
            "sku": self.sku,
            "name": self.name,
            "unit": self.unit,
            "quantity_in_stock": self.quantity_in_stock,
            "reorder_level": self.reorder_level,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Receipt(db.Model):
    """
    Goods received at a branch, waiting for an approver.

    LIFECYCLE:
    1. PENDING: created by intake, stock untouched
    2. APPROVED: stock incremented for every line (terminal)
    3. REJECTED: no stock effect (terminal)

    Status changes exactly once, through a compare-and-swap update.
    Receipts are never deleted.
    """
    __tablename__ = "receipts"
    __table_args__ = (
        db.Index("ix_receipts_company_branch_status", "company_id", "branch_id", "status"),
        db.Index("ix_receipts_company_approved_at", "company_id", "approved_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    # Free-text carrier reference (vehicle plate, waybill number, ...)
    reference = db.Column(db.String(64), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=RECEIPT_STATUS_PENDING, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    rejected_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    # Canonical ordered list of bucket-relative attachment paths
    attachments = db.Column(db.JSON, nullable=False, default=list)

    lines = db.relationship(
        "ReceiptLine",
        backref="receipt",
        lazy=True,
        order_by="ReceiptLine.id",
    )

    def __repr__(self) -> str:
        return f"<Receipt id={self.id} reference={self.reference!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "branch_id": self.branch_id,
            "reference": self.reference,
            "notes": self.notes,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by_user_id": self.rejected_by_user_id,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "attachments": list(self.attachments or []),
        }


class ReceiptLine(db.Model):
    """One product/quantity pair of a receipt. Immutable after insert."""
    __tablename__ = "receipt_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey("receipts.id"), nullable=False, index=True)

    # No FK: the product may be deleted while the receipt is still pending,
    # which approval reports as ProductMissing.
    product_id = db.Column(db.Integer, nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<ReceiptLine id={self.id} receipt_id={self.receipt_id} product_id={self.product_id} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_id": self.receipt_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }


class ReceiptAuditEntry(db.Model):
    """
    Append-only history of receipt transitions.

    One row per transition; rows are never updated or deleted.
    from_status is null for the intake ("created") entry.
    """
    __tablename__ = "receipt_audit_entries"
    __table_args__ = (
        db.Index("ix_receipt_audit_receipt_created", "receipt_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey("receipts.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    action = db.Column(db.String(32), nullable=False)
    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    note = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ReceiptAuditEntry id={self.id} receipt_id={self.receipt_id} "
            f"{self.from_status}->{self.to_status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_id": self.receipt_id,
            "action": self.action,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(ReceiptAuditEntry, "before_update")
@event.listens_for(ReceiptLine, "before_update")
def _reject_update(mapper, connection, target):
    raise ImmutableRowError(f"{type(target).__name__} rows are immutable")


@event.listens_for(ReceiptAuditEntry, "before_delete")
@event.listens_for(ReceiptLine, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutableRowError(f"{type(target).__name__} rows cannot be deleted")
