"""
Receipt audit trail tests: one entry per transition, append-only, newest first.
"""

import pytest

from conftest import make_receipt, scope_of
from stockledger.models import ReceiptAuditEntry, ReceiptLine
from stockledger.models.inventory import ImmutableRowError
from stockledger.services import approval_service, audit_service
from stockledger.services.errors import NotFoundError


def test_history_is_most_recent_first(db_session, manager_a1, clerk_a1, branch_a1, product_a1):
    receipt = make_receipt(clerk_a1, branch_a1, [(product_a1, 4)])
    approval_service.approve_receipt(receipt.id, actor_user_id=manager_a1.id, scope=scope_of(manager_a1))

    entries = audit_service.list_audit(receipt.id, scope_of(clerk_a1))

    assert [(e.action, e.from_status, e.to_status) for e in entries] == [
        ("approved", "PENDING", "APPROVED"),
        ("created", None, "PENDING"),
    ]
    assert [e.actor_user_id for e in entries] == [manager_a1.id, clerk_a1.id]
    assert entries[0].company_id == receipt.company_id


def test_history_of_invisible_receipt_is_not_found(db_session, admin_b, clerk_a1, branch_a1, product_a1):
    receipt = make_receipt(clerk_a1, branch_a1, [(product_a1, 4)])

    with pytest.raises(NotFoundError):
        audit_service.list_audit(receipt.id, scope_of(admin_b))


def test_entries_cannot_be_updated(db_session, clerk_a1, branch_a1, product_a1):
    receipt = make_receipt(clerk_a1, branch_a1, [(product_a1, 4)])
    entry = db_session.query(ReceiptAuditEntry).filter_by(receipt_id=receipt.id).one()

    entry.note = "edited"
    with pytest.raises(ImmutableRowError):
        db_session.flush()
    db_session.rollback()


def test_entries_cannot_be_deleted(db_session, clerk_a1, branch_a1, product_a1):
    receipt = make_receipt(clerk_a1, branch_a1, [(product_a1, 4)])
    entry = db_session.query(ReceiptAuditEntry).filter_by(receipt_id=receipt.id).one()

    db_session.delete(entry)
    with pytest.raises(ImmutableRowError):
        db_session.flush()
    db_session.rollback()


def test_receipt_lines_are_immutable(db_session, clerk_a1, branch_a1, product_a1):
    receipt = make_receipt(clerk_a1, branch_a1, [(product_a1, 4)])
    line = db_session.query(ReceiptLine).filter_by(receipt_id=receipt.id).one()

    line.quantity = 400
    with pytest.raises(ImmutableRowError):
        db_session.flush()
    db_session.rollback()

    assert db_session.get(ReceiptLine, line.id).quantity == 4
