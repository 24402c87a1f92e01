# Overview: Flask API routes for receiving receipts; parses input and returns JSON responses.

"""
Receipt Routes

SECURITY: All routes require an actor (X-Actor-Id) and run inside the
actor's scope. Approve/reject additionally require an approver role.

- POST /api/receipts                    record a PENDING receipt (intake)
- GET  /api/receipts                    list receipts in scope (?mine=1 for own)
- GET  /api/receipts/<id>               receipt with lines and signed attachments
- POST /api/receipts/<id>/approve       PENDING -> APPROVED, stock incremented
- POST /api/receipts/<id>/reject        PENDING -> REJECTED
- GET  /api/receipts/<id>/audit         transition history, most recent first
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_approver
from ..services import approval_service, audit_service, intake_service
from ..services.errors import ConflictError, LedgerError, ProductMissingError
from ..services.scope_service import narrow_scope


receipts_bp = Blueprint("receipts", __name__, url_prefix="/api/receipts")


def _error_response(e: LedgerError):
    body = {"error": e.message or type(e).__name__}
    if isinstance(e, ConflictError) and e.current_status:
        body["current_status"] = e.current_status
    if isinstance(e, ProductMissingError):
        body["missing_product_ids"] = e.product_ids
    return jsonify(body), e.http_status


def _json_object():
    """Request body as a dict; None when it is JSON but not an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


@receipts_bp.get("")
@require_actor
def list_receipts_route():
    """
    List receipts visible to the actor.

    Query parameters:
    - status: PENDING, APPROVED or REJECTED
    - branch_id: narrow a tenant-wide scope to one branch
    - mine: 1/true to list only receipts the actor recorded
    - limit: Maximum results (default: 100, max 500)
    - offset: Pagination offset (default: 0)
    """
    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)
    limit = max(1, min(limit, 500))
    offset = max(0, offset)
    mine = request.args.get("mine", "").strip().lower() in ("1", "true", "yes")

    try:
        scope = narrow_scope(g.scope, request.args.get("branch_id", type=int))
        items, total = approval_service.list_receipts(
            scope,
            status=request.args.get("status"),
            created_by_user_id=g.actor.id if mine else None,
            limit=limit,
            offset=offset,
        )
    except LedgerError as e:
        return _error_response(e)

    return jsonify({
        "items": [r.to_dict() for r in items],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@receipts_bp.post("")
@require_actor
def create_receipt_route():
    """
    Record goods received at a branch.

    Request body:
    {
        "branch_id": 1,                 // optional for branch-bound actors
        "reference": "KDA 123X",        // required
        "lines": [{"product_id": 1, "quantity": 10}],
        "attachments": ["r1/u1/waybill.jpg"],   // or a path, or {"urls": [...]}
        "notes": "..."
    }
    """
    data = _json_object()
    if data is None:
        return jsonify({"error": "Request body must be a JSON object"}), 400

    branch_id = data.get("branch_id", g.scope.branch_id)
    if branch_id is None:
        return jsonify({"error": "branch_id is required"}), 400

    notes = data.get("notes")
    if notes is not None and not isinstance(notes, str):
        return jsonify({"error": "notes must be a string"}), 400

    try:
        receipt = intake_service.create_receipt(
            scope=g.scope,
            branch_id=branch_id,
            reference=data.get("reference"),
            lines=data.get("lines"),
            created_by_user_id=g.actor.id,
            attachments=data.get("attachments"),
            notes=notes,
        )
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create receipt")
        return jsonify({"error": "Failed to create receipt"}), 500

    return jsonify(receipt.to_dict()), 201


@receipts_bp.get("/<int:receipt_id>")
@require_actor
def get_receipt_route(receipt_id: int):
    try:
        return jsonify(approval_service.get_receipt_with_lines(receipt_id, g.scope))
    except LedgerError as e:
        return _error_response(e)


@receipts_bp.post("/<int:receipt_id>/approve")
@require_actor
@require_approver
def approve_receipt_route(receipt_id: int):
    try:
        receipt = approval_service.approve_receipt(receipt_id, actor_user_id=g.actor.id, scope=g.scope)
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve receipt")
        return jsonify({"error": "Failed to approve receipt"}), 500

    return jsonify(receipt.to_dict())


@receipts_bp.post("/<int:receipt_id>/reject")
@require_actor
@require_approver
def reject_receipt_route(receipt_id: int):
    """
    Request body:
    {
        "reason": "Damaged on arrival"   // optional
    }
    """
    data = _json_object()
    if data is None:
        return jsonify({"error": "Request body must be a JSON object"}), 400

    try:
        receipt = approval_service.reject_receipt(
            receipt_id,
            actor_user_id=g.actor.id,
            scope=g.scope,
            reason=data.get("reason"),
        )
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject receipt")
        return jsonify({"error": "Failed to reject receipt"}), 500

    return jsonify(receipt.to_dict())


@receipts_bp.get("/<int:receipt_id>/audit")
@require_actor
def list_audit_route(receipt_id: int):
    try:
        entries = audit_service.list_audit(receipt_id, g.scope)
    except LedgerError as e:
        return _error_response(e)
    return jsonify({"items": [entry.to_dict() for entry in entries]})
