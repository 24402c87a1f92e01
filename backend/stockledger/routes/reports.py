# Overview: Flask API routes for ledger reports; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor
from ..services import balance_service
from ..services.errors import LedgerError
from ..services.scope_service import narrow_scope
from ..time_utils import parse_iso_date, utcnow

"""
Time semantics:
- as_of is a calendar date (YYYY-MM-DD), interpreted as the end of that UTC day.
- Movements strictly after the end of as_of are undone from current stock.
"""

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/stock-balance")
@require_actor
def stock_balance_route():
    """
    Stock balance as at a past date.

    Query parameters:
    - as_of: YYYY-MM-DD (default: today, UTC)
    - branch_id: narrow a tenant-wide scope to one branch

    Returns:
        {as_of, cutoff, scope, summary, rows: BalanceRow[]}
    """
    try:
        as_of = parse_iso_date(request.args.get("as_of")) or utcnow().date()
    except ValueError:
        return jsonify({"error": "as_of must be a date (YYYY-MM-DD)"}), 400

    try:
        scope = narrow_scope(g.scope, request.args.get("branch_id", type=int))
        report = balance_service.balance_report(as_of, scope)
    except LedgerError as e:
        return jsonify({"error": e.message}), e.http_status

    return jsonify(report)
