# Overview: Request decorators that resolve the acting user and their ledger scope.

from functools import wraps
from flask import request, jsonify, g

from .services import scope_service
from .services.errors import PermissionDenied

ACTOR_HEADER = "X-Actor-Id"


def require_actor(f):
    """
    Resolve the actor and establish the request scope.

    Sets the following Flask g attributes:
    - g.actor: the acting User
    - g.scope: the actor's Scope (tenant, branch or None)

    Session issuance is handled upstream; by the time a request reaches the
    ledger the gateway has put the authenticated user id in X-Actor-Id.

    Returns 401 if the header is missing, malformed, or names an unknown or
    inactive user. Returns 403 if the actor has no usable scope.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        actor = scope_service.get_authorizer().load_actor(int(raw))
        if actor is None:
            return jsonify({"error": "Unknown or inactive actor"}), 401

        try:
            scope = scope_service.resolve_scope(actor)
        except PermissionDenied as e:
            return jsonify({"error": "Permission denied", "message": e.message}), 403

        g.actor = actor
        g.scope = scope
        return f(*args, **kwargs)

    return decorated_function


def require_approver(f):
    """Require the actor to hold an approver role. Use after @require_actor."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "actor"):
            return jsonify({"error": "Authentication required"}), 401

        if not scope_service.is_approver(g.actor):
            return jsonify({
                "error": "Permission denied",
                "message": "Approver role required",
            }), 403

        return f(*args, **kwargs)

    return decorated_function
