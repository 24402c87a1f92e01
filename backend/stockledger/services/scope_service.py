"""
Scope Guard: tenant/branch boundary for every ledger read and write.

WHY: A receipt, product or movement must never leak across companies, and a
branch-bound actor must never see another branch. The boundary is an explicit
Scope value passed to every service function; there is no ambient "selected
branch" state anywhere in the process.

SECURITY INVARIANTS:
1. Every service call takes a Scope; forgetting it is a TypeError, not a runtime branch
2. branch_id=None means tenant-wide (aggregating role)
3. Cross-tenant lookups look exactly like missing rows (NotFound / empty)
4. Denied cross-tenant attempts are logged as CROSS_TENANT_ACCESS_DENIED

USAGE:
    from stockledger.services.scope_service import Scope, apply_scope

    scope = resolve_scope(actor)
    receipts = apply_scope(db.session.query(Receipt), Receipt, scope).all()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from flask import current_app

from ..extensions import db
from ..models import Branch, User
from .errors import NotFoundError, PermissionDenied, ValidationError


AUTHORIZER_EXTENSION_KEY = "stockledger.authorizer"


@dataclass(frozen=True)
class Scope:
    tenant_id: int
    branch_id: int | None = None

    def __post_init__(self):
        if not isinstance(self.tenant_id, int) or isinstance(self.tenant_id, bool) or self.tenant_id <= 0:
            raise ValidationError("tenant_id must be a positive integer")
        if self.branch_id is not None and (
            not isinstance(self.branch_id, int) or isinstance(self.branch_id, bool) or self.branch_id <= 0
        ):
            raise ValidationError("branch_id must be a positive integer or None")

    @property
    def is_tenant_wide(self) -> bool:
        return self.branch_id is None

    def allows_branch(self, branch_id: int) -> bool:
        return self.branch_id is None or self.branch_id == branch_id

    def narrow(self, branch_id: int | None) -> "Scope":
        """
        Restrict to one branch. None keeps the scope as is.

        Does not check that the branch belongs to the tenant; use
        narrow_scope() for input coming from a request.
        """
        if branch_id is None:
            return self
        if not self.allows_branch(branch_id):
            raise PermissionDenied("Branch is outside the caller's scope")
        return Scope(self.tenant_id, branch_id)

    def to_dict(self) -> dict:
        return {"tenant_id": self.tenant_id, "branch_id": self.branch_id}


def apply_scope(query, model, scope: Scope):
    """
    Filter a query on a model carrying company_id and branch_id columns.

    Every ledger query goes through here (or an equivalent explicit filter).
    """
    query = query.filter(model.company_id == scope.tenant_id)
    if scope.branch_id is not None:
        query = query.filter(model.branch_id == scope.branch_id)
    return query


def scope_filters(model, scope: Scope) -> list:
    """Same filter as apply_scope, as a list of criteria for Core statements."""
    criteria = [model.company_id == scope.tenant_id]
    if scope.branch_id is not None:
        criteria.append(model.branch_id == scope.branch_id)
    return criteria


def require_branch_in_scope(branch_id: int, scope: Scope) -> Branch:
    """
    Validate that a branch belongs to the scope's tenant (and branch, if bound).

    Raises NotFoundError for branches of other tenants; their existence is
    not revealed.
    """
    if not isinstance(branch_id, int) or isinstance(branch_id, bool) or branch_id <= 0:
        raise ValidationError("branch_id must be a positive integer")

    branch = db.session.query(Branch).filter_by(id=branch_id).first()
    if branch is None or branch.company_id != scope.tenant_id:
        log_cross_tenant_attempt(
            f"Branch {branch_id} is not part of company {scope.tenant_id}",
            scope=scope,
        )
        raise NotFoundError("Branch not found")

    if not scope.allows_branch(branch_id):
        raise PermissionDenied("Branch is outside the caller's scope")
    return branch


def narrow_scope(scope: Scope, branch_id: int | None) -> Scope:
    """Explicit replacement for a UI-held "current branch": validate, then narrow."""
    if branch_id is None:
        return scope
    require_branch_in_scope(branch_id, scope)
    return scope.narrow(branch_id)


def log_cross_tenant_attempt(reason: str, *, scope: Scope | None = None, actor_id: int | None = None) -> None:
    current_app.logger.warning(
        "CROSS_TENANT_ACCESS_DENIED actor=%s scope=%s reason=%s",
        actor_id,
        scope.to_dict() if scope else None,
        reason,
    )


def log_branch_scope_attempt(reason: str, *, scope: Scope, actor_id: int | None = None) -> None:
    """Same tenant, branch outside a branch-bound scope."""
    current_app.logger.warning(
        "BRANCH_SCOPE_DENIED actor=%s scope=%s reason=%s",
        actor_id,
        scope.to_dict(),
        reason,
    )


# =============================================================================
# AUTHORIZATION COLLABORATOR
# =============================================================================

class Authorizer(Protocol):
    def load_actor(self, actor_id: int) -> User | None: ...

    def scope(self, actor: User) -> Scope: ...

    def is_approver(self, actor: User) -> bool: ...


class UserDirectoryAuthorizer:
    """
    Default authorization collaborator backed by the users table.

    - roles in TENANT_WIDE_ROLES see the whole company (branch_id=None)
    - every other role is bound to its home branch
    - roles in APPROVER_ROLES may approve or reject receipts
    """

    def __init__(self, approver_roles=("admin", "manager"), tenant_wide_roles=("admin",)):
        self.approver_roles = frozenset(approver_roles)
        self.tenant_wide_roles = frozenset(tenant_wide_roles)

    def load_actor(self, actor_id: int) -> User | None:
        user = db.session.query(User).filter_by(id=actor_id).first()
        if user is None or not user.is_active:
            return None
        return user

    def scope(self, actor: User) -> Scope:
        if actor.role in self.tenant_wide_roles:
            return Scope(actor.company_id, None)
        if actor.branch_id is None:
            raise PermissionDenied("Branch assignment required")
        return Scope(actor.company_id, actor.branch_id)

    def is_approver(self, actor: User) -> bool:
        return actor.role in self.approver_roles


def get_authorizer() -> Authorizer:
    return current_app.extensions[AUTHORIZER_EXTENSION_KEY]


def resolve_scope(actor: User) -> Scope:
    return get_authorizer().scope(actor)


def is_approver(actor: User) -> bool:
    return get_authorizer().is_approver(actor)
