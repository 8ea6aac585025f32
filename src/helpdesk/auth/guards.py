"""Access control guards — role policy and organization scoping.

Learn: all role decisions come from one table, POLICY, instead of
`if role == ...` branches scattered through handlers. Routes declare
the permission they need with require_permission("tickets:delete").

Two orthogonal checks, both layered after get_current_identity:
- Role guard: is identity.role in the allowed set?
- Organization guard: does the ticket in the path belong to the
  identity's company? (ADMIN bypasses)

Order is explicit in each handler signature. Ticket delete, for example:
  authenticate → ticket_id_path (shape) → require ADMIN → same org → delete
so a malformed id is a 400 before any lookup, and a non-admin gets 403
before learning whether the ticket exists.
"""

from fastapi import Depends, Path, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from helpdesk.auth.dependencies import Identity, get_current_identity
from helpdesk.db.engine import get_db
from helpdesk.db.models import Role, Ticket
from helpdesk.errors import AuthorizationError, NotFoundError, ValidationError

ALL_ROLES = frozenset(Role)
STAFF = frozenset({Role.SUPPORT, Role.ADMIN})
ADMIN_ONLY = frozenset({Role.ADMIN})

# (permission) → roles allowed. Finer per-object rules (ticket ownership)
# are applied in handlers via can_update_ticket().
POLICY: dict[str, frozenset[Role]] = {
    "tickets:list": ALL_ROLES,
    "tickets:read": ALL_ROLES,
    "tickets:create": ALL_ROLES,
    "tickets:update": ALL_ROLES,
    "tickets:delete": ADMIN_ONLY,
    "tickets:stats": STAFF,
    "messages:list": ALL_ROLES,
    "messages:create": ALL_ROLES,
    "users:list": ADMIN_ONLY,
    "users:read": ADMIN_ONLY,
    "users:create": ADMIN_ONLY,
    "users:update": ADMIN_ONLY,
    "users:delete": ADMIN_ONLY,
    "users:stats": ADMIN_ONLY,
    "companies:list": ADMIN_ONLY,
    "companies:read": ADMIN_ONLY,
    "companies:create": ADMIN_ONLY,
    "companies:update": ADMIN_ONLY,
    "companies:delete": ADMIN_ONLY,
    "companies:stats": ADMIN_ONLY,
}


def is_allowed(permission: str, role: Role) -> bool:
    return role in POLICY[permission]


def check_role(identity: Identity, allowed: frozenset[Role]) -> None:
    if identity.role not in allowed:
        raise AuthorizationError(
            "Insufficient permissions",
            code="INSUFFICIENT_PERMISSIONS",
            required=sorted(r.value for r in allowed),
            current=identity.role.value,
        )


def require_role(*roles: Role):
    """Dependency factory: 403 unless the identity has one of `roles`."""
    allowed = frozenset(roles)

    async def _guard(identity: Identity = Depends(get_current_identity)) -> Identity:
        check_role(identity, allowed)
        return identity

    return _guard


def require_permission(permission: str):
    """Dependency factory backed by the POLICY table."""
    if permission not in POLICY:
        raise KeyError(f"Unknown permission: {permission}")
    return require_role(*POLICY[permission])


# ─── Path shape validation ──────────────────────────────


def _numeric_id(raw: str, field: str) -> int:
    if not raw.isdigit() or int(raw) < 1:
        raise ValidationError(
            details=[
                {
                    "field": f"params.{field}",
                    "message": f"{field} must be a positive number",
                    "code": "invalid_string",
                }
            ]
        )
    return int(raw)


def ticket_id_path(ticket_id: str = Path(...)) -> int:
    return _numeric_id(ticket_id, "id")


def user_id_path(user_id: str = Path(...)) -> int:
    return _numeric_id(user_id, "id")


def company_id_path(company_id: str = Path(...)) -> int:
    return _numeric_id(company_id, "id")


# ─── Organization scoping ───────────────────────────────


async def require_same_organization(
    request: Request,
    ticket_id: int = Depends(ticket_id_path),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Ticket:
    """Load the path ticket and enforce tenant scoping.

    404 if it doesn't exist (any role), 403 ACCESS_DENIED for a non-admin
    in another company. The loaded ticket is stashed on request.state.ticket
    and returned, so handlers don't fetch it twice.
    """
    result = await db.execute(
        select(Ticket)
        .where(Ticket.id == ticket_id)
        .options(joinedload(Ticket.person), joinedload(Ticket.company))
    )
    ticket = result.scalars().first()
    if ticket is None:
        raise NotFoundError("Ticket not found", code="TICKET_NOT_FOUND")

    if identity.role != Role.ADMIN and ticket.company_id != identity.company_id:
        raise AuthorizationError("Access denied to this ticket", code="ACCESS_DENIED")

    request.state.ticket = ticket
    return ticket


def can_update_ticket(identity: Identity, ticket: Ticket) -> bool:
    """ADMIN/SUPPORT may update any in-scope ticket; NORMAL only their own."""
    if identity.role in STAFF:
        return True
    return ticket.person_id == identity.id


def ensure_can_update_ticket(identity: Identity, ticket: Ticket) -> None:
    if not can_update_ticket(identity, ticket):
        raise AuthorizationError(
            "Insufficient permissions to update this ticket",
            code="UPDATE_PERMISSION_DENIED",
        )


def visible_tickets_clause(identity: Identity):
    """Role-scoped filter for ticket listings (None = no restriction)."""
    if identity.role == Role.ADMIN:
        return None
    if identity.role == Role.SUPPORT:
        return Ticket.company_id == identity.company_id
    return Ticket.person_id == identity.id
