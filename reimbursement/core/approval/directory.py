"""Approver lookup by role and SAP code."""

from typing import Iterable, Optional

from .routing import RoutingTable, get_routing
from .states import parse_role


def find_approver(
    role,
    sap_code: Optional[str],
    users: Iterable,
    *,
    routing: Optional[RoutingTable] = None,
):
    """
    Find the user who should act as ``role`` for a request with ``sap_code``.

    Scoped roles (SUL, Account Manager) need one of the user's SAP codes to
    equal the request code. Other roles match on role alone. When several
    users qualify the one with the lowest id wins. Inactive users never match.

    Args:
        role: Approver role (enum or stored string)
        sap_code: The request's SAP code
        users: Candidate users; any iterable of objects exposing ``id``,
            ``role``, ``sap_codes`` and ``is_active``
        routing: Routing table deciding which roles are scoped

    Returns:
        The matching user, or None. None is not an error: callers skip the
        notification for that approver.
    """
    routing = routing or get_routing()
    wanted = parse_role(role)
    if wanted is None:
        return None

    scoped = routing.is_scoped(wanted)
    for user in sorted(users, key=lambda u: u.id):
        if not getattr(user, "is_active", True):
            continue
        if parse_role(user.role) != wanted:
            continue
        if scoped and sap_code not in user.sap_codes:
            continue
        return user

    return None
