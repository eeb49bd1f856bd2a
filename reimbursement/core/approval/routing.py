"""Approval routing table and next-approver resolution.

Each requester role maps to an ordered chain of approver roles. The chain
position of a role is its approval level (1-based). Routing is a pure lookup:
no I/O and no dependence on who the approvers are.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from .states import APPROVER_ROLES, UserRole, parse_role


ApprovalChain = Tuple[UserRole, ...]


DEFAULT_CHAINS: Mapping[UserRole, ApprovalChain] = MappingProxyType({
    UserRole.EMPLOYEE: (UserRole.SUL, UserRole.INVOICE_SPECIALIST, UserRole.ACCOUNT_MANAGER),
    UserRole.SUL: (UserRole.INVOICE_SPECIALIST, UserRole.ACCOUNT_MANAGER),
    UserRole.INVOICE_SPECIALIST: (UserRole.ACCOUNT_MANAGER,),
    UserRole.ACCOUNT_MANAGER: (UserRole.INVOICE_SPECIALIST,),
})

# Approvers bound to the SAP codes they are assigned to
DEFAULT_SCOPED_ROLES: FrozenSet[UserRole] = frozenset({
    UserRole.SUL,
    UserRole.ACCOUNT_MANAGER,
})


@dataclass(frozen=True)
class RoutingTable:
    """Immutable routing configuration.

    Attributes:
        chains: Requester role -> ordered approver roles
        scoped_roles: Approver roles that may only act on requests carrying
            one of their own SAP codes
    """

    chains: Mapping[UserRole, ApprovalChain]
    scoped_roles: FrozenSet[UserRole] = field(default=DEFAULT_SCOPED_ROLES)

    def __post_init__(self):
        chains = {}
        for requester_role, chain in self.chains.items():
            chain = tuple(chain)
            if not chain:
                raise ValueError(f"Empty approval chain for {requester_role.value}")
            if len(set(chain)) != len(chain):
                raise ValueError(f"Duplicate approver role in chain for {requester_role.value}")
            if not set(chain) <= APPROVER_ROLES:
                raise ValueError(f"Non-approver role in chain for {requester_role.value}")
            chains[requester_role] = chain
        object.__setattr__(self, "chains", MappingProxyType(chains))
        object.__setattr__(self, "scoped_roles", frozenset(self.scoped_roles))

    def approval_chain(self, requester_role) -> ApprovalChain:
        """Ordered approver roles for a requester role; empty if unknown."""
        role = parse_role(requester_role)
        if role is None:
            return ()
        return self.chains.get(role, ())

    def first_approver(self, requester_role) -> Optional[UserRole]:
        """First approver role in the requester's chain."""
        chain = self.approval_chain(requester_role)
        return chain[0] if chain else None

    def next_approver(self, requester_role, current_approver_role) -> Optional[UserRole]:
        """
        Approver role that follows ``current_approver_role``.

        Returns None when the current role is the last in the requester's
        chain (final approval), when it is not part of that chain, or when
        the requester role has no chain.
        """
        chain = self.approval_chain(requester_role)
        current = parse_role(current_approver_role)
        if current is None or current not in chain:
            return None
        position = chain.index(current)
        if position + 1 < len(chain):
            return chain[position + 1]
        return None

    def level_of(self, requester_role, approver_role) -> Optional[int]:
        """1-based approval level of a role in the requester's chain."""
        chain = self.approval_chain(requester_role)
        role = parse_role(approver_role)
        if role is None or role not in chain:
            return None
        return chain.index(role) + 1

    def is_scoped(self, approver_role) -> bool:
        """Whether an approver role is restricted by SAP code."""
        return parse_role(approver_role) in self.scoped_roles


DEFAULT_ROUTING = RoutingTable(chains=DEFAULT_CHAINS)


@lru_cache
def get_routing() -> RoutingTable:
    return DEFAULT_ROUTING


def next_approver(requester_role, current_approver_role) -> Optional[UserRole]:
    """Next approver role under the process-wide routing table."""
    return get_routing().next_approver(requester_role, current_approver_role)
