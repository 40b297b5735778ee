# SPDX-License-Identifier: Apache-2.0

"""
Party-level authorization checks.

Ownership of sponsor, CDE and investor records is resolved outside the domain;
these functions decide whether the acting organization is one of the parties
allowed to perform an action.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from ..models.entities import UserContext
from ..models.enums import EntityKind

PartyKey = Tuple[EntityKind, str]


@dataclass
class AuthorizationResult:
    """Result of an authorization check."""
    allowed: bool
    reason: Optional[str] = None
    party: Optional[EntityKind] = None


def check_party_access(
    user_context: UserContext,
    owners: Dict[PartyKey, Optional[str]],
    candidates: Sequence[PartyKey],
    action: str
) -> AuthorizationResult:
    """
    Check whether the actor's organization owns one of the candidate parties.

    Args:
        user_context: Acting user
        owners: Owning organization per party, as resolved by the ownership lookup
        candidates: Parties allowed to act, in order of precedence
        action: Human readable action for the denial reason

    Returns:
        AuthorizationResult naming the party the actor acts as
    """
    for kind, entity_id in candidates:
        owner = owners.get((kind, entity_id))
        if owner is not None and owner == user_context.org_id:
            return AuthorizationResult(allowed=True, party=kind)

    if user_context.is_admin:
        return AuthorizationResult(allowed=True)

    allowed_kinds = sorted({kind.value for kind, _ in candidates})
    return AuthorizationResult(
        allowed=False,
        reason=f"Only the {' or '.join(allowed_kinds)} on this record can {action}"
    )
