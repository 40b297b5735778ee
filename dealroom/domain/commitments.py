# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Commitment state machine.

draft -> issued -> pending_sponsor, then sponsor acceptance either completes
the commitment (no CDE attached) or hands it to the CDE in pending_cde.
rejected, withdrawn and expired are reachable from every non-terminal status.
Legacy sponsor_accepted records are resolved forward by the next acceptance.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from ..models.entities import Commitment, UserContext
from ..models.enums import CommitmentStatus, CreditType, DealStatus, OrgType
from .errors import (
    InvalidStateException, InvalidTransitionException, NotRequiredException, ValidationException
)
from .expiry import is_expired


_EXITS = [CommitmentStatus.REJECTED, CommitmentStatus.WITHDRAWN, CommitmentStatus.EXPIRED]

VALID_TRANSITIONS: Dict[CommitmentStatus, List[CommitmentStatus]] = {
    CommitmentStatus.DRAFT: [CommitmentStatus.ISSUED] + _EXITS,
    CommitmentStatus.ISSUED: [CommitmentStatus.PENDING_SPONSOR] + _EXITS,
    CommitmentStatus.PENDING_SPONSOR: [
        CommitmentStatus.PENDING_CDE, CommitmentStatus.ALL_ACCEPTED
    ] + _EXITS,
    CommitmentStatus.PENDING_CDE: [CommitmentStatus.ALL_ACCEPTED] + _EXITS,
    # Legacy records accepted by the sponsor before pending_cde existed
    CommitmentStatus.SPONSOR_ACCEPTED: [
        CommitmentStatus.PENDING_CDE, CommitmentStatus.ALL_ACCEPTED
    ] + _EXITS,
    CommitmentStatus.ALL_ACCEPTED: [],
    CommitmentStatus.REJECTED: [],
    CommitmentStatus.WITHDRAWN: [],
    CommitmentStatus.EXPIRED: []
}

ACTIVE_STATUSES = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if targets
)


def can_transition(current: CommitmentStatus, target: CommitmentStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, [])


def next_states(current: CommitmentStatus) -> List[CommitmentStatus]:
    return list(VALID_TRANSITIONS.get(current, []))


def is_terminal(status: CommitmentStatus) -> bool:
    return status not in ACTIVE_STATUSES


def is_active(status: CommitmentStatus) -> bool:
    return status in ACTIVE_STATUSES


def is_fully_accepted(status: CommitmentStatus) -> bool:
    return status == CommitmentStatus.ALL_ACCEPTED


def requires_sponsor_action(status: CommitmentStatus) -> bool:
    return status == CommitmentStatus.PENDING_SPONSOR


def requires_cde_action(status: CommitmentStatus) -> bool:
    return status == CommitmentStatus.PENDING_CDE


def requires_investor_action(status: CommitmentStatus) -> bool:
    return status == CommitmentStatus.DRAFT


def resolve_status(sponsor_accepted: bool, cde_accepted: bool, requires_cde: bool) -> CommitmentStatus:
    """Status implied by which parties have signed so far."""
    if sponsor_accepted and (cde_accepted or not requires_cde):
        return CommitmentStatus.ALL_ACCEPTED
    if sponsor_accepted:
        return CommitmentStatus.PENDING_CDE
    if cde_accepted:
        return CommitmentStatus.PENDING_SPONSOR
    return CommitmentStatus.ISSUED


def deal_status(status: CommitmentStatus) -> DealStatus:
    if status == CommitmentStatus.ALL_ACCEPTED:
        return DealStatus.COMMITTED
    if is_active(status) and status != CommitmentStatus.DRAFT:
        return DealStatus.COMMITMENT_PENDING
    return DealStatus.SEEKING_CAPITAL


def build_commitment(
    deal_id: str,
    investor_id: str,
    sponsor_id: str,
    investment_amount: float,
    credit_type: CreditType,
    user_context: UserContext,
    now: datetime,
    cde_id: Optional[str] = None,
    loi_id: Optional[str] = None,
    pricing_cents_per_credit: Optional[float] = None,
    expires_at: Optional[datetime] = None
) -> Commitment:
    return Commitment(
        deal_id=deal_id,
        investor_id=investor_id,
        sponsor_id=sponsor_id,
        cde_id=cde_id,
        loi_id=loi_id,
        investment_amount=investment_amount,
        credit_type=credit_type,
        pricing_cents_per_credit=pricing_cents_per_credit,
        status=CommitmentStatus.DRAFT,
        expires_at=expires_at,
        created_at=now,
        updated_at=now,
        created_by=user_context.user_id,
        updated_by=user_context.user_id
    )


def apply_expiry(commitment: Commitment, now: datetime) -> Commitment:
    if is_terminal(commitment.status) or not is_expired(commitment.expires_at, now):
        return commitment
    expired = commitment.model_copy()
    expired.status = CommitmentStatus.EXPIRED
    expired.update_timestamp(expired.updated_by, now)
    return expired


def _advance(commitment: Commitment, target: CommitmentStatus, user_context: UserContext,
             now: datetime) -> Commitment:
    if not can_transition(commitment.status, target):
        raise InvalidTransitionException(
            f"Commitment cannot move from {commitment.status.value} to {target.value}",
            commitment.status.value
        )
    updated = commitment.model_copy()
    updated.status = target
    updated.update_timestamp(user_context.user_id, now)
    return updated


def _require_status(commitment: Commitment, expected: Sequence[CommitmentStatus], what: str) -> None:
    if commitment.status not in expected:
        raise InvalidStateException(
            f"{what} (current status: {commitment.status.value})",
            commitment.status.value
        )


def _require_reason(reason: Optional[str], action: str) -> str:
    if not reason or not reason.strip():
        raise ValidationException(f"A reason is required to {action} a commitment", ["reason is required"])
    return reason.strip()


def issue(commitment: Commitment, user_context: UserContext, now: datetime) -> Commitment:
    if commitment.status != CommitmentStatus.DRAFT:
        raise InvalidTransitionException(
            f"Commitment can only be issued from draft (current status: {commitment.status.value})",
            commitment.status.value
        )
    updated = _advance(commitment, CommitmentStatus.ISSUED, user_context, now)
    updated.issued_at = now
    return updated


def send_for_acceptance(commitment: Commitment, user_context: UserContext, now: datetime,
                        expiration_days: int) -> Commitment:
    if commitment.status != CommitmentStatus.ISSUED:
        raise InvalidTransitionException(
            f"Commitment must be issued before it is sent (current status: {commitment.status.value})",
            commitment.status.value
        )
    updated = _advance(commitment, CommitmentStatus.PENDING_SPONSOR, user_context, now)
    if updated.issued_at is None:
        updated.issued_at = now
    if updated.expires_at is None:
        updated.expires_at = updated.issued_at + timedelta(days=expiration_days)
    return updated


def sponsor_accept(commitment: Commitment, user_context: UserContext, now: datetime,
                   notes: Optional[str] = None) -> Commitment:
    """
    Sponsor signs; completes the commitment unless a CDE must countersign.

    Legacy sponsor_accepted records are resolved forward: the sponsor's
    original signature time is kept.
    """
    _require_status(commitment, (CommitmentStatus.PENDING_SPONSOR, CommitmentStatus.SPONSOR_ACCEPTED),
                    "Commitment is not pending sponsor acceptance")
    target = resolve_status(True, False, commitment.requires_cde)
    updated = _advance(commitment, target, user_context, now)
    updated.sponsor_accepted_at = commitment.sponsor_accepted_at or now
    updated.sponsor_acceptance_notes = notes or commitment.sponsor_acceptance_notes
    if target == CommitmentStatus.ALL_ACCEPTED:
        updated.all_accepted_at = now
    return updated


def ensure_cde_required(commitment: Commitment) -> None:
    if not commitment.requires_cde:
        raise NotRequiredException("This commitment does not require CDE acceptance")


def cde_accept(commitment: Commitment, user_context: UserContext, now: datetime,
               notes: Optional[str] = None) -> Commitment:
    ensure_cde_required(commitment)
    _require_status(commitment, (CommitmentStatus.PENDING_CDE, CommitmentStatus.SPONSOR_ACCEPTED),
                    "Commitment is not pending CDE acceptance")
    updated = _advance(commitment, CommitmentStatus.ALL_ACCEPTED, user_context, now)
    updated.cde_accepted_at = now
    updated.cde_acceptance_notes = notes
    updated.all_accepted_at = now
    return updated


def reject(commitment: Commitment, user_context: UserContext, party: OrgType, now: datetime,
           reason: Optional[str]) -> Commitment:
    reason = _require_reason(reason, "reject")
    if is_terminal(commitment.status):
        raise InvalidStateException(
            f"Commitment can no longer be rejected (current status: {commitment.status.value})",
            commitment.status.value
        )
    updated = _advance(commitment, CommitmentStatus.REJECTED, user_context, now)
    updated.rejected_at = now
    updated.rejected_by = user_context.user_id
    updated.rejected_by_party = party
    updated.rejection_reason = reason
    return updated


def withdraw(commitment: Commitment, user_context: UserContext, now: datetime,
             reason: Optional[str]) -> Commitment:
    reason = _require_reason(reason, "withdraw")
    if is_terminal(commitment.status):
        raise InvalidStateException(
            f"Commitment can no longer be withdrawn (current status: {commitment.status.value})",
            commitment.status.value
        )
    updated = _advance(commitment, CommitmentStatus.WITHDRAWN, user_context, now)
    updated.withdrawn_at = now
    updated.withdrawn_reason = reason
    return updated
