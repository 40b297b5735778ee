# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Letter of intent state machine.

draft -> issued -> pending_sponsor -> {sponsor_accepted | sponsor_rejected |
sponsor_countered}; a countered LOI may be re-issued by the CDE. withdrawn and
expired are reachable from every non-terminal status.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..models.entities import LetterOfIntent, UserContext
from ..models.enums import LOIStatus, SponsorResponse, DealStatus
from .errors import InvalidStateException, InvalidTransitionException, ValidationException
from .expiry import is_expired


VALID_TRANSITIONS: Dict[LOIStatus, List[LOIStatus]] = {
    LOIStatus.DRAFT: [LOIStatus.ISSUED, LOIStatus.WITHDRAWN, LOIStatus.EXPIRED],
    LOIStatus.ISSUED: [LOIStatus.PENDING_SPONSOR, LOIStatus.WITHDRAWN, LOIStatus.EXPIRED],
    LOIStatus.PENDING_SPONSOR: [
        LOIStatus.SPONSOR_ACCEPTED,
        LOIStatus.SPONSOR_REJECTED,
        LOIStatus.SPONSOR_COUNTERED,
        LOIStatus.WITHDRAWN,
        LOIStatus.EXPIRED
    ],
    LOIStatus.SPONSOR_COUNTERED: [LOIStatus.ISSUED, LOIStatus.WITHDRAWN, LOIStatus.EXPIRED],
    LOIStatus.SPONSOR_ACCEPTED: [],
    LOIStatus.SPONSOR_REJECTED: [],
    LOIStatus.EXPIRED: [],
    LOIStatus.WITHDRAWN: []
}

ACTIVE_STATUSES = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if targets
)

RESPONSE_STATUS = {
    SponsorResponse.ACCEPT: LOIStatus.SPONSOR_ACCEPTED,
    SponsorResponse.REJECT: LOIStatus.SPONSOR_REJECTED,
    SponsorResponse.COUNTER: LOIStatus.SPONSOR_COUNTERED
}


def can_transition(current: LOIStatus, target: LOIStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, [])


def next_states(current: LOIStatus) -> List[LOIStatus]:
    return list(VALID_TRANSITIONS.get(current, []))


def is_terminal(status: LOIStatus) -> bool:
    return status not in ACTIVE_STATUSES


def is_active(status: LOIStatus) -> bool:
    return status in ACTIVE_STATUSES


def is_accepted(status: LOIStatus) -> bool:
    return status == LOIStatus.SPONSOR_ACCEPTED


def requires_sponsor_action(status: LOIStatus) -> bool:
    return status == LOIStatus.PENDING_SPONSOR


def requires_cde_action(status: LOIStatus) -> bool:
    return status in (LOIStatus.DRAFT, LOIStatus.SPONSOR_COUNTERED)


def deal_status(status: LOIStatus) -> DealStatus:
    """Pipeline status a deal shows while this LOI is its latest one."""
    if status in (LOIStatus.ISSUED, LOIStatus.PENDING_SPONSOR, LOIStatus.SPONSOR_COUNTERED):
        return DealStatus.LOI_PENDING
    if status == LOIStatus.SPONSOR_ACCEPTED:
        return DealStatus.SEEKING_CAPITAL
    return DealStatus.SEEKING_ALLOCATION


def build_loi(
    deal_id: str,
    cde_id: str,
    sponsor_id: str,
    allocation_amount: float,
    terms: Dict[str, Any],
    user_context: UserContext,
    now: datetime,
    expires_at: Optional[datetime] = None
) -> LetterOfIntent:
    return LetterOfIntent(
        deal_id=deal_id,
        cde_id=cde_id,
        sponsor_id=sponsor_id,
        allocation_amount=allocation_amount,
        terms=terms or {},
        status=LOIStatus.DRAFT,
        expires_at=expires_at,
        created_at=now,
        updated_at=now,
        created_by=user_context.user_id,
        updated_by=user_context.user_id
    )


def apply_expiry(loi: LetterOfIntent, now: datetime) -> LetterOfIntent:
    """Return the LOI as it reads at ``now``."""
    if is_terminal(loi.status) or not is_expired(loi.expires_at, now):
        return loi
    expired = loi.model_copy()
    expired.status = LOIStatus.EXPIRED
    expired.update_timestamp(expired.updated_by, now)
    return expired


def _advance(loi: LetterOfIntent, target: LOIStatus, user_context: UserContext,
             now: datetime) -> LetterOfIntent:
    if not can_transition(loi.status, target):
        raise InvalidTransitionException(
            f"LOI cannot move from {loi.status.value} to {target.value}",
            loi.status.value
        )
    updated = loi.model_copy()
    updated.status = target
    updated.update_timestamp(user_context.user_id, now)
    return updated


def issue(loi: LetterOfIntent, user_context: UserContext, now: datetime) -> LetterOfIntent:
    if loi.status != LOIStatus.DRAFT:
        raise InvalidTransitionException(
            f"LOI can only be issued from draft (current status: {loi.status.value})",
            loi.status.value
        )
    updated = _advance(loi, LOIStatus.ISSUED, user_context, now)
    updated.issued_by = user_context.user_id
    return updated


def send_to_sponsor(loi: LetterOfIntent, user_context: UserContext, now: datetime,
                    expiration_days: int) -> LetterOfIntent:
    if loi.status != LOIStatus.ISSUED:
        raise InvalidTransitionException(
            f"LOI must be issued before it is sent (current status: {loi.status.value})",
            loi.status.value
        )
    updated = _advance(loi, LOIStatus.PENDING_SPONSOR, user_context, now)
    if updated.issued_at is None:
        updated.issued_at = now
    if updated.expires_at is None:
        updated.expires_at = updated.issued_at + timedelta(days=expiration_days)
    return updated


def sponsor_respond(
    loi: LetterOfIntent,
    response: Optional[SponsorResponse],
    user_context: UserContext,
    now: datetime,
    counter_terms: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None
) -> LetterOfIntent:
    """
    Apply the sponsor's accept, reject or counter.

    Raises:
        InvalidStateException: LOI is not awaiting the sponsor
        ValidationException: Unknown response or a counter without counter terms
    """
    if loi.status != LOIStatus.PENDING_SPONSOR:
        raise InvalidStateException(
            f"LOI is not pending sponsor response (current status: {loi.status.value})",
            loi.status.value
        )
    if response is None:
        raise ValidationException(
            "Response must be one of: accept, reject, counter",
            ["response is required"]
        )
    if response == SponsorResponse.COUNTER and not counter_terms:
        raise ValidationException(
            "Counter terms are required when countering",
            ["counter_terms is required for counter"]
        )

    updated = _advance(loi, RESPONSE_STATUS[response], user_context, now)
    updated.sponsor_response_at = now
    updated.sponsor_response_notes = notes
    if response == SponsorResponse.COUNTER:
        updated.counter_terms = counter_terms
    return updated


def withdraw(loi: LetterOfIntent, user_context: UserContext, now: datetime,
             reason: Optional[str]) -> LetterOfIntent:
    if not reason or not reason.strip():
        raise ValidationException("A reason is required to withdraw an LOI", ["reason is required"])
    if is_terminal(loi.status):
        raise InvalidStateException(
            f"LOI can no longer be withdrawn (current status: {loi.status.value})",
            loi.status.value
        )
    updated = _advance(loi, LOIStatus.WITHDRAWN, user_context, now)
    updated.withdrawn_at = now
    updated.withdrawn_by = user_context.user_id
    updated.withdrawn_reason = reason.strip()
    return updated


def reissue(
    loi: LetterOfIntent,
    user_context: UserContext,
    now: datetime,
    allocation_amount: Optional[float] = None,
    terms: Optional[Dict[str, Any]] = None
) -> LetterOfIntent:
    """Re-issue a countered LOI, adopting the counter terms unless new terms are given."""
    if loi.status != LOIStatus.SPONSOR_COUNTERED:
        raise InvalidStateException(
            f"Only a countered LOI can be re-issued (current status: {loi.status.value})",
            loi.status.value
        )
    updated = _advance(loi, LOIStatus.ISSUED, user_context, now)
    if terms is not None:
        updated.terms = terms
    else:
        updated.terms = {**loi.terms, **(loi.counter_terms or {})}
    if allocation_amount is not None:
        updated.allocation_amount = allocation_amount
    updated.counter_terms = None
    updated.issued_at = None
    updated.expires_at = None
    updated.issued_by = user_context.user_id
    updated.revision = loi.revision + 1
    return updated
