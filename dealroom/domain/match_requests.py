# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Match request slot rules.

Pure functions over MatchRequest records: capacity counting, cooldown and
duplicate detection, and the pending -> {accepted, declined, withdrawn,
expired} transitions. Persistence and authorization live in the service layer.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from ..models.entities import MatchRequest, UserContext
from ..models.enums import MatchRequestStatus, MatchRequestAction, TargetType
from ..models.responses import SlotUsage
from .errors import (
    ConflictException, CooldownException, InvalidStateException, SlotExceededException
)


ACTIVE_STATUSES = frozenset({MatchRequestStatus.PENDING, MatchRequestStatus.ACCEPTED})
TERMINAL_STATUSES = frozenset({
    MatchRequestStatus.ACCEPTED,
    MatchRequestStatus.DECLINED,
    MatchRequestStatus.WITHDRAWN,
    MatchRequestStatus.EXPIRED
})


def target_label(target_type: TargetType) -> str:
    return "CDE" if target_type == TargetType.CDE else "Investor"


def count_active(requests: Iterable[MatchRequest], target_type: TargetType, now: datetime) -> int:
    """Count requests holding a slot; lapsed pending requests are skipped."""
    return sum(
        1 for request in requests
        if request.target_type == target_type and request.holds_slot(now)
    )


def slot_usage(requests: Iterable[MatchRequest], target_type: TargetType,
               limit: int, now: datetime) -> SlotUsage:
    used = count_active(requests, target_type, now)
    return SlotUsage(used=used, max=limit, available=max(0, limit - used))


def find_active_cooldown(requests: Iterable[MatchRequest], target_org_id: str,
                         now: datetime) -> Optional[MatchRequest]:
    """Return the declined request with the latest running cooldown for a target."""
    blocking = [
        request for request in requests
        if request.target_org_id == target_org_id and request.in_cooldown(now)
    ]
    if not blocking:
        return None
    return max(blocking, key=lambda request: request.cooldown_ends_at)


def find_duplicate(requests: Iterable[MatchRequest], deal_id: str, target_org_id: str,
                   now: datetime) -> Optional[MatchRequest]:
    for request in requests:
        if (request.deal_id == deal_id
                and request.target_org_id == target_org_id
                and request.holds_slot(now)):
            return request
    return None


def validate_new_request(
    existing: List[MatchRequest],
    deal_id: str,
    target_type: TargetType,
    target_org_id: str,
    limit: int,
    now: datetime
) -> SlotUsage:
    """
    Check a new request against the sponsor's existing ones.

    Args:
        existing: The sponsor's current match requests
        deal_id: Deal the new request is about
        target_type: Kind of party being asked
        target_org_id: Organization being asked
        limit: Maximum active requests for the target type
        now: Evaluation instant

    Returns:
        Slot usage before the new request is added

    Raises:
        ConflictException: An active request to the same target already exists for the deal
        CooldownException: The target declined recently
        SlotExceededException: No free slot for the target type
    """
    duplicate = find_duplicate(existing, deal_id, target_org_id, now)
    if duplicate is not None:
        raise ConflictException(
            f"A request already exists for this target (current status: {duplicate.status.value})"
        )

    cooling = find_active_cooldown(existing, target_org_id, now)
    if cooling is not None:
        raise CooldownException(
            f"This {target_label(target_type)} declined a recent request; "
            f"a new request is allowed after {cooling.cooldown_ends_at.isoformat()}",
            cooling.cooldown_ends_at
        )

    usage = slot_usage(existing, target_type, limit, now)
    if usage.available <= 0:
        raise SlotExceededException(
            f"Maximum {target_type.value.upper()} requests reached ({limit})",
            usage.used,
            limit
        )
    return usage


def build_match_request(
    sponsor_id: str,
    deal_id: str,
    target_type: TargetType,
    target_org_id: str,
    user_context: UserContext,
    now: datetime,
    expiration_days: int,
    message: Optional[str] = None,
    target_id: Optional[str] = None
) -> MatchRequest:
    return MatchRequest(
        sponsor_id=sponsor_id,
        deal_id=deal_id,
        target_type=target_type,
        target_id=target_id,
        target_org_id=target_org_id,
        status=MatchRequestStatus.PENDING,
        message=message,
        requested_at=now,
        expires_at=now + timedelta(days=expiration_days),
        created_at=now,
        updated_at=now,
        created_by=user_context.user_id,
        updated_by=user_context.user_id
    )


def apply_expiry(request: MatchRequest, now: datetime) -> MatchRequest:
    """Return the request as it reads at ``now``, lapsing it if past expiry."""
    if not request.is_lapsed(now):
        return request
    expired = request.model_copy()
    expired.status = MatchRequestStatus.EXPIRED
    expired.update_timestamp(expired.updated_by, now)
    return expired


def _require_pending(request: MatchRequest, action: MatchRequestAction) -> None:
    if request.status != MatchRequestStatus.PENDING:
        raise InvalidStateException(
            f'Cannot {action.value} a request with status "{request.status.value}"',
            request.status.value
        )


def respond(
    request: MatchRequest,
    action: MatchRequestAction,
    user_context: UserContext,
    now: datetime,
    cooldown_days: int,
    message: Optional[str] = None
) -> MatchRequest:
    """Apply the target's accept/decline to a copy of the request."""
    _require_pending(request, action)
    updated = request.model_copy()
    updated.respond(action == MatchRequestAction.ACCEPT, now, cooldown_days, message)
    updated.update_timestamp(user_context.user_id, now)
    return updated


def withdraw(request: MatchRequest, user_context: UserContext, now: datetime) -> MatchRequest:
    _require_pending(request, MatchRequestAction.WITHDRAW)
    updated = request.model_copy()
    updated.withdraw(now)
    updated.update_timestamp(user_context.user_id, now)
    return updated


def action_message(action: MatchRequestAction, target_type: TargetType, cooldown_days: int) -> str:
    if action == MatchRequestAction.ACCEPT:
        return f"Request accepted. You can now proceed with the {target_label(target_type)}."
    if action == MatchRequestAction.DECLINE:
        return f"Request declined. This target can be requested again after {cooldown_days} days."
    return "Request withdrawn. Your slot is now available."


def find_accepted(requests: Iterable[MatchRequest], deal_id: str, target_type: TargetType,
                  target_id: Optional[str], target_org_id: Optional[str]) -> Optional[MatchRequest]:
    """Return an accepted request connecting the deal with the given target, if any."""
    for request in requests:
        if (request.deal_id != deal_id
                or request.target_type != target_type
                or request.status != MatchRequestStatus.ACCEPTED):
            continue
        if (target_id and request.target_id == target_id) or (
                target_org_id and request.target_org_id == target_org_id):
            return request
    return None
