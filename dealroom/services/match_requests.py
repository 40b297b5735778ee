# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Match request slot manager.

Sponsors ask a limited number of CDEs and investors to look at a deal.
Capacity, duplicate and cooldown checks run with the insert inside the
repository's slot guard.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from opentelemetry import trace

from ..config import WorkflowConfig
from ..domain import match_requests as slot_rules
from ..domain.errors import ForbiddenException, NotFoundException, ValidationException
from ..models.entities import MatchRequest, UserContext
from ..models.enums import EntityKind, MatchRequestAction, TargetType
from ..models.responses import MatchRequestActionResult, SlotOverview
from .side_effects import SideEffects
from .workflow import WorkflowService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

RESPONSE_EVENTS = {
    MatchRequestAction.ACCEPT: "match_request_accepted",
    MatchRequestAction.DECLINE: "match_request_declined"
}


class MatchRequestService(WorkflowService):
    entity_type = "match_request"
    label = "Match request"

    def __init__(self, repository, ownership, deals, side_effects: SideEffects,
                 config: Optional[WorkflowConfig] = None,
                 clock: Callable[[], datetime] = datetime.utcnow):
        super().__init__(repository, ownership, side_effects, config, clock)
        self.deals = deals

    def expire(self, record: MatchRequest, now: datetime) -> MatchRequest:
        return slot_rules.apply_expiry(record, now)

    def create(
        self,
        sponsor_id: str,
        deal_id: str,
        target_type: TargetType,
        target_org_id: str,
        user_context: UserContext,
        message: Optional[str] = None,
        target_id: Optional[str] = None
    ) -> MatchRequest:
        """
        Send a match request on behalf of a sponsor.

        Raises:
            ForbiddenException: Actor does not act for the sponsor, or the deal is another sponsor's
            NotFoundException: Deal unknown
            ConflictException: Same target already has an active request for the deal
            CooldownException: Target declined within the cooldown window
            SlotExceededException: All slots for the target type are taken
        """
        with tracer.start_as_current_span(
            "match_request.create",
            attributes={
                "sponsor.id": sponsor_id,
                "deal.id": deal_id,
                "match_request.target_type": target_type.value,
                "user.id": user_context.user_id
            }
        ) as span:
            self.authorize(user_context, [(EntityKind.SPONSOR, sponsor_id)], "send match requests")

            deal = self.deals.get_deal(deal_id)
            if deal is None:
                raise NotFoundException("Deal not found")
            if deal.sponsor_id and deal.sponsor_id != sponsor_id:
                raise ForbiddenException("Deal does not belong to this sponsor")

            limit = self.config.slot_limit(target_type)
            with self.repository.slot_guard(sponsor_id, target_type) as session:
                now = self.now()
                existing = self.repository.list_for_sponsor(sponsor_id, now, session=session)
                usage = slot_rules.validate_new_request(
                    existing, deal_id, target_type, target_org_id, limit, now
                )
                request = slot_rules.build_match_request(
                    sponsor_id=sponsor_id,
                    deal_id=deal_id,
                    target_type=target_type,
                    target_org_id=target_org_id,
                    user_context=user_context,
                    now=now,
                    expiration_days=self.config.request_expiration_days,
                    message=message,
                    target_id=target_id
                )
                self.repository.insert(request, session=session)

            span.set_attributes({
                "match_request.id": request.id,
                "slots.used": usage.used + 1,
                "slots.max": limit
            })
            self.side_effects.record(
                user_context, self.entity_type, request.id, "create",
                {"target_type": target_type.value, "target_org_id": target_org_id, "deal_id": deal_id}
            )
            self.side_effects.notify("match_request_received", request, user_context)
            logger.info(
                "Match request created",
                extra={
                    "match_request_id": request.id,
                    "sponsor_id": sponsor_id,
                    "deal_id": deal_id,
                    "target_type": target_type.value,
                    "slots_used": usage.used + 1,
                    "slots_max": limit
                }
            )
            return request

    def _target(self, request: MatchRequest):
        return (
            EntityKind.CDE if request.target_type == TargetType.CDE else EntityKind.INVESTOR,
            request.target_id or request.target_org_id
        )

    def authorize_view(self, user_context: UserContext, request: MatchRequest) -> None:
        # The target is owned by the organization the request was addressed to
        sponsor = (EntityKind.SPONSOR, request.sponsor_id)
        target = self._target(request)
        owners = dict(self.ownership.resolve_many([sponsor]))
        owners[target] = request.target_org_id
        self.authorize(user_context, [sponsor, target], "view this request", owners=owners)

    def get(self, request_id: str, user_context: Optional[UserContext] = None) -> MatchRequest:
        with tracer.start_as_current_span("match_request.get", attributes={"match_request.id": request_id}):
            return self.load(request_id, viewer=user_context)

    def respond(self, request_id: str, action: MatchRequestAction, user_context: UserContext,
                message: Optional[str] = None) -> MatchRequest:
        """Accept or decline a pending request as its target."""
        if action not in RESPONSE_EVENTS:
            raise ValidationException(
                "Action must be one of: accept, decline",
                [f"unsupported action: {action.value}"]
            )
        with tracer.start_as_current_span(
            "match_request.respond",
            attributes={"match_request.id": request_id, "match_request.action": action.value}
        ):
            now = self.now()
            request = self.load(request_id, now)
            target = self._target(request)
            self.authorize(user_context, [target], "respond to this request",
                           owners={target: request.target_org_id})

            updated = slot_rules.respond(
                request, action, user_context, now, self.config.cooldown_days, message
            )
            return self.persist(
                updated, request.status, user_context, action.value,
                {"message": message}, RESPONSE_EVENTS[action]
            )

    def withdraw(self, request_id: str, user_context: UserContext) -> MatchRequest:
        """Withdraw a pending request; its slot frees up with no cooldown."""
        with tracer.start_as_current_span("match_request.withdraw", attributes={"match_request.id": request_id}):
            now = self.now()
            request = self.load(request_id, now)
            self.authorize(user_context, [(EntityKind.SPONSOR, request.sponsor_id)], "withdraw this request")
            updated = slot_rules.withdraw(request, user_context, now)
            return self.persist(updated, request.status, user_context, "withdraw",
                                event="match_request_withdrawn")

    def slots(self, sponsor_id: str, user_context: Optional[UserContext] = None) -> SlotOverview:
        """Current capacity usage per target type."""
        if user_context is not None:
            self.authorize(user_context, [(EntityKind.SPONSOR, sponsor_id)], "view slot usage")
        now = self.now()
        existing = self.repository.list_for_sponsor(sponsor_id, now)
        return SlotOverview(
            sponsor_id=sponsor_id,
            cde=slot_rules.slot_usage(existing, TargetType.CDE, self.config.max_cde_requests, now),
            investor=slot_rules.slot_usage(
                existing, TargetType.INVESTOR, self.config.max_investor_requests, now
            )
        )

    def delete(self, request_id: str, user_context: UserContext) -> None:
        """Remove a request outright; system administrators only."""
        if not user_context.is_admin:
            raise ForbiddenException("Only system administrators can delete match requests")
        with tracer.start_as_current_span("match_request.delete", attributes={"match_request.id": request_id}):
            if not self.repository.delete(request_id):
                raise NotFoundException(f"{self.label} not found")
            self.side_effects.record(user_context, self.entity_type, request_id, "delete", {})
            logger.warning(
                "Match request deleted by administrator",
                extra={"match_request_id": request_id, "user_id": user_context.user_id}
            )

    def perform_action(self, request_id: str, action: MatchRequestAction,
                       payload: Optional[Dict[str, Any]], user_context: UserContext) -> MatchRequestActionResult:
        """Dispatch accept, decline or withdraw."""
        payload = payload or {}
        if action == MatchRequestAction.WITHDRAW:
            updated = self.withdraw(request_id, user_context)
        else:
            updated = self.respond(request_id, action, user_context, payload.get("message"))
        return MatchRequestActionResult(
            match_request=updated,
            action_performed=action,
            message=slot_rules.action_message(action, updated.target_type, self.config.cooldown_days)
        )
