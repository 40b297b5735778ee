# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Letter of intent negotiation between a CDE and a deal's sponsor.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from opentelemetry import trace

from ..config import WorkflowConfig
from ..domain import loi as loi_machine
from ..domain.errors import NotFoundException, ValidationException
from ..models.entities import LetterOfIntent, UserContext
from ..models.enums import EntityKind, LOIAction, SponsorResponse
from ..models.responses import LOIActionResult
from .side_effects import SideEffects
from .workflow import WorkflowService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

RESPONSE_EVENTS = {
    SponsorResponse.ACCEPT: "loi_accepted",
    SponsorResponse.REJECT: "loi_rejected",
    SponsorResponse.COUNTER: "loi_countered"
}


def _sponsor_response(value: Any) -> Optional[SponsorResponse]:
    if value is None or isinstance(value, SponsorResponse):
        return value
    try:
        return SponsorResponse(value)
    except ValueError:
        raise ValidationException(
            "Response must be one of: accept, reject, counter",
            [f"invalid response: {value}"]
        )


class LOIService(WorkflowService):
    entity_type = "loi"
    label = "LOI"

    def __init__(self, repository, ownership, deals, side_effects: SideEffects,
                 config: Optional[WorkflowConfig] = None,
                 clock: Callable[[], datetime] = datetime.utcnow,
                 match_requests=None):
        super().__init__(repository, ownership, side_effects, config, clock)
        self.deals = deals
        self.match_requests = match_requests

    def expire(self, record: LetterOfIntent, now: datetime) -> LetterOfIntent:
        return loi_machine.apply_expiry(record, now)

    def _as_cde(self, loi: LetterOfIntent, user_context: UserContext, action: str) -> None:
        self.authorize(user_context, [(EntityKind.CDE, loi.cde_id)], action)

    def create(
        self,
        deal_id: str,
        cde_id: str,
        allocation_amount: float,
        user_context: UserContext,
        sponsor_id: Optional[str] = None,
        terms: Optional[Dict[str, Any]] = None,
        expires_at: Optional[datetime] = None
    ) -> LetterOfIntent:
        """
        Draft an LOI for a deal on behalf of a CDE.

        The sponsor defaults to the deal's sponsor.

        Raises:
            ForbiddenException: Actor does not act for the CDE, or no accepted match request exists when one is required
            NotFoundException: Deal unknown
            ValidationException: Sponsor missing or not the deal's sponsor
        """
        with tracer.start_as_current_span(
            "loi.create",
            attributes={"deal.id": deal_id, "cde.id": cde_id, "user.id": user_context.user_id}
        ) as span:
            self.authorize(user_context, [(EntityKind.CDE, cde_id)], "issue letters of intent")

            deal = self.deals.get_deal(deal_id)
            if deal is None:
                raise NotFoundException("Deal not found")
            sponsor_id = sponsor_id or deal.sponsor_id
            if not sponsor_id:
                raise ValidationException("Deal has no sponsor to address", ["sponsor_id is required"])
            if deal.sponsor_id and deal.sponsor_id != sponsor_id:
                raise ValidationException(
                    "Sponsor does not match the deal's sponsor",
                    [f"sponsor_id {sponsor_id} is not the sponsor of deal {deal_id}"]
                )
            self.ensure_matched(deal_id, EntityKind.CDE, cde_id)

            loi = loi_machine.build_loi(
                deal_id, cde_id, sponsor_id, allocation_amount, terms or {},
                user_context, self.now(), expires_at
            )
            self.repository.insert(loi)
            span.set_attribute("loi.id", loi.id)

            self.side_effects.record(
                user_context, self.entity_type, loi.id, "create",
                {"deal_id": deal_id, "allocation_amount": allocation_amount}
            )
            logger.info(
                "LOI drafted",
                extra={"loi_id": loi.id, "deal_id": deal_id, "cde_id": cde_id, "sponsor_id": sponsor_id}
            )
            return loi

    def parties_of(self, record: LetterOfIntent):
        return [(EntityKind.CDE, record.cde_id), (EntityKind.SPONSOR, record.sponsor_id)]

    def get(self, loi_id: str, user_context: Optional[UserContext] = None) -> LetterOfIntent:
        with tracer.start_as_current_span("loi.get", attributes={"loi.id": loi_id}):
            return self.load(loi_id, viewer=user_context)

    def issue(self, loi_id: str, user_context: UserContext) -> LetterOfIntent:
        with tracer.start_as_current_span("loi.issue", attributes={"loi.id": loi_id}):
            now = self.now()
            loi = self.load(loi_id, now)
            self._as_cde(loi, user_context, "issue this LOI")
            updated = loi_machine.issue(loi, user_context, now)
            return self.persist(updated, loi.status, user_context, "issue")

    def send_to_sponsor(self, loi_id: str, user_context: UserContext) -> LetterOfIntent:
        with tracer.start_as_current_span("loi.send", attributes={"loi.id": loi_id}):
            now = self.now()
            loi = self.load(loi_id, now)
            self._as_cde(loi, user_context, "send this LOI")
            updated = loi_machine.send_to_sponsor(loi, user_context, now, self.config.loi_expiration_days)
            return self.persist(
                updated, loi.status, user_context, "send",
                {"expires_at": updated.expires_at.isoformat()}, "loi_received"
            )

    def sponsor_respond(
        self,
        loi_id: str,
        response: Optional[SponsorResponse],
        user_context: UserContext,
        counter_terms: Optional[Dict[str, Any]] = None,
        notes: Optional[str] = None
    ) -> LetterOfIntent:
        """Apply the sponsor's accept, reject or counter."""
        response = _sponsor_response(response)
        with tracer.start_as_current_span(
            "loi.respond",
            attributes={"loi.id": loi_id, "loi.response": response.value if response else ""}
        ):
            now = self.now()
            loi = self.load(loi_id, now)
            self.authorize(user_context, [(EntityKind.SPONSOR, loi.sponsor_id)], "respond to this LOI")
            updated = loi_machine.sponsor_respond(loi, response, user_context, now, counter_terms, notes)
            return self.persist(
                updated, loi.status, user_context, f"respond_{response.value}",
                {"notes": notes, "counter_terms": counter_terms}, RESPONSE_EVENTS[response]
            )

    def withdraw(self, loi_id: str, user_context: UserContext, reason: Optional[str]) -> LetterOfIntent:
        with tracer.start_as_current_span("loi.withdraw", attributes={"loi.id": loi_id}):
            now = self.now()
            loi = self.load(loi_id, now)
            self._as_cde(loi, user_context, "withdraw this LOI")
            updated = loi_machine.withdraw(loi, user_context, now, reason)
            return self.persist(
                updated, loi.status, user_context, "withdraw",
                {"reason": updated.withdrawn_reason}, "loi_withdrawn"
            )

    def reissue(self, loi_id: str, user_context: UserContext,
                allocation_amount: Optional[float] = None,
                terms: Optional[Dict[str, Any]] = None) -> LetterOfIntent:
        """Re-issue a countered LOI; it must be sent again before the sponsor sees it."""
        with tracer.start_as_current_span("loi.reissue", attributes={"loi.id": loi_id}):
            now = self.now()
            loi = self.load(loi_id, now)
            self._as_cde(loi, user_context, "re-issue this LOI")
            updated = loi_machine.reissue(loi, user_context, now, allocation_amount, terms)
            return self.persist(
                updated, loi.status, user_context, "reissue",
                {"revision": updated.revision, "allocation_amount": updated.allocation_amount}
            )

    def perform_action(self, loi_id: str, action: LOIAction, payload: Optional[Dict[str, Any]],
                       user_context: UserContext) -> LOIActionResult:
        payload = payload or {}
        if action == LOIAction.ISSUE:
            loi = self.issue(loi_id, user_context)
        elif action == LOIAction.SEND:
            loi = self.send_to_sponsor(loi_id, user_context)
        elif action == LOIAction.RESPOND:
            loi = self.sponsor_respond(
                loi_id, payload.get("response"), user_context,
                payload.get("counter_terms"), payload.get("notes")
            )
        elif action == LOIAction.WITHDRAW:
            loi = self.withdraw(loi_id, user_context, payload.get("reason"))
        elif action == LOIAction.REISSUE:
            loi = self.reissue(loi_id, user_context, payload.get("allocation_amount"), payload.get("terms"))
        else:
            raise ValidationException(f"Unsupported LOI action: {action}", ["unsupported action"])
        return LOIActionResult(loi=loi, action_performed=action)
