# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Investor commitments: sponsor acceptance and, when a CDE is attached, CDE
countersignature before the commitment is binding.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from opentelemetry import trace

from ..config import WorkflowConfig
from ..domain import commitments as commitment_machine
from ..domain.errors import NotFoundException, ValidationException
from ..models.entities import Commitment, UserContext
from ..models.enums import CommitmentAction, CommitmentStatus, CreditType, EntityKind, OrgType
from ..models.responses import CommitmentActionResult
from .side_effects import SideEffects
from .workflow import WorkflowService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CommitmentService(WorkflowService):
    entity_type = "commitment"
    label = "Commitment"

    def __init__(self, repository, ownership, deals, side_effects: SideEffects,
                 config: Optional[WorkflowConfig] = None,
                 clock: Callable[[], datetime] = datetime.utcnow,
                 match_requests=None, lois=None):
        super().__init__(repository, ownership, side_effects, config, clock)
        self.deals = deals
        self.match_requests = match_requests
        self.lois = lois

    def expire(self, record: Commitment, now: datetime) -> Commitment:
        return commitment_machine.apply_expiry(record, now)

    def _as_investor(self, commitment: Commitment, user_context: UserContext, action: str) -> None:
        self.authorize(user_context, [(EntityKind.INVESTOR, commitment.investor_id)], action)

    def create(
        self,
        deal_id: str,
        investor_id: str,
        investment_amount: float,
        user_context: UserContext,
        sponsor_id: Optional[str] = None,
        cde_id: Optional[str] = None,
        loi_id: Optional[str] = None,
        credit_type: CreditType = CreditType.NMTC,
        pricing_cents_per_credit: Optional[float] = None,
        expires_at: Optional[datetime] = None
    ) -> Commitment:
        """
        Draft a commitment for a deal on behalf of an investor.

        Raises:
            ForbiddenException: Actor does not act for the investor, or no accepted match request exists when one is required
            NotFoundException: Deal or referenced LOI unknown
            ValidationException: Sponsor or LOI does not belong to the deal
        """
        with tracer.start_as_current_span(
            "commitment.create",
            attributes={"deal.id": deal_id, "investor.id": investor_id, "user.id": user_context.user_id}
        ) as span:
            self.authorize(user_context, [(EntityKind.INVESTOR, investor_id)], "issue commitments")

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
            if loi_id and self.lois is not None:
                loi = self.lois.get(loi_id)
                if loi is None:
                    raise NotFoundException("LOI not found")
                if loi.deal_id != deal_id:
                    raise ValidationException(
                        "LOI belongs to a different deal",
                        [f"loi_id {loi_id} is not an LOI of deal {deal_id}"]
                    )
            self.ensure_matched(deal_id, EntityKind.INVESTOR, investor_id)

            commitment = commitment_machine.build_commitment(
                deal_id=deal_id,
                investor_id=investor_id,
                sponsor_id=sponsor_id,
                investment_amount=investment_amount,
                credit_type=credit_type,
                user_context=user_context,
                now=self.now(),
                cde_id=cde_id,
                loi_id=loi_id,
                pricing_cents_per_credit=pricing_cents_per_credit,
                expires_at=expires_at
            )
            self.repository.insert(commitment)
            span.set_attributes({"commitment.id": commitment.id, "commitment.requires_cde": commitment.requires_cde})

            self.side_effects.record(
                user_context, self.entity_type, commitment.id, "create",
                {"deal_id": deal_id, "investment_amount": investment_amount, "cde_id": cde_id}
            )
            logger.info(
                "Commitment drafted",
                extra={
                    "commitment_id": commitment.id,
                    "deal_id": deal_id,
                    "investor_id": investor_id,
                    "requires_cde": commitment.requires_cde
                }
            )
            return commitment

    def parties_of(self, record: Commitment):
        return [
            (EntityKind.INVESTOR, record.investor_id),
            (EntityKind.SPONSOR, record.sponsor_id),
            (EntityKind.CDE, record.cde_id)
        ]

    def get(self, commitment_id: str, user_context: Optional[UserContext] = None) -> Commitment:
        with tracer.start_as_current_span("commitment.get", attributes={"commitment.id": commitment_id}):
            return self.load(commitment_id, viewer=user_context)

    def issue(self, commitment_id: str, user_context: UserContext) -> Commitment:
        with tracer.start_as_current_span("commitment.issue", attributes={"commitment.id": commitment_id}):
            now = self.now()
            commitment = self.load(commitment_id, now)
            self._as_investor(commitment, user_context, "issue this commitment")
            updated = commitment_machine.issue(commitment, user_context, now)
            return self.persist(updated, commitment.status, user_context, "issue")

    def send_for_acceptance(self, commitment_id: str, user_context: UserContext) -> Commitment:
        with tracer.start_as_current_span("commitment.send", attributes={"commitment.id": commitment_id}):
            now = self.now()
            commitment = self.load(commitment_id, now)
            self._as_investor(commitment, user_context, "send this commitment")
            updated = commitment_machine.send_for_acceptance(
                commitment, user_context, now, self.config.commitment_expiration_days
            )
            return self.persist(
                updated, commitment.status, user_context, "send",
                {"expires_at": updated.expires_at.isoformat()}, "commitment_received"
            )

    def sponsor_accept(self, commitment_id: str, user_context: UserContext,
                       notes: Optional[str] = None) -> Commitment:
        with tracer.start_as_current_span(
            "commitment.sponsor_accept", attributes={"commitment.id": commitment_id}
        ) as span:
            now = self.now()
            commitment = self.load(commitment_id, now)
            self.authorize(
                user_context, [(EntityKind.SPONSOR, commitment.sponsor_id)], "accept this commitment"
            )
            updated = commitment_machine.sponsor_accept(commitment, user_context, now, notes)
            event = (
                "commitment_accepted" if updated.status == CommitmentStatus.ALL_ACCEPTED
                else "commitment_pending_cde"
            )
            span.set_attribute("commitment.status", updated.status.value)
            return self.persist(updated, commitment.status, user_context, "sponsor_accept",
                                {"notes": notes}, event)

    def cde_accept(self, commitment_id: str, user_context: UserContext,
                   notes: Optional[str] = None) -> Commitment:
        """
        Countersign as the attached CDE.

        Without a CDE attached, the investor and sponsor are told no
        countersignature is needed; anyone else is refused first.

        Raises:
            ForbiddenException: Actor is not a party allowed to countersign
            NotRequiredException: The commitment has no CDE attached
        """
        with tracer.start_as_current_span("commitment.cde_accept", attributes={"commitment.id": commitment_id}):
            now = self.now()
            commitment = self.load(commitment_id, now)
            if commitment.requires_cde:
                candidates = [(EntityKind.CDE, commitment.cde_id)]
            else:
                candidates = [
                    (EntityKind.INVESTOR, commitment.investor_id),
                    (EntityKind.SPONSOR, commitment.sponsor_id)
                ]
            self.authorize(user_context, candidates, "countersign this commitment")
            commitment_machine.ensure_cde_required(commitment)
            updated = commitment_machine.cde_accept(commitment, user_context, now, notes)
            return self.persist(updated, commitment.status, user_context, "cde_accept",
                                {"notes": notes}, "commitment_accepted")

    def reject(self, commitment_id: str, user_context: UserContext, reason: Optional[str]) -> Commitment:
        """Reject as the investor, the sponsor or the attached CDE."""
        with tracer.start_as_current_span("commitment.reject", attributes={"commitment.id": commitment_id}):
            now = self.now()
            commitment = self.load(commitment_id, now)
            result = self.authorize(
                user_context,
                [
                    (EntityKind.INVESTOR, commitment.investor_id),
                    (EntityKind.SPONSOR, commitment.sponsor_id),
                    (EntityKind.CDE, commitment.cde_id)
                ],
                "reject this commitment"
            )
            party = OrgType(result.party.value) if result.party else OrgType.ADMIN
            updated = commitment_machine.reject(commitment, user_context, party, now, reason)
            return self.persist(
                updated, commitment.status, user_context, "reject",
                {"reason": updated.rejection_reason, "party": party.value}, "commitment_rejected"
            )

    def withdraw(self, commitment_id: str, user_context: UserContext, reason: Optional[str]) -> Commitment:
        with tracer.start_as_current_span("commitment.withdraw", attributes={"commitment.id": commitment_id}):
            now = self.now()
            commitment = self.load(commitment_id, now)
            self._as_investor(commitment, user_context, "withdraw this commitment")
            updated = commitment_machine.withdraw(commitment, user_context, now, reason)
            return self.persist(
                updated, commitment.status, user_context, "withdraw",
                {"reason": updated.withdrawn_reason}, "commitment_withdrawn"
            )

    def perform_action(self, commitment_id: str, action: CommitmentAction,
                       payload: Optional[Dict[str, Any]], user_context: UserContext) -> CommitmentActionResult:
        payload = payload or {}
        if action == CommitmentAction.ISSUE:
            commitment = self.issue(commitment_id, user_context)
        elif action == CommitmentAction.SEND:
            commitment = self.send_for_acceptance(commitment_id, user_context)
        elif action == CommitmentAction.SPONSOR_ACCEPT:
            commitment = self.sponsor_accept(commitment_id, user_context, payload.get("notes"))
        elif action == CommitmentAction.CDE_ACCEPT:
            commitment = self.cde_accept(commitment_id, user_context, payload.get("notes"))
        elif action == CommitmentAction.REJECT:
            commitment = self.reject(commitment_id, user_context, payload.get("reason"))
        elif action == CommitmentAction.WITHDRAW:
            commitment = self.withdraw(commitment_id, user_context, payload.get("reason"))
        else:
            raise ValidationException(f"Unsupported commitment action: {action}", ["unsupported action"])

        closing_room_triggered = commitment.status == CommitmentStatus.ALL_ACCEPTED
        if closing_room_triggered:
            logger.info(
                "Commitment fully accepted, closing room triggered",
                extra={"commitment_id": commitment.id, "deal_id": commitment.deal_id}
            )
        return CommitmentActionResult(
            commitment=commitment,
            action_performed=action,
            closing_room_triggered=closing_room_triggered
        )
