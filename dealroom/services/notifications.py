# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Cross-party notification events.

Each workflow transition maps to one named event addressed to the parties on
the other side of the negotiation. Events are published to the message bus;
delivery to users (email, in-app) is handled by downstream consumers.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Sequence

from ..domain.authorization import PartyKey
from ..models.entities import Commitment, LetterOfIntent, MatchRequest, UserContext
from ..models.enums import EntityKind, OrgType, TargetType

logger = logging.getLogger(__name__)


class NotificationPublishError(Exception):
    """Raised when the publisher reports a failed delivery to the bus."""
    pass


def _recipients(parties: Sequence[PartyKey]) -> List[Dict[str, str]]:
    return [{"kind": kind.value, "id": entity_id} for kind, entity_id in parties if entity_id]


def _match_target(request: MatchRequest) -> PartyKey:
    kind = EntityKind.CDE if request.target_type == TargetType.CDE else EntityKind.INVESTOR
    return kind, request.target_id or request.target_org_id


class NotificationEmitter:
    """Publishes named workflow events through an AMQP-style publisher."""

    def __init__(self, publisher):
        self.publisher = publisher

    def emit(self, event: str, deal_id: str, recipients: Sequence[PartyKey],
             actor: UserContext, **context: Any) -> None:
        message = {
            "event": event,
            "deal_id": deal_id,
            "recipients": _recipients(recipients),
            "actor": {"user_id": actor.user_id, "org_id": actor.org_id, "org_type": actor.org_type.value},
            "context": context,
            "occurred_at": datetime.utcnow().isoformat()
        }
        result = self.publisher.publish_event(f"deal.{event}", message)
        if not result.success:
            raise NotificationPublishError(f"Failed to publish {event}: {result.error}")
        logger.info(
            "Notification event published",
            extra={"event": event, "deal_id": deal_id, "recipients": len(message["recipients"])}
        )

    # Match requests

    def match_request_received(self, request: MatchRequest, actor: UserContext) -> None:
        self.emit("match_request_received", request.deal_id, [_match_target(request)], actor,
                  match_request_id=request.id, target_type=request.target_type.value,
                  message=request.message)

    def match_request_accepted(self, request: MatchRequest, actor: UserContext) -> None:
        self.emit("match_request_accepted", request.deal_id, [(EntityKind.SPONSOR, request.sponsor_id)],
                  actor, match_request_id=request.id, message=request.response_message)

    def match_request_declined(self, request: MatchRequest, actor: UserContext) -> None:
        self.emit("match_request_declined", request.deal_id, [(EntityKind.SPONSOR, request.sponsor_id)],
                  actor, match_request_id=request.id, message=request.response_message,
                  cooldown_ends_at=request.cooldown_ends_at)

    def match_request_withdrawn(self, request: MatchRequest, actor: UserContext) -> None:
        self.emit("match_request_withdrawn", request.deal_id, [_match_target(request)], actor,
                  match_request_id=request.id)

    # Letters of intent

    def loi_received(self, loi: LetterOfIntent, actor: UserContext) -> None:
        self.emit("loi_received", loi.deal_id, [(EntityKind.SPONSOR, loi.sponsor_id)], actor,
                  loi_id=loi.id, allocation_amount=loi.allocation_amount, expires_at=loi.expires_at,
                  revision=loi.revision)

    def loi_accepted(self, loi: LetterOfIntent, actor: UserContext) -> None:
        self.emit("loi_accepted", loi.deal_id, [(EntityKind.CDE, loi.cde_id)], actor,
                  loi_id=loi.id, allocation_amount=loi.allocation_amount, notify_admins=True)

    def loi_rejected(self, loi: LetterOfIntent, actor: UserContext) -> None:
        self.emit("loi_rejected", loi.deal_id, [(EntityKind.CDE, loi.cde_id)], actor,
                  loi_id=loi.id, notes=loi.sponsor_response_notes)

    def loi_countered(self, loi: LetterOfIntent, actor: UserContext) -> None:
        self.emit("loi_countered", loi.deal_id, [(EntityKind.CDE, loi.cde_id)], actor,
                  loi_id=loi.id, counter_terms=loi.counter_terms, notes=loi.sponsor_response_notes)

    def loi_withdrawn(self, loi: LetterOfIntent, actor: UserContext) -> None:
        self.emit("loi_withdrawn", loi.deal_id, [(EntityKind.SPONSOR, loi.sponsor_id)], actor,
                  loi_id=loi.id, reason=loi.withdrawn_reason)

    # Commitments

    def commitment_received(self, commitment: Commitment, actor: UserContext) -> None:
        self.emit("commitment_received", commitment.deal_id,
                  [(EntityKind.SPONSOR, commitment.sponsor_id), (EntityKind.INVESTOR, commitment.investor_id)],
                  actor, commitment_id=commitment.id,
                  investment_amount=commitment.investment_amount,
                  credit_type=commitment.credit_type.value)

    def commitment_pending_cde(self, commitment: Commitment, actor: UserContext) -> None:
        self.emit("commitment_pending_cde", commitment.deal_id,
                  [(EntityKind.CDE, commitment.cde_id), (EntityKind.INVESTOR, commitment.investor_id)],
                  actor, commitment_id=commitment.id)

    def commitment_accepted(self, commitment: Commitment, actor: UserContext) -> None:
        self.emit("commitment_accepted", commitment.deal_id, commitment_parties(commitment), actor,
                  commitment_id=commitment.id, investment_amount=commitment.investment_amount,
                  closing_room_triggered=True)

    def commitment_rejected(self, commitment: Commitment, actor: UserContext) -> None:
        rejected_by = commitment.rejected_by_party
        recipients = [
            party for party in commitment_parties(commitment)
            if rejected_by is None or party[0].value != rejected_by.value
        ]
        self.emit("commitment_rejected", commitment.deal_id, recipients, actor,
                  commitment_id=commitment.id, reason=commitment.rejection_reason,
                  rejected_by=rejected_by.value if rejected_by else OrgType.ADMIN.value)

    def commitment_withdrawn(self, commitment: Commitment, actor: UserContext) -> None:
        recipients = [
            party for party in commitment_parties(commitment) if party[0] != EntityKind.INVESTOR
        ]
        self.emit("commitment_withdrawn", commitment.deal_id, recipients, actor,
                  commitment_id=commitment.id, reason=commitment.withdrawn_reason)


def commitment_parties(commitment: Commitment) -> List[PartyKey]:
    parties = [
        (EntityKind.INVESTOR, commitment.investor_id),
        (EntityKind.SPONSOR, commitment.sponsor_id)
    ]
    if commitment.cde_id:
        parties.append((EntityKind.CDE, commitment.cde_id))
    return parties
