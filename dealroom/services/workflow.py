# SPDX-License-Identifier: Apache-2.0

"""
Shared plumbing for the workflow services.

Loading with lazy expiry, party authorization through the ownership resolver,
and compare-and-set persistence followed by fire-and-forget side effects.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from opentelemetry import trace

from ..config import WorkflowConfig
from ..domain.authorization import AuthorizationResult, PartyKey, check_party_access
from ..domain import match_requests as slot_rules
from ..domain.errors import ConflictException, ForbiddenException, NotFoundException
from ..models.entities import UserContext
from ..models.enums import EntityKind, OrgType, TargetType
from .side_effects import SideEffects

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Actor recorded for changes no user asked for, such as lazy expiry
SYSTEM_ACTOR = UserContext(user_id="system", org_id="system", org_type=OrgType.ADMIN)


class WorkflowService:
    """Base class for services driving one negotiation record type."""

    entity_type: str = ""
    label: str = "Record"
    match_requests = None

    def __init__(self, repository, ownership, side_effects: SideEffects,
                 config: Optional[WorkflowConfig] = None,
                 clock: Callable[[], datetime] = datetime.utcnow):
        self.repository = repository
        self.ownership = ownership
        self.side_effects = side_effects
        self.config = config or WorkflowConfig()
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    def expire(self, record, now: datetime):
        """Return ``record`` as it reads at ``now``; subclasses apply their expiry rule."""
        return record

    def parties_of(self, record) -> List[PartyKey]:
        """Parties allowed to see ``record``; subclasses list theirs."""
        return []

    def authorize_view(self, user_context: UserContext, record) -> None:
        self.authorize(user_context, self.parties_of(record), f"view this {self.label}")

    def load(self, record_id: str, now: Optional[datetime] = None,
             viewer: Optional[UserContext] = None):
        """
        Fetch a record, persisting a lapse to expired if one is due.

        With ``viewer`` given, read access is checked before anything is
        written. A concurrent writer winning the expiry race leaves the stored
        record as is; the re-read copy is projected instead.

        Raises:
            NotFoundException: No record with this ID
            ForbiddenException: ``viewer`` is not a party on the record
        """
        now = now or self.now()
        record = self.repository.get(record_id)
        if record is None:
            raise NotFoundException(f"{self.label} not found")
        if viewer is not None:
            self.authorize_view(viewer, record)

        current = self.expire(record, now)
        if current.status == record.status:
            return record

        try:
            self.repository.transition(current, record.status)
        except ConflictException:
            logger.info(
                "Expiry write lost to a concurrent update",
                extra={"entity_type": self.entity_type, "entity_id": record_id}
            )
            reread = self.repository.get(record_id)
            if reread is None:
                raise NotFoundException(f"{self.label} not found")
            return self.expire(reread, now)

        self.side_effects.record(
            SYSTEM_ACTOR, self.entity_type, record_id, "expire",
            {"from_status": record.status.value, "to_status": current.status.value}
        )
        logger.info(
            "Record expired",
            extra={"entity_type": self.entity_type, "entity_id": record_id}
        )
        return current

    def authorize(self, user_context: UserContext, candidates: Sequence[PartyKey], action: str,
                  owners: Optional[Dict[PartyKey, Optional[str]]] = None) -> AuthorizationResult:
        """
        Check that the actor acts for one of ``candidates``.

        Raises:
            ForbiddenException: Actor's organization owns none of the parties
        """
        candidates = [party for party in candidates if party[1]]
        if owners is None:
            owners = self.ownership.resolve_many(candidates) if candidates else {}
        result = check_party_access(user_context, owners, candidates, action)
        if not result.allowed:
            span = trace.get_current_span()
            span.set_attribute("authorization.denied", True)
            logger.warning(
                "Workflow action denied",
                extra={
                    "entity_type": self.entity_type,
                    "user_id": user_context.user_id,
                    "org_id": user_context.org_id,
                    "action": action
                }
            )
            raise ForbiddenException(result.reason)
        return result

    def persist(self, updated, expected_status, user_context: UserContext, action: str,
                payload: Optional[Dict] = None, event: Optional[str] = None):
        """Compare-and-set ``updated`` then record and announce the transition."""
        self.repository.transition(updated, expected_status)
        self.side_effects.record(
            user_context, self.entity_type, updated.id, action,
            dict(payload or {}, from_status=expected_status.value, to_status=updated.status.value)
        )
        if event:
            self.side_effects.notify(event, updated, user_context)
        logger.info(
            "Workflow transition applied",
            extra={
                "entity_type": self.entity_type,
                "entity_id": updated.id,
                "action": action,
                "from_status": expected_status.value,
                "to_status": updated.status.value,
                "user_id": user_context.user_id
            }
        )
        return updated

    def ensure_matched(self, deal_id: str, kind: EntityKind, party_id: str) -> None:
        """
        Require an accepted match request between the deal and the party.

        Only enforced when ``require_accepted_match_request`` is configured.

        Raises:
            ForbiddenException: No accepted request connects the deal and the party
        """
        if not self.config.require_accepted_match_request:
            return
        target_type = TargetType.CDE if kind == EntityKind.CDE else TargetType.INVESTOR
        requests = self.match_requests.list_by("dealId", deal_id) if self.match_requests else []
        owner = self.ownership.resolve_owning_organization(kind, party_id)
        if slot_rules.find_accepted(requests, deal_id, target_type, party_id, owner) is None:
            raise ForbiddenException(
                f"An accepted match request from the sponsor is required before the "
                f"{slot_rules.target_label(target_type)} can engage on this deal"
            )
