# SPDX-License-Identifier: Apache-2.0

"""
Read-side capital stack for a deal.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain import capital_stack as stack
from ..domain.authorization import check_party_access
from ..domain.errors import ForbiddenException, NotFoundException
from ..models.entities import UserContext
from ..models.enums import EntityKind
from ..models.responses import CapitalStack

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CapitalStackService:
    """Projects a deal's LOIs and commitments; never writes."""

    def __init__(self, deals, lois, commitments, parties,
                 clock: Callable[[], datetime] = datetime.utcnow,
                 ownership=None):
        self.deals = deals
        self.lois = lois
        self.commitments = commitments
        self.parties = parties
        self.clock = clock
        self.ownership = ownership or parties

    def _authorize(self, user_context: UserContext, deal, lois, commitments) -> None:
        """The deal's sponsor and any party holding an LOI or commitment on it may look."""
        candidates = [(EntityKind.SPONSOR, deal.sponsor_id)] + stack.party_keys(lois, commitments)
        candidates.extend(
            (EntityKind.CDE, commitment.cde_id) for commitment in commitments if commitment.cde_id
        )
        candidates = list(dict.fromkeys(party for party in candidates if party[1]))
        owners = self.ownership.resolve_many(candidates) if candidates else {}
        result = check_party_access(user_context, owners, candidates, "view this capital stack")
        if not result.allowed:
            logger.warning(
                "Capital stack access denied",
                extra={"deal_id": deal.id, "user_id": user_context.user_id, "org_id": user_context.org_id}
            )
            raise ForbiddenException(result.reason)

    def get_capital_stack(self, deal_id: str, user_context: Optional[UserContext] = None) -> CapitalStack:
        """
        Build the funding summary for a deal.

        Party names that cannot be looked up are shown as placeholders.

        Raises:
            NotFoundException: Deal unknown
            ForbiddenException: ``user_context`` is not a party on the deal
        """
        with tracer.start_as_current_span("capital_stack.get", attributes={"deal.id": deal_id}) as span:
            deal = self.deals.get_deal(deal_id)
            if deal is None:
                raise NotFoundException("Deal not found")

            lois = self.lois.list_for_deal(deal_id)
            commitments = self.commitments.list_for_deal(deal_id)
            if user_context is not None:
                self._authorize(user_context, deal, lois, commitments)

            try:
                profiles = self.parties.profiles(stack.party_keys(lois, commitments))
            except Exception as e:
                span.record_exception(e)
                logger.warning(
                    "Party lookup failed, using placeholder names",
                    extra={"deal_id": deal_id, "error": str(e)}
                )
                profiles = {}

            result = stack.build_capital_stack(deal, lois, commitments, profiles, self.clock())
            span.set_attributes({
                "capital_stack.sources": len(result.sources),
                "capital_stack.funding_gap": result.summary.funding_gap,
                "capital_stack.ready_for_closing": result.summary.ready_for_closing
            })
            span.set_status(Status(StatusCode.OK))
            logger.debug(
                "Capital stack computed",
                extra={
                    "deal_id": deal_id,
                    "sources": len(result.sources),
                    "total_committed": result.summary.total_committed
                }
            )
            return result
