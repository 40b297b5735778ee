# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Capital stack projection.

Merges a deal's LOIs and commitments into funding sources and a summary.
Nothing here writes; expiry is applied to the projected copies only.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..models.entities import Commitment, DealSummary, LetterOfIntent
from ..models.enums import EntityKind, SourceKind
from ..models.responses import CapitalStack, CapitalStackSource, CapitalStackSummary
from . import commitments as commitment_machine
from . import loi as loi_machine
from .authorization import PartyKey


COMMITTED_STATUSES = frozenset({"all_accepted", "sponsor_accepted"})
PENDING_STATUSES = frozenset({"issued", "pending_sponsor", "pending_cde", "sponsor_countered"})
NEGATIVE_STATUSES = frozenset({"expired", "rejected", "withdrawn", "sponsor_rejected"})

ALLOCATION_SHARE_OF_PROJECT_COST = 0.25

LOI_STATUS_LABELS = {
    "draft": "Draft",
    "issued": "Awaiting Your Response",
    "pending_sponsor": "Awaiting Your Response",
    "sponsor_accepted": "You Accepted - Awaiting CDE",
    "sponsor_countered": "Counter Sent",
    "sponsor_rejected": "Declined",
    "expired": "Expired",
    "withdrawn": "Withdrawn"
}

COMMITMENT_STATUS_LABELS = {
    "draft": "Draft",
    "issued": "Awaiting Your Response",
    "pending_sponsor": "Awaiting Your Response",
    "pending_cde": "Awaiting CDE Approval",
    "sponsor_accepted": "Sponsor Accepted",
    "all_accepted": "Fully Committed",
    "expired": "Expired",
    "rejected": "Rejected",
    "withdrawn": "Withdrawn"
}

PLACEHOLDER_NAMES = {
    EntityKind.CDE: "Unknown CDE",
    EntityKind.INVESTOR: "Unknown Investor",
    EntityKind.SPONSOR: "Unknown Sponsor"
}


@dataclass
class PartyProfile:
    """Display details for a CDE or investor; any field may be missing."""
    kind: EntityKind
    entity_id: str
    organization_id: Optional[str] = None
    name: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        return self.name or self.contact_name


def bucket_for(status: str) -> Optional[str]:
    """Return committed, pending, expired, or None for sources that do not count."""
    if status in COMMITTED_STATUSES:
        return "committed"
    if status in PENDING_STATUSES:
        return "pending"
    if status in NEGATIVE_STATUSES:
        return "expired"
    return None


def allocation_needed(deal: DealSummary) -> float:
    """Requested NMTC financing, else a quarter of total project cost, else zero."""
    if deal.nmtc_financing_requested:
        return float(deal.nmtc_financing_requested)
    if deal.total_project_cost:
        return float(deal.total_project_cost) * ALLOCATION_SHARE_OF_PROJECT_COST
    return 0.0


def _profile(profiles: Dict[PartyKey, PartyProfile], kind: EntityKind,
             entity_id: Optional[str]) -> PartyProfile:
    if entity_id and (kind, entity_id) in profiles:
        return profiles[(kind, entity_id)]
    return PartyProfile(kind=kind, entity_id=entity_id or "")


def loi_source(loi: LetterOfIntent, profiles: Dict[PartyKey, PartyProfile],
               now: datetime) -> CapitalStackSource:
    projected = loi_machine.apply_expiry(loi, now)
    status = projected.status.value
    profile = _profile(profiles, EntityKind.CDE, loi.cde_id)
    return CapitalStackSource(
        id=loi.id,
        type=SourceKind.LOI,
        source_type=EntityKind.CDE,
        source_name=profile.display_name or PLACEHOLDER_NAMES[EntityKind.CDE],
        source_id=loi.cde_id,
        amount=loi.allocation_amount or 0.0,
        status=status,
        status_label=LOI_STATUS_LABELS.get(status, status),
        issued_at=loi.issued_at,
        expires_at=loi.expires_at,
        accepted_at=loi.sponsor_response_at if status == "sponsor_accepted" else None,
        contact_name=profile.contact_name,
        contact_email=profile.contact_email
    )


def commitment_source(commitment: Commitment, profiles: Dict[PartyKey, PartyProfile],
                      now: datetime) -> CapitalStackSource:
    projected = commitment_machine.apply_expiry(commitment, now)
    status = projected.status.value
    if commitment.investor_id:
        kind, source_id = EntityKind.INVESTOR, commitment.investor_id
    else:
        kind, source_id = EntityKind.CDE, commitment.cde_id or ""
    profile = _profile(profiles, kind, source_id)
    return CapitalStackSource(
        id=commitment.id,
        type=SourceKind.COMMITMENT,
        source_type=kind,
        source_name=profile.display_name or PLACEHOLDER_NAMES[kind],
        source_id=source_id,
        amount=commitment.investment_amount or 0.0,
        status=status,
        status_label=COMMITMENT_STATUS_LABELS.get(status, status),
        credit_type=commitment.credit_type.value if commitment.credit_type else None,
        issued_at=commitment.issued_at or commitment.created_at,
        expires_at=commitment.expires_at,
        accepted_at=commitment.all_accepted_at,
        contact_name=profile.contact_name,
        contact_email=profile.contact_email
    )


def summarize(sources: Iterable[CapitalStackSource], needed: float) -> CapitalStackSummary:
    totals = {"committed": 0.0, "pending": 0.0, "expired": 0.0}
    counts = {"committed": 0, "pending": 0, "expired": 0}
    for source in sources:
        bucket = bucket_for(source.status)
        if bucket is None:
            continue
        totals[bucket] += source.amount
        counts[bucket] += 1

    funding_gap = max(0.0, needed - totals["committed"])
    return CapitalStackSummary(
        total_committed=totals["committed"],
        total_pending=totals["pending"],
        total_expired=totals["expired"],
        funding_gap=funding_gap,
        ready_for_closing=funding_gap == 0 and totals["committed"] > 0,
        committed_count=counts["committed"],
        pending_count=counts["pending"]
    )


def build_capital_stack(
    deal: DealSummary,
    lois: Iterable[LetterOfIntent],
    commitments: Iterable[Commitment],
    profiles: Dict[PartyKey, PartyProfile],
    now: datetime
) -> CapitalStack:
    """
    Project a deal's instruments into its capital stack.

    Each instrument is listed once even if the inputs repeat it.
    """
    sources: List[CapitalStackSource] = []
    seen = set()
    for loi in lois:
        if (SourceKind.LOI, loi.id) in seen:
            continue
        seen.add((SourceKind.LOI, loi.id))
        sources.append(loi_source(loi, profiles, now))
    for commitment in commitments:
        if (SourceKind.COMMITMENT, commitment.id) in seen:
            continue
        seen.add((SourceKind.COMMITMENT, commitment.id))
        sources.append(commitment_source(commitment, profiles, now))

    needed = allocation_needed(deal)
    return CapitalStack(
        deal_id=deal.id,
        project_name=deal.project_name,
        allocation_needed=needed,
        sources=sources,
        summary=summarize(sources, needed)
    )


def party_keys(lois: Iterable[LetterOfIntent], commitments: Iterable[Commitment]) -> List[PartyKey]:
    """Parties whose display details the projection needs."""
    keys = []
    for loi in lois:
        keys.append((EntityKind.CDE, loi.cde_id))
    for commitment in commitments:
        if commitment.investor_id:
            keys.append((EntityKind.INVESTOR, commitment.investor_id))
        elif commitment.cde_id:
            keys.append((EntityKind.CDE, commitment.cde_id))
    return list(dict.fromkeys(keys))
