# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the deal room negotiation workflow.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, ConfigDict
from pydantic.alias_generators import to_camel

from .base import BaseEntity, UTCDateTime
from .enums import (
    OrgType, TargetType, MatchRequestStatus, LOIStatus, CommitmentStatus, CreditType
)


class MatchRequest(BaseEntity):
    """A sponsor's request for a CDE or investor to look at one of its deals."""

    sponsor_id: str = Field(..., description="Requesting sponsor")
    deal_id: str = Field(..., description="Deal the request is about")
    target_type: TargetType = Field(..., description="Kind of party being asked")
    target_id: Optional[str] = Field(None, description="CDE or investor record ID")
    target_org_id: str = Field(..., description="Organization that owns the target")
    status: MatchRequestStatus = Field(default=MatchRequestStatus.PENDING)
    message: Optional[str] = Field(None, max_length=2000)
    response_message: Optional[str] = Field(None, max_length=2000)
    requested_at: datetime = Field(default_factory=datetime.utcnow)
    responded_at: Optional[UTCDateTime] = None
    cooldown_ends_at: Optional[UTCDateTime] = None
    expires_at: UTCDateTime = Field(..., description="Pending requests lapse after this instant")

    @field_validator('sponsor_id', 'deal_id', 'target_org_id')
    @classmethod
    def validate_reference(cls, v):
        if not v or not v.strip():
            raise ValueError('Reference cannot be empty')
        return v.strip()

    def is_lapsed(self, now: datetime) -> bool:
        """A pending request past its expiry no longer holds a slot."""
        return self.status == MatchRequestStatus.PENDING and self.expires_at <= now

    def holds_slot(self, now: datetime) -> bool:
        """Check if this request counts against the sponsor's capacity."""
        if self.status == MatchRequestStatus.ACCEPTED:
            return True
        return self.status == MatchRequestStatus.PENDING and not self.is_lapsed(now)

    def in_cooldown(self, now: datetime) -> bool:
        return (
            self.status == MatchRequestStatus.DECLINED
            and self.cooldown_ends_at is not None
            and self.cooldown_ends_at > now
        )

    def respond(self, accepted: bool, now: datetime, cooldown_days: int,
                message: Optional[str] = None) -> None:
        """Record the target's answer."""
        if self.status != MatchRequestStatus.PENDING:
            raise ValueError(f"Match request cannot be answered (current status: {self.status.value})")
        self.responded_at = now
        self.response_message = message
        if accepted:
            self.status = MatchRequestStatus.ACCEPTED
        else:
            self.cooldown_ends_at = now + timedelta(days=cooldown_days)
            self.status = MatchRequestStatus.DECLINED

    def withdraw(self, now: datetime) -> None:
        if self.status != MatchRequestStatus.PENDING:
            raise ValueError(f"Match request cannot be withdrawn (current status: {self.status.value})")
        self.responded_at = now
        self.status = MatchRequestStatus.WITHDRAWN


class LetterOfIntent(BaseEntity):
    """An allocation offer from a CDE to a deal's sponsor."""

    deal_id: str = Field(..., description="Deal receiving the allocation")
    cde_id: str = Field(..., description="Issuing CDE")
    sponsor_id: str = Field(..., description="Sponsor of the deal")
    allocation_amount: float = Field(..., gt=0, description="Offered allocation in dollars")
    terms: Dict[str, Any] = Field(default_factory=dict, description="Offer terms")
    status: LOIStatus = Field(default=LOIStatus.DRAFT)
    issued_at: Optional[UTCDateTime] = None
    issued_by: Optional[str] = None
    expires_at: Optional[UTCDateTime] = None
    sponsor_response_at: Optional[datetime] = None
    sponsor_response_notes: Optional[str] = Field(None, max_length=5000)
    counter_terms: Optional[Dict[str, Any]] = None
    withdrawn_at: Optional[datetime] = None
    withdrawn_by: Optional[str] = None
    withdrawn_reason: Optional[str] = Field(None, max_length=2000)
    revision: int = Field(default=0, ge=0, description="Number of re-issues after a counter")


class Commitment(BaseEntity):
    """An investor's pledge against a deal, optionally countersigned by a CDE."""

    deal_id: str = Field(..., description="Deal the investment goes to")
    investor_id: str = Field(..., description="Committing investor")
    sponsor_id: str = Field(..., description="Sponsor of the deal")
    cde_id: Optional[str] = Field(None, description="CDE whose acceptance is also required")
    loi_id: Optional[str] = Field(None, description="LOI this commitment builds on")
    investment_amount: float = Field(..., gt=0, description="Committed amount in dollars")
    credit_type: CreditType = Field(default=CreditType.NMTC)
    pricing_cents_per_credit: Optional[float] = Field(None, ge=0)
    status: CommitmentStatus = Field(default=CommitmentStatus.DRAFT)
    issued_at: Optional[UTCDateTime] = None
    expires_at: Optional[UTCDateTime] = None
    sponsor_accepted_at: Optional[datetime] = None
    sponsor_acceptance_notes: Optional[str] = Field(None, max_length=5000)
    cde_accepted_at: Optional[datetime] = None
    cde_acceptance_notes: Optional[str] = Field(None, max_length=5000)
    all_accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_by_party: Optional[OrgType] = None
    rejection_reason: Optional[str] = Field(None, max_length=2000)
    withdrawn_at: Optional[datetime] = None
    withdrawn_reason: Optional[str] = Field(None, max_length=2000)

    @property
    def requires_cde(self) -> bool:
        """CDE countersignature is needed only when a CDE is attached."""
        return bool(self.cde_id)


class DealSummary(BaseModel):
    """Read-only view of a deal as provided by the deal registry."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    project_name: str = Field(default="Untitled Project")
    sponsor_id: Optional[str] = None
    total_project_cost: Optional[float] = Field(None, ge=0)
    nmtc_financing_requested: Optional[float] = Field(None, ge=0)
    programs: List[str] = Field(default_factory=list)


class UserContext(BaseModel):
    """Acting user and organization for an operation."""

    user_id: str
    org_id: str
    org_type: OrgType
    email: Optional[str] = None
    name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.org_type == OrgType.ADMIN


class AuditLog(BaseModel):
    """Audit trail entry for a workflow transition."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    actor_id: str
    entity_type: str
    entity_id: str
    action: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    token: str = Field(..., description="Opaque display and idempotency token")
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
