# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models returned by workflow services.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from .entities import MatchRequest, LetterOfIntent, Commitment
from .enums import MatchRequestAction, LOIAction, CommitmentAction, SourceKind, EntityKind


class _Result(BaseModel):

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class SlotUsage(_Result):
    """Capacity usage for one target type."""

    used: int = Field(..., ge=0)
    max: int = Field(..., ge=0)
    available: int = Field(..., ge=0)


class SlotOverview(_Result):
    """Per-target-type capacity usage of a sponsor."""

    sponsor_id: str
    cde: SlotUsage
    investor: SlotUsage


class MatchRequestActionResult(_Result):
    match_request: MatchRequest
    action_performed: MatchRequestAction
    message: str


class LOIActionResult(_Result):
    loi: LetterOfIntent
    action_performed: LOIAction


class CommitmentActionResult(_Result):
    commitment: Commitment
    action_performed: CommitmentAction
    closing_room_triggered: bool = False


class CapitalStackSource(_Result):
    """One LOI or commitment as it contributes to a deal's funding."""

    id: str
    type: SourceKind
    source_type: EntityKind
    source_name: str
    source_id: str
    amount: float
    status: str
    status_label: str
    credit_type: Optional[str] = None
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None


class CapitalStackSummary(_Result):
    total_committed: float = 0.0
    total_pending: float = 0.0
    total_expired: float = 0.0
    funding_gap: float = Field(0.0, ge=0)
    ready_for_closing: bool = False
    committed_count: int = 0
    pending_count: int = 0


class CapitalStack(_Result):
    """Funding summary for a deal."""

    deal_id: str
    project_name: str
    allocation_needed: float
    sources: List[CapitalStackSource] = Field(default_factory=list)
    summary: CapitalStackSummary
