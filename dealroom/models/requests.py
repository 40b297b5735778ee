# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request payload models for workflow operations.
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from .base import UTCDateTime
from .enums import (
    TargetType, MatchRequestAction, LOIAction, SponsorResponse, CommitmentAction, CreditType
)


class _Payload(BaseModel):
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True)


class CreateMatchRequestRequest(_Payload):
    """Request model for sending a match request."""

    sponsor_id: str = Field(..., min_length=1)
    deal_id: str = Field(..., min_length=1)
    target_type: TargetType
    target_org_id: str = Field(..., min_length=1)
    target_id: Optional[str] = None
    message: Optional[str] = Field(None, max_length=2000)


class MatchRequestActionRequest(_Payload):
    """Request model for answering or withdrawing a match request."""

    action: MatchRequestAction
    message: Optional[str] = Field(None, max_length=2000)


class CreateLOIRequest(_Payload):
    """Request model for drafting a letter of intent."""

    deal_id: str = Field(..., min_length=1)
    cde_id: str = Field(..., min_length=1)
    sponsor_id: Optional[str] = Field(None, description="Defaults to the deal's sponsor")
    allocation_amount: float = Field(..., gt=0)
    terms: Dict[str, Any] = Field(default_factory=dict)
    expires_at: Optional[UTCDateTime] = None


class LOIActionRequest(_Payload):
    """Request model for LOI actions."""

    action: LOIAction
    response: Optional[SponsorResponse] = None
    counter_terms: Optional[Dict[str, Any]] = None
    notes: Optional[str] = Field(None, max_length=5000)
    reason: Optional[str] = Field(None, max_length=2000)
    allocation_amount: Optional[float] = Field(None, gt=0)
    terms: Optional[Dict[str, Any]] = None


class CreateCommitmentRequest(_Payload):
    """Request model for drafting a commitment."""

    deal_id: str = Field(..., min_length=1)
    investor_id: str = Field(..., min_length=1)
    sponsor_id: Optional[str] = Field(None, description="Defaults to the deal's sponsor")
    cde_id: Optional[str] = None
    loi_id: Optional[str] = None
    investment_amount: float = Field(..., gt=0)
    credit_type: CreditType = CreditType.NMTC
    pricing_cents_per_credit: Optional[float] = Field(None, ge=0)
    expires_at: Optional[UTCDateTime] = None

    @field_validator('cde_id', 'loi_id')
    @classmethod
    def blank_to_none(cls, v):
        return v or None


class CommitmentActionRequest(_Payload):
    """Request model for commitment actions."""

    action: CommitmentAction
    notes: Optional[str] = Field(None, max_length=5000)
    reason: Optional[str] = Field(None, max_length=2000)
