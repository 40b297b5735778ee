# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas for the negotiation workflow.
"""

# Base models
from .base import BaseEntity, generate_object_id

# Enumerations
from .enums import (
    OrgType,
    TargetType,
    EntityKind,
    MatchRequestStatus,
    MatchRequestAction,
    LOIStatus,
    LOIAction,
    SponsorResponse,
    CommitmentStatus,
    CommitmentAction,
    CreditType,
    SourceKind,
    DealStatus
)

# Core entities
from .entities import (
    MatchRequest,
    LetterOfIntent,
    Commitment,
    DealSummary,
    UserContext,
    AuditLog
)

# Request models
from .requests import (
    CreateMatchRequestRequest,
    MatchRequestActionRequest,
    CreateLOIRequest,
    LOIActionRequest,
    CreateCommitmentRequest,
    CommitmentActionRequest
)

# Response models
from .responses import (
    SlotUsage,
    SlotOverview,
    MatchRequestActionResult,
    LOIActionResult,
    CommitmentActionResult,
    CapitalStackSource,
    CapitalStackSummary,
    CapitalStack
)
