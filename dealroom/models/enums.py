# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the deal room negotiation workflow.
"""

from enum import Enum


class OrgType(str, Enum):
    """Kind of organization an actor belongs to."""
    SPONSOR = "sponsor"
    CDE = "cde"
    INVESTOR = "investor"
    ADMIN = "admin"


class TargetType(str, Enum):
    """Party type a sponsor may send a match request to."""
    CDE = "cde"
    INVESTOR = "investor"


class EntityKind(str, Enum):
    """Party records whose owning organization can be resolved."""
    SPONSOR = "sponsor"
    CDE = "cde"
    INVESTOR = "investor"


class MatchRequestStatus(str, Enum):
    """Match request lifecycle status."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


class MatchRequestAction(str, Enum):
    """Actions that can be performed on a match request."""
    ACCEPT = "accept"
    DECLINE = "decline"
    WITHDRAW = "withdraw"


class LOIStatus(str, Enum):
    """Letter of intent negotiation status."""
    DRAFT = "draft"
    ISSUED = "issued"
    PENDING_SPONSOR = "pending_sponsor"
    SPONSOR_ACCEPTED = "sponsor_accepted"
    SPONSOR_COUNTERED = "sponsor_countered"
    SPONSOR_REJECTED = "sponsor_rejected"
    EXPIRED = "expired"
    WITHDRAWN = "withdrawn"


class LOIAction(str, Enum):
    """Actions dispatched to the LOI state machine."""
    ISSUE = "issue"
    SEND = "send"
    RESPOND = "respond"
    WITHDRAW = "withdraw"
    REISSUE = "reissue"


class SponsorResponse(str, Enum):
    """Sponsor answer to a letter of intent."""
    ACCEPT = "accept"
    REJECT = "reject"
    COUNTER = "counter"


class CommitmentStatus(str, Enum):
    """Investor commitment negotiation status."""
    DRAFT = "draft"
    ISSUED = "issued"
    PENDING_SPONSOR = "pending_sponsor"
    PENDING_CDE = "pending_cde"
    SPONSOR_ACCEPTED = "sponsor_accepted"
    ALL_ACCEPTED = "all_accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


class CommitmentAction(str, Enum):
    """Actions dispatched to the commitment state machine."""
    ISSUE = "issue"
    SEND = "send"
    SPONSOR_ACCEPT = "sponsor_accept"
    CDE_ACCEPT = "cde_accept"
    REJECT = "reject"
    WITHDRAW = "withdraw"


class CreditType(str, Enum):
    """Tax credit programs a commitment can be made against."""
    NMTC = "NMTC"
    HTC = "HTC"
    LIHTC = "LIHTC"
    OZ = "OZ"


class SourceKind(str, Enum):
    """Instrument type of a capital stack source."""
    LOI = "loi"
    COMMITMENT = "commitment"


class DealStatus(str, Enum):
    """Deal pipeline status derived from its negotiation instruments."""
    SEEKING_ALLOCATION = "seeking_allocation"
    LOI_PENDING = "loi_pending"
    SEEKING_CAPITAL = "seeking_capital"
    COMMITMENT_PENDING = "commitment_pending"
    COMMITTED = "committed"
