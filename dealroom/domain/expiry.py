# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Wall-clock expiry helpers shared by the negotiation machines.
"""

import math
from datetime import datetime, timedelta
from typing import Optional


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True once the expiry instant has passed; records without one never expire."""
    if expires_at is None:
        return False
    return expires_at <= (now or datetime.utcnow())


def days_until_expiry(expires_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """Whole days left before expiry, negative when already past."""
    if expires_at is None:
        return None
    remaining = expires_at - (now or datetime.utcnow())
    return math.ceil(remaining / timedelta(days=1))


def is_expiring_within(expires_at: Optional[datetime], days: int,
                       now: Optional[datetime] = None) -> bool:
    """True for records that are still live but lapse within ``days``."""
    if expires_at is None:
        return False
    now = now or datetime.utcnow()
    if expires_at <= now:
        return False
    return expires_at - now <= timedelta(days=days)
