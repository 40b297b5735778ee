# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from datetime import datetime, timedelta

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['STORAGE_BACKEND'] = 'memory'
os.environ['OTEL_ENABLED'] = 'false'

from dealroom.app import build_memory_services
from dealroom.config import WorkflowConfig
from dealroom.models.entities import DealSummary, UserContext
from dealroom.models.enums import EntityKind, OrgType


NOW = datetime(2025, 3, 3, 12, 0, 0)

SPONSOR_ORG = "org-sponsor"
CDE_ORG = "org-cde"
OTHER_CDE_ORG = "org-cde-2"
INVESTOR_ORG = "org-investor"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def config():
    return WorkflowConfig()


@pytest.fixture
def services(clock, config):
    """In-memory services seeded with one deal and its parties."""
    services = build_memory_services(config, clock)

    parties = services.parties
    parties.register(EntityKind.SPONSOR, "sponsor-1", SPONSOR_ORG, name="Riverside Partners",
                     contact_name="Dana Cole", contact_email="dana@riverside.example")
    parties.register(EntityKind.SPONSOR, "sponsor-2", "org-sponsor-2", name="Harbor Builders")
    parties.register(EntityKind.CDE, "cde-1", CDE_ORG, name="Community Capital CDE",
                     contact_name="Lee Park", contact_email="lee@ccc.example")
    parties.register(EntityKind.CDE, "cde-2", OTHER_CDE_ORG, name="Main Street CDE")
    parties.register(EntityKind.INVESTOR, "investor-1", INVESTOR_ORG, name="First Bank",
                     contact_name="Sam Ortiz", contact_email="sam@firstbank.example")

    services.deals.add(DealSummary(
        id="deal-1",
        project_name="Riverside Health Center",
        sponsor_id="sponsor-1",
        total_project_cost=20_000_000,
        nmtc_financing_requested=5_000_000,
        programs=["NMTC"]
    ))
    services.deals.add(DealSummary(id="deal-2", project_name="Harbor Lofts", sponsor_id="sponsor-2"))
    return services


def _user(user_id: str, org_id: str, org_type: OrgType) -> UserContext:
    return UserContext(user_id=user_id, org_id=org_id, org_type=org_type, email=f"{user_id}@example.com")


@pytest.fixture
def sponsor_user():
    return _user("user-sponsor", SPONSOR_ORG, OrgType.SPONSOR)


@pytest.fixture
def cde_user():
    return _user("user-cde", CDE_ORG, OrgType.CDE)


@pytest.fixture
def other_cde_user():
    return _user("user-cde-2", OTHER_CDE_ORG, OrgType.CDE)


@pytest.fixture
def investor_user():
    return _user("user-investor", INVESTOR_ORG, OrgType.INVESTOR)


@pytest.fixture
def admin_user():
    return _user("user-admin", "org-platform", OrgType.ADMIN)


@pytest.fixture
def outsider_user():
    return _user("user-outsider", "org-unrelated", OrgType.SPONSOR)
