# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Fixtures for end-to-end negotiation scenarios over HTTP.
"""

import os
import pytest
from datetime import datetime

os.environ['ENVIRONMENT'] = 'test'
os.environ['STORAGE_BACKEND'] = 'memory'
os.environ['OTEL_ENABLED'] = 'false'

from dealroom.app import build_memory_services, create_app
from dealroom.config import WorkflowConfig
from dealroom.models.entities import DealSummary
from dealroom.models.enums import EntityKind


SCENARIO_START = datetime(2025, 6, 2, 9, 0, 0)


def actor(user_id, org_id, org_type):
    return {"X-User-Id": user_id, "X-Org-Id": org_id, "X-Org-Type": org_type}


class ScenarioClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def scenario_clock():
    return ScenarioClock(SCENARIO_START)


@pytest.fixture
def deal_room(scenario_clock):
    """Services for one sponsor with four CDEs and an investor registered."""
    services = build_memory_services(WorkflowConfig(), scenario_clock)

    services.parties.register(EntityKind.SPONSOR, "sponsor-s", "org-sponsor-s", name="Southside Housing")
    for letter in "abcd":
        services.parties.register(EntityKind.CDE, f"cde-{letter}", f"org-cde-{letter}",
                                  name=f"CDE {letter.upper()}")
    services.parties.register(EntityKind.INVESTOR, "investor-i", "org-investor-i", name="Lakeshore Bank")

    services.deals.add(DealSummary(
        id="deal-s",
        project_name="Southside Community Clinic",
        sponsor_id="sponsor-s",
        nmtc_financing_requested=8_000_000,
        programs=["NMTC"]
    ))
    return services


@pytest.fixture
def client(deal_room):
    app = create_app(deal_room)
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def sponsor_headers():
    return actor("user-s", "org-sponsor-s", "sponsor")


@pytest.fixture
def investor_headers():
    return actor("user-i", "org-investor-i", "investor")


@pytest.fixture
def cde_headers():
    def headers(letter):
        return actor(f"user-cde-{letter}", f"org-cde-{letter}", "cde")
    return headers
