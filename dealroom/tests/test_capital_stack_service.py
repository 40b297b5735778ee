# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the capital stack read service.
"""

import pytest
from unittest.mock import Mock

from dealroom.domain.errors import ForbiddenException, NotFoundException
from dealroom.models.enums import LOIStatus, SponsorResponse


class TestCapitalStackService:
    """Test capital stack assembly from stored records."""

    def test_unknown_deal(self, services):
        with pytest.raises(NotFoundException):
            services.capital_stack.get_capital_stack("missing")

    def test_empty_deal(self, services):
        stack = services.capital_stack.get_capital_stack("deal-1")

        assert stack.sources == []
        assert stack.summary.funding_gap == 5_000_000
        assert not stack.summary.ready_for_closing

    def test_accepted_loi_counts_as_committed(self, services, cde_user, sponsor_user):
        loi = services.loi.create("deal-1", "cde-1", 2_000_000, cde_user)
        services.loi.issue(loi.id, cde_user)
        services.loi.send_to_sponsor(loi.id, cde_user)
        services.loi.sponsor_respond(loi.id, SponsorResponse.ACCEPT, sponsor_user)

        stack = services.capital_stack.get_capital_stack("deal-1")

        source = stack.sources[0]
        assert source.source_name == "Community Capital CDE"
        assert source.contact_email == "lee@ccc.example"
        assert source.status_label == "You Accepted - Awaiting CDE"
        assert stack.summary.total_committed == 2_000_000
        assert stack.summary.funding_gap == 3_000_000

    def test_lapsed_sources_projected_without_writing(self, services, cde_user, clock):
        loi = services.loi.create("deal-1", "cde-1", 2_000_000, cde_user)
        services.loi.issue(loi.id, cde_user)
        services.loi.send_to_sponsor(loi.id, cde_user)
        clock.advance(days=45)

        stack = services.capital_stack.get_capital_stack("deal-1")

        assert stack.sources[0].status == "expired"
        assert stack.summary.total_expired == 2_000_000
        assert services.loi.repository.get(loi.id).status == LOIStatus.PENDING_SPONSOR

    def test_party_lookup_failure_uses_placeholders(self, services, investor_user):
        services.commitments.create("deal-1", "investor-1", 750_000, investor_user)
        services.capital_stack.parties = Mock(profiles=Mock(side_effect=RuntimeError("directory down")))

        stack = services.capital_stack.get_capital_stack("deal-1")

        assert stack.sources[0].source_name == "Unknown Investor"
        assert stack.sources[0].status == "draft"
        assert stack.summary.total_pending == 0


class TestCapitalStackAccess:
    """Test who may read a deal's capital stack."""

    def test_sponsor_and_admin_may_read(self, services, sponsor_user, admin_user):
        assert services.capital_stack.get_capital_stack("deal-1", sponsor_user).deal_id == "deal-1"
        assert services.capital_stack.get_capital_stack("deal-1", admin_user).deal_id == "deal-1"

    def test_cde_with_loi_may_read(self, services, cde_user, other_cde_user):
        services.loi.create("deal-1", "cde-1", 2_000_000, cde_user)

        assert services.capital_stack.get_capital_stack("deal-1", cde_user).sources

        with pytest.raises(ForbiddenException):
            services.capital_stack.get_capital_stack("deal-1", other_cde_user)

    def test_countersigning_cde_may_read(self, services, investor_user, other_cde_user):
        services.commitments.create("deal-1", "investor-1", 750_000, investor_user, cde_id="cde-2")

        stack = services.capital_stack.get_capital_stack("deal-1", other_cde_user)

        assert stack.summary.total_pending == 0

    def test_outsider_refused(self, services, outsider_user):
        with pytest.raises(ForbiddenException) as exc_info:
            services.capital_stack.get_capital_stack("deal-1", outsider_user)

        assert "view this capital stack" in exc_info.value.message
