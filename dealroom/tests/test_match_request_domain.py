# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for match request slot rules.
"""

import pytest
from datetime import timedelta

from dealroom.domain import match_requests as slot_rules
from dealroom.domain.errors import (
    ConflictException, CooldownException, InvalidStateException, SlotExceededException
)
from dealroom.models.enums import MatchRequestAction, MatchRequestStatus, TargetType

from .conftest import NOW


def make_request(user, target_org_id="org-cde", deal_id="deal-1", target_type=TargetType.CDE,
                 status=MatchRequestStatus.PENDING, requested_at=NOW, **fields):
    request = slot_rules.build_match_request(
        sponsor_id="sponsor-1",
        deal_id=deal_id,
        target_type=target_type,
        target_org_id=target_org_id,
        user_context=user,
        now=requested_at,
        expiration_days=30
    )
    request.status = status
    for name, value in fields.items():
        setattr(request, name, value)
    return request


class TestSlotCounting:
    """Test capacity accounting per target type."""

    def test_pending_and_accepted_hold_slots(self, sponsor_user):
        requests = [
            make_request(sponsor_user, "org-a"),
            make_request(sponsor_user, "org-b", status=MatchRequestStatus.ACCEPTED),
            make_request(sponsor_user, "org-c", status=MatchRequestStatus.DECLINED),
            make_request(sponsor_user, "org-d", status=MatchRequestStatus.WITHDRAWN)
        ]

        usage = slot_rules.slot_usage(requests, TargetType.CDE, 3, NOW)

        assert usage.used == 2
        assert usage.max == 3
        assert usage.available == 1

    def test_target_types_counted_separately(self, sponsor_user):
        requests = [
            make_request(sponsor_user, "org-a"),
            make_request(sponsor_user, "org-b", target_type=TargetType.INVESTOR)
        ]

        assert slot_rules.count_active(requests, TargetType.CDE, NOW) == 1
        assert slot_rules.count_active(requests, TargetType.INVESTOR, NOW) == 1

    def test_lapsed_pending_request_does_not_count(self, sponsor_user):
        stale = make_request(sponsor_user, "org-a", requested_at=NOW - timedelta(days=31))

        assert stale.expires_at < NOW
        assert slot_rules.count_active([stale], TargetType.CDE, NOW) == 0


class TestValidateNewRequest:
    """Test admission checks for a new match request."""

    def test_fourth_request_exceeds_slots(self, sponsor_user):
        existing = [make_request(sponsor_user, f"org-{n}") for n in range(3)]

        with pytest.raises(SlotExceededException) as exc_info:
            slot_rules.validate_new_request(existing, "deal-1", TargetType.CDE, "org-new", 3, NOW)

        assert exc_info.value.status_code == 429
        assert exc_info.value.used == 3
        assert "Maximum CDE requests reached (3)" in exc_info.value.message

    def test_investor_slots_unaffected_by_cde_requests(self, sponsor_user):
        existing = [make_request(sponsor_user, f"org-{n}") for n in range(3)]

        usage = slot_rules.validate_new_request(
            existing, "deal-1", TargetType.INVESTOR, "org-investor", 3, NOW
        )

        assert usage.available == 3

    def test_cooldown_blocks_same_target(self, sponsor_user):
        declined = make_request(
            sponsor_user, "org-cde", status=MatchRequestStatus.DECLINED,
            cooldown_ends_at=NOW + timedelta(days=5)
        )

        with pytest.raises(CooldownException) as exc_info:
            slot_rules.validate_new_request([declined], "deal-1", TargetType.CDE, "org-cde", 3, NOW)

        assert exc_info.value.cooldown_ends_at == NOW + timedelta(days=5)
        assert exc_info.value.details()["cooldown_ends_at"] == (NOW + timedelta(days=5)).isoformat()

    def test_cooldown_applies_across_deals(self, sponsor_user):
        declined = make_request(
            sponsor_user, "org-cde", deal_id="deal-9", status=MatchRequestStatus.DECLINED,
            cooldown_ends_at=NOW + timedelta(days=1)
        )

        with pytest.raises(CooldownException):
            slot_rules.validate_new_request([declined], "deal-1", TargetType.CDE, "org-cde", 3, NOW)

    def test_finished_cooldown_allows_new_request(self, sponsor_user):
        declined = make_request(
            sponsor_user, "org-cde", status=MatchRequestStatus.DECLINED,
            cooldown_ends_at=NOW - timedelta(seconds=1)
        )

        usage = slot_rules.validate_new_request([declined], "deal-1", TargetType.CDE, "org-cde", 3, NOW)

        assert usage.used == 0

    def test_duplicate_active_request_conflicts(self, sponsor_user):
        existing = [make_request(sponsor_user, "org-cde")]

        with pytest.raises(ConflictException):
            slot_rules.validate_new_request(existing, "deal-1", TargetType.CDE, "org-cde", 3, NOW)

    def test_same_target_on_other_deal_is_not_duplicate(self, sponsor_user):
        existing = [make_request(sponsor_user, "org-cde", deal_id="deal-2")]

        usage = slot_rules.validate_new_request(existing, "deal-1", TargetType.CDE, "org-cde", 3, NOW)

        assert usage.used == 1


class TestTransitions:
    """Test pending request transitions."""

    def test_accept(self, sponsor_user, cde_user):
        request = make_request(sponsor_user)

        updated = slot_rules.respond(request, MatchRequestAction.ACCEPT, cde_user, NOW, 7, "Happy to look")

        assert updated.status == MatchRequestStatus.ACCEPTED
        assert updated.responded_at == NOW
        assert updated.response_message == "Happy to look"
        assert updated.cooldown_ends_at is None
        assert updated.updated_by == cde_user.user_id
        assert request.status == MatchRequestStatus.PENDING

    def test_decline_starts_cooldown(self, sponsor_user, cde_user):
        request = make_request(sponsor_user)

        updated = slot_rules.respond(request, MatchRequestAction.DECLINE, cde_user, NOW, 7)

        assert updated.status == MatchRequestStatus.DECLINED
        assert updated.cooldown_ends_at == NOW + timedelta(days=7)

    def test_withdraw_has_no_cooldown(self, sponsor_user):
        request = make_request(sponsor_user)

        updated = slot_rules.withdraw(request, sponsor_user, NOW)

        assert updated.status == MatchRequestStatus.WITHDRAWN
        assert updated.cooldown_ends_at is None
        assert not updated.holds_slot(NOW)

    @pytest.mark.parametrize("status", [
        MatchRequestStatus.ACCEPTED,
        MatchRequestStatus.DECLINED,
        MatchRequestStatus.WITHDRAWN,
        MatchRequestStatus.EXPIRED
    ])
    def test_terminal_requests_cannot_be_answered(self, sponsor_user, cde_user, status):
        request = make_request(sponsor_user, status=status)

        with pytest.raises(InvalidStateException) as exc_info:
            slot_rules.respond(request, MatchRequestAction.ACCEPT, cde_user, NOW, 7)

        assert exc_info.value.current_status == status.value
        assert f'status "{status.value}"' in exc_info.value.message

    def test_apply_expiry_lapses_pending_request(self, sponsor_user):
        request = make_request(sponsor_user, requested_at=NOW - timedelta(days=30))

        expired = slot_rules.apply_expiry(request, NOW)

        assert expired.status == MatchRequestStatus.EXPIRED
        assert request.status == MatchRequestStatus.PENDING

    def test_apply_expiry_keeps_accepted_request(self, sponsor_user):
        request = make_request(
            sponsor_user, status=MatchRequestStatus.ACCEPTED, requested_at=NOW - timedelta(days=60)
        )

        assert slot_rules.apply_expiry(request, NOW) is request


class TestFindAccepted:
    """Test lookup of an accepted request connecting a deal and a party."""

    def test_matches_by_target_org(self, sponsor_user):
        accepted = make_request(sponsor_user, "org-cde", status=MatchRequestStatus.ACCEPTED)

        found = slot_rules.find_accepted([accepted], "deal-1", TargetType.CDE, "cde-1", "org-cde")

        assert found is accepted

    def test_pending_request_does_not_match(self, sponsor_user):
        pending = make_request(sponsor_user, "org-cde")

        assert slot_rules.find_accepted([pending], "deal-1", TargetType.CDE, "cde-1", "org-cde") is None

    def test_action_messages(self):
        assert "proceed with the CDE" in slot_rules.action_message(
            MatchRequestAction.ACCEPT, TargetType.CDE, 7
        )
        assert "after 7 days" in slot_rules.action_message(
            MatchRequestAction.DECLINE, TargetType.INVESTOR, 7
        )
        assert "slot is now available" in slot_rules.action_message(
            MatchRequestAction.WITHDRAW, TargetType.CDE, 7
        )
