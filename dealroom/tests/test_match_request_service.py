# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the match request service over the in-memory backend.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from datetime import timedelta
from unittest.mock import Mock

from dealroom.domain.errors import (
    ConflictException, CooldownException, ForbiddenException, InvalidStateException,
    NotFoundException, SlotExceededException, ValidationException
)
from dealroom.models.enums import MatchRequestAction, MatchRequestStatus, TargetType

from .conftest import CDE_ORG, INVESTOR_ORG, OTHER_CDE_ORG


def send(services, user, target_org_id, target_type=TargetType.CDE, deal_id="deal-1", target_id=None):
    return services.match_requests.create(
        sponsor_id="sponsor-1",
        deal_id=deal_id,
        target_type=target_type,
        target_org_id=target_org_id,
        user_context=user,
        message="Please take a look",
        target_id=target_id
    )


class TestCreate:
    """Test sending match requests."""

    def test_create_pending_request(self, services, sponsor_user, clock):
        request = send(services, sponsor_user, CDE_ORG, target_id="cde-1")

        assert request.status == MatchRequestStatus.PENDING
        assert request.requested_at == clock.now
        assert services.match_requests.get(request.id).id == request.id
        assert services.publisher.events() == ["match_request_received"]
        assert services.audit.entries[-1].action == "create"

    def test_fourth_cde_request_exceeds_slots(self, services, sponsor_user):
        for n in range(3):
            send(services, sponsor_user, f"org-cde-{n}")

        with pytest.raises(SlotExceededException) as exc_info:
            send(services, sponsor_user, "org-cde-4")

        assert "Maximum CDE requests reached (3)" in exc_info.value.message
        assert len(services.match_requests.repository.list_by("sponsorId", "sponsor-1")) == 3

    def test_racing_creates_share_last_slot(self, services, sponsor_user):
        send(services, sponsor_user, "org-cde-0")
        send(services, sponsor_user, "org-cde-1")
        repository = services.match_requests.repository
        original_list = repository.list_for_sponsor
        barrier = threading.Barrier(2)

        def slow_list(sponsor_id, now, session=None):
            existing = original_list(sponsor_id, now, session=session)
            time.sleep(0.05)
            return existing

        repository.list_for_sponsor = slow_list

        def racer(target_org_id):
            barrier.wait(timeout=5)
            return send(services, sponsor_user, target_org_id)

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(racer, org) for org in ("org-cde-a", "org-cde-b")]
            outcomes = [future.exception(timeout=10) or future.result() for future in futures]

        failures = [o for o in outcomes if isinstance(o, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], SlotExceededException)
        assert len(repository.list_by("sponsorId", "sponsor-1")) == 3

    def test_investor_slots_independent(self, services, sponsor_user):
        for n in range(3):
            send(services, sponsor_user, f"org-cde-{n}")

        request = send(services, sponsor_user, INVESTOR_ORG, target_type=TargetType.INVESTOR)

        assert request.target_type == TargetType.INVESTOR

    def test_duplicate_active_request_conflicts(self, services, sponsor_user):
        send(services, sponsor_user, CDE_ORG)

        with pytest.raises(ConflictException):
            send(services, sponsor_user, CDE_ORG)

    def test_non_sponsor_forbidden(self, services, cde_user):
        with pytest.raises(ForbiddenException) as exc_info:
            send(services, cde_user, OTHER_CDE_ORG)

        assert "send match requests" in exc_info.value.message
        assert services.publisher.published == []

    def test_admin_may_send_for_sponsor(self, services, admin_user):
        request = send(services, admin_user, CDE_ORG)

        assert request.created_by == admin_user.user_id

    def test_unknown_deal(self, services, sponsor_user):
        with pytest.raises(NotFoundException):
            send(services, sponsor_user, CDE_ORG, deal_id="deal-missing")

    def test_other_sponsors_deal_forbidden(self, services, sponsor_user):
        with pytest.raises(ForbiddenException) as exc_info:
            send(services, sponsor_user, CDE_ORG, deal_id="deal-2")

        assert exc_info.value.message == "Deal does not belong to this sponsor"


class TestRespond:
    """Test target responses and the cooldown they start."""

    def test_target_accepts(self, services, sponsor_user, cde_user):
        request = send(services, sponsor_user, CDE_ORG, target_id="cde-1")

        result = services.match_requests.perform_action(
            request.id, MatchRequestAction.ACCEPT, {"message": "Interested"}, cde_user
        )

        assert result.match_request.status == MatchRequestStatus.ACCEPTED
        assert result.match_request.response_message == "Interested"
        assert result.action_performed == MatchRequestAction.ACCEPT
        assert "proceed with the CDE" in result.message
        assert services.publisher.events()[-1] == "match_request_accepted"

    def test_decline_frees_slot_but_blocks_target(self, services, sponsor_user, cde_user, clock):
        first = send(services, sponsor_user, CDE_ORG)
        send(services, sponsor_user, "org-cde-b")
        send(services, sponsor_user, "org-cde-c")

        declined = services.match_requests.respond(first.id, MatchRequestAction.DECLINE, cde_user)

        assert declined.cooldown_ends_at == clock.now + timedelta(days=7)

        with pytest.raises(CooldownException):
            send(services, sponsor_user, CDE_ORG)

        replacement = send(services, sponsor_user, "org-cde-d")
        assert replacement.status == MatchRequestStatus.PENDING

    def test_cooldown_lifts_after_window(self, services, sponsor_user, cde_user, clock):
        request = send(services, sponsor_user, CDE_ORG)
        services.match_requests.respond(request.id, MatchRequestAction.DECLINE, cde_user)

        clock.advance(days=7, seconds=1)

        assert send(services, sponsor_user, CDE_ORG).status == MatchRequestStatus.PENDING

    def test_other_organization_cannot_respond(self, services, sponsor_user, other_cde_user):
        request = send(services, sponsor_user, CDE_ORG)

        with pytest.raises(ForbiddenException):
            services.match_requests.respond(request.id, MatchRequestAction.ACCEPT, other_cde_user)

    def test_withdraw_is_not_a_response(self, services, sponsor_user, cde_user):
        request = send(services, sponsor_user, CDE_ORG)

        with pytest.raises(ValidationException):
            services.match_requests.respond(request.id, MatchRequestAction.WITHDRAW, cde_user)

    def test_answered_request_cannot_be_answered_again(self, services, sponsor_user, cde_user):
        request = send(services, sponsor_user, CDE_ORG)
        services.match_requests.respond(request.id, MatchRequestAction.ACCEPT, cde_user)

        with pytest.raises(InvalidStateException):
            services.match_requests.respond(request.id, MatchRequestAction.DECLINE, cde_user)


class TestReadAccess:
    """Only the sponsor and the addressed organization may read a request."""

    def test_sponsor_and_target_read(self, services, sponsor_user, cde_user):
        request = send(services, sponsor_user, CDE_ORG)

        assert services.match_requests.get(request.id, sponsor_user).id == request.id
        assert services.match_requests.get(request.id, cde_user).id == request.id

    def test_other_organization_refused(self, services, sponsor_user, other_cde_user):
        request = send(services, sponsor_user, CDE_ORG)

        with pytest.raises(ForbiddenException) as exc_info:
            services.match_requests.get(request.id, other_cde_user)

        assert "view this request" in exc_info.value.message


class TestWithdraw:
    """Test sponsor withdrawal."""

    def test_withdraw_frees_slot_without_cooldown(self, services, sponsor_user):
        requests = [send(services, sponsor_user, f"org-cde-{n}") for n in range(3)]

        result = services.match_requests.perform_action(
            requests[0].id, MatchRequestAction.WITHDRAW, None, sponsor_user
        )

        assert result.match_request.status == MatchRequestStatus.WITHDRAWN
        assert result.match_request.cooldown_ends_at is None
        assert services.match_requests.slots("sponsor-1").cde.available == 1
        assert send(services, sponsor_user, "org-cde-0").status == MatchRequestStatus.PENDING

    def test_target_cannot_withdraw(self, services, sponsor_user, cde_user):
        request = send(services, sponsor_user, CDE_ORG)

        with pytest.raises(ForbiddenException):
            services.match_requests.withdraw(request.id, cde_user)


class TestLazyExpiry:
    """Test that lapsed requests are expired on read."""

    def test_lapsed_request_is_persisted_as_expired(self, services, sponsor_user, clock):
        request = send(services, sponsor_user, CDE_ORG)

        clock.advance(days=30)
        loaded = services.match_requests.get(request.id)

        assert loaded.status == MatchRequestStatus.EXPIRED
        stored = services.match_requests.repository.get(request.id)
        assert stored.status == MatchRequestStatus.EXPIRED

    def test_lapsed_request_frees_slot(self, services, sponsor_user, clock):
        for n in range(3):
            send(services, sponsor_user, f"org-cde-{n}")

        clock.advance(days=31)

        assert services.match_requests.slots("sponsor-1").cde.used == 0
        assert send(services, sponsor_user, "org-cde-9").status == MatchRequestStatus.PENDING

    def test_expired_request_cannot_be_accepted(self, services, sponsor_user, cde_user, clock):
        request = send(services, sponsor_user, CDE_ORG)
        clock.advance(days=31)

        with pytest.raises(InvalidStateException) as exc_info:
            services.match_requests.respond(request.id, MatchRequestAction.ACCEPT, cde_user)

        assert exc_info.value.current_status == "expired"

    def test_expiry_race_rereads_record(self, services, sponsor_user, clock):
        request = send(services, sponsor_user, CDE_ORG)
        repository = services.match_requests.repository
        clock.advance(days=31)

        withdrawn = repository.get(request.id)
        withdrawn.status = MatchRequestStatus.WITHDRAWN
        original_transition = repository.transition

        def racing_transition(entity, expected_status, session=None):
            repository.transition = original_transition
            original_transition(withdrawn, MatchRequestStatus.PENDING)
            return original_transition(entity, expected_status)

        repository.transition = racing_transition

        loaded = services.match_requests.get(request.id)

        assert loaded.status == MatchRequestStatus.WITHDRAWN


class TestSlotsAndDelete:
    """Test slot overview and administrative deletion."""

    def test_slot_overview(self, services, sponsor_user):
        send(services, sponsor_user, CDE_ORG)
        send(services, sponsor_user, INVESTOR_ORG, target_type=TargetType.INVESTOR)

        overview = services.match_requests.slots("sponsor-1", sponsor_user)

        assert overview.cde.used == 1
        assert overview.cde.available == 2
        assert overview.investor.used == 1

    def test_slot_overview_forbidden_for_others(self, services, cde_user):
        with pytest.raises(ForbiddenException):
            services.match_requests.slots("sponsor-1", cde_user)

    def test_admin_delete(self, services, sponsor_user, admin_user):
        request = send(services, sponsor_user, CDE_ORG)

        services.match_requests.delete(request.id, admin_user)

        with pytest.raises(NotFoundException):
            services.match_requests.get(request.id)
        assert services.audit.entries[-1].action == "delete"

    def test_sponsor_cannot_delete(self, services, sponsor_user):
        request = send(services, sponsor_user, CDE_ORG)

        with pytest.raises(ForbiddenException):
            services.match_requests.delete(request.id, sponsor_user)

    def test_delete_unknown(self, services, admin_user):
        with pytest.raises(NotFoundException):
            services.match_requests.delete("missing", admin_user)


class TestSideEffectFailures:
    """Test that side effect failures never undo a transition."""

    def test_failing_publisher_keeps_request(self, services, sponsor_user):
        services.match_requests.side_effects.notifier.publisher = Mock(
            publish_event=Mock(side_effect=RuntimeError("broker down"))
        )

        request = send(services, sponsor_user, CDE_ORG)

        assert services.match_requests.get(request.id).status == MatchRequestStatus.PENDING
