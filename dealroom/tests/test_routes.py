# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HTTP tests for the negotiation endpoints using the Flask test client.
"""

import pytest

from dealroom.app import create_app

from .conftest import CDE_ORG, INVESTOR_ORG, SPONSOR_ORG


def actor(user_id, org_id, org_type):
    return {"X-User-Id": user_id, "X-Org-Id": org_id, "X-Org-Type": org_type}


SPONSOR = actor("user-sponsor", SPONSOR_ORG, "sponsor")
CDE = actor("user-cde", CDE_ORG, "cde")
INVESTOR = actor("user-investor", INVESTOR_ORG, "investor")
ADMIN = actor("user-admin", "org-platform", "admin")


@pytest.fixture
def app(services):
    app = create_app(services)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def send_match_request(client, target_org_id=CDE_ORG, target_type="cde"):
    return client.post("/api/match-requests", json={
        "sponsor_id": "sponsor-1",
        "deal_id": "deal-1",
        "target_type": target_type,
        "target_org_id": target_org_id
    }, headers=SPONSOR)


class TestActorHeaders:
    """Test actor header handling."""

    def test_missing_headers(self, client):
        response = client.get("/api/match-requests/slots/sponsor-1")

        assert response.status_code == 401
        assert response.get_json()["title"] == "Authentication Required"

    def test_unknown_org_type(self, client):
        response = client.get("/api/match-requests/slots/sponsor-1",
                              headers=actor("user-1", "org-1", "bank"))

        assert response.status_code == 400


class TestMatchRequestEndpoints:
    """Test match request endpoints."""

    def test_create_and_get(self, client):
        response = send_match_request(client)

        assert response.status_code == 201
        body = response.get_json()
        assert body["status"] == "pending"
        assert body["target_type"] == "cde"

        fetched = client.get(f"/api/match-requests/{body['id']}", headers=SPONSOR)
        assert fetched.status_code == 200
        assert fetched.get_json()["id"] == body["id"]

    def test_slot_exceeded_is_429(self, client):
        for n in range(3):
            assert send_match_request(client, f"org-cde-{n}").status_code == 201

        response = send_match_request(client, "org-cde-9")

        assert response.status_code == 429
        body = response.get_json()
        assert body["detail"] == "Maximum CDE requests reached (3)"
        assert body["slots"] == {"used": 3, "max": 3, "available": 0}

    def test_decline_then_cooldown_is_429(self, client):
        request_id = send_match_request(client).get_json()["id"]

        declined = client.patch(f"/api/match-requests/{request_id}",
                                json={"action": "decline", "message": "Not a fit"}, headers=CDE)
        assert declined.status_code == 200
        assert declined.get_json()["match_request"]["status"] == "declined"

        retry = send_match_request(client)
        assert retry.status_code == 429
        assert "cooldown_ends_at" in retry.get_json()

    def test_duplicate_is_409(self, client):
        send_match_request(client)

        assert send_match_request(client).status_code == 409

    def test_invalid_payload_is_400(self, client):
        response = client.post("/api/match-requests", json={"deal_id": "deal-1"}, headers=SPONSOR)

        assert response.status_code == 400
        assert response.get_json()["validation_errors"]

    def test_wrong_party_is_403(self, client):
        request_id = send_match_request(client).get_json()["id"]

        response = client.patch(f"/api/match-requests/{request_id}",
                                json={"action": "accept"}, headers=INVESTOR)

        assert response.status_code == 403

    def test_unknown_request_is_404(self, client):
        assert client.get("/api/match-requests/missing", headers=SPONSOR).status_code == 404

    def test_read_limited_to_sponsor_and_target(self, client):
        request_id = send_match_request(client).get_json()["id"]

        assert client.get(f"/api/match-requests/{request_id}", headers=CDE).status_code == 200
        assert client.get(f"/api/match-requests/{request_id}", headers=ADMIN).status_code == 200

        response = client.get(f"/api/match-requests/{request_id}", headers=INVESTOR)
        assert response.status_code == 403

    def test_slot_overview(self, client):
        send_match_request(client)

        response = client.get("/api/match-requests/slots/sponsor-1", headers=SPONSOR)

        assert response.status_code == 200
        assert response.get_json()["cde"] == {"used": 1, "max": 3, "available": 2}

    def test_admin_delete(self, client):
        request_id = send_match_request(client).get_json()["id"]

        assert client.delete(f"/api/match-requests/{request_id}", headers=SPONSOR).status_code == 403
        assert client.delete(f"/api/match-requests/{request_id}", headers=ADMIN).status_code == 204
        assert client.get(f"/api/match-requests/{request_id}", headers=SPONSOR).status_code == 404


class TestLOIEndpoints:
    """Test letter of intent endpoints."""

    def test_full_negotiation(self, client):
        created = client.post("/api/loi", json={
            "deal_id": "deal-1", "cde_id": "cde-1", "allocation_amount": 3000000, "terms": {"rate": 1.0}
        }, headers=CDE)
        assert created.status_code == 201
        loi_id = created.get_json()["id"]

        for action in ("issue", "send"):
            response = client.post(f"/api/loi/{loi_id}/actions", json={"action": action}, headers=CDE)
            assert response.status_code == 200

        countered = client.post(f"/api/loi/{loi_id}/actions", json={
            "action": "respond", "response": "counter", "counter_terms": {"rate": 0.5}
        }, headers=SPONSOR)
        assert countered.get_json()["loi"]["status"] == "sponsor_countered"

        reissued = client.post(f"/api/loi/{loi_id}/actions", json={"action": "reissue"}, headers=CDE)
        assert reissued.get_json()["loi"]["terms"] == {"rate": 0.5}

        client.post(f"/api/loi/{loi_id}/actions", json={"action": "send"}, headers=CDE)
        accepted = client.post(f"/api/loi/{loi_id}/actions",
                               json={"action": "respond", "response": "accept"}, headers=SPONSOR)
        assert accepted.status_code == 200
        assert accepted.get_json()["loi"]["status"] == "sponsor_accepted"
        assert accepted.get_json()["action_performed"] == "respond"

    def test_utc_suffixed_expiry(self, client):
        created = client.post("/api/loi", json={
            "deal_id": "deal-1", "cde_id": "cde-1", "allocation_amount": 1000000,
            "expires_at": "2027-01-01T00:00:00Z"
        }, headers=CDE)
        assert created.status_code == 201
        loi_id = created.get_json()["id"]

        for action in ("issue", "send"):
            response = client.post(f"/api/loi/{loi_id}/actions", json={"action": action}, headers=CDE)
            assert response.status_code == 200

        fetched = client.get(f"/api/loi/{loi_id}", headers=SPONSOR)
        assert fetched.get_json()["expires_at"] == "2027-01-01T00:00:00"
        assert client.get("/api/deals/deal-1/capital-stack", headers=SPONSOR).status_code == 200

    def test_invalid_transition_is_409(self, client):
        loi_id = client.post("/api/loi", json={
            "deal_id": "deal-1", "cde_id": "cde-1", "allocation_amount": 1000000
        }, headers=CDE).get_json()["id"]

        response = client.post(f"/api/loi/{loi_id}/actions", json={"action": "send"}, headers=CDE)

        assert response.status_code == 409
        assert response.get_json()["current_status"] == "draft"

    def test_counter_without_terms_is_400(self, client):
        loi_id = client.post("/api/loi", json={
            "deal_id": "deal-1", "cde_id": "cde-1", "allocation_amount": 1000000
        }, headers=CDE).get_json()["id"]
        client.post(f"/api/loi/{loi_id}/actions", json={"action": "issue"}, headers=CDE)
        client.post(f"/api/loi/{loi_id}/actions", json={"action": "send"}, headers=CDE)

        response = client.post(f"/api/loi/{loi_id}/actions",
                               json={"action": "respond", "response": "counter"}, headers=SPONSOR)

        assert response.status_code == 400


class TestCommitmentEndpoints:
    """Test commitment endpoints and the capital stack."""

    def create_sent_commitment(self, client, **fields):
        payload = {"deal_id": "deal-1", "investor_id": "investor-1", "investment_amount": 500000}
        payload.update(fields)
        commitment_id = client.post("/api/commitments", json=payload, headers=INVESTOR).get_json()["id"]
        for action in ("issue", "send"):
            client.post(f"/api/commitments/{commitment_id}/actions", json={"action": action}, headers=INVESTOR)
        return commitment_id

    def test_closing_room_triggered_without_cde(self, client):
        commitment_id = self.create_sent_commitment(client)

        response = client.post(f"/api/commitments/{commitment_id}/actions",
                               json={"action": "sponsor_accept"}, headers=SPONSOR)

        body = response.get_json()
        assert body["commitment"]["status"] == "all_accepted"
        assert body["closing_room_triggered"] is True

    def test_cde_accept_not_required_is_400(self, client):
        commitment_id = self.create_sent_commitment(client)
        client.post(f"/api/commitments/{commitment_id}/actions",
                    json={"action": "sponsor_accept"}, headers=SPONSOR)

        response = client.post(f"/api/commitments/{commitment_id}/actions",
                               json={"action": "cde_accept"}, headers=SPONSOR)

        assert response.status_code == 400
        assert response.get_json()["title"] == "Not Required"

    def test_capital_stack(self, client):
        commitment_id = self.create_sent_commitment(client, cde_id="cde-1")
        client.post(f"/api/commitments/{commitment_id}/actions",
                    json={"action": "sponsor_accept"}, headers=SPONSOR)

        response = client.get("/api/deals/deal-1/capital-stack", headers=SPONSOR)

        assert response.status_code == 200
        body = response.get_json()
        assert body["allocation_needed"] == 5000000
        assert body["summary"]["total_pending"] == 500000
        assert body["sources"][0]["status_label"] == "Awaiting CDE Approval"
        assert body["sources"][0]["source_name"] == "First Bank"

    def test_unknown_deal_capital_stack_is_404(self, client):
        assert client.get("/api/deals/missing/capital-stack", headers=SPONSOR).status_code == 404

    def test_reads_refused_to_outsiders(self, client):
        outsider = actor("user-other", "org-sponsor-2", "sponsor")
        commitment_id = self.create_sent_commitment(client)
        loi_id = client.post("/api/loi", json={
            "deal_id": "deal-1", "cde_id": "cde-1", "allocation_amount": 1000000
        }, headers=CDE).get_json()["id"]

        assert client.get(f"/api/commitments/{commitment_id}", headers=outsider).status_code == 403
        assert client.get(f"/api/loi/{loi_id}", headers=outsider).status_code == 403
        assert client.get("/api/deals/deal-1/capital-stack", headers=outsider).status_code == 403

        assert client.get(f"/api/commitments/{commitment_id}", headers=SPONSOR).status_code == 200
        assert client.get(f"/api/loi/{loi_id}", headers=SPONSOR).status_code == 200
        assert client.get("/api/deals/deal-1/capital-stack", headers=INVESTOR).status_code == 200
        assert client.get("/api/deals/deal-1/capital-stack", headers=CDE).status_code == 200


class TestHealth:
    """Test the health endpoint."""

    def test_memory_backend_is_healthy(self, client):
        response = client.get("/api/healthz")

        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"

    def test_failing_dependency(self, app, client, services):
        services.health_checks["mongodb"] = lambda: False

        response = client.get("/api/healthz")

        assert response.status_code == 503
        assert response.get_json()["dependencies"]["mongodb"] == "unhealthy"
