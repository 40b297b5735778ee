# SPDX-License-Identifier: Apache-2.0

"""
Match request endpoints: send, view, answer or withdraw, slot usage, and
administrative deletion.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from pydantic import BaseModel, Field

from ..middleware.auth import require_actor, current_actor
from ..models.requests import CreateMatchRequestRequest, MatchRequestActionRequest

match_requests_tag = Tag(name="Match Requests", description="Sponsor requests to CDEs and investors")
match_requests_bp = APIBlueprint(
    'match_requests',
    __name__,
    url_prefix='/api/match-requests',
    abp_tags=[match_requests_tag]
)


class MatchRequestPath(BaseModel):
    request_id: str = Field(..., description="Match request ID")


class SponsorPath(BaseModel):
    sponsor_id: str = Field(..., description="Sponsor ID")


@match_requests_bp.post('')
@require_actor
def create_match_request():
    """Send a match request for a deal to a CDE or investor."""
    payload = CreateMatchRequestRequest.model_validate(request.get_json(silent=True) or {})
    match_request = current_app.match_request_service.create(
        sponsor_id=payload.sponsor_id,
        deal_id=payload.deal_id,
        target_type=payload.target_type,
        target_org_id=payload.target_org_id,
        user_context=current_actor(),
        message=payload.message,
        target_id=payload.target_id
    )
    return jsonify(match_request.to_response()), 201


@match_requests_bp.get('/slots/<sponsor_id>')
@require_actor
def get_slot_usage(path: SponsorPath):
    """Slot usage per target type for a sponsor."""
    overview = current_app.match_request_service.slots(path.sponsor_id, current_actor())
    return jsonify(overview.to_response()), 200


@match_requests_bp.get('/<request_id>')
@require_actor
def get_match_request(path: MatchRequestPath):
    match_request = current_app.match_request_service.get(path.request_id, current_actor())
    return jsonify(match_request.to_response()), 200


@match_requests_bp.patch('/<request_id>')
@require_actor
def act_on_match_request(path: MatchRequestPath):
    """Accept, decline or withdraw a match request."""
    payload = MatchRequestActionRequest.model_validate(request.get_json(silent=True) or {})
    result = current_app.match_request_service.perform_action(
        path.request_id, payload.action, payload.model_dump(), current_actor()
    )
    return jsonify(result.to_response()), 200


@match_requests_bp.delete('/<request_id>')
@require_actor
def delete_match_request(path: MatchRequestPath):
    current_app.match_request_service.delete(path.request_id, current_actor())
    return '', 204
