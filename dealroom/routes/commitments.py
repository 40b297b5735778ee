# SPDX-License-Identifier: Apache-2.0

"""
Investor commitment endpoints.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from pydantic import BaseModel, Field

from ..middleware.auth import require_actor, current_actor
from ..models.requests import CreateCommitmentRequest, CommitmentActionRequest

commitments_tag = Tag(name="Commitments", description="Investor commitments and acceptances")
commitments_bp = APIBlueprint(
    'commitments',
    __name__,
    url_prefix='/api/commitments',
    abp_tags=[commitments_tag]
)


class CommitmentPath(BaseModel):
    commitment_id: str = Field(..., description="Commitment ID")


@commitments_bp.post('')
@require_actor
def create_commitment():
    """Draft a commitment."""
    payload = CreateCommitmentRequest.model_validate(request.get_json(silent=True) or {})
    commitment = current_app.commitment_service.create(
        deal_id=payload.deal_id,
        investor_id=payload.investor_id,
        investment_amount=payload.investment_amount,
        user_context=current_actor(),
        sponsor_id=payload.sponsor_id,
        cde_id=payload.cde_id,
        loi_id=payload.loi_id,
        credit_type=payload.credit_type,
        pricing_cents_per_credit=payload.pricing_cents_per_credit,
        expires_at=payload.expires_at
    )
    return jsonify(commitment.to_response()), 201


@commitments_bp.get('/<commitment_id>')
@require_actor
def get_commitment(path: CommitmentPath):
    return jsonify(current_app.commitment_service.get(path.commitment_id, current_actor()).to_response()), 200


@commitments_bp.post('/<commitment_id>/actions')
@require_actor
def act_on_commitment(path: CommitmentPath):
    """Issue, send, accept, reject or withdraw a commitment."""
    payload = CommitmentActionRequest.model_validate(request.get_json(silent=True) or {})
    result = current_app.commitment_service.perform_action(
        path.commitment_id, payload.action, payload.model_dump(), current_actor()
    )
    return jsonify(result.to_response()), 200
