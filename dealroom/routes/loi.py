# SPDX-License-Identifier: Apache-2.0

"""
Letter of intent endpoints.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from pydantic import BaseModel, Field

from ..middleware.auth import require_actor, current_actor
from ..models.requests import CreateLOIRequest, LOIActionRequest

loi_tag = Tag(name="Letters of Intent", description="CDE allocation offers to sponsors")
loi_bp = APIBlueprint(
    'loi',
    __name__,
    url_prefix='/api/loi',
    abp_tags=[loi_tag]
)


class LOIPath(BaseModel):
    loi_id: str = Field(..., description="Letter of intent ID")


@loi_bp.post('')
@require_actor
def create_loi():
    """Draft a letter of intent."""
    payload = CreateLOIRequest.model_validate(request.get_json(silent=True) or {})
    loi = current_app.loi_service.create(
        deal_id=payload.deal_id,
        cde_id=payload.cde_id,
        allocation_amount=payload.allocation_amount,
        user_context=current_actor(),
        sponsor_id=payload.sponsor_id,
        terms=payload.terms,
        expires_at=payload.expires_at
    )
    return jsonify(loi.to_response()), 201


@loi_bp.get('/<loi_id>')
@require_actor
def get_loi(path: LOIPath):
    return jsonify(current_app.loi_service.get(path.loi_id, current_actor()).to_response()), 200


@loi_bp.post('/<loi_id>/actions')
@require_actor
def act_on_loi(path: LOIPath):
    """Issue, send, respond to, withdraw or re-issue a letter of intent."""
    payload = LOIActionRequest.model_validate(request.get_json(silent=True) or {})
    result = current_app.loi_service.perform_action(
        path.loi_id, payload.action, payload.model_dump(), current_actor()
    )
    return jsonify(result.to_response()), 200
