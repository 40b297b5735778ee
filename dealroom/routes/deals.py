# SPDX-License-Identifier: Apache-2.0

"""
Deal read endpoints.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from pydantic import BaseModel, Field

from ..middleware.auth import require_actor, current_actor

deals_tag = Tag(name="Deals", description="Deal funding views")
deals_bp = APIBlueprint(
    'deals',
    __name__,
    url_prefix='/api/deals',
    abp_tags=[deals_tag]
)


class DealPath(BaseModel):
    deal_id: str = Field(..., description="Deal ID")


@deals_bp.get('/<deal_id>/capital-stack')
@require_actor
def get_capital_stack(path: DealPath):
    """Committed, pending and expired funding sources for a deal."""
    capital_stack = current_app.capital_stack_service.get_capital_stack(path.deal_id, current_actor())
    return jsonify(capital_stack.to_response()), 200
