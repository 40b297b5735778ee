# SPDX-License-Identifier: Apache-2.0

"""
Actor context middleware.

Authentication happens at the gateway; requests reach this service carrying
the authenticated user and organization in headers. This module turns those
headers into a UserContext for the workflow services.
"""

from functools import wraps
from flask import request, jsonify, g
from typing import Callable, Optional
from opentelemetry import trace
from pydantic import ValidationError
import logging

from ..models.entities import UserContext
from .error_handler import problem

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

USER_ID_HEADER = 'X-User-Id'
ORG_ID_HEADER = 'X-Org-Id'
ORG_TYPE_HEADER = 'X-Org-Type'


def build_user_context() -> Optional[UserContext]:
    """
    Build the actor from gateway headers.

    Returns:
        UserContext, or None if the identifying headers are missing

    Raises:
        ValidationError: Organization type is not a known party type
    """
    user_id = request.headers.get(USER_ID_HEADER)
    org_id = request.headers.get(ORG_ID_HEADER)
    org_type = request.headers.get(ORG_TYPE_HEADER)
    if not (user_id and org_id and org_type):
        return None

    return UserContext(
        user_id=user_id,
        org_id=org_id,
        org_type=org_type.lower(),
        email=request.headers.get('X-User-Email'),
        name=request.headers.get('X-User-Name'),
        ip_address=request.remote_addr,
        user_agent=request.headers.get('User-Agent', '')
    )


def require_actor(f: Callable) -> Callable:
    """Decorator that rejects requests without an actor and stores it in ``g.user_context``."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        with tracer.start_as_current_span("auth.middleware.actor") as span:
            try:
                user_context = build_user_context()
            except ValidationError:
                span.set_attribute("auth.result", "invalid_org_type")
                logger.warning(
                    "Actor rejected: unknown organization type",
                    extra={"org_type": request.headers.get(ORG_TYPE_HEADER)}
                )
                return jsonify(problem(
                    "validation-error", 400,
                    "Organization type must be one of: sponsor, cde, investor, admin"
                )), 400

            if user_context is None:
                span.set_attribute("auth.result", "missing_actor")
                logger.warning("Actor rejected: missing identity headers", extra={"path": request.path})
                return jsonify(problem(
                    "authentication-required", 401, "Missing actor identity headers"
                )), 401

            g.user_context = user_context
            span.set_attributes({
                "auth.result": "success",
                "user.id": user_context.user_id,
                "organization.id": user_context.org_id,
                "organization.type": user_context.org_type.value
            })

        return f(*args, **kwargs)
    return decorated_function


def current_actor() -> UserContext:
    return g.user_context
