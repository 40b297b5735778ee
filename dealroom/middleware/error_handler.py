# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware.

Maps workflow exceptions and payload validation failures to JSON problem
responses of the form ``{type, title, status, detail, instance, ...}``.
"""

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from pydantic import ValidationError
from typing import Any, Dict, Optional
from opentelemetry import trace
import logging

from ..domain.errors import WorkflowException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

TITLES = {
    "validation-error": "Validation Error",
    "authentication-required": "Authentication Required",
    "insufficient-permissions": "Insufficient Permissions",
    "resource-not-found": "Resource Not Found",
    "invalid-state": "Invalid State",
    "invalid-transition": "Invalid Transition",
    "resource-conflict": "Resource Conflict",
    "slot-exceeded": "Slot Limit Exceeded",
    "cooldown-active": "Cooldown Active",
    "not-required": "Not Required",
    "internal-server-error": "Internal Server Error"
}


def problem(error_type: str, status: int, detail: str,
            extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body = {
        "type": f"https://errors.dealroom.local/{error_type}",
        "title": TITLES.get(error_type, error_type.replace("-", " ").title()),
        "status": status,
        "detail": detail,
        "instance": request.path
    }
    body.update(extra or {})
    return body


def register_error_handlers(app: Flask):
    """Register handlers for workflow, validation, HTTP and unexpected errors."""

    @app.errorhandler(WorkflowException)
    def handle_workflow_exception(error: WorkflowException):
        with tracer.start_as_current_span("error_handler.workflow_exception") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            logger.warning(
                f"Workflow exception: {error.error_type}",
                extra={
                    "error_type": error.error_type,
                    "status_code": error.status_code,
                    "error_message": error.message,
                    "path": request.path,
                    "method": request.method
                }
            )

            return jsonify(problem(error.error_type, error.status_code, error.message, error.details())), \
                error.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        errors = [
            f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
            for item in error.errors()
        ]
        logger.warning(
            "Payload validation failed",
            extra={"path": request.path, "validation_errors": errors}
        )
        return jsonify(problem(
            "validation-error", 400, "Request payload is invalid", {"validation_errors": errors}
        )), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        error_type = {
            400: "validation-error",
            401: "authentication-required",
            403: "insufficient-permissions",
            404: "resource-not-found",
            409: "resource-conflict"
        }.get(error.code, "http-error")
        return jsonify(problem(error_type, error.code, error.description or error.name)), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "error_class": error.__class__.__name__,
                    "error_message": str(error),
                    "path": request.path,
                    "method": request.method
                },
                exc_info=True
            )

            # Don't expose internal error details in production
            detail = "An unexpected error occurred"
            if app.config.get('ENV') != 'production':
                detail = f"{error.__class__.__name__}: {str(error)}"

            return jsonify(problem("internal-server-error", 500, detail)), 500
