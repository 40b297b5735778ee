# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit service for workflow transitions with OpenTelemetry correlation.
"""

import hashlib
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from opentelemetry import trace

from ..models.base import generate_object_id, to_plain
from ..models.entities import AuditLog
from .mongodb import MongoDBService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def audit_token(actor_id: str, entity_type: str, entity_id: str, action: str,
                timestamp: datetime) -> str:
    """
    Opaque token identifying an audit entry for display and de-duplication.

    It is not a tamper-evidence mechanism.
    """
    material = f"{actor_id}|{entity_type}|{entity_id}|{action}|{timestamp.isoformat()}"
    return hashlib.sha256(material.encode('utf-8')).hexdigest()[:16]


def build_audit_entry(actor_id: str, entity_type: str, entity_id: str, action: str,
                      payload: Optional[Dict[str, Any]] = None,
                      timestamp: Optional[datetime] = None) -> AuditLog:
    timestamp = timestamp or datetime.utcnow()
    entry = AuditLog(
        id=generate_object_id(),
        timestamp=timestamp,
        actor_id=actor_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        payload=to_plain(payload or {}),
        token=audit_token(actor_id, entity_type, entity_id, action, timestamp)
    )

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        entry.trace_id = format(span_context.trace_id, "032x")
        entry.span_id = format(span_context.span_id, "016x")
    return entry


class AuditService:
    """Audit sink persisting transition records to MongoDB."""

    def __init__(self, mongo_service: MongoDBService):
        """Initialize audit service with MongoDB dependency."""
        self.mongo_service = mongo_service
        self.collection_name = "audit_logs"
        logger.info("Audit service initialized")

    def record(
        self,
        actor_id: str,
        entity_type: str,
        entity_id: str,
        action: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> AuditLog:
        """
        Record an audit trail entry for a workflow transition.

        Args:
            actor_id: ID of user performing the action
            entity_type: Type of record acted upon (match_request, loi, commitment)
            entity_id: ID of the specific record
            action: Action performed
            payload: Transition details

        Returns:
            AuditLog: The stored entry
        """
        with tracer.start_as_current_span("audit.record") as span:
            try:
                entry = build_audit_entry(actor_id, entity_type, entity_id, action, payload)

                span.set_attributes({
                    "audit.entity_type": entity_type,
                    "audit.action": action,
                    "audit.actor_id": actor_id,
                    "audit.entity_id": entity_id
                })

                document = entry.model_dump(by_alias=True)
                document["_id"] = document.pop("id")
                self.mongo_service.insert(self.collection_name, document)

                logger.info(
                    "Audit trail entry created",
                    extra={
                        "audit_id": entry.id,
                        "audit_token": entry.token,
                        "entity_type": entity_type,
                        "entity_id": entity_id,
                        "action": action,
                        "actor_id": actor_id,
                        "trace_id": entry.trace_id,
                        "audit_category": "workflow_transition"
                    }
                )
                return entry

            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                logger.error(
                    "Failed to create audit trail entry",
                    extra={
                        "entity_type": entity_type,
                        "entity_id": entity_id,
                        "action": action,
                        "actor_id": actor_id,
                        "error": str(e)
                    },
                    exc_info=True
                )
                raise

    def history(self, entity_type: str, entity_id: str) -> List[Dict[str, Any]]:
        """Audit entries for one record, oldest first."""
        documents = self.mongo_service.find(
            self.collection_name, {"entityType": entity_type, "entityId": entity_id}
        )
        return sorted(documents, key=lambda document: document["timestamp"])
