# SPDX-License-Identifier: Apache-2.0

"""
Fire-and-forget dispatch of audit records and notifications.

A transition that has been persisted is the caller's result; a failing audit
sink or message bus is logged here and never propagated. Notifications can
run on an executor so a slow broker never holds up the transition.
"""

import logging
from concurrent.futures import Executor
from typing import Any, Dict, Optional
from opentelemetry import context as otel_context
from opentelemetry import trace

from ..models.entities import UserContext

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class SideEffects:
    """
    Wraps the audit sink and notification emitter.

    With an executor, notifications are handed off and the caller returns
    without waiting on the message bus; the caller's trace context goes along.
    """

    def __init__(self, audit_sink, notifier, executor: Optional[Executor] = None):
        self.audit_sink = audit_sink
        self.notifier = notifier
        self.executor = executor

    def record(self, user_context: UserContext, entity_type: str, entity_id: str, action: str,
               payload: Optional[Dict[str, Any]] = None) -> None:
        try:
            self.audit_sink.record(user_context.user_id, entity_type, entity_id, action, payload or {})
        except Exception as e:
            trace.get_current_span().record_exception(e)
            logger.error(
                "Audit record failed, transition kept",
                extra={
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "action": action,
                    "error": str(e)
                },
                exc_info=True
            )

    def notify(self, event: str, record: Any, user_context: UserContext) -> None:
        """Call ``notifier.<event>(record, user_context)``, in the background when an executor is set."""
        if self.executor is None:
            self._notify(event, record, user_context)
            return
        try:
            self.executor.submit(self._notify, event, record, user_context, otel_context.get_current())
        except RuntimeError as e:
            # Executor already shut down
            logger.error(
                "Notification dropped, transition kept",
                extra={"event": event, "record_id": getattr(record, "id", None), "error": str(e)}
            )

    def _notify(self, event: str, record: Any, user_context: UserContext, parent=None) -> None:
        token = otel_context.attach(parent) if parent is not None else None
        try:
            getattr(self.notifier, event)(record, user_context)
        except Exception as e:
            trace.get_current_span().record_exception(e)
            logger.error(
                "Notification failed, transition kept",
                extra={"event": event, "record_id": getattr(record, "id", None), "error": str(e)},
                exc_info=True
            )
        finally:
            if token is not None:
                otel_context.detach(token)
