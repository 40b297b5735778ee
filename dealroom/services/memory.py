# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
In-process storage backend for local development and tests.

Mirrors the MongoDB repositories: records round-trip through their stored
document form, status changes are compare-and-set, and slot checks run under
a lock held across count and insert.
"""

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Generic, Iterable, Iterator, List, Optional, Type, TypeVar

from ..domain.authorization import PartyKey
from ..domain.capital_stack import PartyProfile
from ..domain.errors import ConflictException
from ..models.base import BaseEntity
from ..models.entities import AuditLog, Commitment, DealSummary, LetterOfIntent, MatchRequest
from ..models.enums import EntityKind, TargetType
from .amqp import PublishResult
from .audit import build_audit_entry

logger = logging.getLogger(__name__)

EntityT = TypeVar('EntityT', bound=BaseEntity)


class InMemoryRepository(Generic[EntityT]):
    model: Type[EntityT]

    def __init__(self, lock: Optional[threading.RLock] = None):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._lock = lock or threading.RLock()

    def get(self, entity_id: str, session=None) -> Optional[EntityT]:
        with self._lock:
            document = self._documents.get(entity_id)
            return self.model.from_document(copy.deepcopy(document)) if document else None

    def insert(self, entity: EntityT, session=None) -> EntityT:
        with self._lock:
            if entity.id in self._documents:
                raise ConflictException("Document with this identifier already exists")
            self._documents[entity.id] = entity.to_document()
        return entity

    def transition(self, entity: EntityT, expected_status, session=None) -> EntityT:
        with self._lock:
            current = self._documents.get(entity.id)
            if current is None or current.get("status") != expected_status.value:
                raise ConflictException(
                    f"{self.model.__name__} {entity.id} was modified concurrently "
                    f"(expected status: {expected_status.value})"
                )
            self._documents[entity.id] = entity.to_document()
        return entity

    def list_by(self, field: str, value: str) -> List[EntityT]:
        with self._lock:
            documents = [copy.deepcopy(d) for d in self._documents.values() if d.get(field) == value]
        return [self.model.from_document(document) for document in documents]


class InMemoryMatchRequestRepository(InMemoryRepository[MatchRequest]):
    model = MatchRequest

    def list_for_sponsor(self, sponsor_id: str, now: datetime, session=None) -> List[MatchRequest]:
        return self.list_by("sponsorId", sponsor_id)

    @contextmanager
    def slot_guard(self, sponsor_id: str, target_type: TargetType) -> Iterator[None]:
        with self._lock:
            yield None

    def delete(self, request_id: str) -> bool:
        with self._lock:
            return self._documents.pop(request_id, None) is not None


class InMemoryLOIRepository(InMemoryRepository[LetterOfIntent]):
    model = LetterOfIntent

    def list_for_deal(self, deal_id: str) -> List[LetterOfIntent]:
        return self.list_by("dealId", deal_id)


class InMemoryCommitmentRepository(InMemoryRepository[Commitment]):
    model = Commitment

    def list_for_deal(self, deal_id: str) -> List[Commitment]:
        return self.list_by("dealId", deal_id)


class InMemoryPartyDirectory:
    """Party ownership and display details registered in process."""

    def __init__(self):
        self._profiles: Dict[PartyKey, PartyProfile] = {}

    def register(self, kind: EntityKind, entity_id: str, organization_id: str,
                 name: Optional[str] = None, contact_name: Optional[str] = None,
                 contact_email: Optional[str] = None) -> PartyProfile:
        profile = PartyProfile(
            kind=kind,
            entity_id=entity_id,
            organization_id=organization_id,
            name=name,
            contact_name=contact_name,
            contact_email=contact_email
        )
        self._profiles[(kind, entity_id)] = profile
        return profile

    def resolve_owning_organization(self, kind: EntityKind, entity_id: str) -> Optional[str]:
        profile = self._profiles.get((kind, entity_id))
        return profile.organization_id if profile else None

    def resolve_many(self, refs: Iterable[PartyKey]) -> Dict[PartyKey, Optional[str]]:
        return {ref: self.resolve_owning_organization(*ref) for ref in refs}

    def profiles(self, refs: Iterable[PartyKey]) -> Dict[PartyKey, PartyProfile]:
        return {ref: self._profiles[ref] for ref in refs if ref in self._profiles}


class InMemoryDealRegistry:

    def __init__(self):
        self._deals: Dict[str, DealSummary] = {}

    def add(self, deal: DealSummary) -> DealSummary:
        self._deals[deal.id] = deal
        return deal

    def get_deal(self, deal_id: str) -> Optional[DealSummary]:
        return self._deals.get(deal_id)


class InMemoryAuditSink:
    """Keeps audit entries in a list."""

    def __init__(self):
        self.entries: List[AuditLog] = []

    def record(self, actor_id: str, entity_type: str, entity_id: str, action: str,
               payload: Optional[Dict[str, Any]] = None) -> AuditLog:
        entry = build_audit_entry(actor_id, entity_type, entity_id, action, payload)
        self.entries.append(entry)
        return entry

    def history(self, entity_type: str, entity_id: str) -> List[AuditLog]:
        return [
            entry for entry in self.entries
            if entry.entity_type == entity_type and entry.entity_id == entity_id
        ]


class InMemoryPublisher:
    """Collects published events instead of sending them to a broker."""

    def __init__(self, exchange: str = "dealroom.events"):
        self.exchange = exchange
        self.published: List[Dict[str, Any]] = []

    def publish_event(self, routing_key: str, message: Dict[str, Any],
                      correlation_id: Optional[str] = None) -> PublishResult:
        correlation_id = correlation_id or str(uuid.uuid4())
        self.published.append({"routing_key": routing_key, "message": message})
        logger.debug(f"Captured event {routing_key}")
        return PublishResult(
            success=True,
            correlation_id=correlation_id,
            exchange=self.exchange,
            routing_key=routing_key
        )

    def events(self) -> List[str]:
        return [entry["message"]["event"] for entry in self.published]
