# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB-backed repositories for negotiation records.

Every status change is written with a compare-and-set on the persisted status;
a missed precondition raises ConflictException rather than overwriting a
concurrent change.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Generic, Iterator, List, Optional, Type, TypeVar

from pymongo.client_session import ClientSession

from ..domain.errors import ConflictException
from ..models.base import BaseEntity
from ..models.entities import MatchRequest, LetterOfIntent, Commitment
from ..models.enums import MatchRequestStatus, TargetType
from .mongodb import MongoDBService

logger = logging.getLogger(__name__)

EntityT = TypeVar('EntityT', bound=BaseEntity)


class MongoRepository(Generic[EntityT]):
    """Typed access to one collection of workflow records."""

    collection_name: str = ""
    model: Type[EntityT]

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service

    def get(self, entity_id: str, session: Optional[ClientSession] = None) -> Optional[EntityT]:
        document = self.mongo_service.find_one(self.collection_name, {"_id": entity_id}, session)
        return self.model.from_document(document) if document else None

    def insert(self, entity: EntityT, session: Optional[ClientSession] = None) -> EntityT:
        self.mongo_service.insert(self.collection_name, entity.to_document(), session)
        return entity

    def transition(self, entity: EntityT, expected_status,
                   session: Optional[ClientSession] = None) -> EntityT:
        """Persist ``entity`` only if the stored status still equals ``expected_status``."""
        replaced = self.mongo_service.replace_if_status(
            self.collection_name, entity.to_document(), expected_status.value, session
        )
        if not replaced:
            raise ConflictException(
                f"{self.model.__name__} {entity.id} was modified concurrently "
                f"(expected status: {expected_status.value})"
            )
        return entity

    def list_by(self, field: str, value: str) -> List[EntityT]:
        documents = self.mongo_service.find(self.collection_name, {field: value})
        return [self.model.from_document(document) for document in documents]


class MatchRequestRepository(MongoRepository[MatchRequest]):
    collection_name = "match_requests"
    guard_collection = "match_request_slots"
    model = MatchRequest

    def list_for_sponsor(self, sponsor_id: str, now: datetime,
                         session: Optional[ClientSession] = None) -> List[MatchRequest]:
        """Requests that can still affect capacity, duplicates or cooldowns."""
        query = {
            "sponsorId": sponsor_id,
            "$or": [
                {"status": {"$in": [MatchRequestStatus.PENDING.value, MatchRequestStatus.ACCEPTED.value]}},
                {"status": MatchRequestStatus.DECLINED.value, "cooldownEndsAt": {"$gt": now}}
            ]
        }
        documents = self.mongo_service.find(self.collection_name, query, session)
        return [MatchRequest.from_document(document) for document in documents]

    @contextmanager
    def slot_guard(self, sponsor_id: str, target_type: TargetType) -> Iterator[ClientSession]:
        """
        Serialize capacity checks for one sponsor and target type.

        The guard document is written first inside the transaction, so two
        creators for the same key cannot both commit.
        """
        guard_id = f"{sponsor_id}:{target_type.value}"
        with self.mongo_service.transaction() as session:
            self.mongo_service.bump_guard(self.guard_collection, guard_id, session)
            yield session

    def delete(self, request_id: str) -> bool:
        return self.mongo_service.delete(self.collection_name, request_id)


class LOIRepository(MongoRepository[LetterOfIntent]):
    collection_name = "letters_of_intent"
    model = LetterOfIntent

    def list_for_deal(self, deal_id: str) -> List[LetterOfIntent]:
        return self.list_by("dealId", deal_id)


class CommitmentRepository(MongoRepository[Commitment]):
    collection_name = "commitments"
    model = Commitment

    def list_for_deal(self, deal_id: str) -> List[Commitment]:
        return self.list_by("dealId", deal_id)
