# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Party directory: organization ownership and display details of sponsors,
CDEs and investors.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple
from opentelemetry import trace

from ..domain.authorization import PartyKey
from ..domain.capital_stack import PartyProfile
from ..models.enums import EntityKind
from .mongodb import MongoDBService
from .redis import RedisService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


PARTY_COLLECTIONS = {
    EntityKind.SPONSOR: "sponsors",
    EntityKind.CDE: "cdes",
    EntityKind.INVESTOR: "investors"
}


def _group_by_kind(refs: Iterable[PartyKey]) -> Dict[EntityKind, List[str]]:
    grouped: Dict[EntityKind, List[str]] = defaultdict(list)
    for kind, entity_id in refs:
        if entity_id and entity_id not in grouped[kind]:
            grouped[kind].append(entity_id)
    return grouped


class PartyDirectory:
    """MongoDB-backed party lookups, one query per party kind."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service

    def _fetch(self, refs: Iterable[PartyKey]) -> Dict[PartyKey, Dict]:
        documents = {}
        for kind, ids in _group_by_kind(refs).items():
            for document in self.mongo_service.find(PARTY_COLLECTIONS[kind], {"_id": {"$in": ids}}):
                documents[(kind, str(document["_id"]))] = document
        return documents

    def resolve_owning_organization(self, kind: EntityKind, entity_id: str) -> Optional[str]:
        return self.resolve_many([(kind, entity_id)]).get((kind, entity_id))

    def resolve_many(self, refs: Iterable[PartyKey]) -> Dict[PartyKey, Optional[str]]:
        refs = list(refs)
        with tracer.start_as_current_span("parties.resolve_many") as span:
            span.set_attribute("parties.count", len(refs))
            documents = self._fetch(refs)
            return {ref: documents.get(ref, {}).get("organizationId") for ref in refs}

    def profiles(self, refs: Iterable[PartyKey]) -> Dict[PartyKey, PartyProfile]:
        """Display details for the given parties; unknown parties are left out."""
        profiles = {}
        for (kind, entity_id), document in self._fetch(refs).items():
            profiles[(kind, entity_id)] = PartyProfile(
                kind=kind,
                entity_id=entity_id,
                organization_id=document.get("organizationId"),
                name=document.get("organizationName"),
                contact_name=document.get("primaryContactName"),
                contact_email=document.get("primaryContactEmail")
            )
        return profiles


class CachedOrgOwnership:
    """
    Ownership resolver that batches lookups and caches them in Redis.

    Lookups are memoized in process and, when available, in Redis; both
    expire after ``ttl`` seconds. Only positive results are cached, so an
    unknown party is looked up again on the next call.
    """

    def __init__(self, directory, redis_service: Optional[RedisService] = None, ttl: int = 300):
        self.directory = directory
        self.redis_service = redis_service
        self.ttl = ttl
        self._local: Dict[PartyKey, Tuple[str, float]] = {}

    def _from_local(self, ref: PartyKey) -> Optional[str]:
        entry = self._local.get(ref)
        if entry is None:
            return None
        org_id, expires = entry
        if expires <= time.monotonic():
            del self._local[ref]
            return None
        return org_id

    def resolve_owning_organization(self, kind: EntityKind, entity_id: str) -> Optional[str]:
        return self.resolve_many([(kind, entity_id)]).get((kind, entity_id))

    def resolve_many(self, refs: Iterable[PartyKey]) -> Dict[PartyKey, Optional[str]]:
        refs = list(dict.fromkeys(ref for ref in refs if ref[1]))
        if not refs:
            return {}

        result = {ref: self._from_local(ref) for ref in refs}
        keys = {ref: RedisService.ownership_key(ref[0].value, ref[1]) for ref in refs}

        unresolved = [ref for ref in refs if result[ref] is None]
        if unresolved and self.redis_service is not None and self.redis_service.is_available():
            cached = self.redis_service.get_many([keys[ref] for ref in unresolved])
            for ref in unresolved:
                result[ref] = cached.get(keys[ref])

        missing = [ref for ref in refs if result[ref] is None]
        if missing:
            resolved = self.directory.resolve_many(missing)
            result.update(resolved)
            if self.redis_service is not None:
                self.redis_service.cache_owners(
                    {keys[ref]: org_id for ref, org_id in resolved.items() if org_id},
                    self.ttl
                )

        expires = time.monotonic() + self.ttl
        for ref, org_id in result.items():
            if org_id:
                self._local[ref] = (org_id, expires)

        logger.debug(
            "Resolved party ownership",
            extra={"requested": len(refs), "cache_hits": len(refs) - len(missing)}
        )
        return result

    def profiles(self, refs: Iterable[PartyKey]) -> Dict[PartyKey, PartyProfile]:
        return self.directory.profiles(refs)
