# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with connection pooling, conditional writes and transactions.
"""

import os
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional
from pymongo import MongoClient, ASCENDING
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError,
    PyMongoError
)

from ..domain.errors import ConflictException

logger = logging.getLogger(__name__)


class MongoDBService:
    """MongoDB service with connection pooling and compare-and-set updates."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/dealroom_dev?replicaSet=rs0'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'dealroom_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True,
                    tz_aware=False
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'database': self.database_name
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def ensure_indexes(self) -> None:
        """Create the indexes the workflow queries rely on."""
        self.get_collection('match_requests').create_index(
            [('sponsorId', ASCENDING), ('targetType', ASCENDING), ('status', ASCENDING)]
        )
        self.get_collection('match_requests').create_index(
            [('sponsorId', ASCENDING), ('targetOrgId', ASCENDING), ('cooldownEndsAt', ASCENDING)]
        )
        self.get_collection('letters_of_intent').create_index([('dealId', ASCENDING)])
        self.get_collection('commitments').create_index([('dealId', ASCENDING)])
        self.get_collection('audit_logs').create_index(
            [('entityType', ASCENDING), ('entityId', ASCENDING), ('timestamp', ASCENDING)]
        )
        logger.info("MongoDB indexes ensured")

    @contextmanager
    def transaction(self) -> Iterator[ClientSession]:
        """
        Run a block inside a multi-document transaction.

        Write conflicts with a concurrent transaction surface as ConflictException
        so callers can retry.
        """
        with self.client.start_session() as session:
            try:
                with session.start_transaction():
                    yield session
            except PyMongoError as e:
                if e.has_error_label('TransientTransactionError'):
                    logger.warning(f"Transaction aborted by concurrent write: {e}")
                    raise ConflictException("Concurrent modification detected, please retry")
                raise

    # Document operations

    def find_one(self, collection: str, query: Dict[str, Any],
                 session: Optional[ClientSession] = None) -> Optional[Dict[str, Any]]:
        return self.get_collection(collection).find_one(query, session=session)

    def find(self, collection: str, query: Dict[str, Any],
             session: Optional[ClientSession] = None) -> List[Dict[str, Any]]:
        return list(self.get_collection(collection).find(query, session=session))

    def insert(self, collection: str, document: Dict[str, Any],
               session: Optional[ClientSession] = None) -> str:
        """Insert a document, mapping duplicate keys to a conflict."""
        try:
            result = self.get_collection(collection).insert_one(document, session=session)
            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return str(result.inserted_id)
        except DuplicateKeyError as e:
            logger.error(f"Duplicate key error in {collection}: {e}")
            raise ConflictException("Document with this identifier already exists")

    def replace_if_status(self, collection: str, document: Dict[str, Any], expected_status: str,
                          session: Optional[ClientSession] = None) -> bool:
        """
        Replace a document only if its persisted status is still ``expected_status``.

        Returns:
            True if a document was replaced, False if the precondition failed
        """
        result = self.get_collection(collection).replace_one(
            {"_id": document["_id"], "status": expected_status},
            document,
            session=session
        )
        if result.matched_count == 0:
            logger.warning(
                f"Conditional update missed in {collection}: {document['_id']} "
                f"(expected status {expected_status})"
            )
            return False
        logger.info(f"Updated document in {collection}: {document['_id']} -> {document.get('status')}")
        return True

    def bump_guard(self, collection: str, guard_id: str, session: ClientSession) -> None:
        """Touch a guard document so concurrent transactions on the same key conflict."""
        self.get_collection(collection).update_one(
            {"_id": guard_id},
            {"$inc": {"version": 1}},
            upsert=True,
            session=session
        )

    def delete(self, collection: str, doc_id: str) -> bool:
        result = self.get_collection(collection).delete_one({"_id": doc_id})
        if result.deleted_count:
            logger.info(f"Deleted document from {collection}: {doc_id}")
        return result.deleted_count > 0


# Global MongoDB service instance
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get global MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
