# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer: one collection per portal table, connection pooling,
and translation of driver failures into `DataAccessError` kinds.
"""

import os
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Dict, Optional, Any, Tuple, Iterator
from pymongo import MongoClient, ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ConfigurationError,
    DuplicateKeyError,
    OperationFailure,
    PyMongoError
)
from bson import ObjectId

from models.enums import ErrorKind

logger = logging.getLogger(__name__)

# MongoDB server error codes for unauthorized / failed authentication
AUTH_ERROR_CODES = {13, 18}

SortSpec = List[Tuple[str, int]]


class DataAccessError(Exception):
    """Failure of a data store operation, tagged with an `ErrorKind`."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        code: Optional[str] = None,
        details: Optional[Any] = None
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.code = code
        self.details = details


class StoreNotInitializedError(DataAccessError):
    """Raised by every operation when no connection string is configured."""

    def __init__(self):
        super().__init__("Data store not initialized", ErrorKind.NOT_CONFIGURED, code="NOT_INITIALIZED")


class MongoDBService:
    """MongoDB service with table-shaped CRUD and connection pooling."""

    def __init__(self, connection_string: Optional[str] = None, database_name: Optional[str] = None):
        """Initialize MongoDB service; connects lazily on first use."""
        self.connection_string = connection_string
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'beneficiary_portal')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        if self.is_configured():
            logger.info(f"MongoDB service initialized for database: {self.database_name}")
        else:
            logger.error("Missing MONGODB_URI; every data operation will fail until it is set")

    def is_configured(self) -> bool:
        return bool(self.connection_string)

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if not self.is_configured():
            raise StoreNotInitializedError()

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
                    tz_aware=True,
                    appname='beneficiary-portal'
                )
                logger.info("MongoDB client created")
            except ConfigurationError as e:
                logger.error(f"Invalid MongoDB configuration: {e}")
                raise DataAccessError(str(e), ErrorKind.NOT_CONFIGURED) from e

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
        if not self.is_configured():
            return {'status': 'unhealthy', 'error': 'Data store not initialized', 'database': self.database_name}

        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    # Helpers

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _normalize(document: Optional[Dict]) -> Optional[Dict]:
        """Expose `_id` as a string `id` for JSON serialization."""
        if document is None:
            return None
        if "_id" in document:
            document["id"] = str(document.pop("_id"))
        return document

    @staticmethod
    def _translate_error(table: str, operation: str, error: PyMongoError) -> DataAccessError:
        if isinstance(error, DuplicateKeyError):
            return DataAccessError(f"Duplicate record in {table}", ErrorKind.CONFLICT, code=str(error.code))
        if isinstance(error, OperationFailure) and error.code in AUTH_ERROR_CODES:
            return DataAccessError(f"Not authorized to {operation} {table}", ErrorKind.AUTH, code=str(error.code))
        if isinstance(error, ConnectionFailure):
            return DataAccessError(f"network failure during {operation} on {table}", ErrorKind.NETWORK)
        if isinstance(error, ConfigurationError):
            return DataAccessError(str(error), ErrorKind.NOT_CONFIGURED)
        return DataAccessError(f"{operation} on {table} failed: {error}", ErrorKind.UNKNOWN)

    @contextmanager
    def _operation(self, table: str, operation: str) -> Iterator[None]:
        try:
            yield
        except DataAccessError:
            raise
        except PyMongoError as e:
            logger.error(f"MongoDB {operation} failed on {table}: {e}")
            raise self._translate_error(table, operation, e) from e

    # Table operations

    def find_one(self, table: str, filters: Dict, sort: Optional[SortSpec] = None) -> Optional[Dict]:
        """Return the first matching row or None."""
        with self._operation(table, "find_one"):
            document = self.get_collection(table).find_one(filters, sort=sort)
            return self._normalize(document)

    def find(
        self,
        table: str,
        filters: Optional[Dict] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        projection: Optional[List[str]] = None
    ) -> List[Dict]:
        """Return all matching rows."""
        with self._operation(table, "find"):
            cursor = self.get_collection(table).find(filters or {}, projection=projection)
            if sort:
                cursor = cursor.sort(sort)
            if limit:
                cursor = cursor.limit(limit)
            documents = [self._normalize(doc) for doc in cursor]
            logger.debug(f"Found {len(documents)} documents in {table}")
            return documents

    def insert(self, table: str, document: Dict) -> Dict:
        """Insert a row and return it with its identifier."""
        document = dict(document)
        document.setdefault("_id", str(ObjectId()))
        document.setdefault("created_at", self._now())

        with self._operation(table, "insert"):
            result = self.get_collection(table).insert_one(document)
            logger.info(f"Created document in {table}: {result.inserted_id}")
            return self._normalize(document)

    def update(self, table: str, filters: Dict, updates: Dict, many: bool = False) -> int:
        """Apply `$set` updates; returns the number of matched rows."""
        with self._operation(table, "update"):
            collection = self.get_collection(table)
            if many:
                result = collection.update_many(filters, {"$set": updates})
            else:
                result = collection.update_one(filters, {"$set": updates})
            if result.matched_count == 0:
                logger.warning(f"No document matched update in {table}")
            return result.matched_count

    def find_one_and_update(
        self,
        table: str,
        filters: Dict,
        set_fields: Optional[Dict] = None,
        inc_fields: Optional[Dict[str, int]] = None,
        sort: Optional[SortSpec] = None,
        upsert: bool = False
    ) -> Optional[Dict]:
        """Atomically update a single row and return it after the update."""
        update: Dict[str, Any] = {}
        if set_fields:
            update["$set"] = set_fields
        if inc_fields:
            update["$inc"] = inc_fields

        with self._operation(table, "find_one_and_update"):
            document = self.get_collection(table).find_one_and_update(
                filters,
                update,
                sort=sort,
                upsert=upsert,
                return_document=ReturnDocument.AFTER
            )
            return self._normalize(document)

    def delete(self, table: str, filters: Dict) -> int:
        """Delete matching rows."""
        with self._operation(table, "delete"):
            result = self.get_collection(table).delete_many(filters)
            logger.warning(f"Deleted {result.deleted_count} documents in {table}")
            return result.deleted_count

    def count(self, table: str, filters: Optional[Dict] = None) -> int:
        """Count matching rows."""
        with self._operation(table, "count"):
            return self.get_collection(table).count_documents(filters or {})

    def aggregate(self, table: str, pipeline: List[Dict]) -> List[Dict]:
        """Run an aggregation pipeline."""
        with self._operation(table, "aggregate"):
            results = [self._normalize(doc) for doc in self.get_collection(table).aggregate(pipeline)]
            logger.debug(f"Aggregation returned {len(results)} results from {table}")
            return results

    # Remote procedures

    def call_procedure(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Invoke one of the named server-side procedures."""
        procedures = {
            "get_overall_statistics": self._overall_statistics,
            "generate_tracking_number": self._generate_tracking_number
        }
        if name not in procedures:
            raise DataAccessError(f"Unknown procedure: {name}", ErrorKind.VALIDATION)
        return procedures[name](**(params or {}))

    def _overall_statistics(self) -> Dict[str, int]:
        return {
            "total_beneficiaries": self.count("beneficiaries"),
            "verified_beneficiaries": self.count("beneficiaries", {"identity_status": "verified"}),
            "active_beneficiaries": self.count("beneficiaries", {"status": "active"}),
            "total_packages": self.count("packages"),
            "delivered_packages": self.count("packages", {"status": "delivered"}),
            "active_tasks": self.count("tasks", {"status": {"$in": ["pending", "assigned", "in_progress"]}}),
            "critical_alerts": self.count("alerts", {"priority": "critical", "is_read": False}),
            "active_organizations": self.count("organizations", {"status": "active"}),
            "active_couriers": self.count("couriers", {"status": "active"})
        }

    def _generate_tracking_number(self) -> str:
        counter = self.find_one_and_update(
            "counters",
            {"_id": "tracking_number"},
            inc_fields={"seq": 1},
            upsert=True
        )
        return f"PKG-{self._now():%Y%m%d}-{counter['seq']:06d}"

    # Index Management

    def create_indexes(self) -> None:
        """Create uniqueness and performance indexes for portal tables."""
        try:
            logger.info("Creating MongoDB indexes...")

            beneficiaries = self.get_collection("beneficiaries")
            beneficiaries.create_index("national_id", unique=True)
            beneficiaries.create_index("organization_id")
            beneficiaries.create_index("family_id")

            # One credential per beneficiary
            auth = self.get_collection("beneficiary_auth")
            auth.create_index("beneficiary_id", unique=True)
            auth.create_index("national_id", unique=True)

            otp = self.get_collection("beneficiary_otp")
            otp.create_index([("beneficiary_id", ASCENDING), ("purpose", ASCENDING), ("created_at", DESCENDING)])
            otp.create_index("expires_at", expireAfterSeconds=86400)

            resets = self.get_collection("beneficiary_password_resets")
            resets.create_index([("beneficiary_auth_id", ASCENDING), ("is_used", ASCENDING)])

            packages = self.get_collection("packages")
            packages.create_index([("beneficiary_id", ASCENDING), ("created_at", DESCENDING)])
            packages.create_index("tracking_number", sparse=True)

            self.get_collection("system_features").create_index("feature_key", unique=True)

            queue = self.get_collection("whatsapp_notifications_queue")
            queue.create_index([("status", ASCENDING), ("created_at", ASCENDING)])
            queue.create_index("beneficiary_id")

            activity = self.get_collection("activity_log")
            activity.create_index([("timestamp", DESCENDING)])
            activity.create_index([("beneficiary_id", ASCENDING), ("timestamp", DESCENDING)])

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService(os.getenv('MONGODB_URI'))
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
