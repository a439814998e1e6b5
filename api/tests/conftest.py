# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.

Endpoint tests run against an in-memory table store and an in-memory Upstash
client so no MongoDB or Redis server is needed.
"""

import copy
import os
import re
import pytest
from datetime import timedelta
from typing import Dict, Any, List, Optional
from bson import ObjectId

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'
os.environ.pop('REDIS_URL', None)
os.environ.pop('REDIS_TOKEN', None)

from app import create_app
from domain import authorization as perms
from models.base import utc_now
from models.entities import Beneficiary
from models.enums import ErrorKind
from services.auth import AuthService, generate_dev_key_pair
from services.beneficiary_auth import BeneficiaryAuthService
from services.mongodb import MongoDBService, DataAccessError
from services.redis import RedisService

# Unique indexes created by `MongoDBService.create_indexes`
UNIQUE_FIELDS = {
    "beneficiaries": ["national_id"],
    "beneficiary_auth": ["beneficiary_id", "national_id"]
}


def _compare(value, operand, op) -> bool:
    if value is None:
        return False
    return op(value, operand)


OPERATORS = {
    "$gte": lambda value, operand, _: _compare(value, operand, lambda a, b: a >= b),
    "$gt": lambda value, operand, _: _compare(value, operand, lambda a, b: a > b),
    "$lte": lambda value, operand, _: _compare(value, operand, lambda a, b: a <= b),
    "$lt": lambda value, operand, _: _compare(value, operand, lambda a, b: a < b),
    "$ne": lambda value, operand, _: value != operand,
    "$in": lambda value, operand, _: value in operand,
    "$regex": lambda value, operand, condition: value is not None and re.search(
        operand, str(value), re.IGNORECASE if "i" in condition.get("$options", "") else 0
    ) is not None
}


def matches(document: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    """Evaluate the subset of the MongoDB query language the services use."""
    for key, condition in filters.items():
        if key == "$or":
            if not any(matches(document, clause) for clause in condition):
                return False
            continue

        value = document.get(key)
        if isinstance(condition, dict) and any(op.startswith("$") for op in condition):
            for op, operand in condition.items():
                if op == "$options":
                    continue
                if not OPERATORS[op](value, operand, condition):
                    return False
        elif value != condition:
            return False
    return True


def sort_documents(documents: List[Dict[str, Any]], sort) -> List[Dict[str, Any]]:
    for field, direction in reversed(sort or []):
        documents = sorted(
            documents,
            key=lambda d: (d.get(field) is None, d.get(field) if d.get(field) is not None else 0),
            reverse=direction < 0
        )
    return documents


class InMemoryMongoDBService(MongoDBService):
    """Table store kept in dictionaries, with the same contract as `MongoDBService`."""

    def __init__(self):
        super().__init__("memory://", "beneficiary_portal_test")
        self.tables: Dict[str, List[Dict[str, Any]]] = {}

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def _export(self, document: Dict[str, Any], projection: Optional[List[str]] = None) -> Dict[str, Any]:
        document = copy.deepcopy(document)
        if projection:
            document = {k: v for k, v in document.items() if k in projection or k == "_id"}
        return self._normalize(document)

    def _select(self, table: str, filters: Optional[Dict], sort=None) -> List[Dict[str, Any]]:
        selected = [doc for doc in self.rows(table) if matches(doc, filters or {})]
        return sort_documents(selected, sort)

    def _check_unique(self, table: str, document: Dict[str, Any], ignore=None) -> None:
        for field in UNIQUE_FIELDS.get(table, []):
            if document.get(field) is None:
                continue
            for existing in self.rows(table):
                if existing is not ignore and existing.get(field) == document[field]:
                    raise DataAccessError(f"Duplicate record in {table}", ErrorKind.CONFLICT, code="11000")

    def health_check(self) -> Dict[str, Any]:
        return {'status': 'healthy', 'database': self.database_name, 'version': 'memory'}

    def create_indexes(self) -> None:
        pass

    def find_one(self, table, filters, sort=None):
        selected = self._select(table, filters, sort)
        return self._export(selected[0]) if selected else None

    def find(self, table, filters=None, sort=None, limit=None, projection=None):
        selected = self._select(table, filters, sort)
        if limit:
            selected = selected[:limit]
        return [self._export(doc, projection) for doc in selected]

    def insert(self, table, document):
        document = copy.deepcopy(document)
        document.setdefault("_id", str(ObjectId()))
        document.setdefault("created_at", self._now())
        self._check_unique(table, document)
        self.rows(table).append(document)
        return self._export(document)

    def update(self, table, filters, updates, many=False):
        selected = self._select(table, filters)
        if not many:
            selected = selected[:1]
        for document in selected:
            document.update(copy.deepcopy(updates))
        return len(selected)

    def find_one_and_update(self, table, filters, set_fields=None, inc_fields=None, sort=None, upsert=False):
        selected = self._select(table, filters, sort)
        if selected:
            document = selected[0]
        elif upsert:
            document = {k: v for k, v in filters.items() if not isinstance(v, dict)}
            document.setdefault("_id", str(ObjectId()))
            self.rows(table).append(document)
        else:
            return None

        document.update(copy.deepcopy(set_fields or {}))
        for field, amount in (inc_fields or {}).items():
            document[field] = document.get(field, 0) + amount
        return self._export(document)

    def delete(self, table, filters):
        selected = self._select(table, filters)
        self.tables[table] = [doc for doc in self.rows(table) if doc not in selected]
        return len(selected)

    def count(self, table, filters=None):
        return len(self._select(table, filters))


class FakeUpstashClient:
    """Dictionary-backed stand-in for `upstash_redis.Redis`."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    def ping(self):
        return "PONG"

    def setex(self, key, seconds, value):
        self.data[key] = value
        self.ttls[key] = seconds
        return "OK"

    def get(self, key):
        return self.data.get(key)

    def delete(self, *keys):
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    def exists(self, *keys):
        return sum(1 for key in keys if key in self.data)


TEST_CONFIG = {
    'ENVIRONMENT': 'test',
    'BASE_URL': 'http://localhost:5000',
    'OTEL_ENABLED': False,
    'SUPPORT_PHONE': '+970599505699',
    'WHATSAPP_API_URL': None,
    'WHATSAPP_API_KEY': None,
    'WHATSAPP_SEND_MODE': 'manual'
}


@pytest.fixture(scope="session")
def key_pair():
    """One RSA key pair for the whole run; generation is slow."""
    return generate_dev_key_pair()


@pytest.fixture
def auth_service(key_pair):
    private_key, public_key = key_pair
    return AuthService(private_key, public_key)


@pytest.fixture
def store():
    return InMemoryMongoDBService()


@pytest.fixture
def upstash_client():
    return FakeUpstashClient()


@pytest.fixture
def redis_service(upstash_client):
    service = RedisService()
    service.client = upstash_client
    return service


@pytest.fixture
def make_app(store, redis_service, auth_service):
    """Build an application wired to the in-memory store and cache."""
    def _make(**overrides):
        application = create_app(
            config={**TEST_CONFIG, **overrides},
            mongodb_service=store,
            redis_service=redis_service,
            auth_service=auth_service
        )
        application.config['TESTING'] = True
        return application
    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def seed_features(store):
    """Store feature rows; keyword arguments override the defaults."""
    def _seed(**overrides):
        flags = {
            "otp_verification": False,
            "password_recovery": False,
            "whatsapp_notifications": False,
            "beneficiary_portal": True,
            **overrides
        }
        for feature_key, is_enabled in flags.items():
            store.insert("system_features", {
                "feature_key": feature_key,
                "feature_name": feature_key,
                "is_enabled": is_enabled,
                "settings": {}
            })
    return _seed


@pytest.fixture
def seed_beneficiary(store):
    def _seed(**overrides) -> Dict[str, Any]:
        document = {
            "name": "أحمد محمد",
            "national_id": "123456789",
            "phone": "+970599123456",
            "address": "غزة",
            "status": "active",
            "identity_status": "verified",
            "organization_id": "org-1",
            **overrides
        }
        return store.insert("beneficiaries", document)
    return _seed


@pytest.fixture
def seed_credential(store):
    """Store a credential for a beneficiary row with the given PIN."""
    def _seed(beneficiary: Dict[str, Any], pin: str = "123456", **overrides) -> Dict[str, Any]:
        document = {
            "beneficiary_id": beneficiary["id"],
            "national_id": beneficiary["national_id"],
            "password_hash": BeneficiaryAuthService.hash_pin(pin),
            "is_first_login": False,
            "last_login_at": None,
            "login_attempts": 0,
            "locked_until": None,
            **overrides
        }
        return store.insert("beneficiary_auth", document)
    return _seed


@pytest.fixture
def seed_package(store):
    def _seed(beneficiary_id: str, **overrides) -> Dict[str, Any]:
        document = {
            "beneficiary_id": beneficiary_id,
            "name": "طرد غذائي",
            "status": "pending",
            "scheduled_delivery_date": None,
            "tracking_number": None,
            **overrides
        }
        return store.insert("packages", document)
    return _seed


@pytest.fixture
def beneficiary_headers(auth_service):
    """Bearer header for a session of the given beneficiary row."""
    def _headers(beneficiary: Dict[str, Any]) -> Dict[str, str]:
        token = auth_service.generate_beneficiary_token(Beneficiary.from_document(beneficiary))
        return {'Authorization': f"Bearer {token['access_token']}"}
    return _headers


ALL_PERMISSIONS = sorted(perms.PERMISSION_DESCRIPTIONS)


@pytest.fixture
def staff_headers(auth_service):
    """Bearer header for an operator holding the given permissions (all by default)."""
    def _headers(permissions: Optional[List[str]] = None) -> Dict[str, str]:
        token = auth_service.generate_staff_token(
            "staff-1",
            "مشرف النظام",
            ALL_PERMISSIONS if permissions is None else permissions
        )
        return {'Authorization': f"Bearer {token['access_token']}"}
    return _headers


@pytest.fixture
def expired_window():
    """A lockout that ended a minute ago."""
    return utc_now() - timedelta(minutes=1)
