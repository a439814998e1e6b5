# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Data access for beneficiaries, organizations and families.
"""

import re
import logging
from typing import Dict, List, Optional, Any
from opentelemetry import trace
from pymongo import DESCENDING

from .mongodb import MongoDBService
from models.base import utc_now
from utils.retry import with_retry

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

NEWEST_FIRST = [("created_at", DESCENDING)]


class TableService:
    """Read helpers shared by the pass-through table services."""

    collection_name: str = ""
    default_sort = NEWEST_FIRST

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service

    def get_all(self) -> List[Dict[str, Any]]:
        return self.mongo_service.find(self.collection_name, sort=self.default_sort)

    def get_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        return self.mongo_service.find_one(self.collection_name, {"_id": record_id})


class BeneficiariesService(TableService):
    """CRUD over the beneficiaries table."""

    collection_name = "beneficiaries"

    def get_all(self) -> List[Dict[str, Any]]:
        return with_retry(lambda: self.mongo_service.find(self.collection_name, sort=NEWEST_FIRST))

    def get_by_organization(self, organization_id: str) -> List[Dict[str, Any]]:
        return self.mongo_service.find(self.collection_name, {"organization_id": organization_id})

    def get_by_family(self, family_id: str) -> List[Dict[str, Any]]:
        return self.mongo_service.find(self.collection_name, {"family_id": family_id})

    def search(self, search_term: str) -> List[Dict[str, Any]]:
        """Case-insensitive match on name, national ID or phone."""
        pattern = {"$regex": re.escape(search_term.strip()), "$options": "i"}
        return self.mongo_service.find(
            self.collection_name,
            {"$or": [{"name": pattern}, {"national_id": pattern}, {"phone": pattern}]},
            sort=NEWEST_FIRST
        )

    def create(self, beneficiary: Dict[str, Any]) -> Dict[str, Any]:
        with tracer.start_as_current_span("beneficiaries.create"):
            now = utc_now()
            document = self.mongo_service.insert(self.collection_name, {
                "status": "active",
                "identity_status": "pending",
                **beneficiary,
                "created_at": now,
                "updated_at": now
            })
            logger.info("Beneficiary created", extra={"beneficiary_id": document["id"]})
            return document

    def update(self, beneficiary_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply updates and return the stored row, None when missing."""
        with tracer.start_as_current_span("beneficiaries.update") as span:
            span.set_attribute("beneficiary.id", beneficiary_id)
            return self.mongo_service.find_one_and_update(
                self.collection_name,
                {"_id": beneficiary_id},
                set_fields={**updates, "updated_at": utc_now()}
            )

    def delete(self, beneficiary_id: str) -> bool:
        deleted = self.mongo_service.delete(self.collection_name, {"_id": beneficiary_id})
        return deleted > 0


class OrganizationsService(TableService):
    collection_name = "organizations"

    def get_active(self) -> List[Dict[str, Any]]:
        return self.mongo_service.find(self.collection_name, {"status": "active"})


class FamiliesService(TableService):
    collection_name = "families"
