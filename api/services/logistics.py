# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Data access for packages, package templates, tasks, couriers and alerts.
"""

import logging
from typing import Dict, List, Optional, Any
from pymongo import ASCENDING

from .beneficiaries import TableService, NEWEST_FIRST
from models.base import utc_now

logger = logging.getLogger(__name__)


class PackagesService(TableService):
    collection_name = "packages"

    def get_by_beneficiary(self, beneficiary_id: str) -> List[Dict[str, Any]]:
        return self.mongo_service.find(
            self.collection_name,
            {"beneficiary_id": beneficiary_id},
            sort=NEWEST_FIRST
        )

    def create(self, package: Dict[str, Any]) -> Dict[str, Any]:
        document = self.mongo_service.insert(self.collection_name, {"status": "pending", **package})
        logger.info("Package created", extra={"package_id": document["id"], "beneficiary_id": package.get("beneficiary_id")})
        return document


class PackageTemplatesService(TableService):
    collection_name = "package_templates"

    def get_by_organization(self, organization_id: str) -> List[Dict[str, Any]]:
        return self.mongo_service.find(self.collection_name, {"organization_id": organization_id})

    def create_with_items(self, template: Dict[str, Any], items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Store a template with its contents and computed total weight."""
        total_weight = sum(item.get("weight") or 0 for item in items)
        return self.mongo_service.insert(self.collection_name, {
            **template,
            "contents": items,
            "total_weight": total_weight
        })


class TasksService(TableService):
    collection_name = "tasks"

    def get_by_beneficiary(self, beneficiary_id: str) -> List[Dict[str, Any]]:
        return self.mongo_service.find(self.collection_name, {"beneficiary_id": beneficiary_id})

    def update_status(self, task_id: str, status: str, updates: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        return self.mongo_service.find_one_and_update(
            self.collection_name,
            {"_id": task_id},
            set_fields={**(updates or {}), "status": status, "updated_at": utc_now()}
        )


class AlertsService(TableService):
    collection_name = "alerts"

    def get_unread(self) -> List[Dict[str, Any]]:
        return self.mongo_service.find(self.collection_name, {"is_read": False}, sort=NEWEST_FIRST)

    def mark_as_read(self, alert_id: str) -> bool:
        return self.mongo_service.update(self.collection_name, {"_id": alert_id}, {"is_read": True}) > 0


class CouriersService(TableService):
    collection_name = "couriers"
    default_sort = [("name", ASCENDING)]

    def update_location(self, courier_id: str, latitude: float, longitude: float) -> bool:
        matched = self.mongo_service.update(
            self.collection_name,
            {"_id": courier_id},
            {"current_location": {"lat": latitude, "lng": longitude}}
        )
        return matched > 0
