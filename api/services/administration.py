# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Data access for roles, system users, permissions, statistics and the
tracking number procedure.
"""

import logging
from typing import Dict, List, Any
from pymongo import ASCENDING

from .beneficiaries import TableService
from .mongodb import MongoDBService

logger = logging.getLogger(__name__)

EMPTY_STATISTICS = {
    "total_beneficiaries": 0,
    "verified_beneficiaries": 0,
    "active_beneficiaries": 0,
    "total_packages": 0,
    "delivered_packages": 0,
    "active_tasks": 0,
    "critical_alerts": 0,
    "active_organizations": 0,
    "active_couriers": 0
}


class RolesService(TableService):
    collection_name = "roles"

    def get_all(self) -> List[Dict[str, Any]]:
        return self.mongo_service.find(self.collection_name, {"is_active": True})


class SystemUsersService(TableService):
    collection_name = "system_users"


class PermissionsService(TableService):
    collection_name = "permissions"
    default_sort = [("category", ASCENDING)]


class StatisticsService:
    """Dashboard counters computed by the store."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service

    def get_overall_stats(self) -> Dict[str, int]:
        stats = self.mongo_service.call_procedure("get_overall_statistics") or {}
        return {**EMPTY_STATISTICS, **stats}


class SystemService:
    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service

    def generate_tracking_number(self) -> str:
        tracking_number = self.mongo_service.call_procedure("generate_tracking_number") or ""
        logger.info("Tracking number generated", extra={"tracking_number": tracking_number})
        return tracking_number
