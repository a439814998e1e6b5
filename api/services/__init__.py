# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - External integrations and side effects.
"""

from .mongodb import (
    MongoDBService,
    DataAccessError,
    StoreNotInitializedError,
    get_mongodb_service,
    close_mongodb_connection
)
from .redis import RedisService
from .activity import ActivityService, ActivityFilters
from .beneficiary_auth import BeneficiaryAuthService
from .whatsapp import WhatsAppService, WhatsAppSettings, NotificationConfigError

__all__ = [
    "MongoDBService",
    "DataAccessError",
    "StoreNotInitializedError",
    "get_mongodb_service",
    "close_mongodb_connection",
    "RedisService",
    "ActivityService",
    "ActivityFilters",
    "BeneficiaryAuthService",
    "WhatsAppService",
    "WhatsAppSettings",
    "NotificationConfigError"
]
