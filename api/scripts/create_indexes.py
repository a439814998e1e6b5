#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Create MongoDB indexes for the portal tables and seed the feature toggles.
"""

import sys
import os
import logging

# Add the parent directory to the path so we can import from api
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.mongodb import MongoDBService, DataAccessError, get_mongodb_service, close_mongodb_connection
from domain.portal import FEATURE_DESCRIPTIONS
from models.base import utc_now

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

FEATURE_NAMES = {
    "otp_verification": "التحقق عبر OTP",
    "password_recovery": "استرداد كلمة المرور",
    "whatsapp_notifications": "إشعارات واتساب",
    "beneficiary_portal": "بوابة المستفيدين"
}

# Only the portal itself starts enabled
DEFAULT_ENABLED = {"beneficiary_portal"}


def seed_system_features(mongodb_service: MongoDBService) -> int:
    """Insert missing feature rows; existing toggles are left as they are."""
    created = 0
    for feature_key, description in FEATURE_DESCRIPTIONS.items():
        if mongodb_service.find_one("system_features", {"feature_key": feature_key}):
            continue
        mongodb_service.insert("system_features", {
            "feature_key": feature_key,
            "feature_name": FEATURE_NAMES.get(feature_key, feature_key),
            "description": description,
            "is_enabled": feature_key in DEFAULT_ENABLED,
            "settings": {},
            "updated_at": utc_now()
        })
        created += 1
    logger.info(f"Seeded {created} system features")
    return created


def main():
    """Create MongoDB indexes and default features."""
    try:
        logger.info("Starting MongoDB index creation...")

        mongodb_service = get_mongodb_service()

        health = mongodb_service.health_check()
        if health['status'] != 'healthy':
            logger.error(f"MongoDB is not healthy: {health}")
            sys.exit(1)

        logger.info(f"Connected to MongoDB {health['version']} - Database: {health['database']}")

        mongodb_service.create_indexes()
        seed_system_features(mongodb_service)

        logger.info("MongoDB setup completed")

    except DataAccessError as e:
        logger.error(f"Failed to prepare database: {e}")
        sys.exit(1)
    finally:
        close_mongodb_connection()


if __name__ == "__main__":
    main()
