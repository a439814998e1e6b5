# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the beneficiary portal.
"""

# Base models
from .base import BaseEntity, utc_now, generate_object_id

# Enumerations
from .enums import (
    OTPPurpose,
    PackageStatus,
    IdentityStatus,
    NotificationStatus,
    ActivityType,
    ActivitySource,
    FeatureKey,
    PortalStep,
    PackageFilter,
    LoginOutcome,
    ErrorKind
)

# Core entities
from .entities import (
    Beneficiary,
    BeneficiaryAuth,
    OTPCode,
    PasswordReset,
    Package,
    SystemFeature,
    PortalFeatures,
    WhatsAppNotification,
    ActivityLog,
    LoginResult,
    PublicSearchResult,
    BeneficiaryContext,
    StaffContext
)

# Response models
from .responses import HalLink

__all__ = [
    "BaseEntity",
    "utc_now",
    "generate_object_id",

    "OTPPurpose",
    "PackageStatus",
    "IdentityStatus",
    "NotificationStatus",
    "ActivityType",
    "ActivitySource",
    "FeatureKey",
    "PortalStep",
    "PackageFilter",
    "LoginOutcome",
    "ErrorKind",

    "Beneficiary",
    "BeneficiaryAuth",
    "OTPCode",
    "PasswordReset",
    "Package",
    "SystemFeature",
    "PortalFeatures",
    "WhatsAppNotification",
    "ActivityLog",
    "LoginResult",
    "PublicSearchResult",
    "BeneficiaryContext",
    "StaffContext",

    "HalLink"
]
