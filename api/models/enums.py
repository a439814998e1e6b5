# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the beneficiary portal.
"""

from enum import Enum


class OTPPurpose(str, Enum):
    """Purpose a one-time code was issued for."""
    REGISTRATION = "registration"
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"
    DATA_UPDATE = "data_update"


class PackageStatus(str, Enum):
    """Package delivery lifecycle."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_DELIVERY = "in_delivery"
    DELIVERED = "delivered"


class IdentityStatus(str, Enum):
    """Identity verification status of a beneficiary."""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    REUPLOAD_REQUIRED = "reupload_required"


class NotificationStatus(str, Enum):
    """WhatsApp queue status enumeration."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ActivityType(str, Enum):
    """Category of an activity log entry."""
    CREATE = "create"
    VERIFY = "verify"
    APPROVE = "approve"
    UPDATE = "update"
    DELIVER = "deliver"
    REVIEW = "review"


class ActivitySource(str, Enum):
    """Channel an activity originated from."""
    ADMIN = "admin"
    BENEFICIARY = "beneficiary"
    SYSTEM = "system"
    PUBLIC = "public"


class FeatureKey(str, Enum):
    """Known system feature toggles."""
    OTP_VERIFICATION = "otp_verification"
    PASSWORD_RECOVERY = "password_recovery"
    WHATSAPP_NOTIFICATIONS = "whatsapp_notifications"
    BENEFICIARY_PORTAL = "beneficiary_portal"


class PortalStep(str, Enum):
    """Steps of the beneficiary portal session."""
    SEARCH = "search"
    REGISTER = "register"
    CREATE_PIN = "create_pin"
    LOGIN = "login"
    VERIFY_OTP = "verify_otp"
    DASHBOARD = "dashboard"


class PackageFilter(str, Enum):
    """Dashboard package filters."""
    ALL = "all"
    DELIVERED = "delivered"
    CURRENT = "current"
    FUTURE = "future"


class LoginOutcome(str, Enum):
    """Result of a PIN verification attempt."""
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    LOCKED = "locked"
    INVALID_PIN = "invalid_pin"
    LOCKED_NOW = "locked_now"


class ErrorKind(str, Enum):
    """Closed set of failure kinds raised by the data access layer."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    LOCKED = "locked"
    NETWORK = "network"
    AUTH = "auth"
    NOT_CONFIGURED = "not_configured"
    UNKNOWN = "unknown"
