# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the beneficiary portal.
"""

import re
from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, ConfigDict
from .base import BaseEntity, utc_now
from .enums import (
    OTPPurpose,
    PackageStatus,
    IdentityStatus,
    NotificationStatus,
    ActivityType,
    ActivitySource,
    FeatureKey,
    LoginOutcome
)


class Beneficiary(BaseEntity):
    """Identity record of an aid beneficiary."""

    name: str = Field(..., min_length=1, description="Full name")
    national_id: str = Field(..., description="9-digit national ID")
    phone: Optional[str] = Field(None, description="Mobile number")
    address: Optional[str] = Field(None, description="Free-form address")
    status: str = Field(default="active", description="Beneficiary status")
    identity_status: IdentityStatus = Field(default=IdentityStatus.PENDING, description="Identity verification status")
    organization_id: Optional[str] = Field(None, description="Owning organization")
    family_id: Optional[str] = Field(None, description="Family grouping")
    last_portal_access: Optional[datetime] = Field(None, description="Last portal visit")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    def summary(self) -> Dict[str, Any]:
        """Fields exposed to anonymous lookups."""
        return {
            "name": self.name,
            "national_id": self.national_id,
            "status": self.status
        }


class BeneficiaryAuth(BaseEntity):
    """Portal credential, one per beneficiary."""

    beneficiary_id: str = Field(..., description="Owning beneficiary")
    national_id: str = Field(..., description="National ID used to log in")
    password_hash: str = Field(..., description="Hashed PIN")
    is_first_login: bool = Field(default=True, description="Credential never used to log in")
    last_login_at: Optional[datetime] = Field(None, description="Last successful login")
    login_attempts: int = Field(default=0, ge=0, description="Consecutive failed attempts")
    locked_until: Optional[datetime] = Field(None, description="Lockout expiration")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        """Check whether the lockout window is still open."""
        if self.locked_until is None:
            return False
        return self.locked_until > (now or utc_now())

    def to_public_dict(self) -> Dict[str, Any]:
        data = super().to_public_dict()
        data.pop("password_hash", None)
        return data


class OTPCode(BaseEntity):
    """Short-lived one-time code."""

    beneficiary_id: str
    otp_code: str = Field(..., min_length=6, max_length=6)
    purpose: OTPPurpose
    is_verified: bool = False
    expires_at: datetime


class PasswordReset(BaseEntity):
    """Single-use temporary password ticket."""

    beneficiary_auth_id: str
    temporary_password_hash: str
    is_used: bool = False
    expires_at: datetime


class Package(BaseEntity):
    """Delivery unit tied to a beneficiary."""

    beneficiary_id: str
    name: str
    status: PackageStatus = PackageStatus.PENDING
    scheduled_delivery_date: Optional[datetime] = None
    tracking_number: Optional[str] = None


class SystemFeature(BaseEntity):
    """Named boolean toggle with a settings blob."""

    feature_key: str
    feature_name: str = ""
    is_enabled: bool = False
    settings: Dict[str, Any] = Field(default_factory=dict)
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    @field_validator('settings', mode='before')
    @classmethod
    def default_settings(cls, v):
        return v or {}


class PortalFeatures(BaseModel):
    """Typed view of the feature toggles the portal reads."""

    model_config = ConfigDict(frozen=True)

    otp_verification: bool = False
    password_recovery: bool = False
    whatsapp_notifications: bool = False
    beneficiary_portal: bool = True
    support_phone: str = "+970599505699"

    @classmethod
    def from_features(cls, features: List[SystemFeature], default_support_phone: str) -> "PortalFeatures":
        """Collapse the stored feature rows into one record."""
        values: Dict[str, Any] = {"support_phone": default_support_phone}
        known = {key.value for key in FeatureKey}
        for feature in features:
            if feature.feature_key in known:
                values[feature.feature_key] = feature.is_enabled
            if feature.settings.get("support_phone"):
                values["support_phone"] = feature.settings["support_phone"]
        return cls(**values)


class WhatsAppNotification(BaseEntity):
    """Queued WhatsApp message."""

    beneficiary_id: Optional[str] = None
    notification_type: str
    package_id: Optional[str] = None
    whatsapp_number: str
    message_template: str
    message_variables: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = NotificationStatus.PENDING
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    updated_at: Optional[datetime] = None


class ActivityLog(BaseEntity):
    """Append-only audit record."""

    action: str
    user_name: str
    role: str
    type: ActivityType
    beneficiary_id: Optional[str] = None
    details: Optional[str] = None
    source: ActivitySource = ActivitySource.BENEFICIARY
    timestamp: datetime = Field(default_factory=utc_now)


class LoginResult(BaseModel):
    """Outcome of `verify_password`."""

    outcome: LoginOutcome
    message: Optional[str] = None
    auth: Optional[BeneficiaryAuth] = None
    remaining_attempts: Optional[int] = None
    locked_until: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.outcome == LoginOutcome.SUCCESS


class PublicSearchResult(BaseModel):
    """Anonymous lookup result."""

    found: bool
    beneficiary: Optional[Dict[str, Any]] = None
    packages: List[Dict[str, Any]] = Field(default_factory=list)
    message: Optional[str] = None


class BeneficiaryContext(BaseModel):
    """Authenticated beneficiary session."""

    beneficiary_id: str
    national_id: str
    name: Optional[str] = None
    token_payload: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class StaffContext(BaseModel):
    """Authenticated operator session."""

    user_id: str
    name: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)
    token_payload: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


NATIONAL_ID_PATTERN = re.compile(r'[0-9]{9}')
PIN_PATTERN = re.compile(r'[0-9]{6}')
