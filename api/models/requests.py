# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator

from .enums import NotificationStatus, PackageFilter, ActivitySource


class NationalIdRequest(BaseModel):
    """Request carrying the national ID of the session."""

    national_id: str = Field(..., description="9-digit national ID")

    @field_validator('national_id')
    @classmethod
    def strip_whitespace(cls, v):
        return "".join(v.split())


class SearchRequest(NationalIdRequest):
    """Portal search step."""


class CreatePinRequest(NationalIdRequest):
    """First-visit PIN creation."""

    pin: str = Field(..., description="6-digit PIN")
    confirm_pin: str = Field(..., description="PIN confirmation")


class LoginRequest(NationalIdRequest):
    """PIN login."""

    pin: str = Field(..., description="6-digit PIN")


class VerifyOTPRequest(NationalIdRequest):
    """One-time code confirmation."""

    code: str = Field(..., description="6-digit code")


class RecoverPasswordRequest(NationalIdRequest):
    """Ask for a temporary password over WhatsApp."""


class ResetPasswordRequest(NationalIdRequest):
    """Replace the PIN using a temporary password."""

    temporary_password: str = Field(..., description="Temporary password received over WhatsApp")
    new_pin: str = Field(..., description="New 6-digit PIN")
    confirm_pin: str = Field(..., description="PIN confirmation")


class UpdateProfileRequest(BaseModel):
    """Editable profile fields."""

    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ShareLocationRequest(BaseModel):
    """Beneficiary location share."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DashboardQuery(BaseModel):
    """Dashboard query parameters."""

    filter: PackageFilter = PackageFilter.ALL


class PublicSearchQuery(BaseModel):
    """Anonymous lookup query parameters."""

    national_id: str = Field(..., description="9-digit national ID")


class UpdateFeatureRequest(BaseModel):
    """Toggle a system feature."""

    is_enabled: bool
    settings: Optional[Dict[str, Any]] = None


class CreateNotificationRequest(BaseModel):
    """Queue a WhatsApp message."""

    beneficiary_id: Optional[str] = None
    notification_type: str = Field(..., min_length=1, max_length=100)
    whatsapp_number: str
    message_template: str = Field(..., min_length=1, max_length=4000)
    message_variables: Dict[str, Any] = Field(default_factory=dict)
    package_id: Optional[str] = None


class MarkFailedRequest(BaseModel):
    """Record a failed delivery."""

    error_message: str = Field(..., min_length=1, max_length=1000)


class NotificationListQuery(BaseModel):
    """Queue listing filters."""

    status: Optional[NotificationStatus] = None
    notification_type: Optional[str] = None
    search: Optional[str] = None


class FeaturePath(BaseModel):
    feature_key: str


class NotificationPath(BaseModel):
    notification_id: str


class BeneficiaryListQuery(BaseModel):
    """Operator beneficiary listing."""

    search: Optional[str] = None
    organization_id: Optional[str] = None


class ActivityListQuery(BaseModel):
    """Operator activity listing."""

    beneficiary_id: Optional[str] = None
    source: Optional[ActivitySource] = None
