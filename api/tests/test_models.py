# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for Pydantic models.
"""

import pytest
from datetime import timedelta
from pydantic import ValidationError

from models import (
    Beneficiary, BeneficiaryAuth, OTPCode, PasswordReset, Package, SystemFeature,
    PortalFeatures, WhatsAppNotification, ActivityLog, StaffContext, utc_now
)
from models.enums import NotificationStatus, PackageStatus, IdentityStatus, ActivitySource
from models.requests import (
    SearchRequest, CreatePinRequest, UpdateProfileRequest, ShareLocationRequest,
    DashboardQuery, CreateNotificationRequest, NotificationListQuery
)


class TestBeneficiaryModel:
    """Test Beneficiary model validation."""

    def test_from_document_maps_id(self):
        beneficiary = Beneficiary.from_document({
            "_id": "b1",
            "name": "أحمد محمد",
            "national_id": "123456789",
            "unmodelled_column": "ignored"
        })

        assert beneficiary.id == "b1"
        assert beneficiary.identity_status == IdentityStatus.PENDING.value
        assert not hasattr(beneficiary, "unmodelled_column")

    def test_from_missing_document(self):
        assert Beneficiary.from_document(None) is None

    def test_name_required(self):
        with pytest.raises(ValidationError):
            Beneficiary(name="", national_id="123456789")

    def test_summary_is_minimal(self):
        beneficiary = Beneficiary(name="أحمد", national_id="123456789", phone="+970599123456")

        assert beneficiary.summary() == {"name": "أحمد", "national_id": "123456789", "status": "active"}


class TestBeneficiaryAuthModel:
    """Test credential lockout and serialization."""

    def credential(self, **overrides):
        return BeneficiaryAuth(beneficiary_id="b1", national_id="123456789", password_hash="$2b$12$x", **overrides)

    def test_defaults(self):
        credential = self.credential()

        assert credential.is_first_login is True
        assert credential.login_attempts == 0
        assert not credential.is_locked()

    def test_locked_until_future(self):
        assert self.credential(locked_until=utc_now() + timedelta(minutes=5)).is_locked()

    def test_lock_expired(self):
        assert not self.credential(locked_until=utc_now() - timedelta(seconds=1)).is_locked()

    def test_negative_attempts_rejected(self):
        with pytest.raises(ValidationError):
            self.credential(login_attempts=-1)

    def test_public_dict_hides_hash(self):
        assert "password_hash" not in self.credential().to_public_dict()


class TestTableModels:
    """Test the remaining stored row models."""

    def test_otp_code_length(self):
        with pytest.raises(ValidationError):
            OTPCode(beneficiary_id="b1", otp_code="123", purpose="registration", expires_at=utc_now())

    def test_otp_purpose_must_be_known(self):
        with pytest.raises(ValidationError):
            OTPCode(beneficiary_id="b1", otp_code="123456", purpose="marketing", expires_at=utc_now())

    def test_password_reset_defaults_unused(self):
        ticket = PasswordReset(beneficiary_auth_id="a1", temporary_password_hash="$2b$12$x", expires_at=utc_now())

        assert ticket.is_used is False

    def test_package_status(self):
        assert Package(beneficiary_id="b1", name="طرد").status == PackageStatus.PENDING.value
        with pytest.raises(ValidationError):
            Package(beneficiary_id="b1", name="طرد", status="lost")

    def test_system_feature_null_settings(self):
        feature = SystemFeature(feature_key="otp_verification", settings=None)

        assert feature.settings == {}

    def test_notification_defaults(self):
        notification = WhatsAppNotification(
            notification_type="general_message",
            whatsapp_number="+970599123456",
            message_template="مرحباً"
        )

        assert notification.status == NotificationStatus.PENDING.value
        assert notification.retry_count == 0
        assert notification.message_variables == {}

    def test_activity_log_source(self):
        entry = ActivityLog(action="بحث", user_name="نظام عام", role="public", type="review", source="public")

        assert entry.source == ActivitySource.PUBLIC.value
        assert entry.timestamp is not None


class TestPortalFeatures:
    """Test collapsing feature rows."""

    def test_defaults_without_rows(self):
        features = PortalFeatures.from_features([], "+970599000000")

        assert features.beneficiary_portal is True
        assert features.otp_verification is False
        assert features.support_phone == "+970599000000"

    def test_rows_override_defaults(self):
        rows = [
            SystemFeature(feature_key="beneficiary_portal", is_enabled=False),
            SystemFeature(feature_key="password_recovery", is_enabled=True,
                          settings={"support_phone": "+970591111111"}),
            SystemFeature(feature_key="unknown_flag", is_enabled=True)
        ]

        features = PortalFeatures.from_features(rows, "+970599000000")

        assert features.beneficiary_portal is False
        assert features.password_recovery is True
        assert features.support_phone == "+970591111111"
        assert "unknown_flag" not in features.model_dump()

    def test_frozen(self):
        features = PortalFeatures()

        with pytest.raises(ValidationError):
            features.otp_verification = True


class TestRequestModels:
    """Test request parsing."""

    def test_national_id_whitespace_removed(self):
        assert SearchRequest(national_id=" 123 456 789 ").national_id == "123456789"

    def test_create_pin_requires_confirmation(self):
        with pytest.raises(ValidationError):
            CreatePinRequest(national_id="123456789", pin="123456")

    def test_profile_changes_skip_missing_fields(self):
        assert UpdateProfileRequest(address="غزة").changes() == {"address": "غزة"}

    @pytest.mark.parametrize("latitude,longitude", [(91, 0), (0, -181)])
    def test_location_bounds(self, latitude, longitude):
        with pytest.raises(ValidationError):
            ShareLocationRequest(latitude=latitude, longitude=longitude)

    def test_dashboard_filter_default(self):
        assert DashboardQuery().filter == "all"

    def test_notification_request_defaults(self):
        request = CreateNotificationRequest(
            notification_type="general_message",
            whatsapp_number="0599123456",
            message_template="مرحباً"
        )

        assert request.message_variables == {}
        assert request.beneficiary_id is None

    def test_notification_list_status(self):
        assert NotificationListQuery(status="failed").status == NotificationStatus.FAILED
        with pytest.raises(ValidationError):
            NotificationListQuery(status="archived")


class TestStaffContext:
    def test_has_permission(self):
        staff = StaffContext(user_id="u1", permissions=["features:read"])

        assert staff.has_permission("features:read")
        assert not staff.has_permission("features:update")
