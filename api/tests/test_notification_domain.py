# SPDX-License-Identifier: Apache-2.0

"""
Tests for WhatsApp queue domain logic.
"""

import pytest

from domain import notifications as notification_domain
from models.enums import NotificationStatus


class TestPhoneNumbers:
    """Test phone normalization and validation."""

    @pytest.mark.parametrize("raw,expected", [
        ("+970599123456", "+970599123456"),
        ("970599123456", "+970599123456"),
        ("0599123456", "+970599123456"),
        ("599123456", "+970599123456"),
        ("059-912 (3456)", "+970599123456")
    ])
    def test_format(self, raw, expected):
        assert notification_domain.format_phone_number(raw) == expected

    def test_format_leaves_unknown_input(self):
        assert notification_domain.format_phone_number("+44 20 7946") == "+44 20 7946"

    @pytest.mark.parametrize("phone", ["0599123456", "+970 599 123 456", "599123456"])
    def test_valid(self, phone):
        assert notification_domain.validate_phone_number(phone)

    @pytest.mark.parametrize("phone", ["0499123456", "05991234", "+972599123456", "abc"])
    def test_invalid(self, phone):
        assert not notification_domain.validate_phone_number(phone)

    def test_split_phone(self):
        assert notification_domain.split_phone("0599123456") == ("+970599123456", "970599123456")


class TestStatusTransitions:
    """Test the queue status machine."""

    @pytest.mark.parametrize("current,new", [
        (NotificationStatus.PENDING, NotificationStatus.SENT),
        (NotificationStatus.PENDING, NotificationStatus.FAILED),
        (NotificationStatus.PENDING, NotificationStatus.CANCELLED),
        (NotificationStatus.FAILED, NotificationStatus.SENT),
        (NotificationStatus.FAILED, NotificationStatus.FAILED)
    ])
    def test_allowed(self, current, new):
        assert notification_domain.validate_status_transition(current, new).is_valid

    @pytest.mark.parametrize("current,new", [
        (NotificationStatus.SENT, NotificationStatus.FAILED),
        (NotificationStatus.CANCELLED, NotificationStatus.SENT),
        (NotificationStatus.FAILED, NotificationStatus.CANCELLED),
        (NotificationStatus.PENDING, NotificationStatus.PENDING)
    ])
    def test_rejected(self, current, new):
        result = notification_domain.validate_status_transition(current, new)

        assert not result.is_valid
        assert "Invalid status transition" in result.errors[0]

    def test_source_statuses(self):
        assert notification_domain.source_statuses_for(NotificationStatus.SENT) == ["pending", "failed"]
        assert notification_domain.source_statuses_for(NotificationStatus.CANCELLED) == ["pending"]
        assert notification_domain.source_statuses_for(NotificationStatus.PENDING) == []


class TestRequestValidation:
    """Test notification request checks."""

    def test_valid_request(self):
        result = notification_domain.validate_notification_request("0599123456", "Hello")

        assert result.is_valid
        assert result.errors == []

    def test_collects_every_error(self):
        result = notification_domain.validate_notification_request("123", "   ")

        assert not result.is_valid
        assert len(result.errors) == 2


class TestListing:
    """Test queue filters, totals and labels."""

    rows = [
        {"id": "1", "status": "pending", "notification_type": "otp_code",
         "whatsapp_number": "+970599123456", "message_template": "Your CODE is 1"},
        {"id": "2", "status": "sent", "notification_type": "general_message",
         "whatsapp_number": "+970598888888", "message_template": "Hello"},
        {"id": "3", "status": "failed", "notification_type": "otp_code",
         "whatsapp_number": "+970597777777", "message_template": "code again"}
    ]

    def ids(self, **filters):
        return [n["id"] for n in notification_domain.filter_notifications(self.rows, **filters)]

    def test_no_filters(self):
        assert self.ids() == ["1", "2", "3"]

    def test_by_status(self):
        assert self.ids(status="sent") == ["2"]

    def test_by_type(self):
        assert self.ids(notification_type="otp_code") == ["1", "3"]

    def test_search_is_case_insensitive_on_message(self):
        assert self.ids(search="code") == ["1", "3"]

    def test_search_matches_phone(self):
        assert self.ids(search="598888") == ["2"]

    def test_combined_filters(self):
        assert self.ids(status="failed", notification_type="otp_code", search="again") == ["3"]

    def test_summarize(self):
        statuses = ["pending", "pending", "sent", "failed", "cancelled"]

        assert notification_domain.summarize_statuses(statuses) == {
            "total": 5, "pending": 2, "sent": 1, "failed": 1
        }

    def test_type_label(self):
        assert notification_domain.type_label("otp_code") == "رمز OTP"
        assert notification_domain.type_label("custom_type") == "custom_type"
