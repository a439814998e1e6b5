# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for HAL response formatting utilities.
"""

import pytest
from services.hal import (
    HalLinkBuilder, PaginationLinkBuilder, AffordanceLinkBuilder,
    HalResponseBuilder, create_hal_formatter
)
from models.enums import PortalStep
from models.responses import HalLink
from domain import authorization as perms

BASE_URL = "https://api.example.com"


class TestHalLinkBuilder:
    """Test HAL link builder functionality."""

    def test_build_basic_link(self):
        """Test building a basic HAL link."""
        link = HalLinkBuilder(BASE_URL).build_link("/api/portal/support")

        assert isinstance(link, HalLink)
        assert link.href == "https://api.example.com/api/portal/support"
        assert link.method == "GET"
        assert link.type is None
        assert link.templated is None

    def test_base_url_with_trailing_slash(self):
        link = HalLinkBuilder("https://api.example.com/").build_link("api/portal/search")

        assert link.href == "https://api.example.com/api/portal/search"

    def test_build_action_link(self):
        """Test building an action link."""
        link = HalLinkBuilder(BASE_URL).build_action_link("/api/admin/notifications/n1", "sent", title="Mark as sent")

        assert link.href == "https://api.example.com/api/admin/notifications/n1/sent"
        assert link.method == "POST"
        assert link.type == "application/json"
        assert link.title == "Mark as sent"


class TestPaginationLinkBuilder:
    """Test pagination links."""

    def test_first_page(self):
        links = PaginationLinkBuilder(BASE_URL).build_pagination_links("/api/admin/notifications", 1, 3, 20)

        assert set(links) == {"self", "next", "last"}
        assert links["next"].href.endswith("?page=2&page_size=20")
        assert links["last"].href.endswith("?page=3&page_size=20")

    def test_middle_page_keeps_filters(self):
        links = PaginationLinkBuilder(BASE_URL).build_pagination_links(
            "/api/admin/notifications", 2, 3, 10, {"status": "failed", "search": None}
        )

        assert set(links) == {"self", "first", "prev", "next", "last"}
        assert links["prev"].href == "https://api.example.com/api/admin/notifications?status=failed&page=1&page_size=10"
        assert "search" not in links["self"].href

    def test_single_page(self):
        links = PaginationLinkBuilder(BASE_URL).build_pagination_links("/api/admin/beneficiaries", 1, 1, 20)

        assert set(links) == {"self"}


class TestPortalAffordances:
    """Test the actions advertised for each portal step."""

    @pytest.fixture
    def builder(self):
        return AffordanceLinkBuilder(BASE_URL)

    def test_search(self, builder):
        links = builder.build_portal_affordances(PortalStep.SEARCH)

        assert set(links) == {"search", "public_search", "support"}
        assert links["public_search"].templated is True

    def test_create_pin(self, builder):
        assert set(builder.build_portal_affordances(PortalStep.CREATE_PIN)) == {"create_pin", "support"}

    def test_login_without_recovery(self, builder):
        assert set(builder.build_portal_affordances(PortalStep.LOGIN)) == {"login", "support"}

    def test_login_with_recovery(self, builder):
        links = builder.build_portal_affordances(PortalStep.LOGIN, password_recovery=True)

        assert {"recover_password", "reset_password"} <= set(links)

    def test_verify_otp(self, builder):
        assert set(builder.build_portal_affordances("verify_otp")) == {"verify_otp", "resend_otp", "support"}

    def test_dashboard(self, builder):
        links = builder.build_portal_affordances(PortalStep.DASHBOARD)

        assert set(links) == {"dashboard", "profile", "location", "logout", "support"}
        assert links["profile"].method == "PUT"
        assert links["dashboard"].href.endswith("/api/portal/dashboard{?filter}")


class TestNotificationAffordances:
    """Test conditional queue actions."""

    @pytest.fixture
    def builder(self):
        return AffordanceLinkBuilder(BASE_URL)

    def test_pending(self, builder):
        links = builder.build_notification_affordances("n1", "pending", [perms.NOTIFICATIONS_MANAGE])

        assert set(links) == {"self", "collection", "mark_sent", "mark_failed", "cancel"}
        assert links["self"].href.endswith("/api/admin/notifications/n1/message")

    def test_failed_with_api(self, builder):
        links = builder.build_notification_affordances("n1", "failed", [perms.NOTIFICATIONS_MANAGE], api_configured=True)

        assert set(links) == {"self", "collection", "mark_sent", "mark_failed", "send"}

    @pytest.mark.parametrize("status", ["sent", "cancelled"])
    def test_terminal(self, builder, status):
        links = builder.build_notification_affordances("n1", status, [perms.NOTIFICATIONS_MANAGE], api_configured=True)

        assert set(links) == {"self", "collection"}

    def test_read_only(self, builder):
        links = builder.build_notification_affordances("n1", "pending", [perms.NOTIFICATIONS_READ])

        assert set(links) == {"self", "collection"}


class TestHalResponseBuilder:
    """Test resource, collection and error documents."""

    def test_collection(self):
        body = HalResponseBuilder(BASE_URL).build_collection_response(
            [{"id": "1"}], 45, 1, 20, "/api/admin/activity"
        )

        assert body["total"] == 45
        assert body["total_pages"] == 3
        assert body["_embedded"]["items"] == [{"id": "1"}]
        assert "next" in body["_links"]

    def test_empty_collection_has_one_page(self):
        body = HalResponseBuilder(BASE_URL).build_collection_response([], 0, 1, 20, "/api/admin/activity")

        assert body["total_pages"] == 1

    def test_links_drop_empty_fields(self):
        builder = HalResponseBuilder(BASE_URL)

        body = builder.build_resource_response({"a": 1}, {"self": builder.link_builder.build_self_link("/x")})

        assert body["_links"]["self"] == {"href": "https://api.example.com/x", "method": "GET", "title": "Self"}

    def test_validation_error(self):
        body = HalResponseBuilder(BASE_URL).build_error_response(
            "validation-error", "Validation Error", 400, "bad body", "/api/portal/pin",
            [{"field": "pin", "message": "required"}]
        )

        assert body["type"] == "https://api.example.com/problems/validation-error"
        assert body["status"] == 400
        assert body["errors"][0]["field"] == "pin"
        assert "schema" in body["_links"]

    def test_authentication_error_links_to_login(self):
        body = HalResponseBuilder(BASE_URL).build_error_response(
            "authentication-required", "Authentication Required", 401, "missing token", "/api/portal/dashboard"
        )

        assert body["_links"]["login"]["href"] == "https://api.example.com/api/portal/login"
        assert "errors" not in body


class TestHalFormatter:
    """Test high-level formatting."""

    def test_portal_step(self):
        formatter = create_hal_formatter(BASE_URL)

        body = formatter.format_portal_step(
            PortalStep.LOGIN,
            data={"remaining_attempts": 3},
            error="wrong pin",
            password_recovery=True
        )

        assert body["step"] == "login"
        assert body["error"] == "wrong pin"
        assert body["message"] is None
        assert body["remaining_attempts"] == 3
        assert "recover_password" in body["_links"]

    def test_feature(self):
        formatter = create_hal_formatter(BASE_URL)

        body = formatter.format_feature({"feature_key": "otp_verification", "is_enabled": False}, [perms.FEATURES_UPDATE])

        assert body["_links"]["update"]["href"].endswith("/api/admin/features/otp_verification")
        assert body["_links"]["update"]["method"] == "PUT"
