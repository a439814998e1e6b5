# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Integration tests for the beneficiary portal endpoints.
"""

import pytest
from datetime import timedelta

from domain import messages
from models.base import utc_now


def latest_otp(store) -> str:
    return store.rows("beneficiary_otp")[-1]["otp_code"]


class TestSearch:
    """Test the national ID search step."""

    def test_unknown_national_id_routes_to_registration(self, client):
        response = client.post('/api/portal/search', json={"national_id": "999999999"})

        assert response.status_code == 200
        data = response.get_json()
        assert data["step"] == "register"
        assert data["message"] == messages.BENEFICIARY_NOT_REGISTERED
        assert data["national_id"] == "999999999"
        assert "search" in data["_links"]

    def test_beneficiary_without_credential_creates_pin(self, client, seed_beneficiary):
        seed_beneficiary()

        response = client.post('/api/portal/search', json={"national_id": "123 456 789"})

        assert response.status_code == 200
        data = response.get_json()
        assert data["step"] == "create_pin"
        assert data["beneficiary"] == {"name": "أحمد محمد", "national_id": "123456789", "status": "active"}
        assert data["_links"]["create_pin"]["href"] == "http://localhost:5000/api/portal/pin"

    def test_registered_beneficiary_logs_in(self, client, store, seed_beneficiary, seed_credential):
        beneficiary = seed_beneficiary()
        seed_credential(beneficiary)

        response = client.post('/api/portal/search', json={"national_id": "123456789"})

        assert response.get_json()["step"] == "login"
        assert "login" in response.get_json()["_links"]

        activity = store.rows("activity_log")
        assert len(activity) == 1
        assert activity[0]["beneficiary_id"] == beneficiary["id"]
        assert activity[0]["source"] == "beneficiary"

    def test_invalid_national_id(self, client):
        response = client.post('/api/portal/search', json={"national_id": "12345"})

        assert response.status_code == 400
        data = response.get_json()
        assert data["step"] == "search"
        assert data["error"] == messages.INVALID_NATIONAL_ID

    def test_malformed_body(self, client):
        response = client.post('/api/portal/search', data="not json", content_type='application/json')

        assert response.status_code == 400
        data = response.get_json()
        assert data["type"] == "http://localhost:5000/problems/validation-error"
        assert data["errors"][0]["field"] == "body"

    def test_missing_field(self, client):
        response = client.post('/api/portal/search', json={})

        assert response.status_code == 400
        assert response.get_json()["errors"][0]["field"] == "national_id"

    def test_portal_disabled(self, client, seed_features):
        seed_features(beneficiary_portal=False)

        response = client.post('/api/portal/search', json={"national_id": "123456789"})

        assert response.status_code == 503
        data = response.get_json()
        assert data["step"] == "search"
        assert data["error"] == messages.PORTAL_DISABLED

    def test_rate_limit(self, client):
        for _ in range(10):
            response = client.post('/api/portal/search', json={"national_id": "999999999"})
            assert response.status_code == 200

        response = client.post('/api/portal/search', json={"national_id": "999999999"})

        assert response.status_code == 429
        assert response.headers['X-RateLimit-Remaining'] == '0'
        assert 'Retry-After' in response.headers
        assert response.get_json()["title"] == "Rate Limit Exceeded"


class TestCreatePin:
    """Test first-visit PIN creation."""

    def body(self, **overrides):
        return {"national_id": "123456789", "pin": "654321", "confirm_pin": "654321", **overrides}

    def test_opens_session_without_otp(self, client, store, seed_beneficiary):
        beneficiary = seed_beneficiary()

        response = client.post('/api/portal/pin', json=self.body())

        assert response.status_code == 201
        data = response.get_json()
        assert data["step"] == "dashboard"
        assert data["session"]["access_token"]
        assert data["beneficiary"]["id"] == beneficiary["id"]
        assert data["package_counts"]["all"] == 0
        assert "logout" in data["_links"]

        credentials = store.rows("beneficiary_auth")
        assert len(credentials) == 1
        assert credentials[0]["password_hash"].startswith("$2")
        assert credentials[0]["is_first_login"] is True

    def test_sends_otp_when_enabled(self, client, store, seed_features, seed_beneficiary):
        seed_features(otp_verification=True)
        seed_beneficiary()

        response = client.post('/api/portal/pin', json=self.body())

        assert response.status_code == 201
        data = response.get_json()
        assert data["step"] == "verify_otp"
        assert data["message"] == messages.OTP_SENT
        assert "session" not in data

        queued = store.rows("whatsapp_notifications_queue")
        assert len(queued) == 1
        assert queued[0]["notification_type"] == "otp_code"
        assert latest_otp(store) in queued[0]["message_template"]

    def test_pin_mismatch(self, client, seed_beneficiary):
        seed_beneficiary()

        response = client.post('/api/portal/pin', json=self.body(confirm_pin="111111"))

        assert response.status_code == 400
        assert response.get_json()["error"] == messages.PIN_MISMATCH

    @pytest.mark.parametrize("pin", ["١٢٣٤٥٦", "654321\n"])
    def test_rejects_pin_that_ascii_login_could_not_match(self, client, store, seed_beneficiary, pin):
        seed_beneficiary()

        response = client.post('/api/portal/pin', json=self.body(pin=pin, confirm_pin=pin))

        assert response.status_code == 400
        assert response.get_json()["error"] == messages.INVALID_PIN
        assert store.rows("beneficiary_auth") == []

    def test_unknown_beneficiary(self, client):
        response = client.post('/api/portal/pin', json=self.body())

        assert response.status_code == 404
        assert response.get_json()["step"] == "search"

    def test_already_registered(self, client, seed_beneficiary, seed_credential):
        seed_credential(seed_beneficiary())

        response = client.post('/api/portal/pin', json=self.body())

        assert response.status_code == 409
        data = response.get_json()
        assert data["step"] == "login"
        assert data["error"] == messages.ALREADY_REGISTERED


class TestLogin:
    """Test PIN login and lockout."""

    def test_success(self, client, store, seed_beneficiary, seed_credential, seed_package):
        beneficiary = seed_beneficiary()
        seed_credential(beneficiary)
        seed_package(beneficiary["id"], status="delivered")

        response = client.post('/api/portal/login', json={"national_id": "123456789", "pin": "123456"})

        assert response.status_code == 200
        data = response.get_json()
        assert data["step"] == "dashboard"
        assert data["session"]["access_token"]
        assert data["package_counts"]["delivered"] == 1
        assert store.rows("beneficiaries")[0]["last_portal_access"] is not None

    def test_wrong_pin(self, client, seed_beneficiary, seed_credential):
        seed_credential(seed_beneficiary())

        response = client.post('/api/portal/login', json={"national_id": "123456789", "pin": "000000"})

        assert response.status_code == 401
        data = response.get_json()
        assert data["step"] == "login"
        assert data["remaining_attempts"] == 4
        assert data["error"] == messages.WRONG_PIN.format(remaining=4)

    def test_fifth_failure_locks(self, client, seed_beneficiary, seed_credential):
        seed_credential(seed_beneficiary(), login_attempts=4)

        response = client.post('/api/portal/login', json={"national_id": "123456789", "pin": "000000"})

        assert response.status_code == 423
        assert response.get_json()["error"] == messages.ACCOUNT_LOCKED_NOW

    def test_locked_rejects_correct_pin(self, client, seed_beneficiary, seed_credential):
        seed_credential(seed_beneficiary(), locked_until=utc_now() + timedelta(minutes=10))

        response = client.post('/api/portal/login', json={"national_id": "123456789", "pin": "123456"})

        assert response.status_code == 423
        assert response.get_json()["error"] == messages.ACCOUNT_LOCKED.format(minutes=10)

    def test_locked_response_reports_time_left(self, client, seed_beneficiary, seed_credential):
        locked_until = utc_now() + timedelta(minutes=20)
        seed_credential(seed_beneficiary(), login_attempts=5, locked_until=locked_until)

        response = client.post('/api/portal/login', json={"national_id": "123456789", "pin": "000000"})

        assert response.status_code == 423
        data = response.get_json()
        assert data["step"] == "login"
        assert data["locked_until"] == locked_until.isoformat()
        assert data["remaining_minutes"] == 20
        assert "20" in data["error"]

    def test_fifth_failure_reports_lock_window(self, client, seed_beneficiary, seed_credential):
        seed_credential(seed_beneficiary(), login_attempts=4)

        data = client.post('/api/portal/login', json={"national_id": "123456789", "pin": "000000"}).get_json()

        assert data["remaining_attempts"] == 0
        assert data["remaining_minutes"] == 30
        assert data["locked_until"]

    def test_unknown_credential(self, client):
        response = client.post('/api/portal/login', json={"national_id": "123456789", "pin": "123456"})

        assert response.status_code == 404
        assert response.get_json()["error"] == messages.NATIONAL_ID_NOT_FOUND

    def test_invalid_pin_format(self, client):
        response = client.post('/api/portal/login', json={"national_id": "123456789", "pin": "12"})

        assert response.status_code == 400
        assert response.get_json()["error"] == messages.INVALID_PIN

    def test_first_login_without_otp_completes(self, client, store, seed_beneficiary, seed_credential):
        seed_credential(seed_beneficiary(), is_first_login=True)

        response = client.post('/api/portal/login', json={"national_id": "123456789", "pin": "123456"})

        assert response.get_json()["step"] == "dashboard"
        assert store.rows("beneficiary_auth")[0]["is_first_login"] is False

    def test_first_login_with_otp_requires_code(self, client, store, seed_features, seed_beneficiary, seed_credential):
        seed_features(otp_verification=True)
        seed_credential(seed_beneficiary(), is_first_login=True)

        response = client.post('/api/portal/login', json={"national_id": "123456789", "pin": "123456"})

        assert response.status_code == 200
        assert response.get_json()["step"] == "verify_otp"
        assert store.rows("beneficiary_auth")[0]["is_first_login"] is True
        assert len(store.rows("beneficiary_otp")) == 1


class TestOTP:
    """Test registration code verification."""

    @pytest.fixture
    def pending_registration(self, seed_features, seed_beneficiary, seed_credential):
        seed_features(otp_verification=True)
        beneficiary = seed_beneficiary()
        seed_credential(beneficiary, is_first_login=True)
        return beneficiary

    def test_verify_opens_session(self, client, store, app, pending_registration):
        with app.app_context():
            app.beneficiary_auth_service.generate_otp(pending_registration["id"], "registration")

        response = client.post('/api/portal/otp/verify', json={
            "national_id": "123456789",
            "code": latest_otp(store)
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data["step"] == "dashboard"
        assert data["session"]["access_token"]
        assert store.rows("beneficiary_auth")[0]["is_first_login"] is False
        assert store.rows("beneficiary_otp")[0]["is_verified"] is True

    def test_wrong_code(self, client, pending_registration):
        response = client.post('/api/portal/otp/verify', json={"national_id": "123456789", "code": "000000"})

        assert response.status_code == 401
        data = response.get_json()
        assert data["step"] == "verify_otp"
        assert data["error"] == messages.OTP_INVALID

    def test_code_format(self, client, pending_registration):
        response = client.post('/api/portal/otp/verify', json={"national_id": "123456789", "code": "12ab"})

        assert response.status_code == 400
        assert response.get_json()["error"] == messages.INVALID_OTP_FORMAT

    def test_resend(self, client, store, pending_registration):
        response = client.post('/api/portal/otp/resend', json={"national_id": "123456789"})

        assert response.status_code == 200
        assert response.get_json()["step"] == "verify_otp"
        assert len(store.rows("beneficiary_otp")) == 1
        assert len(store.rows("whatsapp_notifications_queue")) == 1

    def test_resend_when_disabled(self, client, seed_beneficiary, seed_credential):
        seed_credential(seed_beneficiary(), is_first_login=True)

        response = client.post('/api/portal/otp/resend', json={"national_id": "123456789"})

        assert response.status_code == 409
        assert response.get_json()["error"] == messages.OTP_DISABLED


class TestDashboard:
    """Test the signed-in views."""

    def test_requires_token(self, client):
        response = client.get('/api/portal/dashboard')

        assert response.status_code == 401
        assert response.get_json()["title"] == "Authentication Required"

    def test_rejects_staff_token(self, client, staff_headers):
        response = client.get('/api/portal/dashboard', headers=staff_headers())

        assert response.status_code == 401

    def test_filters_packages(self, client, seed_beneficiary, seed_package, beneficiary_headers):
        beneficiary = seed_beneficiary()
        seed_package(beneficiary["id"], status="delivered")
        seed_package(beneficiary["id"], status="in_delivery")
        seed_package(beneficiary["id"], status="pending", scheduled_delivery_date="2026-12-01T00:00:00Z")
        seed_package("someone-else", status="assigned")

        response = client.get('/api/portal/dashboard?filter=current', headers=beneficiary_headers(beneficiary))

        assert response.status_code == 200
        data = response.get_json()
        assert data["step"] == "dashboard"
        assert data["filter"] == "current"
        assert [p["status"] for p in data["packages"]] == ["in_delivery"]
        assert data["package_counts"] == {"all": 3, "delivered": 1, "current": 1, "future": 1}

    def test_unknown_filter(self, client, seed_beneficiary, beneficiary_headers):
        beneficiary = seed_beneficiary()

        response = client.get('/api/portal/dashboard?filter=archived', headers=beneficiary_headers(beneficiary))

        assert response.status_code == 400

    def test_update_profile(self, client, store, seed_beneficiary, beneficiary_headers):
        beneficiary = seed_beneficiary()

        response = client.put(
            '/api/portal/profile',
            json={"phone": "0598765432", "address": "خان يونس"},
            headers=beneficiary_headers(beneficiary)
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["message"] == messages.PROFILE_UPDATED
        assert data["beneficiary"]["phone"] == "+970598765432"
        assert store.rows("beneficiaries")[0]["address"] == "خان يونس"
        assert store.rows("activity_log")[0]["details"] == "address, phone"

    def test_update_profile_invalid_phone(self, client, seed_beneficiary, beneficiary_headers):
        beneficiary = seed_beneficiary()

        response = client.put(
            '/api/portal/profile',
            json={"phone": "12345"},
            headers=beneficiary_headers(beneficiary)
        )

        assert response.status_code == 400
        assert response.get_json()["error"] == messages.INVALID_PHONE

    def test_share_location(self, client, store, seed_beneficiary, beneficiary_headers):
        beneficiary = seed_beneficiary()

        response = client.post(
            '/api/portal/location',
            json={"latitude": 31.5, "longitude": 34.46},
            headers=beneficiary_headers(beneficiary)
        )

        assert response.status_code == 200
        assert response.get_json()["message"] == messages.LOCATION_SHARED
        entry = store.rows("activity_log")[0]
        assert entry["beneficiary_id"] == beneficiary["id"]
        assert "31.5" in entry["action"]

    def test_location_out_of_range(self, client, seed_beneficiary, beneficiary_headers):
        beneficiary = seed_beneficiary()

        response = client.post(
            '/api/portal/location',
            json={"latitude": 120, "longitude": 34.46},
            headers=beneficiary_headers(beneficiary)
        )

        assert response.status_code == 400

    def test_logout_revokes_token(self, client, seed_beneficiary, beneficiary_headers):
        headers = beneficiary_headers(seed_beneficiary())

        response = client.post('/api/portal/logout', headers=headers)

        assert response.status_code == 200
        assert response.get_json()["step"] == "search"
        assert response.get_json()["message"] == messages.LOGGED_OUT

        response = client.get('/api/portal/dashboard', headers=headers)

        assert response.status_code == 401
        assert response.get_json()["title"] == "Token Revoked"


class TestSupport:
    """Test the support contact."""

    def test_support_link(self, client):
        response = client.get('/api/portal/support')

        assert response.status_code == 200
        data = response.get_json()
        assert data["support_phone"] == "+970599505699"
        assert data["whatsapp_link"].startswith("https://wa.me/970599505699?text=")

    def test_support_phone_from_feature_settings(self, client, store):
        store.insert("system_features", {
            "feature_key": "whatsapp_notifications",
            "feature_name": "whatsapp_notifications",
            "is_enabled": True,
            "settings": {"support_phone": "+970591111111"}
        })

        response = client.get('/api/portal/support')

        assert response.get_json()["support_phone"] == "+970591111111"


class TestPasswordRecovery:
    """Test temporary passwords and PIN reset."""

    def test_disabled(self, client, seed_beneficiary, seed_credential):
        seed_credential(seed_beneficiary())

        response = client.post('/api/portal/password/recover', json={"national_id": "123456789"})

        assert response.status_code == 403
        assert response.get_json()["error"] == messages.RECOVERY_DISABLED

    def test_recover_sends_temporary_password(self, client, store, seed_features, seed_beneficiary, seed_credential):
        seed_features(password_recovery=True)
        seed_credential(seed_beneficiary())

        response = client.post('/api/portal/password/recover', json={"national_id": "123456789"})

        assert response.status_code == 200
        data = response.get_json()
        assert data["message"] == messages.RECOVERY_SENT
        assert "recover_password" in data["_links"]
        assert len(store.rows("beneficiary_password_resets")) == 1
        assert store.rows("whatsapp_notifications_queue")[0]["notification_type"] == "temporary_password"

    def test_recover_without_phone(self, client, seed_features, seed_beneficiary, seed_credential):
        seed_features(password_recovery=True)
        seed_credential(seed_beneficiary(phone=None))

        response = client.post('/api/portal/password/recover', json={"national_id": "123456789"})

        assert response.status_code == 400
        assert response.get_json()["error"] == messages.NO_PHONE_ON_FILE

    def test_reset_then_login(self, client, app, seed_features, seed_beneficiary, seed_credential):
        seed_features(password_recovery=True)
        credential = seed_credential(seed_beneficiary())
        with app.app_context():
            temporary_password = app.beneficiary_auth_service.issue_temporary_password(credential["id"])

        response = client.post('/api/portal/password/reset', json={
            "national_id": "123456789",
            "temporary_password": temporary_password,
            "new_pin": "246810",
            "confirm_pin": "246810"
        })

        assert response.status_code == 200
        assert response.get_json()["message"] == messages.PASSWORD_RESET_DONE

        response = client.post('/api/portal/login', json={"national_id": "123456789", "pin": "246810"})
        assert response.get_json()["step"] == "dashboard"

    def test_reset_with_wrong_temporary_password(self, client, seed_features, seed_beneficiary, seed_credential):
        seed_features(password_recovery=True)
        seed_credential(seed_beneficiary())

        response = client.post('/api/portal/password/reset', json={
            "national_id": "123456789",
            "temporary_password": "999999",
            "new_pin": "246810",
            "confirm_pin": "246810"
        })

        assert response.status_code == 401
        assert response.get_json()["error"] == messages.TEMPORARY_PASSWORD_INVALID
