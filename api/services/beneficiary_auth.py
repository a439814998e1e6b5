# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Beneficiary authentication service.

Owns the portal credential lifecycle: PIN hashing and verification with
lockout, one-time codes, temporary passwords, system feature toggles and the
anonymous public lookup.
"""

import hmac
import logging
import secrets
from datetime import timedelta
from typing import Dict, List, Optional, Any

import bcrypt
from opentelemetry import trace
from pymongo import ASCENDING, DESCENDING

from .mongodb import MongoDBService
from .activity import ActivityService
from .redis import RedisService
from domain import messages
from domain.portal import lock_minutes_remaining
from models.base import utc_now
from models.entities import (
    Beneficiary,
    BeneficiaryAuth,
    SystemFeature,
    PortalFeatures,
    LoginResult,
    PublicSearchResult,
    NATIONAL_ID_PATTERN,
    PIN_PATTERN
)
from models.enums import OTPPurpose, LoginOutcome, ActivityType, ActivitySource

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_DURATION = timedelta(minutes=30)
OTP_VALIDITY = timedelta(minutes=5)
TEMPORARY_PASSWORD_VALIDITY = timedelta(hours=24)
DEFAULT_SUPPORT_PHONE = "+970599505699"

BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def legacy_pin_hash(pin: str) -> str:
    """
    Rolling hash used by the previous portal to store PINs.

    Multiply-by-31 over the character codes, wrapped to a signed 32-bit
    integer, then the absolute value rendered in base 36. Only used to verify
    credentials that have not yet been upgraded to bcrypt.
    """
    value = 0
    for char in pin:
        value = (value << 5) - value + ord(char)
        value = ((value + 2 ** 31) % 2 ** 32) - 2 ** 31

    value = abs(value)
    if value == 0:
        return "0"

    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def is_bcrypt_hash(stored_hash: str) -> bool:
    return stored_hash.startswith(("$2a$", "$2b$", "$2y$"))


class BeneficiaryAuthService:
    """Credential, OTP and feature toggle operations for the beneficiary portal."""

    def __init__(
        self,
        mongo_service: MongoDBService,
        activity_service: ActivityService,
        redis_service: Optional[RedisService] = None,
        default_support_phone: str = DEFAULT_SUPPORT_PHONE,
        public_actor_name: str = messages.DEFAULT_PUBLIC_ACTOR,
        public_search_audit_enabled: bool = True
    ):
        self.mongo_service = mongo_service
        self.activity_service = activity_service
        self.redis_service = redis_service
        self.default_support_phone = default_support_phone
        self.public_actor_name = public_actor_name
        self.public_search_audit_enabled = public_search_audit_enabled

    # Validation

    @staticmethod
    def clean_national_id(national_id: str) -> str:
        return "".join(national_id.split())

    def validate_national_id(self, national_id: str) -> bool:
        """Accept exactly nine digits once whitespace is removed."""
        return bool(NATIONAL_ID_PATTERN.fullmatch(self.clean_national_id(national_id)))

    @staticmethod
    def validate_pin(pin: str) -> bool:
        """Accept exactly six digits."""
        return bool(PIN_PATTERN.fullmatch(pin))

    # PIN hashing

    @staticmethod
    def hash_pin(pin: str) -> str:
        """Hash a PIN with bcrypt."""
        return bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

    @staticmethod
    def check_pin(pin: str, stored_hash: str) -> bool:
        """Compare a PIN against a bcrypt or legacy stored hash."""
        if is_bcrypt_hash(stored_hash):
            try:
                return bcrypt.checkpw(pin.encode("utf-8"), stored_hash.encode("utf-8"))
            except ValueError:
                logger.warning("Malformed bcrypt hash on stored credential")
                return False
        return hmac.compare_digest(legacy_pin_hash(pin), stored_hash)

    # Lookups

    def search_by_national_id(self, national_id: str) -> Optional[Beneficiary]:
        document = self.mongo_service.find_one(
            "beneficiaries",
            {"national_id": self.clean_national_id(national_id)}
        )
        return Beneficiary.from_document(document)

    def get_auth_by_national_id(self, national_id: str) -> Optional[BeneficiaryAuth]:
        document = self.mongo_service.find_one(
            "beneficiary_auth",
            {"national_id": self.clean_national_id(national_id)}
        )
        return BeneficiaryAuth.from_document(document)

    def get_auth_by_beneficiary(self, beneficiary_id: str) -> Optional[BeneficiaryAuth]:
        document = self.mongo_service.find_one("beneficiary_auth", {"beneficiary_id": beneficiary_id})
        return BeneficiaryAuth.from_document(document)

    # Credentials

    def create_auth(self, beneficiary_id: str, national_id: str, password_hash: str) -> BeneficiaryAuth:
        """
        Create the portal credential of a beneficiary.

        Args:
            beneficiary_id: Owning beneficiary
            national_id: National ID used to log in
            password_hash: Hash produced by `hash_pin`

        Returns:
            The stored credential

        Raises:
            DataAccessError: CONFLICT when a credential already exists
        """
        with tracer.start_as_current_span("beneficiary_auth.create_auth") as span:
            span.set_attribute("beneficiary.id", beneficiary_id)

            now = utc_now()
            document = self.mongo_service.insert("beneficiary_auth", {
                "beneficiary_id": beneficiary_id,
                "national_id": self.clean_national_id(national_id),
                "password_hash": password_hash,
                "is_first_login": True,
                "last_login_at": None,
                "login_attempts": 0,
                "locked_until": None,
                "created_at": now,
                "updated_at": now
            })

            logger.info("Beneficiary credential created", extra={"beneficiary_id": beneficiary_id})
            return BeneficiaryAuth.from_document(document)

    def verify_password(self, national_id: str, pin: str) -> LoginResult:
        """
        Verify a PIN login, counting failures and locking the credential.

        Five consecutive failures lock the credential for 30 minutes. A
        successful login clears the counter and the lock.

        Args:
            national_id: National ID of the credential
            pin: Plain 6-digit PIN

        Returns:
            LoginResult describing the outcome
        """
        with tracer.start_as_current_span("beneficiary_auth.verify_password") as span:
            auth = self.get_auth_by_national_id(national_id)

            if auth is None:
                span.set_attribute("auth.outcome", LoginOutcome.NOT_FOUND.value)
                return LoginResult(outcome=LoginOutcome.NOT_FOUND, message=messages.NATIONAL_ID_NOT_FOUND)

            span.set_attribute("beneficiary.id", auth.beneficiary_id)
            now = utc_now()

            if auth.is_locked(now):
                span.set_attribute("auth.outcome", LoginOutcome.LOCKED.value)
                logger.warning("Login attempt on locked credential", extra={"beneficiary_id": auth.beneficiary_id})
                minutes = lock_minutes_remaining(auth.locked_until, now)
                return LoginResult(
                    outcome=LoginOutcome.LOCKED,
                    message=messages.ACCOUNT_LOCKED.format(minutes=minutes),
                    locked_until=auth.locked_until
                )

            if self.check_pin(pin, auth.password_hash):
                set_fields = {
                    "login_attempts": 0,
                    "locked_until": None,
                    "last_login_at": now
                }
                if not is_bcrypt_hash(auth.password_hash):
                    set_fields["password_hash"] = self.hash_pin(pin)
                    logger.info("Upgraded legacy PIN hash", extra={"beneficiary_id": auth.beneficiary_id})

                updated = self.mongo_service.find_one_and_update(
                    "beneficiary_auth", {"_id": auth.id}, set_fields=set_fields
                )
                span.set_attribute("auth.outcome", LoginOutcome.SUCCESS.value)
                logger.info("Beneficiary login succeeded", extra={"beneficiary_id": auth.beneficiary_id})
                return LoginResult(
                    outcome=LoginOutcome.SUCCESS,
                    auth=BeneficiaryAuth.from_document(updated) if updated else auth
                )

            updated = self.mongo_service.find_one_and_update(
                "beneficiary_auth", {"_id": auth.id}, inc_fields={"login_attempts": 1}
            )
            attempts = updated["login_attempts"] if updated else auth.login_attempts + 1

            if attempts >= MAX_LOGIN_ATTEMPTS:
                locked_until = now + LOCKOUT_DURATION
                # Only lock while the counter is still at the limit
                locked = self.mongo_service.find_one_and_update(
                    "beneficiary_auth",
                    {"_id": auth.id, "login_attempts": {"$gte": MAX_LOGIN_ATTEMPTS}},
                    set_fields={"locked_until": locked_until}
                )
                if locked is not None:
                    span.set_attribute("auth.outcome", LoginOutcome.LOCKED_NOW.value)
                    logger.warning(
                        "Beneficiary credential locked",
                        extra={"beneficiary_id": auth.beneficiary_id, "login_attempts": attempts}
                    )
                    return LoginResult(
                        outcome=LoginOutcome.LOCKED_NOW,
                        message=messages.ACCOUNT_LOCKED_NOW,
                        remaining_attempts=0,
                        locked_until=locked_until
                    )

                logger.info(
                    "Lock skipped, counter cleared by a concurrent login",
                    extra={"beneficiary_id": auth.beneficiary_id}
                )
                attempts = 0

            remaining = MAX_LOGIN_ATTEMPTS - attempts
            span.set_attribute("auth.outcome", LoginOutcome.INVALID_PIN.value)
            logger.info(
                "Beneficiary login failed",
                extra={"beneficiary_id": auth.beneficiary_id, "remaining_attempts": remaining}
            )
            return LoginResult(
                outcome=LoginOutcome.INVALID_PIN,
                message=messages.WRONG_PIN.format(remaining=remaining),
                remaining_attempts=remaining
            )

    def update_password(self, auth_id: str, new_password_hash: str) -> bool:
        """Replace the PIN hash and clear the first-login flag."""
        matched = self.mongo_service.update("beneficiary_auth", {"_id": auth_id}, {
            "password_hash": new_password_hash,
            "is_first_login": False,
            "updated_at": utc_now()
        })
        return matched > 0

    def complete_first_login(self, auth_id: str) -> None:
        """Clear the first-login flag once registration is confirmed."""
        self.mongo_service.update("beneficiary_auth", {"_id": auth_id}, {
            "is_first_login": False,
            "updated_at": utc_now()
        })

    # Temporary passwords

    def create_temporary_password(self, auth_id: str, temp_password_hash: str) -> Dict[str, Any]:
        """Store a temporary password ticket valid for 24 hours."""
        return self.mongo_service.insert("beneficiary_password_resets", {
            "beneficiary_auth_id": auth_id,
            "temporary_password_hash": temp_password_hash,
            "is_used": False,
            "expires_at": utc_now() + TEMPORARY_PASSWORD_VALIDITY
        })

    def issue_temporary_password(self, auth_id: str) -> str:
        """Generate a temporary 6-digit password, store its hash and return it."""
        temporary_password = f"{secrets.randbelow(900000) + 100000}"
        self.create_temporary_password(auth_id, self.hash_pin(temporary_password))
        logger.info("Temporary password issued", extra={"beneficiary_auth_id": auth_id})
        return temporary_password

    def verify_temporary_password(self, auth_id: str, temporary_password: str) -> bool:
        """Consume a matching unused, unexpired ticket."""
        tickets = self.mongo_service.find(
            "beneficiary_password_resets",
            {
                "beneficiary_auth_id": auth_id,
                "is_used": False,
                "expires_at": {"$gte": utc_now()}
            },
            sort=[("created_at", DESCENDING)]
        )

        for ticket in tickets:
            if not self.check_pin(temporary_password, ticket["temporary_password_hash"]):
                continue
            consumed = self.mongo_service.find_one_and_update(
                "beneficiary_password_resets",
                {"_id": ticket["id"], "is_used": False},
                set_fields={"is_used": True}
            )
            return consumed is not None

        return False

    # One-time codes

    def generate_otp(self, beneficiary_id: str, purpose: OTPPurpose) -> str:
        """
        Create a 6-digit one-time code valid for 5 minutes.

        Returns:
            The code, to be delivered over WhatsApp
        """
        purpose = OTPPurpose(purpose)
        otp_code = f"{secrets.randbelow(900000) + 100000}"

        self.mongo_service.insert("beneficiary_otp", {
            "beneficiary_id": beneficiary_id,
            "otp_code": otp_code,
            "purpose": purpose.value,
            "is_verified": False,
            "expires_at": utc_now() + OTP_VALIDITY
        })

        logger.info("OTP generated", extra={"beneficiary_id": beneficiary_id, "purpose": purpose.value})
        return otp_code

    def verify_otp(self, beneficiary_id: str, otp_code: str, purpose: OTPPurpose) -> bool:
        """Mark the newest matching unverified, unexpired code as verified."""
        purpose = OTPPurpose(purpose)
        verified = self.mongo_service.find_one_and_update(
            "beneficiary_otp",
            {
                "beneficiary_id": beneficiary_id,
                "otp_code": otp_code,
                "purpose": purpose.value,
                "is_verified": False,
                "expires_at": {"$gte": utc_now()}
            },
            set_fields={"is_verified": True},
            sort=[("created_at", DESCENDING)]
        )

        logger.info(
            "OTP verification",
            extra={"beneficiary_id": beneficiary_id, "purpose": purpose.value, "verified": verified is not None}
        )
        return verified is not None

    # System features

    def get_system_feature(self, feature_key: str) -> Optional[SystemFeature]:
        return SystemFeature.from_document(
            self.mongo_service.find_one("system_features", {"feature_key": feature_key})
        )

    def get_all_system_features(self) -> List[SystemFeature]:
        documents = self.mongo_service.find("system_features", sort=[("feature_name", ASCENDING)])
        return [SystemFeature.from_document(document) for document in documents]

    def update_system_feature(
        self,
        feature_key: str,
        is_enabled: bool,
        settings: Optional[Dict[str, Any]] = None,
        updated_by: Optional[str] = None
    ) -> bool:
        """
        Toggle a feature and invalidate the cached portal features.

        Returns:
            False when no feature has the given key
        """
        updates: Dict[str, Any] = {
            "is_enabled": is_enabled,
            "updated_at": utc_now()
        }
        if settings:
            updates["settings"] = settings
        if updated_by:
            updates["updated_by"] = updated_by

        matched = self.mongo_service.update("system_features", {"feature_key": feature_key}, updates)
        if self.redis_service:
            self.redis_service.invalidate_portal_features()

        logger.info(
            "System feature updated",
            extra={"feature_key": feature_key, "is_enabled": is_enabled, "updated_by": updated_by}
        )
        return matched > 0

    def get_portal_features(self) -> PortalFeatures:
        """Typed feature record, cached in Redis for a short time."""
        if self.redis_service:
            cached = self.redis_service.get_cached_portal_features()
            if cached:
                return PortalFeatures(**cached)

        features = PortalFeatures.from_features(self.get_all_system_features(), self.default_support_phone)

        if self.redis_service:
            self.redis_service.cache_portal_features(features.model_dump())
        return features

    # Portal bookkeeping

    def update_beneficiary_portal_access(self, beneficiary_id: str) -> None:
        self.mongo_service.update("beneficiaries", {"_id": beneficiary_id}, {"last_portal_access": utc_now()})

    def log_activity(
        self,
        action: str,
        user_name: str,
        role: str,
        activity_type: ActivityType,
        beneficiary_id: Optional[str] = None,
        details: Optional[str] = None,
        source: ActivitySource = ActivitySource.BENEFICIARY
    ) -> Dict[str, Any]:
        return self.activity_service.log_activity(
            action, user_name, role, activity_type, beneficiary_id, details, source
        )

    # Public lookup

    def public_search(self, national_id: str) -> PublicSearchResult:
        """
        Anonymous lookup by national ID.

        Returns the beneficiary summary and packages newest first, and records
        a public activity entry unless auditing is disabled.
        """
        with tracer.start_as_current_span("beneficiary_auth.public_search") as span:
            national_id = self.clean_national_id(national_id)
            beneficiary = self.search_by_national_id(national_id)

            span.set_attribute("public_search.found", beneficiary is not None)
            if beneficiary is None:
                return PublicSearchResult(found=False, message=messages.PUBLIC_NOT_FOUND)

            packages = self.mongo_service.find(
                "packages",
                {"beneficiary_id": beneficiary.id},
                sort=[("created_at", DESCENDING)]
            )
            package_summaries = [
                {
                    "id": package["id"],
                    "name": package.get("name"),
                    "status": package.get("status"),
                    "scheduled_delivery_date": package.get("scheduled_delivery_date"),
                    "tracking_number": package.get("tracking_number")
                }
                for package in packages
            ]

            if self.public_search_audit_enabled:
                self.log_activity(
                    messages.ACTIVITY_PUBLIC_SEARCH.format(national_id=national_id),
                    self.public_actor_name,
                    "public",
                    ActivityType.REVIEW,
                    beneficiary.id,
                    messages.ACTIVITY_PUBLIC_SEARCH_DETAILS,
                    ActivitySource.PUBLIC
                )

            return PublicSearchResult(
                found=True,
                beneficiary=beneficiary.summary(),
                packages=package_summaries
            )
