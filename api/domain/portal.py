# SPDX-License-Identifier: Apache-2.0

"""
Beneficiary portal domain logic.

Pure functions for the session step machine, input validation and the
dashboard package filters. Nothing here touches storage.
"""

import math
from enum import Enum
from dataclasses import dataclass
from datetime import datetime
from typing import List, Dict, Any, Optional

from models.entities import NATIONAL_ID_PATTERN, PIN_PATTERN
from models.enums import PortalStep, PackageFilter, PackageStatus, LoginOutcome
from . import messages

FEATURE_DESCRIPTIONS = {
    "otp_verification": "عند التفعيل، سيتم إرسال رمز تحقق OTP عبر واتساب للمستفيدين عند التسجيل الأول",
    "password_recovery": "يسمح للمستفيدين باسترداد كلمة المرور عبر رقم واتساب الدعم",
    "whatsapp_notifications": "إرسال إشعارات تلقائية عبر واتساب عند تحديث حالة الطرد",
    "beneficiary_portal": "تفعيل أو تعطيل بوابة المستفيدين بالكامل"
}


class PortalEvent(str, Enum):
    """Outcomes that move a portal session between steps."""
    BENEFICIARY_NOT_FOUND = "beneficiary_not_found"
    CREDENTIAL_MISSING = "credential_missing"
    CREDENTIAL_FOUND = "credential_found"
    PIN_CREATED = "pin_created"
    LOGGED_IN = "logged_in"
    OTP_VERIFIED = "otp_verified"
    RESTART = "restart"


TRANSITIONS = {
    (PortalStep.SEARCH, PortalEvent.BENEFICIARY_NOT_FOUND): PortalStep.REGISTER,
    (PortalStep.SEARCH, PortalEvent.CREDENTIAL_MISSING): PortalStep.CREATE_PIN,
    (PortalStep.SEARCH, PortalEvent.CREDENTIAL_FOUND): PortalStep.LOGIN,
    (PortalStep.CREATE_PIN, PortalEvent.PIN_CREATED): PortalStep.DASHBOARD,
    (PortalStep.LOGIN, PortalEvent.LOGGED_IN): PortalStep.DASHBOARD,
    (PortalStep.VERIFY_OTP, PortalEvent.OTP_VERIFIED): PortalStep.DASHBOARD,
    (PortalStep.REGISTER, PortalEvent.RESTART): PortalStep.SEARCH
}


class InvalidTransitionError(ValueError):
    """Raised when an event is not valid for the current step."""
    pass


@dataclass
class StepResult:
    """Outcome of a portal action."""
    step: PortalStep
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def advance(current: PortalStep, event: PortalEvent, otp_enabled: bool = False) -> PortalStep:
    """
    Next portal step for an event.

    Creating a PIN routes through OTP verification when it is enabled.

    Raises:
        InvalidTransitionError: If the event does not apply to the step
    """
    current = PortalStep(current)
    event = PortalEvent(event)

    if current == PortalStep.CREATE_PIN and event == PortalEvent.PIN_CREATED and otp_enabled:
        return PortalStep.VERIFY_OTP

    if event == PortalEvent.RESTART:
        return PortalStep.SEARCH

    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(f"Event {event.value} is not valid in step {current.value}")


def search_event(beneficiary_found: bool, credential_found: bool) -> PortalEvent:
    if not beneficiary_found:
        return PortalEvent.BENEFICIARY_NOT_FOUND
    if not credential_found:
        return PortalEvent.CREDENTIAL_MISSING
    return PortalEvent.CREDENTIAL_FOUND


def login_step(outcome: LoginOutcome, message: Optional[str]) -> StepResult:
    """Map a login outcome onto the portal step it leaves the session in."""
    if LoginOutcome(outcome) == LoginOutcome.SUCCESS:
        return StepResult(advance(PortalStep.LOGIN, PortalEvent.LOGGED_IN))
    return StepResult(PortalStep.LOGIN, error=message)


def lock_minutes_remaining(locked_until: datetime, now: datetime) -> int:
    """Whole minutes left on a lock, rounded up and never below one."""
    return max(1, math.ceil((locked_until - now).total_seconds() / 60))


def login_failure_data(remaining_attempts: Optional[int], locked_until: Optional[datetime],
                       now: datetime) -> Dict[str, Any]:
    """Step data returned with a failed login."""
    data: Dict[str, Any] = {"remaining_attempts": remaining_attempts}
    if locked_until is not None:
        data["locked_until"] = locked_until.isoformat()
        data["remaining_minutes"] = lock_minutes_remaining(locked_until, now)
    return data


# Input validation; each returns the Arabic error or None

def validate_national_id_input(national_id: str) -> Optional[str]:
    cleaned = "".join((national_id or "").split())
    if not NATIONAL_ID_PATTERN.fullmatch(cleaned):
        return messages.INVALID_NATIONAL_ID
    return None


def validate_pin_input(pin: str) -> Optional[str]:
    if not PIN_PATTERN.fullmatch(pin or ""):
        return messages.INVALID_PIN
    return None


def validate_new_pin(pin: str, confirm_pin: str) -> Optional[str]:
    """Format first, then the confirmation."""
    error = validate_pin_input(pin)
    if error:
        return error
    if pin != confirm_pin:
        return messages.PIN_MISMATCH
    return None


def validate_otp_input(code: str) -> Optional[str]:
    if not PIN_PATTERN.fullmatch(code or ""):
        return messages.INVALID_OTP_FORMAT
    return None


# Dashboard

def matches_filter(package: Dict[str, Any], package_filter: PackageFilter) -> bool:
    package_filter = PackageFilter(package_filter)
    status = package.get("status")

    if package_filter == PackageFilter.DELIVERED:
        return status == PackageStatus.DELIVERED.value
    if package_filter == PackageFilter.CURRENT:
        return status in (PackageStatus.ASSIGNED.value, PackageStatus.IN_DELIVERY.value)
    if package_filter == PackageFilter.FUTURE:
        return status == PackageStatus.PENDING.value and bool(package.get("scheduled_delivery_date"))
    return True


def filter_packages(packages: List[Dict[str, Any]], package_filter: PackageFilter = PackageFilter.ALL) -> List[Dict[str, Any]]:
    """Packages shown under a dashboard tab, order preserved."""
    return [package for package in packages if matches_filter(package, package_filter)]


def package_counts(packages: List[Dict[str, Any]]) -> Dict[str, int]:
    """Number of packages under each dashboard tab."""
    return {
        package_filter.value: len(filter_packages(packages, package_filter))
        for package_filter in PackageFilter
    }
