# SPDX-License-Identifier: Apache-2.0

"""
WhatsApp notification queue domain logic.

This module contains pure functions for queue status transitions, request
validation and listing filters.
"""

import re
from typing import List, Dict, Any, Optional, Tuple
from dataclasses import dataclass, field

from models.enums import NotificationStatus

PHONE_CLEANUP_PATTERN = re.compile(r"[\s\-\(\)]")
PHONE_PATTERN = re.compile(r"(?:\+970|0)?5[0-9]{8}")

NOTIFICATION_TYPE_LABELS = {
    "package_status_change": "تحديث حالة الطرد",
    "identity_approved": "موافقة على التوثيق",
    "identity_rejected": "رفض التوثيق",
    "reupload_required": "إعادة رفع مطلوبة",
    "temporary_password": "كلمة مرور مؤقتة",
    "otp_code": "رمز OTP",
    "welcome_registration": "ترحيب بالتسجيل",
    "general_message": "رسالة عامة"
}

# Failed rows may be retried; sent and cancelled are terminal
VALID_TRANSITIONS = {
    NotificationStatus.PENDING: [NotificationStatus.SENT, NotificationStatus.FAILED, NotificationStatus.CANCELLED],
    NotificationStatus.FAILED: [NotificationStatus.SENT, NotificationStatus.FAILED],
    NotificationStatus.SENT: [],
    NotificationStatus.CANCELLED: []
}


@dataclass
class ValidationResult:
    """Result of notification validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def clean_phone_number(phone: str) -> str:
    """Strip spaces, dashes and parentheses."""
    return PHONE_CLEANUP_PATTERN.sub("", phone)


def format_phone_number(phone: str) -> str:
    """
    Normalize a Palestinian mobile number to the +970 prefix.

    Unrecognized input is returned unchanged.
    """
    cleaned = clean_phone_number(phone)

    if cleaned.startswith("+970"):
        return cleaned
    if cleaned.startswith("970"):
        return "+" + cleaned
    if cleaned.startswith("05"):
        return "+970" + cleaned[1:]
    if cleaned.startswith("5"):
        return "+970" + cleaned
    return phone


def validate_phone_number(phone: str) -> bool:
    return bool(PHONE_PATTERN.fullmatch(clean_phone_number(phone)))


def validate_status_transition(
    current_status: NotificationStatus,
    new_status: NotificationStatus
) -> ValidationResult:
    """
    Validate a queue status transition.

    Args:
        current_status: Current notification status
        new_status: Desired new status

    Returns:
        ValidationResult with validation status and errors
    """
    current_status = NotificationStatus(current_status)
    new_status = NotificationStatus(new_status)

    if new_status not in VALID_TRANSITIONS[current_status]:
        return ValidationResult(
            is_valid=False,
            errors=[f"Invalid status transition from {current_status.value} to {new_status.value}"]
        )
    return ValidationResult(is_valid=True)


def source_statuses_for(new_status: NotificationStatus) -> List[str]:
    """Statuses a row may be in to move to `new_status`."""
    new_status = NotificationStatus(new_status)
    return [
        status.value
        for status, targets in VALID_TRANSITIONS.items()
        if new_status in targets
    ]


def validate_notification_request(whatsapp_number: str, message_template: str) -> ValidationResult:
    """Validate the fields of a notification before queueing it."""
    errors = []

    if not whatsapp_number or not validate_phone_number(whatsapp_number):
        errors.append("whatsapp_number must be a valid mobile number")

    if not message_template or not message_template.strip():
        errors.append("message_template cannot be empty")

    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def filter_notifications(
    notifications: List[Dict[str, Any]],
    status: Optional[str] = None,
    notification_type: Optional[str] = None,
    search: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Filter queue rows by status, type and free text.

    The search term matches the phone number or, case-insensitively, the
    message template.
    """
    filtered = list(notifications)

    if status:
        status = NotificationStatus(status).value
        filtered = [n for n in filtered if n.get("status") == status]

    if notification_type:
        filtered = [n for n in filtered if n.get("notification_type") == notification_type]

    if search:
        term = search.lower()
        filtered = [
            n for n in filtered
            if term in n.get("whatsapp_number", "") or term in n.get("message_template", "").lower()
        ]

    return filtered


def summarize_statuses(statuses: List[str]) -> Dict[str, int]:
    """Queue totals by status."""
    return {
        "total": len(statuses),
        "pending": statuses.count(NotificationStatus.PENDING.value),
        "sent": statuses.count(NotificationStatus.SENT.value),
        "failed": statuses.count(NotificationStatus.FAILED.value)
    }


def type_label(notification_type: str) -> str:
    return NOTIFICATION_TYPE_LABELS.get(notification_type, notification_type)


def split_phone(phone: str) -> Tuple[str, str]:
    """Return the normalized number and its digits for deep links."""
    formatted = format_phone_number(phone)
    return formatted, formatted.replace("+", "")
