# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
WhatsApp notification service: message templates, deep links and the
operator-managed delivery queue.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from urllib.parse import quote

import requests
from opentelemetry import trace
from pymongo import ASCENDING, DESCENDING

from .mongodb import MongoDBService
from domain.notifications import (
    format_phone_number,
    validate_phone_number,
    source_statuses_for,
    summarize_statuses,
    split_phone
)
from models.base import utc_now
from models.entities import WhatsAppNotification
from models.enums import NotificationStatus

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_SEND_ERROR = "Failed to send WhatsApp message"
WHATSAPP_LINK_BASE = "https://wa.me"
# Characters encodeURIComponent leaves untouched
URI_COMPONENT_SAFE = "-_.!~*'()"


class NotificationConfigError(Exception):
    """Raised when the messaging API is used without credentials."""
    pass


@dataclass
class WhatsAppSettings:
    """Delivery settings for the messaging HTTP API."""
    support_phone: str
    api_key: Optional[str] = None
    api_url: Optional[str] = None
    sender_number: Optional[str] = None
    send_mode: str = "manual"

    def is_api_configured(self) -> bool:
        return bool(self.api_key and self.api_url)

    @property
    def auto_send(self) -> bool:
        return self.send_mode == "auto" and self.is_api_configured()


class MessageTemplates:
    """Arabic WhatsApp message bodies."""

    @staticmethod
    def temporary_password(name: str, password: str, support_phone: str) -> str:
        return (
            f"مرحباً {name}،\n\nتم إنشاء كلمة مرور مؤقتة لحسابك:\n\n🔑 كلمة المرور: {password}\n\n"
            f"⚠️ هذه الكلمة صالحة لمدة 24 ساعة فقط.\n\n"
            f"يرجى استخدامها لتسجيل الدخول ثم قم بتغييرها إلى كلمة مرور جديدة.\n\nللدعم: {support_phone}"
        )

    @staticmethod
    def otp_code(name: str, otp: str, support_phone: str) -> str:
        return f"مرحباً {name}،\n\nرمز التحقق الخاص بك هو:\n\n🔢 {otp}\n\n⏰ صالح لمدة 5 دقائق.\n\nللدعم: {support_phone}"

    @staticmethod
    def package_status_change(name: str, package_name: str, new_status: str) -> str:
        return (
            f"مرحباً {name}،\n\nتم تحديث حالة طردك:\n\n📦 {package_name}\n📍 الحالة الجديدة: {new_status}\n\n"
            f"للاستفسار يرجى التواصل معنا."
        )

    @staticmethod
    def identity_approved(name: str) -> str:
        return (
            f"مرحباً {name}،\n\n✅ تم الموافقة على توثيق هويتك بنجاح!\n\n"
            f"يمكنك الآن الوصول إلى جميع خدمات النظام من خلال بوابة المستفيدين.\n\nنتمنى لك تجربة موفقة."
        )

    @staticmethod
    def identity_rejected(name: str, support_phone: str) -> str:
        return (
            f"مرحباً {name}،\n\n❌ نأسف لإبلاغك أن طلب التوثيق الخاص بك قد تم رفضه.\n\n"
            f"يرجى التواصل مع الدعم للمزيد من المعلومات:\n{support_phone}"
        )

    @staticmethod
    def reupload_required(name: str, reason: str, support_phone: str) -> str:
        return (
            f"مرحباً {name}،\n\n📸 يُرجى إعادة رفع صور الهوية.\n\nالسبب: {reason}\n\n"
            f"يمكنك إعادة الرفع من خلال بوابة المستفيدين.\n\nللدعم: {support_phone}"
        )

    @staticmethod
    def welcome_registration(name: str, support_phone: str) -> str:
        return (
            f"مرحباً {name}،\n\n🎉 تم استلام طلب تسجيلك بنجاح!\n\n"
            f"طلبك الآن قيد المراجعة من قبل فريقنا. سنتواصل معك قريباً.\n\nللاستفسار: {support_phone}"
        )


def template_value(value: Any) -> str:
    """Render a variable the way the stored templates expect it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def interpolate_template(template: str, variables: Dict[str, Any]) -> str:
    """Replace every `{{key}}` with the rendered value; unknown placeholders stay."""
    result = template
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", template_value(value))
    return result


def generate_whatsapp_link(phone: str, message: str) -> str:
    """Build a `wa.me` deep link with the message pre-filled."""
    _, digits = split_phone(phone)
    return f"{WHATSAPP_LINK_BASE}/{digits}?text={quote(message, safe=URI_COMPONENT_SAFE)}"


class WhatsAppService:
    """Queue of WhatsApp messages delivered manually or through an HTTP API."""

    templates = MessageTemplates

    def __init__(self, mongo_service: MongoDBService, settings: WhatsAppSettings, request_timeout: int = 10):
        self.mongo_service = mongo_service
        self.settings = settings
        self.request_timeout = request_timeout
        self.collection_name = "whatsapp_notifications_queue"

    # Formatting helpers exposed on the service

    format_phone_number = staticmethod(format_phone_number)
    validate_phone_number = staticmethod(validate_phone_number)
    interpolate_template = staticmethod(interpolate_template)
    generate_whatsapp_link = staticmethod(generate_whatsapp_link)

    def render_message(self, notification: WhatsAppNotification) -> str:
        return interpolate_template(notification.message_template, notification.message_variables)

    def delivery_link(self, notification: WhatsAppNotification) -> str:
        return generate_whatsapp_link(notification.whatsapp_number, self.render_message(notification))

    # Queue reads

    def get_notification(self, notification_id: str) -> Optional[WhatsAppNotification]:
        return WhatsAppNotification.from_document(
            self.mongo_service.find_one(self.collection_name, {"_id": notification_id})
        )

    def get_all_notifications(self) -> List[WhatsAppNotification]:
        documents = self.mongo_service.find(self.collection_name, sort=[("created_at", DESCENDING)])
        return [WhatsAppNotification.from_document(doc) for doc in documents]

    def get_pending_notifications(self) -> List[WhatsAppNotification]:
        documents = self.mongo_service.find(
            self.collection_name,
            {"status": NotificationStatus.PENDING.value},
            sort=[("created_at", ASCENDING)]
        )
        return [WhatsAppNotification.from_document(doc) for doc in documents]

    def get_notifications_by_beneficiary(self, beneficiary_id: str) -> List[WhatsAppNotification]:
        documents = self.mongo_service.find(
            self.collection_name,
            {"beneficiary_id": beneficiary_id},
            sort=[("created_at", DESCENDING)]
        )
        return [WhatsAppNotification.from_document(doc) for doc in documents]

    def get_notification_stats(self) -> Dict[str, int]:
        documents = self.mongo_service.find(self.collection_name, projection=["status"])
        return summarize_statuses([doc.get("status") for doc in documents])

    # Queue writes

    def create_notification(
        self,
        beneficiary_id: Optional[str],
        notification_type: str,
        whatsapp_number: str,
        message_template: str,
        message_variables: Optional[Dict[str, Any]] = None,
        package_id: Optional[str] = None
    ) -> WhatsAppNotification:
        """
        Queue a message in `pending` status.

        Args:
            beneficiary_id: Recipient beneficiary (optional)
            notification_type: Category such as `otp_code`
            whatsapp_number: Recipient number, normalized before storage
            message_template: Body with optional `{{key}}` placeholders
            message_variables: Values for the placeholders
            package_id: Related package (optional)

        Returns:
            The queued notification
        """
        with tracer.start_as_current_span("whatsapp.create_notification") as span:
            span.set_attribute("notification.type", notification_type)

            now = utc_now()
            document = self.mongo_service.insert(self.collection_name, {
                "beneficiary_id": beneficiary_id,
                "notification_type": notification_type,
                "package_id": package_id,
                "whatsapp_number": format_phone_number(whatsapp_number),
                "message_template": message_template,
                "message_variables": message_variables or {},
                "status": NotificationStatus.PENDING.value,
                "sent_at": None,
                "error_message": None,
                "retry_count": 0,
                "created_at": now,
                "updated_at": now
            })

            logger.info(
                "WhatsApp notification queued",
                extra={
                    "notification_id": document["id"],
                    "notification_type": notification_type,
                    "beneficiary_id": beneficiary_id
                }
            )
            return WhatsAppNotification.from_document(document)

    def _transition(
        self,
        notification_id: str,
        new_status: NotificationStatus,
        set_fields: Dict[str, Any],
        inc_fields: Optional[Dict[str, int]] = None
    ) -> bool:
        set_fields = {**set_fields, "status": new_status.value, "updated_at": utc_now()}
        updated = self.mongo_service.find_one_and_update(
            self.collection_name,
            {"_id": notification_id, "status": {"$in": source_statuses_for(new_status)}},
            set_fields=set_fields,
            inc_fields=inc_fields
        )

        if updated is None:
            logger.warning(
                "Notification transition rejected",
                extra={"notification_id": notification_id, "target_status": new_status.value}
            )
            return False

        logger.info(
            "Notification status changed",
            extra={"notification_id": notification_id, "status": new_status.value}
        )
        return True

    def mark_as_sent(self, notification_id: str) -> bool:
        return self._transition(notification_id, NotificationStatus.SENT, {"sent_at": utc_now()})

    def mark_as_failed(self, notification_id: str, error_message: str) -> bool:
        return self._transition(
            notification_id,
            NotificationStatus.FAILED,
            {"error_message": error_message},
            inc_fields={"retry_count": 1}
        )

    def cancel_notification(self, notification_id: str) -> bool:
        return self._transition(notification_id, NotificationStatus.CANCELLED, {})

    # API delivery

    def send_via_api(self, notification: WhatsAppNotification, settings: Optional[WhatsAppSettings] = None) -> bool:
        """
        Deliver a queued message through the messaging HTTP API.

        Returns:
            True when the API accepted the message, False when delivery failed
            and the notification was marked failed

        Raises:
            NotificationConfigError: If the API key or URL is missing
        """
        settings = settings or self.settings
        if not settings.is_api_configured():
            raise NotificationConfigError("WhatsApp API settings not configured")

        with tracer.start_as_current_span("whatsapp.send_via_api") as span:
            span.set_attribute("notification.id", notification.id)

            payload = {
                "to": format_phone_number(notification.whatsapp_number),
                "from": settings.sender_number or settings.support_phone,
                "message": self.render_message(notification)
            }
            headers = {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {settings.api_key}"
            }

            try:
                response = requests.post(
                    settings.api_url,
                    json=payload,
                    headers=headers,
                    timeout=self.request_timeout
                )
            except requests.RequestException as e:
                span.record_exception(e)
                logger.error("WhatsApp API request failed", extra={"notification_id": notification.id, "error": str(e)})
                self.mark_as_failed(notification.id, str(e))
                return False

            span.set_attribute("http.status_code", response.status_code)

            if not response.ok:
                error_message = self._error_message(response)
                logger.error(
                    "WhatsApp API rejected message",
                    extra={"notification_id": notification.id, "status_code": response.status_code}
                )
                self.mark_as_failed(notification.id, error_message)
                return False

            self.mark_as_sent(notification.id)
            return True

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return DEFAULT_SEND_ERROR
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return DEFAULT_SEND_ERROR

    def queue_message(
        self,
        beneficiary_id: Optional[str],
        notification_type: str,
        whatsapp_number: str,
        message: str
    ) -> WhatsAppNotification:
        """Queue a rendered message, delivering it at once in auto send mode."""
        notification = self.create_notification(beneficiary_id, notification_type, whatsapp_number, message)
        if self.settings.auto_send:
            self.send_via_api(notification)
        return notification
