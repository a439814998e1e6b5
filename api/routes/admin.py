# SPDX-License-Identifier: Apache-2.0

"""
Operator endpoints.

This module implements the portal settings screen (system feature toggles),
the WhatsApp notification queue, and read-only views over statistics,
beneficiaries and the activity log. All endpoints require an operator token
carrying the relevant permission.
"""

from flask import jsonify, current_app, request
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from typing import Dict, Any
import logging

from domain import messages
from domain import authorization as perms
from domain import notifications as notification_domain
from domain.portal import FEATURE_DESCRIPTIONS
from middleware.auth import require_permission
from middleware.error_handler import (
    ValidationException, NotFoundException, ConflictException, ServiceUnavailableException
)
from models.entities import StaffContext, WhatsAppNotification
from models.enums import ActivityType, ActivitySource, NotificationStatus
from models.requests import (
    UpdateFeatureRequest, CreateNotificationRequest, MarkFailedRequest,
    NotificationListQuery, FeaturePath, NotificationPath,
    BeneficiaryListQuery, ActivityListQuery
)
from services.activity import ActivityFilters
from services.whatsapp import NotificationConfigError
from utils.request import RequestParser, paginate

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

admin_tag = Tag(name="Administration", description="Portal settings and notification queue")
admin_bp = APIBlueprint(
    'admin',
    __name__,
    url_prefix='/api/admin',
    abp_tags=[admin_tag]
)


def _log_operator_action(staff: StaffContext, action: str, activity_type: ActivityType, details: str = None):
    current_app.activity_service.log_activity(
        action,
        staff.name or staff.user_id,
        messages.STAFF_ROLE,
        activity_type,
        details=details,
        source=ActivitySource.ADMIN
    )


def _notification_body(staff: StaffContext, notification: WhatsAppNotification, **extra) -> Dict[str, Any]:
    whatsapp_service = current_app.whatsapp_service
    data = notification.to_public_dict()
    data["type_label"] = notification_domain.type_label(notification.notification_type)
    data.update(extra)
    return current_app.hal_formatter.format_notification(
        data,
        staff.permissions,
        whatsapp_service.settings.is_api_configured()
    )


def _get_notification_or_404(notification_id: str) -> WhatsAppNotification:
    notification = current_app.whatsapp_service.get_notification(notification_id)
    if notification is None:
        raise NotFoundException(f"Notification {notification_id} not found")
    return notification


def _transition_response(staff: StaffContext, notification_id: str, new_status: NotificationStatus, transition):
    """Apply a queue transition and render the updated notification."""
    with tracer.start_as_current_span("admin.notification.transition") as span:
        span.set_attributes({
            "notification.id": notification_id,
            "notification.target_status": new_status.value
        })

        notification = _get_notification_or_404(notification_id)
        if not transition():
            span.set_status(Status(StatusCode.ERROR, "invalid transition"))
            raise ConflictException(
                f"Notification cannot change from {notification.status} to {new_status.value}"
            )

        _log_operator_action(
            staff,
            messages.ACTIVITY_NOTIFICATION_STATUS.format(status=new_status.value),
            ActivityType.UPDATE,
            details=notification_id
        )

        updated = _get_notification_or_404(notification_id)
        span.set_status(Status(StatusCode.OK))
        return jsonify(_notification_body(staff, updated)), 200


# System features

@admin_bp.get('/features')
@require_permission(perms.FEATURES_READ)
def list_features(staff: StaffContext):
    """List system feature toggles with the resolved portal settings."""
    auth_service = current_app.beneficiary_auth_service
    formatter = current_app.hal_formatter

    items = []
    for feature in auth_service.get_all_system_features():
        data = feature.to_public_dict()
        data["description"] = FEATURE_DESCRIPTIONS.get(feature.feature_key)
        items.append(formatter.format_feature(data, staff.permissions))

    body = {
        "total": len(items),
        "portal": auth_service.get_portal_features().model_dump(),
        "_embedded": {"items": items},
        "_links": {
            "self": formatter.builder.link_builder.build_self_link("/api/admin/features").model_dump(exclude_none=True)
        }
    }
    return jsonify(body), 200


@admin_bp.put('/features/<feature_key>')
@require_permission(perms.FEATURES_UPDATE)
def update_feature(staff: StaffContext, path: FeaturePath):
    """Enable or disable a feature."""
    body = current_app.validation_middleware.parse_json_body(UpdateFeatureRequest)
    auth_service = current_app.beneficiary_auth_service

    with tracer.start_as_current_span("admin.feature.update") as span:
        span.set_attributes({
            "feature.key": path.feature_key,
            "feature.enabled": body.is_enabled
        })

        updated = auth_service.update_system_feature(
            path.feature_key,
            body.is_enabled,
            settings=body.settings,
            updated_by=staff.user_id
        )
        if not updated:
            raise NotFoundException(f"Feature {path.feature_key} not found")

        _log_operator_action(
            staff,
            messages.ACTIVITY_FEATURE_UPDATED.format(feature_key=path.feature_key),
            ActivityType.UPDATE,
            details=f"is_enabled={body.is_enabled}"
        )

        feature = auth_service.get_system_feature(path.feature_key)
        data = feature.to_public_dict()
        data["description"] = FEATURE_DESCRIPTIONS.get(feature.feature_key)
        return jsonify(current_app.hal_formatter.format_feature(data, staff.permissions)), 200


# Notification queue

@admin_bp.get('/notifications')
@require_permission(perms.NOTIFICATIONS_READ)
def list_notifications(staff: StaffContext):
    """
    List queued notifications newest first.

    Supports filtering by status, type and a free-text search over the phone
    number and message, with page/page_size pagination.
    """
    query = current_app.validation_middleware.parse_query_params(NotificationListQuery)
    pagination = RequestParser.get_pagination_params()
    whatsapp_service = current_app.whatsapp_service

    with tracer.start_as_current_span("admin.notifications.list") as span:
        rows = [n.to_public_dict() for n in whatsapp_service.get_all_notifications()]
        status = query.status.value if query.status else None
        filtered = notification_domain.filter_notifications(rows, status, query.notification_type, query.search)
        page_items, total = paginate(filtered, pagination['page'], pagination['page_size'])

        for item in page_items:
            item["type_label"] = notification_domain.type_label(item["notification_type"])

        span.set_attributes({
            "notifications.total": total,
            "notifications.page": pagination['page']
        })

        body = current_app.hal_formatter.format_notification_collection(
            page_items,
            total,
            pagination['page'],
            pagination['page_size'],
            staff.permissions,
            filters={
                "status": status,
                "notification_type": query.notification_type,
                "search": query.search
            },
            api_configured=whatsapp_service.settings.is_api_configured()
        )
        return jsonify(body), 200


@admin_bp.get('/notifications/stats')
@require_permission(perms.NOTIFICATIONS_READ)
def notification_stats(staff: StaffContext):
    stats = current_app.whatsapp_service.get_notification_stats()
    links = {"self": current_app.hal_formatter.builder.link_builder.build_self_link("/api/admin/notifications/stats")}
    return jsonify(current_app.hal_formatter.builder.build_resource_response(stats, links)), 200


@admin_bp.post('/notifications')
@require_permission(perms.NOTIFICATIONS_MANAGE)
def create_notification(staff: StaffContext):
    """Queue a WhatsApp message."""
    body = current_app.validation_middleware.parse_json_body(CreateNotificationRequest)

    result = notification_domain.validate_notification_request(body.whatsapp_number, body.message_template)
    if not result.is_valid:
        raise ValidationException(
            "Invalid notification",
            [{"field": "body", "message": error, "type": "value_error", "input": None} for error in result.errors]
        )

    notification = current_app.whatsapp_service.create_notification(
        body.beneficiary_id,
        body.notification_type,
        body.whatsapp_number,
        body.message_template,
        body.message_variables,
        body.package_id
    )
    _log_operator_action(
        staff,
        messages.ACTIVITY_NOTIFICATION_QUEUED.format(notification_type=body.notification_type),
        ActivityType.CREATE,
        details=notification.id
    )
    return jsonify(_notification_body(staff, notification)), 201


@admin_bp.get('/notifications/<notification_id>/message')
@require_permission(perms.NOTIFICATIONS_READ)
def get_notification_message(staff: StaffContext, path: NotificationPath):
    """Rendered message and the wa.me link used for manual delivery."""
    notification = _get_notification_or_404(path.notification_id)
    whatsapp_service = current_app.whatsapp_service
    return jsonify(_notification_body(
        staff,
        notification,
        rendered_message=whatsapp_service.render_message(notification),
        whatsapp_link=whatsapp_service.delivery_link(notification)
    )), 200


@admin_bp.post('/notifications/<notification_id>/sent')
@require_permission(perms.NOTIFICATIONS_MANAGE)
def mark_notification_sent(staff: StaffContext, path: NotificationPath):
    return _transition_response(
        staff,
        path.notification_id,
        NotificationStatus.SENT,
        lambda: current_app.whatsapp_service.mark_as_sent(path.notification_id)
    )


@admin_bp.post('/notifications/<notification_id>/failed')
@require_permission(perms.NOTIFICATIONS_MANAGE)
def mark_notification_failed(staff: StaffContext, path: NotificationPath):
    body = current_app.validation_middleware.parse_json_body(MarkFailedRequest)
    return _transition_response(
        staff,
        path.notification_id,
        NotificationStatus.FAILED,
        lambda: current_app.whatsapp_service.mark_as_failed(path.notification_id, body.error_message)
    )


@admin_bp.post('/notifications/<notification_id>/cancel')
@require_permission(perms.NOTIFICATIONS_MANAGE)
def cancel_notification(staff: StaffContext, path: NotificationPath):
    return _transition_response(
        staff,
        path.notification_id,
        NotificationStatus.CANCELLED,
        lambda: current_app.whatsapp_service.cancel_notification(path.notification_id)
    )


@admin_bp.post('/notifications/<notification_id>/send')
@require_permission(perms.NOTIFICATIONS_MANAGE)
def send_notification(staff: StaffContext, path: NotificationPath):
    """Deliver a pending or failed notification through the messaging API."""
    whatsapp_service = current_app.whatsapp_service
    notification = _get_notification_or_404(path.notification_id)

    deliverable = (NotificationStatus.PENDING.value, NotificationStatus.FAILED.value)
    if notification.status not in deliverable:
        raise ConflictException(f"Notification in status {notification.status} cannot be sent")

    try:
        delivered = whatsapp_service.send_via_api(notification)
    except NotificationConfigError as e:
        raise ServiceUnavailableException(str(e))

    _log_operator_action(
        staff,
        messages.ACTIVITY_NOTIFICATION_STATUS.format(
            status=NotificationStatus.SENT.value if delivered else NotificationStatus.FAILED.value
        ),
        ActivityType.DELIVER,
        details=notification.id
    )

    updated = _get_notification_or_404(path.notification_id)
    return jsonify(_notification_body(staff, updated, delivered=delivered)), 200


# Reporting

@admin_bp.get('/statistics')
@require_permission(perms.STATISTICS_READ)
def statistics(staff: StaffContext):
    stats = current_app.statistics_service.get_overall_stats()
    links = {"self": current_app.hal_formatter.builder.link_builder.build_self_link("/api/admin/statistics")}
    return jsonify(current_app.hal_formatter.builder.build_resource_response(stats, links)), 200


@admin_bp.post('/packages/tracking-number')
@require_permission(perms.PACKAGES_MANAGE)
def generate_tracking_number(staff: StaffContext):
    tracking_number = current_app.system_service.generate_tracking_number()
    links = {"self": current_app.hal_formatter.builder.link_builder.build_self_link("/api/admin/packages/tracking-number")}
    return jsonify(current_app.hal_formatter.builder.build_resource_response(
        {"tracking_number": tracking_number}, links
    )), 201


@admin_bp.get('/beneficiaries')
@require_permission(perms.BENEFICIARIES_READ)
def list_beneficiaries(staff: StaffContext):
    """Beneficiaries newest first, optionally searched or scoped to an organization."""
    query = current_app.validation_middleware.parse_query_params(BeneficiaryListQuery)
    pagination = RequestParser.get_pagination_params()
    beneficiaries_service = current_app.beneficiaries_service

    if query.search:
        rows = beneficiaries_service.search(query.search)
    elif query.organization_id:
        rows = beneficiaries_service.get_by_organization(query.organization_id)
    else:
        rows = beneficiaries_service.get_all()

    page_items, total = paginate(rows, pagination['page'], pagination['page_size'])
    body = current_app.hal_formatter.builder.build_collection_response(
        page_items,
        total,
        pagination['page'],
        pagination['page_size'],
        request.path,
        query.model_dump(exclude_none=True)
    )
    return jsonify(body), 200


@admin_bp.get('/activity')
@require_permission(perms.ACTIVITY_READ)
def list_activity(staff: StaffContext):
    """Latest activity log entries, optionally for one beneficiary or source."""
    query = current_app.validation_middleware.parse_query_params(ActivityListQuery)
    pagination = RequestParser.get_pagination_params()
    activity_service = current_app.activity_service

    if query.beneficiary_id and not query.source:
        rows = activity_service.get_by_beneficiary(query.beneficiary_id)
    elif query.beneficiary_id or query.source:
        rows = activity_service.list_activity(ActivityFilters(beneficiary_id=query.beneficiary_id, source=query.source))
    else:
        rows = activity_service.get_all()

    page_items, total = paginate(rows, pagination['page'], pagination['page_size'])
    body = current_app.hal_formatter.builder.build_collection_response(
        page_items,
        total,
        pagination['page'],
        pagination['page_size'],
        request.path,
        query.model_dump(mode="json", exclude_none=True)
    )
    return jsonify(body), 200
