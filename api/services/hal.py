# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Portal responses advertise the actions valid in the current session step;
admin resources advertise the transitions valid for their state.
"""

from typing import Dict, List, Any, Optional
from urllib.parse import urljoin, urlencode
import math

from models.responses import HalLink
from models.enums import PortalStep, NotificationStatus
from domain.authorization import NOTIFICATIONS_MANAGE, FEATURES_UPDATE

PORTAL_BASE = "/api/portal"
ADMIN_BASE = "/api/admin"


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        templated: bool = False
    ) -> HalLink:
        """Build a HAL link with proper URL construction."""
        href = urljoin(self.base_url, path.lstrip('/'))

        return HalLink(
            href=href,
            method=method,
            type=content_type,
            title=title,
            templated=templated or None
        )

    def build_self_link(self, resource_path: str) -> HalLink:
        return self.build_link(resource_path, title="Self")

    def build_collection_link(self, collection_path: str) -> HalLink:
        return self.build_link(collection_path, title="Collection")

    def build_action_link(
        self,
        resource_path: str,
        action: str,
        method: str = "POST",
        title: Optional[str] = None
    ) -> HalLink:
        """Build action link for a resource."""
        return self.build_link(
            f"{resource_path}/{action}",
            method=method,
            content_type="application/json",
            title=title or action.title()
        )


class PaginationLinkBuilder:
    """Builder for pagination links in HAL collections."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def _page_link(self, base_path: str, params: Dict[str, Any], page: int, page_size: int, title: str) -> HalLink:
        query = urlencode({**params, 'page': page, 'page_size': page_size})
        return self.link_builder.build_link(f"{base_path}?{query}", title=title)

    def build_pagination_links(
        self,
        base_path: str,
        current_page: int,
        total_pages: int,
        page_size: int,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, HalLink]:
        """Build pagination links for a collection."""
        params = {k: v for k, v in (query_params or {}).items() if v is not None}
        links = {'self': self._page_link(base_path, params, current_page, page_size, "Current page")}

        if current_page > 1:
            links['first'] = self._page_link(base_path, params, 1, page_size, "First page")
            links['prev'] = self._page_link(base_path, params, current_page - 1, page_size, "Previous page")

        if current_page < total_pages:
            links['next'] = self._page_link(base_path, params, current_page + 1, page_size, "Next page")
            links['last'] = self._page_link(base_path, params, total_pages, page_size, "Last page")

        return links


class AffordanceLinkBuilder:
    """Builder for conditional affordance links based on state and permissions."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def _post(self, path: str, title: str, method: str = "POST") -> HalLink:
        return self.link_builder.build_link(path, method=method, content_type="application/json", title=title)

    def build_portal_affordances(
        self,
        step: PortalStep,
        password_recovery: bool = False
    ) -> Dict[str, HalLink]:
        """Actions a client may take from the given portal step."""
        step = PortalStep(step)
        links = {}

        if step in (PortalStep.SEARCH, PortalStep.REGISTER):
            links['search'] = self._post(f"{PORTAL_BASE}/search", "Search by national ID")
            links['public_search'] = self.link_builder.build_link(
                "/api/public/search{?national_id}",
                title="Public lookup",
                templated=True
            )

        if step == PortalStep.CREATE_PIN:
            links['create_pin'] = self._post(f"{PORTAL_BASE}/pin", "Create PIN")

        if step == PortalStep.LOGIN:
            links['login'] = self._post(f"{PORTAL_BASE}/login", "Log in")
            if password_recovery:
                links['recover_password'] = self._post(f"{PORTAL_BASE}/password/recover", "Recover password")
                links['reset_password'] = self._post(f"{PORTAL_BASE}/password/reset", "Reset password")

        if step == PortalStep.VERIFY_OTP:
            links['verify_otp'] = self._post(f"{PORTAL_BASE}/otp/verify", "Verify code")
            links['resend_otp'] = self._post(f"{PORTAL_BASE}/otp/resend", "Resend code")

        if step == PortalStep.DASHBOARD:
            links['dashboard'] = self.link_builder.build_link(
                f"{PORTAL_BASE}/dashboard{{?filter}}",
                title="Dashboard",
                templated=True
            )
            links['profile'] = self._post(f"{PORTAL_BASE}/profile", "Update profile", method="PUT")
            links['location'] = self._post(f"{PORTAL_BASE}/location", "Share location")
            links['logout'] = self._post(f"{PORTAL_BASE}/logout", "Log out")

        links['support'] = self.link_builder.build_link(f"{PORTAL_BASE}/support", title="Contact support")
        return links

    def build_notification_affordances(
        self,
        notification_id: str,
        notification_status: str,
        user_permissions: List[str],
        api_configured: bool = False
    ) -> Dict[str, HalLink]:
        """Build conditional affordance links for queued notifications."""
        base_path = f"{ADMIN_BASE}/notifications/{notification_id}"
        links = {
            'self': self.link_builder.build_self_link(f"{base_path}/message"),
            'collection': self.link_builder.build_collection_link(f"{ADMIN_BASE}/notifications")
        }

        if NOTIFICATIONS_MANAGE not in user_permissions:
            return links

        deliverable = notification_status in (NotificationStatus.PENDING.value, NotificationStatus.FAILED.value)
        if deliverable:
            links['mark_sent'] = self.link_builder.build_action_link(base_path, "sent", title="Mark as sent")
            links['mark_failed'] = self.link_builder.build_action_link(base_path, "failed", title="Mark as failed")
            if api_configured:
                links['send'] = self.link_builder.build_action_link(base_path, "send", title="Send via API")

        if notification_status == NotificationStatus.PENDING.value:
            links['cancel'] = self.link_builder.build_action_link(base_path, "cancel", title="Cancel")

        return links

    def build_feature_affordances(self, feature_key: str, user_permissions: List[str]) -> Dict[str, HalLink]:
        links = {'collection': self.link_builder.build_collection_link(f"{ADMIN_BASE}/features")}
        if FEATURES_UPDATE in user_permissions:
            links['update'] = self._post(f"{ADMIN_BASE}/features/{feature_key}", "Update feature", method="PUT")
        return links


class HalResponseBuilder:
    """Main HAL response builder."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)
        self.pagination_builder = PaginationLinkBuilder(base_url)
        self.affordance_builder = AffordanceLinkBuilder(base_url)

    @staticmethod
    def _dump_links(links: Dict[str, HalLink]) -> Dict[str, Any]:
        return {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}

    def build_resource_response(self, data: Dict[str, Any], links: Dict[str, HalLink]) -> Dict[str, Any]:
        response = dict(data)
        response['_links'] = self._dump_links(links)
        return response

    def build_collection_response(
        self,
        items: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        collection_path: str,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Build a HAL collection response with pagination links."""
        total_pages = max(math.ceil(total / page_size), 1) if page_size > 0 else 1

        pagination_links = self.pagination_builder.build_pagination_links(
            collection_path,
            page,
            total_pages,
            page_size,
            query_params
        )

        return {
            'total': total,
            'page': page,
            'page_size': page_size,
            'total_pages': total_pages,
            '_links': self._dump_links(pagination_links),
            '_embedded': {
                'items': items
            }
        }

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with HAL links."""
        error_response = {
            'type': f"{self.base_url}/problems/{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance
        }

        if validation_errors:
            error_response['errors'] = validation_errors

        links = {
            'help': self.link_builder.build_link(
                f"/docs/errors#{error_type}",
                title="Error documentation"
            )
        }

        if error_type == "validation-error":
            links['schema'] = self.link_builder.build_link("/openapi/openapi.json", title="API schema")
        elif error_type == "authentication-required":
            links['login'] = self.link_builder.build_link(
                f"{PORTAL_BASE}/login",
                method="POST",
                content_type="application/json",
                title="Login"
            )

        error_response['_links'] = self._dump_links(links)
        return error_response


class HalFormatter:
    """High-level HAL formatter with convenience methods."""

    def __init__(self, base_url: str):
        self.builder = HalResponseBuilder(base_url)

    def format_portal_step(
        self,
        step: PortalStep,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        message: Optional[str] = None,
        password_recovery: bool = False
    ) -> Dict[str, Any]:
        """Portal response carrying the session step and its affordances."""
        body = {
            'step': PortalStep(step).value,
            'error': error,
            'message': message,
            **(data or {})
        }
        links = self.builder.affordance_builder.build_portal_affordances(step, password_recovery)
        return self.builder.build_resource_response(body, links)

    def format_notification(
        self,
        notification: Dict[str, Any],
        user_permissions: List[str],
        api_configured: bool = False
    ) -> Dict[str, Any]:
        links = self.builder.affordance_builder.build_notification_affordances(
            notification['id'],
            notification.get('status', ''),
            user_permissions,
            api_configured
        )
        return self.builder.build_resource_response(notification, links)

    def format_notification_collection(
        self,
        notifications: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        user_permissions: List[str],
        filters: Optional[Dict[str, Any]] = None,
        api_configured: bool = False
    ) -> Dict[str, Any]:
        formatted = [
            self.format_notification(notification, user_permissions, api_configured)
            for notification in notifications
        ]
        return self.builder.build_collection_response(
            formatted, total, page, page_size, f"{ADMIN_BASE}/notifications", filters
        )

    def format_feature(self, feature: Dict[str, Any], user_permissions: List[str]) -> Dict[str, Any]:
        links = self.builder.affordance_builder.build_feature_affordances(feature['feature_key'], user_permissions)
        return self.builder.build_resource_response(feature, links)

    def format_validation_error(
        self,
        detail: str,
        instance: str,
        validation_errors: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        return self.builder.build_error_response(
            "validation-error", "Validation Error", 400, detail, instance, validation_errors
        )

    def format_authentication_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.builder.build_error_response(
            "authentication-required", "Authentication Required", 401, detail, instance
        )

    def format_authorization_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.builder.build_error_response(
            "insufficient-permissions", "Insufficient Permissions", 403, detail, instance
        )


def create_hal_formatter(base_url: str) -> HalFormatter:
    """Create a HAL formatter instance."""
    return HalFormatter(base_url)
