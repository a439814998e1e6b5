# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and session context.

This module provides Flask decorators that validate beneficiary session tokens
and operator tokens, check the Redis blocklist, and pass the resulting context
to the route handler as its first argument.
"""

from functools import wraps
from flask import request, jsonify, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from domain.authorization import check_permission
from models.entities import BeneficiaryContext, StaffContext
from services.auth import TokenValidationError, BENEFICIARY_TOKEN, STAFF_TOKEN

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation, blocklist checking, and context
    building for protected endpoints.
    """

    def __init__(self, auth_service, redis_service):
        """
        Initialize the authentication middleware.

        Args:
            auth_service: JWT token service
            redis_service: Redis service for token blocklist
        """
        self.auth_service = auth_service
        self.redis_service = redis_service

    def extract_token_from_request(self) -> Optional[str]:
        """Extract the bearer token from the Authorization header."""
        auth_header = request.headers.get('Authorization', '')

        if not auth_header:
            return None

        if auth_header.startswith('Bearer '):
            return auth_header[7:]

        return auth_header

    def is_token_blocked(self, token_payload: Dict[str, Any]) -> bool:
        token_id = token_payload.get("jti")
        if not token_id:
            return False
        return self.redis_service.is_token_blocked(token_id)

    def get_request_info(self) -> Dict[str, Any]:
        return {
            "ip_address": request.remote_addr,
            "user_agent": request.headers.get('User-Agent', '')
        }

    def build_beneficiary_context(self, token_payload: Dict[str, Any]) -> BeneficiaryContext:
        request_info = self.get_request_info()
        return BeneficiaryContext(
            beneficiary_id=token_payload["sub"],
            national_id=token_payload.get("national_id", ""),
            name=token_payload.get("name"),
            token_payload=token_payload,
            ip_address=request_info["ip_address"],
            user_agent=request_info["user_agent"]
        )

    def build_staff_context(self, token_payload: Dict[str, Any]) -> StaffContext:
        request_info = self.get_request_info()
        return StaffContext(
            user_id=token_payload["sub"],
            name=token_payload.get("name"),
            permissions=token_payload.get("permissions", []),
            token_payload=token_payload,
            ip_address=request_info["ip_address"],
            user_agent=request_info["user_agent"]
        )

    def authenticate(self, token_type: str):
        """
        Validate the request token.

        Returns:
            Tuple of (token payload, error response); exactly one is None
        """
        hal_formatter = current_app.hal_formatter

        token = self.extract_token_from_request()
        if not token:
            logger.warning("Authentication failed: missing token")
            return None, (jsonify(hal_formatter.format_authentication_error(
                "Missing authorization token", request.path
            )), 401)

        try:
            token_payload = self.auth_service.validate_token(token, token_type)
        except TokenValidationError as e:
            logger.warning(f"Authentication failed: {str(e)}")
            return None, (jsonify(hal_formatter.builder.build_error_response(
                "invalid-token", "Invalid Token", 401, str(e), request.path
            )), 401)

        if self.is_token_blocked(token_payload):
            logger.warning("Authentication failed: token is blocked")
            return None, (jsonify(hal_formatter.builder.build_error_response(
                "token-revoked", "Token Revoked", 401, "Token has been revoked", request.path
            )), 401)

        return token_payload, None


def require_beneficiary(f: Callable) -> Callable:
    """Require a valid beneficiary session; passes `BeneficiaryContext` first."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        with tracer.start_as_current_span("auth.middleware.validate_session") as span:
            auth_middleware: AuthMiddleware = current_app.auth_middleware

            token_payload, error_response = auth_middleware.authenticate(BENEFICIARY_TOKEN)
            if error_response:
                span.set_attribute("auth.result", "rejected")
                return error_response

            context = auth_middleware.build_beneficiary_context(token_payload)
            g.user_context = context
            span.set_attributes({
                "auth.result": "success",
                "beneficiary.id": context.beneficiary_id
            })

            return f(context, *args, **kwargs)

    return decorated_function


def require_permission(permission: str) -> Callable:
    """
    Decorator to require an operator token carrying a permission.

    Args:
        permission: Required permission string

    Returns:
        Decorator function passing `StaffContext` first
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            with tracer.start_as_current_span("auth.middleware.check_permission") as span:
                span.set_attribute("auth.required_permission", permission)
                auth_middleware: AuthMiddleware = current_app.auth_middleware

                token_payload, error_response = auth_middleware.authenticate(STAFF_TOKEN)
                if error_response:
                    span.set_attribute("auth.result", "rejected")
                    return error_response

                staff_context = auth_middleware.build_staff_context(token_payload)
                g.user_context = staff_context

                authorization = check_permission(staff_context, permission)
                if not authorization.allowed:
                    span.set_attribute("auth.permission_result", "denied")
                    logger.warning(
                        f"Authorization failed: missing permission '{permission}'",
                        extra={
                            "user_id": staff_context.user_id,
                            "required_permission": permission,
                            "user_permissions": staff_context.permissions
                        }
                    )
                    return jsonify(current_app.hal_formatter.format_authorization_error(
                        authorization.reason, request.path
                    )), 403

                span.set_attributes({
                    "auth.permission_result": "granted",
                    "user.id": staff_context.user_id
                })
                return f(staff_context, *args, **kwargs)

        return decorated_function
    return decorator
