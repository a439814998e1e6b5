# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware.

Every failure that escapes a view is rendered as an RFC 7807 problem document
with HAL links: werkzeug HTTP errors, data store errors (by `ErrorKind`),
application exceptions raised by the routes, and anything unexpected.
"""

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from typing import Dict, Any, List, Optional, Tuple
from opentelemetry import trace
import logging

from models.enums import ErrorKind
from services.hal import HalFormatter
from services.mongodb import DataAccessError
from utils.retry import get_user_friendly_error_message

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

# Problem type and title per HTTP status
HTTP_PROBLEMS = {
    400: ("bad-request", "Bad Request"),
    401: ("authentication-required", "Authentication Required"),
    403: ("insufficient-permissions", "Insufficient Permissions"),
    404: ("resource-not-found", "Resource Not Found"),
    405: ("method-not-allowed", "Method Not Allowed"),
    409: ("resource-conflict", "Resource Conflict"),
    423: ("account-locked", "Account Locked"),
    429: ("rate-limit-exceeded", "Rate Limit Exceeded"),
    500: ("internal-server-error", "Internal Server Error"),
    503: ("service-unavailable", "Service Unavailable")
}

ERROR_KIND_STATUS = {
    ErrorKind.VALIDATION: (400, "validation-error", "Validation Error"),
    ErrorKind.AUTH: (401, "authentication-required", "Authentication Required"),
    ErrorKind.NOT_FOUND: (404, "resource-not-found", "Resource Not Found"),
    ErrorKind.CONFLICT: (409, "resource-conflict", "Resource Conflict"),
    ErrorKind.LOCKED: (423, "account-locked", "Account Locked"),
    ErrorKind.NETWORK: (503, "service-unavailable", "Service Unavailable"),
    ErrorKind.NOT_CONFIGURED: (503, "service-unavailable", "Service Unavailable"),
    ErrorKind.UNKNOWN: (500, "internal-server-error", "Internal Server Error")
}


def is_production(app: Flask) -> bool:
    return app.config.get('ENVIRONMENT') == 'production'


class ErrorHandlerMiddleware:
    """Registers problem-document handlers on a Flask app."""

    def __init__(self, app: Flask, base_url: str):
        self.app = app
        self.hal_formatter = HalFormatter(base_url)
        self.register_error_handlers()

    def register_error_handlers(self):
        for status in HTTP_PROBLEMS:
            self.app.register_error_handler(status, self.handle_http_error)
        self.app.register_error_handler(DataAccessError, self.handle_data_access_error)
        self.app.register_error_handler(Exception, self.handle_unexpected_error)

    def _problem(self, error_type: str, title: str, status: int, detail: str,
                 errors: Optional[List[Dict[str, Any]]] = None) -> Tuple[Any, int]:
        body = self.hal_formatter.builder.build_error_response(
            error_type, title, status, detail, request.path, errors
        )
        return jsonify(body), status

    def handle_http_error(self, error: HTTPException) -> Tuple[Any, int]:
        """Abort calls and routing failures."""
        error_type, title = HTTP_PROBLEMS.get(error.code, ("http-error", error.name))
        detail = str(error.description) if error.description else title

        with tracer.start_as_current_span("error_handler.http_error") as span:
            span.set_attributes({
                "error.type": error_type,
                "error.status": error.code,
                "http.method": request.method,
                "http.path": request.path
            })

            if error.code >= 500:
                logger.error(f"Server error: {title}", extra={"detail": detail, "path": request.path})
                if is_production(self.app):
                    detail = "An internal server error occurred"
            else:
                logger.warning(f"Client error: {title}", extra={
                    "status_code": error.code,
                    "detail": detail,
                    "path": request.path,
                    "method": request.method,
                    "ip_address": request.remote_addr
                })

            return self._problem(error_type, title, error.code, detail)

    def handle_data_access_error(self, error: DataAccessError) -> Tuple[Any, int]:
        """
        Render a data store failure that escaped the route handler.

        The problem detail carries the Arabic user-facing message; the store's
        own message is only logged.
        """
        status, error_type, title = ERROR_KIND_STATUS.get(error.kind, ERROR_KIND_STATUS[ErrorKind.UNKNOWN])

        with tracer.start_as_current_span("error_handler.data_access_error") as span:
            span.set_attributes({
                "error.kind": error.kind.value,
                "error.status": status,
                "http.path": request.path
            })

            log = logger.error if status >= 500 else logger.warning
            log(f"Data access error: {error.kind.value}", extra={
                "error_code": error.code,
                "error_message": str(error),
                "path": request.path,
                "method": request.method
            })

            return self._problem(error_type, title, status, get_user_friendly_error_message(error))

    def handle_unexpected_error(self, error: Exception):
        if isinstance(error, HTTPException):
            return error

        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.exception(f"Unexpected error: {error.__class__.__name__}", extra={"path": request.path})

            detail = "An unexpected error occurred"
            if not is_production(self.app):
                detail = f"{error.__class__.__name__}: {error}"

            return self._problem("internal-server-error", "Internal Server Error", 500, detail)


class CustomException(Exception):
    """Application error carrying its own HTTP status and problem type."""

    status_code = 500
    error_type = "application-error"
    title = "Application Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationException(CustomException):
    status_code = 400
    error_type = "validation-error"
    title = "Validation Error"

    def __init__(self, message: str, validation_errors: list = None):
        super().__init__(message)
        self.validation_errors = validation_errors or []


class NotFoundException(CustomException):
    status_code = 404
    error_type = "resource-not-found"
    title = "Resource Not Found"


class ConflictException(CustomException):
    status_code = 409
    error_type = "resource-conflict"
    title = "Resource Conflict"


class ServiceUnavailableException(CustomException):
    status_code = 503
    error_type = "service-unavailable"
    title = "Service Unavailable"


def register_custom_error_handlers(app: Flask, hal_formatter: HalFormatter):
    """Render `CustomException` subclasses raised by the routes."""

    @app.errorhandler(CustomException)
    def handle_custom_exception(error: CustomException):
        logger.warning(f"Request failed: {error.error_type}", extra={
            "status_code": error.status_code,
            "error_message": error.message,
            "path": request.path,
            "method": request.method
        })

        error_response = hal_formatter.builder.build_error_response(
            error.error_type,
            error.title,
            error.status_code,
            error.message,
            request.path,
            getattr(error, "validation_errors", None)
        )
        return jsonify(error_response), error.status_code
