# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Retry and error-normalization helpers for data access calls.
"""

import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

import jwt
import requests
from pydantic import ValidationError

from models.enums import ErrorKind
from services.mongodb import DataAccessError

logger = logging.getLogger(__name__)

T = TypeVar("T")

NETWORK_ERROR_MESSAGE = "حدث خطأ في الاتصال بالشبكة. يرجى التحقق من اتصالك بالإنترنت."
AUTH_ERROR_MESSAGE = "انتهت صلاحية الجلسة. يرجى تسجيل الدخول مرة أخرى."
UNKNOWN_ERROR_MESSAGE = "حدث خطأ غير متوقع. يرجى المحاولة مرة أخرى."
NOT_CONFIGURED_MESSAGE = "الخدمة غير متاحة حالياً. يرجى المحاولة لاحقاً."

# Kinds that will fail again no matter how often they are retried
NON_RETRYABLE_KINDS = frozenset({
    ErrorKind.AUTH,
    ErrorKind.VALIDATION,
    ErrorKind.NOT_FOUND,
    ErrorKind.CONFLICT,
    ErrorKind.LOCKED,
    ErrorKind.NOT_CONFIGURED
})


@dataclass
class ApiError:
    """Normalized view of a failed call."""

    kind: ErrorKind
    message: str
    code: Optional[str] = None
    details: Any = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "details": self.details
        }


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception onto the closed `ErrorKind` set."""
    if isinstance(error, DataAccessError):
        return error.kind
    if isinstance(error, (requests.ConnectionError, requests.Timeout, ConnectionError, TimeoutError)):
        return ErrorKind.NETWORK
    if isinstance(error, jwt.PyJWTError):
        return ErrorKind.AUTH
    if isinstance(error, (ValidationError, ValueError)):
        return ErrorKind.VALIDATION
    return ErrorKind.UNKNOWN


def is_network_error(error: BaseException) -> bool:
    return classify_error(error) == ErrorKind.NETWORK


def is_auth_error(error: BaseException) -> bool:
    return classify_error(error) == ErrorKind.AUTH


def default_retry_condition(error: BaseException) -> bool:
    """Retry transient failures only."""
    return classify_error(error) not in NON_RETRYABLE_KINDS


def with_retry(
    fn: Callable[[], T],
    max_retries: int = 3,
    retry_delay: int = 1000,
    retry_condition: Optional[Callable[[BaseException], bool]] = None
) -> T:
    """
    Call `fn`, retrying with exponential backoff.

    Args:
        fn: Zero-argument callable to invoke
        max_retries: Number of retries after the first call
        retry_delay: Base delay in milliseconds, doubled after each attempt
        retry_condition: Predicate deciding whether an error is retryable

    Returns:
        The first successful result of `fn`

    Raises:
        The last error raised by `fn`
    """
    condition = retry_condition or default_retry_condition
    last_error: Optional[BaseException] = None

    for attempt in range(max_retries + 1):
        try:
            return fn()
        except Exception as e:
            last_error = e
            if attempt == max_retries or not condition(e):
                break

            delay_ms = retry_delay * (2 ** attempt)
            logger.warning(
                "Retrying failed call",
                extra={
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "delay_ms": delay_ms,
                    "error": str(e)
                }
            )
            time.sleep(delay_ms / 1000)

    raise last_error


def handle_api_error(error: BaseException) -> ApiError:
    """Normalize an exception into an `ApiError`."""
    kind = classify_error(error)
    if isinstance(error, DataAccessError):
        return ApiError(kind=kind, message=error.message, code=error.code, details=error.details)
    return ApiError(kind=kind, message=str(error) or UNKNOWN_ERROR_MESSAGE)


def get_user_friendly_error_message(error: BaseException) -> str:
    """Arabic message suitable for showing to a beneficiary."""
    kind = classify_error(error)
    if kind == ErrorKind.NETWORK:
        return NETWORK_ERROR_MESSAGE
    if kind == ErrorKind.AUTH:
        return AUTH_ERROR_MESSAGE
    if kind == ErrorKind.NOT_CONFIGURED:
        return NOT_CONFIGURED_MESSAGE
    if kind == ErrorKind.UNKNOWN:
        return UNKNOWN_ERROR_MESSAGE
    return handle_api_error(error).message
