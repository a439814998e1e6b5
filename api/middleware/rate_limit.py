# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Fixed-window rate limiting for portal credential and lookup endpoints.

Counters live in Redis under `rate_limit:{client}:{endpoint}:{window}`. When
Redis is unreachable requests are let through.
"""

from dataclasses import dataclass
from functools import wraps
from flask import request, jsonify, g, current_app
from typing import Dict, Optional, Callable
import time
import hashlib
import logging

from models.entities import BeneficiaryContext, StaffContext
from services.hal import HalFormatter

logger = logging.getLogger(__name__)

AUTH_LIMIT = 10
PUBLIC_LIMIT = 30
PORTAL_WINDOW_SECONDS = 900


@dataclass
class RateLimitStatus:
    """Outcome of counting one request against its window."""
    allowed: bool
    limit: int
    remaining: int
    reset_time: int
    retry_after: int = 0

    def headers(self) -> Dict[str, str]:
        headers = {
            'X-RateLimit-Limit': str(self.limit),
            'X-RateLimit-Remaining': str(self.remaining),
            'X-RateLimit-Reset': str(self.reset_time)
        }
        if self.retry_after > 0:
            headers['Retry-After'] = str(self.retry_after)
        return headers


class RateLimiter:
    """Counts requests per client and endpoint in Redis."""

    def __init__(self, redis_service, hal_formatter: HalFormatter):
        self.redis_service = redis_service
        self.hal_formatter = hal_formatter

    def get_client_identifier(self, user_context=None) -> str:
        """Session principal when known, otherwise a hash of address and user agent."""
        if isinstance(user_context, BeneficiaryContext):
            return f"beneficiary:{user_context.beneficiary_id}"
        if isinstance(user_context, StaffContext):
            return f"staff:{user_context.user_id}"

        fingerprint = f"{request.remote_addr or 'unknown'}:{request.headers.get('User-Agent', '')}"
        return f"ip:{hashlib.sha256(fingerprint.encode()).hexdigest()[:32]}"

    def check_rate_limit(
        self,
        identifier: str,
        endpoint: str,
        limit: int,
        window_seconds: int = PORTAL_WINDOW_SECONDS
    ) -> RateLimitStatus:
        """Count one request and report whether it fits in the current window."""
        now = int(time.time())
        window = now // window_seconds
        reset_time = (window + 1) * window_seconds
        key = f"rate_limit:{identifier}:{endpoint}:{window}"

        try:
            stored = self.redis_service.get(key)
            used = int(stored) if stored else 0
            if used >= limit:
                return RateLimitStatus(False, limit, 0, reset_time, retry_after=max(reset_time - now, 1))

            self.redis_service.set_with_ttl(key, str(used + 1), window_seconds)
            return RateLimitStatus(True, limit, limit - used - 1, reset_time)

        except Exception as e:
            logger.error(f"Rate limit check failed, allowing request: {e}", extra={'endpoint': endpoint})
            return RateLimitStatus(True, limit, limit - 1, reset_time)


def rate_limit(limit: int, window_seconds: int = PORTAL_WINDOW_SECONDS, endpoint: Optional[str] = None,
               per_user: bool = True):
    """
    Limit a view to `limit` calls per window.

    With `per_user` the session context set by the auth decorators is used as
    the client key, so this decorator must sit below them.
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            redis_service = getattr(current_app, 'redis_service', None)
            if redis_service is None or not redis_service.is_available():
                return f(*args, **kwargs)

            limiter = RateLimiter(redis_service, current_app.hal_formatter)
            identifier = limiter.get_client_identifier(getattr(g, 'user_context', None) if per_user else None)
            endpoint_name = endpoint or request.endpoint or f.__name__
            status = limiter.check_rate_limit(identifier, endpoint_name, limit, window_seconds)

            if status.allowed:
                response = current_app.make_response(f(*args, **kwargs))
            else:
                logger.warning("Rate limit exceeded", extra={
                    'identifier': identifier,
                    'endpoint': endpoint_name,
                    'retry_after': status.retry_after
                })
                response = jsonify(limiter.hal_formatter.builder.build_error_response(
                    "rate-limit-exceeded",
                    "Rate Limit Exceeded",
                    429,
                    f"Rate limit of {limit} requests per {window_seconds} seconds exceeded",
                    request.path
                ))
                response.status_code = 429

            for name, value in status.headers().items():
                response.headers[name] = value
            return response

        return decorated_function
    return decorator


def rate_limit_auth(f: Callable) -> Callable:
    """Credential endpoints: 10 requests per 15 minutes per client."""
    return rate_limit(AUTH_LIMIT, per_user=False)(f)


def rate_limit_public(f: Callable) -> Callable:
    """Anonymous lookups: 30 requests per 15 minutes per client."""
    return rate_limit(PUBLIC_LIMIT, per_user=False)(f)
