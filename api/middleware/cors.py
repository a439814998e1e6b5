# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
CORS middleware for the browser-based portal and operator screens.
"""

from flask import Flask, request, make_response
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

DEVELOPMENT_ORIGINS = [
    'http://localhost:3000',
    'http://localhost:5173',
    'http://127.0.0.1:3000',
    'http://127.0.0.1:5173'
]


class CORSMiddleware:
    """CORS middleware for Flask applications."""

    allowed_methods = ['GET', 'POST', 'PUT', 'OPTIONS']
    allowed_headers = ['Accept', 'Accept-Language', 'Authorization', 'Content-Type', 'X-Request-ID']
    expose_headers = [
        'Content-Type',
        'X-Trace-Id',
        'X-RateLimit-Limit',
        'X-RateLimit-Remaining',
        'X-RateLimit-Reset',
        'Retry-After'
    ]

    def __init__(self, app: Flask, allowed_origins: Optional[List[str]] = None, max_age: int = 86400):
        """
        Initialize CORS middleware.

        Args:
            app: Flask application
            allowed_origins: Allowed origins; entries ending in `*` match by prefix
            max_age: Preflight cache duration in seconds
        """
        self.app = app
        self.allowed_origins = allowed_origins or []
        self.max_age = max_age
        self.register_cors_handlers()

    def is_origin_allowed(self, origin: Optional[str]) -> bool:
        if not origin:
            return False

        for allowed_origin in self.allowed_origins:
            if allowed_origin in ('*', origin):
                return True
            if allowed_origin.endswith('*') and origin.startswith(allowed_origin[:-1]):
                return True

        return False

    def add_cors_headers(self, response, origin: str):
        response.headers['Access-Control-Allow-Origin'] = origin
        response.headers['Access-Control-Allow-Credentials'] = 'true'
        response.headers['Access-Control-Allow-Methods'] = ', '.join(self.allowed_methods)
        response.headers['Access-Control-Allow-Headers'] = ', '.join(self.allowed_headers)
        response.headers['Access-Control-Expose-Headers'] = ', '.join(self.expose_headers)
        response.headers['Access-Control-Max-Age'] = str(self.max_age)
        response.headers.add('Vary', 'Origin')
        return response

    def register_cors_handlers(self):
        """Register CORS handlers with Flask application."""

        @self.app.before_request
        def handle_preflight():
            if request.method != 'OPTIONS':
                return None

            origin = request.headers.get('Origin')
            if not self.is_origin_allowed(origin):
                logger.warning(f"CORS preflight rejected for origin: {origin}")
                return make_response('', 403)

            return self.add_cors_headers(make_response('', 204), origin)

        @self.app.after_request
        def add_cors_headers_to_response(response):
            origin = request.headers.get('Origin')
            if request.method != 'OPTIONS' and self.is_origin_allowed(origin):
                self.add_cors_headers(response, origin)
            return response


def configure_cors(app: Flask) -> CORSMiddleware:
    """
    Configure CORS from `CORS_ALLOWED_ORIGINS` and `FRONTEND_URL`.

    Local development origins are added when running in development.
    """
    origins = [o.strip() for o in app.config.get('CORS_ALLOWED_ORIGINS', '').split(',') if o.strip()]
    if app.config.get('FRONTEND_URL'):
        origins.append(app.config['FRONTEND_URL'])
    if app.config.get('ENVIRONMENT') == 'development':
        origins.extend(DEVELOPMENT_ORIGINS)
    return CORSMiddleware(app, allowed_origins=origins)
