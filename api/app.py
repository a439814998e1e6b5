"""
Beneficiary Portal API - Flask Application Entry Point

Builds the Flask application with OpenAPI 3.0 support, wires the data,
cache, token and messaging services, and registers the portal, public
lookup and operator blueprints.
"""

import os
import time
from typing import Any, Dict, Optional
from flask import jsonify
from flask_openapi3 import OpenAPI, Info, Tag
from observability.config import setup_observability
from observability.middleware import add_observability_middleware

from middleware.cors import configure_cors
from middleware.error_handler import ErrorHandlerMiddleware, register_custom_error_handlers
from middleware.validation import ValidationMiddleware
from middleware.auth import AuthMiddleware
from models.base import utc_now
from services.activity import ActivityService
from services.administration import StatisticsService, SystemService
from services.auth import AuthService
from services.beneficiaries import BeneficiariesService
from services.beneficiary_auth import BeneficiaryAuthService, DEFAULT_SUPPORT_PHONE
from services.hal import create_hal_formatter
from services.health import HealthCheckService
from services.logistics import PackagesService
from services.mongodb import MongoDBService
from services.redis import RedisService
from services.whatsapp import WhatsAppService, WhatsAppSettings
from domain import messages

SERVICE_NAME = "beneficiary-portal-api"
SERVICE_VERSION = "1.0.0"

info = Info(
    title="Beneficiary Portal API",
    version=SERVICE_VERSION,
    description="Self-service portal for aid beneficiaries with HAL hypermedia responses"
)

tags = [
    Tag(name="Portal", description="Beneficiary login, registration and dashboard"),
    Tag(name="Public", description="Anonymous beneficiary lookup"),
    Tag(name="Admin", description="Operator features, notifications and statistics"),
    Tag(name="Health", description="System health and status")
]


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


def load_config() -> Dict[str, Any]:
    """Read application configuration from the environment."""
    environment = os.getenv('ENVIRONMENT', 'development')
    return {
        'ENVIRONMENT': environment,
        'DEBUG': environment == 'development',
        'BASE_URL': os.getenv('BASE_URL', 'http://localhost:5000'),
        'FRONTEND_URL': os.getenv('FRONTEND_URL', ''),
        'CORS_ALLOWED_ORIGINS': os.getenv('CORS_ALLOWED_ORIGINS', ''),
        'OTEL_ENABLED': _env_flag('OTEL_ENABLED', 'false'),

        # Data store and cache
        'MONGODB_URI': os.getenv('MONGODB_URI'),
        'MONGODB_DATABASE': os.getenv('MONGODB_DATABASE', 'beneficiary_portal'),
        'REDIS_URL': os.getenv('REDIS_URL'),
        'REDIS_TOKEN': os.getenv('REDIS_TOKEN'),

        # Tokens
        'JWT_PRIVATE_KEY': os.getenv('JWT_PRIVATE_KEY'),
        'JWT_PUBLIC_KEY': os.getenv('JWT_PUBLIC_KEY'),
        'SESSION_EXPIRE_MINUTES': int(os.getenv('SESSION_EXPIRE_MINUTES', '60')),
        'STAFF_TOKEN_EXPIRE_MINUTES': int(os.getenv('STAFF_TOKEN_EXPIRE_MINUTES', '15')),

        # Portal behaviour
        'SUPPORT_PHONE': os.getenv('SUPPORT_PHONE', DEFAULT_SUPPORT_PHONE),
        'PUBLIC_SEARCH_ACTOR_NAME': os.getenv('PUBLIC_SEARCH_ACTOR_NAME', messages.DEFAULT_PUBLIC_ACTOR),
        'PUBLIC_SEARCH_AUDIT_ENABLED': _env_flag('PUBLIC_SEARCH_AUDIT_ENABLED', 'true'),

        # Messaging API
        'WHATSAPP_API_URL': os.getenv('WHATSAPP_API_URL'),
        'WHATSAPP_API_KEY': os.getenv('WHATSAPP_API_KEY'),
        'WHATSAPP_SENDER_NUMBER': os.getenv('WHATSAPP_SENDER_NUMBER'),
        'WHATSAPP_SEND_MODE': os.getenv('WHATSAPP_SEND_MODE', 'manual')
    }


def create_app(
    config: Optional[Dict[str, Any]] = None,
    mongodb_service: Optional[MongoDBService] = None,
    redis_service: Optional[RedisService] = None,
    auth_service: Optional[AuthService] = None
) -> OpenAPI:
    """
    Create and configure the application.

    Args:
        config: Overrides merged on top of the environment configuration
        mongodb_service: Data store service; built from MONGODB_URI when omitted
        redis_service: Cache service; built from REDIS_URL when omitted
        auth_service: Token service; built from the JWT key pair when omitted
    """
    app_config = load_config()
    app_config.update(config or {})

    setup_observability(app_config['ENVIRONMENT'], app_config['OTEL_ENABLED'])

    base_url = app_config['BASE_URL']
    validation_middleware = ValidationMiddleware(base_url)

    app = OpenAPI(
        __name__,
        info=info,
        tags=tags,
        validation_error_callback=validation_middleware.validation_error_response
    )
    app.config.update(app_config)

    add_observability_middleware(app, instrument=app_config['OTEL_ENABLED'])

    # Infrastructure services
    mongodb_service = mongodb_service or MongoDBService(
        app_config['MONGODB_URI'], app_config['MONGODB_DATABASE']
    )
    redis_service = redis_service or RedisService(app_config['REDIS_URL'], app_config['REDIS_TOKEN'])
    auth_service = auth_service or AuthService(
        app_config['JWT_PRIVATE_KEY'],
        app_config['JWT_PUBLIC_KEY'],
        session_expire_minutes=app_config['SESSION_EXPIRE_MINUTES'],
        staff_token_expire_minutes=app_config['STAFF_TOKEN_EXPIRE_MINUTES']
    )

    # Domain services
    activity_service = ActivityService(mongodb_service)
    beneficiary_auth_service = BeneficiaryAuthService(
        mongodb_service,
        activity_service,
        redis_service=redis_service,
        default_support_phone=app_config['SUPPORT_PHONE'],
        public_actor_name=app_config['PUBLIC_SEARCH_ACTOR_NAME'],
        public_search_audit_enabled=app_config['PUBLIC_SEARCH_AUDIT_ENABLED']
    )
    whatsapp_service = WhatsAppService(
        mongodb_service,
        WhatsAppSettings(
            support_phone=app_config['SUPPORT_PHONE'],
            api_key=app_config['WHATSAPP_API_KEY'],
            api_url=app_config['WHATSAPP_API_URL'],
            sender_number=app_config['WHATSAPP_SENDER_NUMBER'],
            send_mode=app_config['WHATSAPP_SEND_MODE']
        )
    )
    health_service = HealthCheckService(mongodb_service, redis_service, app_config)

    # Middleware
    hal_formatter = create_hal_formatter(base_url)
    auth_middleware = AuthMiddleware(auth_service, redis_service)
    ErrorHandlerMiddleware(app, base_url)
    configure_cors(app)
    register_custom_error_handlers(app, hal_formatter)

    # Make services available to routes
    app.mongodb_service = mongodb_service
    app.redis_service = redis_service
    app.auth_service = auth_service
    app.activity_service = activity_service
    app.beneficiary_auth_service = beneficiary_auth_service
    app.whatsapp_service = whatsapp_service
    app.beneficiaries_service = BeneficiariesService(mongodb_service)
    app.packages_service = PackagesService(mongodb_service)
    app.statistics_service = StatisticsService(mongodb_service)
    app.system_service = SystemService(mongodb_service)
    app.health_service = health_service
    app.hal_formatter = hal_formatter
    app.validation_middleware = validation_middleware
    app.auth_middleware = auth_middleware

    from routes.portal import portal_bp
    from routes.public import public_bp
    from routes.admin import admin_bp

    app.register_api(portal_bp)
    app.register_api(public_bp)
    app.register_api(admin_bp)

    started_at = time.time()

    @app.route('/api/healthz')
    def health_check():
        """Health check with dependency status."""
        health_data = health_service.get_comprehensive_health()
        status_code = 503 if health_data["status"] == "unhealthy" else 200

        links = {"self": hal_formatter.builder.link_builder.build_link("/api/healthz", title="Health")}
        return jsonify(hal_formatter.builder.build_resource_response(health_data, links)), status_code

    @app.route('/api/status')
    def system_status():
        """Service status, uptime and configuration summary."""
        status_data = {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": app.config['ENVIRONMENT'],
            "timestamp": utc_now().isoformat(),
            "uptime_seconds": round(time.time() - started_at, 2),
            "configuration": health_service._get_configuration_status(),
            "feature_flags": {
                "otel_enabled": app.config['OTEL_ENABLED'],
                "public_search_audit_enabled": app.config['PUBLIC_SEARCH_AUDIT_ENABLED'],
                "whatsapp_send_mode": app.config['WHATSAPP_SEND_MODE']
            }
        }
        links = {
            "self": hal_formatter.builder.link_builder.build_link("/api/status", title="Status"),
            "health": hal_formatter.builder.link_builder.build_link("/api/healthz", title="Health")
        }
        return jsonify(hal_formatter.builder.build_resource_response(status_data, links))

    return app


if __name__ == '__main__':
    # Development server
    dev_app = create_app()
    dev_app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=dev_app.config['DEBUG']
    )
