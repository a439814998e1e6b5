"""
Health Check Service

Reports the status of the data store, the Redis cache and basic system
metrics for the beneficiary portal API.
"""

import os
import time
import psutil
from typing import Dict, Any, List
from opentelemetry import trace

from services.mongodb import MongoDBService
from services.redis import RedisService
from models.base import utc_now

tracer = trace.get_tracer(__name__)


class HealthCheckService:
    """Service for system health monitoring."""

    def __init__(self, mongodb_service: MongoDBService, redis_service: RedisService, config: Dict[str, Any]):
        self.mongodb_service = mongodb_service
        self.redis_service = redis_service
        self.config = config
        self.service_version = "1.0.0"

    def get_comprehensive_health(self) -> Dict[str, Any]:
        """Get health status including dependencies and metrics."""
        with tracer.start_as_current_span("health.comprehensive_check") as span:
            start_time = time.time()

            mongodb_health = self._check_mongodb_health()
            redis_health = self._check_redis_health()

            statuses = [mongodb_health["status"]]
            # Redis is optional; only a configured but failing cache degrades health
            if redis_health["status"] != "unavailable":
                statuses.append(redis_health["status"])
            overall_status = self._determine_overall_status(statuses)

            response_time_ms = round((time.time() - start_time) * 1000, 2)

            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms,
                "health.mongodb_status": mongodb_health["status"],
                "health.redis_status": redis_health["status"]
            })

            return {
                "status": overall_status,
                "service": "beneficiary-portal-api",
                "version": self.service_version,
                "environment": self.config.get("ENVIRONMENT", "development"),
                "timestamp": utc_now().isoformat(),
                "response_time_ms": response_time_ms,
                "dependencies": {
                    "mongodb": mongodb_health,
                    "redis": redis_health
                },
                "system_metrics": self._get_system_metrics(),
                "configuration": self._get_configuration_status()
            }

    def _check_mongodb_health(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.mongodb_check") as span:
            start_time = time.time()
            health_info = self.mongodb_service.health_check()
            health_info["response_time_ms"] = round((time.time() - start_time) * 1000, 2)
            health_info["last_check"] = utc_now().isoformat()
            span.set_attribute("mongodb.status", health_info["status"])
            return health_info

    def _check_redis_health(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.redis_check") as span:
            health_info = self.redis_service.health_check()
            health_info["last_check"] = utc_now().isoformat()
            span.set_attribute("redis.status", health_info["status"])
            return health_info

    def _get_system_metrics(self) -> Dict[str, Any]:
        """Get basic system performance metrics."""
        try:
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage('/')

            return {
                "cpu_percent": psutil.cpu_percent(interval=0.1),
                "memory": {
                    "used_mb": round(memory.used / 1024 / 1024, 2),
                    "total_mb": round(memory.total / 1024 / 1024, 2),
                    "percent": memory.percent
                },
                "disk": {
                    "used_gb": round(disk.used / 1024 / 1024 / 1024, 2),
                    "total_gb": round(disk.total / 1024 / 1024 / 1024, 2),
                    "percent": round((disk.used / disk.total) * 100, 2)
                },
                "load_average": list(os.getloadavg()) if hasattr(os, 'getloadavg') else None
            }
        except Exception as e:
            return {
                "error": f"Failed to collect system metrics: {str(e)}"
            }

    def _get_configuration_status(self) -> Dict[str, Any]:
        return {
            "mongodb_uri_configured": bool(self.config.get("MONGODB_URI")),
            "redis_configured": bool(self.config.get("REDIS_URL")),
            "jwt_keys_configured": bool(self.config.get("JWT_PRIVATE_KEY") and self.config.get("JWT_PUBLIC_KEY")),
            "whatsapp_api_configured": bool(self.config.get("WHATSAPP_API_URL") and self.config.get("WHATSAPP_API_KEY")),
            "environment": self.config.get("ENVIRONMENT", "development")
        }

    def _determine_overall_status(self, dependency_statuses: List[str]) -> str:
        if all(status == "healthy" for status in dependency_statuses):
            return "healthy"
        if any(status == "healthy" for status in dependency_statuses):
            return "degraded"
        return "unhealthy"
