# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Redis service for caching, session token blocklist and rate-limit counters.

This module provides Redis operations using Upstash HTTP client for serverless
compatibility. Every operation degrades gracefully when Redis is not configured.
"""

import os
import json
import time
from typing import Optional, List, Dict, Any, Union
from upstash_redis import Redis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

PORTAL_FEATURES_KEY = "portal:features"
PORTAL_FEATURES_TTL_SECONDS = 60


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisService:
    """
    Redis service with Upstash HTTP client for serverless compatibility.

    Provides the beneficiary session blocklist, the portal feature cache and
    general caching operations.
    """

    def __init__(self, redis_url: Optional[str] = None, redis_token: Optional[str] = None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Upstash Redis HTTP URL
            redis_token: Upstash Redis authentication token
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL")
        self.redis_token = redis_token or os.getenv("REDIS_TOKEN")

        if not self.redis_url:
            logger.warning("No REDIS_URL configured, Redis operations will be disabled")
            self.client = None
            return

        try:
            if self.redis_token:
                self.client = Redis(url=self.redis_url, token=self.redis_token)
            else:
                self.client = Redis.from_env()

            self._test_connection()
            logger.info("Redis service initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def _test_connection(self) -> None:
        if not self.client:
            return

        try:
            result = self.client.ping()
            if result != "PONG":
                raise RedisConnectionError("Redis ping failed")
        except Exception as e:
            logger.error(f"Redis connection test failed: {str(e)}")
            raise RedisConnectionError(f"Redis connection failed: {str(e)}")

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def _handle_redis_error(self, operation: str, error: Exception) -> None:
        # Cache operations fail gracefully
        logger.error(f"Redis {operation} failed: {str(error)}")

    def set_with_ttl(self, key: str, value: Union[str, Dict, List], ttl_seconds: int) -> bool:
        """
        Set a key-value pair with TTL.

        Args:
            key: Redis key
            value: Value to store (will be JSON serialized if not string)
            ttl_seconds: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.set_with_ttl") as span:
            span.set_attributes({
                "redis.operation": "set_with_ttl",
                "redis.key": key,
                "redis.ttl": ttl_seconds
            })

            try:
                if isinstance(value, (dict, list)):
                    value = json.dumps(value)

                result = self.client.setex(key, ttl_seconds, value)
                span.set_attribute("redis.result", "success")
                logger.debug(f"Redis SET successful: {key} (TTL: {ttl_seconds}s)")

                return result == "OK" or result is True

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("SET", e)
                return False

    def get(self, key: str) -> Optional[str]:
        """Get value by key, None when missing or unavailable."""
        if not self.is_available():
            return None

        with tracer.start_as_current_span("redis.get") as span:
            span.set_attributes({
                "redis.operation": "get",
                "redis.key": key
            })

            try:
                result = self.client.get(key)
                span.set_attribute("redis.result", "hit" if result else "miss")
                return result

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("GET", e)
                return None

    def get_json(self, key: str) -> Optional[Union[Dict, List]]:
        """Get and deserialize JSON value by key."""
        value = self.get(key)
        if value is None:
            return None

        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to deserialize JSON from Redis key {key}: {str(e)}")
            return None

    def delete(self, key: str) -> bool:
        """Delete a key."""
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.delete") as span:
            span.set_attributes({
                "redis.operation": "delete",
                "redis.key": key
            })

            try:
                result = self.client.delete(key)
                span.set_attribute("redis.result", "success")
                return result > 0

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("DELETE", e)
                return False

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        if not self.is_available():
            return False

        try:
            return self.client.exists(key) > 0
        except Exception as e:
            self._handle_redis_error("EXISTS", e)
            return False

    # Session token blocklist

    def is_token_blocked(self, token_id: str) -> bool:
        """
        Check if a session token is in the blocklist.

        Args:
            token_id: Unique token identifier (jti)

        Returns:
            True if token is blocked, False otherwise
        """
        if not self.is_available():
            logger.warning("Redis unavailable for token blocklist check - allowing token")
            return False

        with tracer.start_as_current_span("redis.is_token_blocked") as span:
            span.set_attribute("auth.token_id", token_id)
            result = self.exists(f"jwt:blocked:{token_id}")
            span.set_attribute("auth.token_blocked", result)
            return result

    def block_token(self, token_id: str, ttl_seconds: int) -> bool:
        """
        Add a session token to the blocklist.

        Args:
            token_id: Unique token identifier (jti)
            ttl_seconds: Time to live, matching the token expiration

        Returns:
            True if token was blocked, False otherwise
        """
        if not self.is_available():
            logger.error("Redis unavailable - cannot block token")
            return False

        with tracer.start_as_current_span("redis.block_token") as span:
            span.set_attributes({
                "auth.token_id": token_id,
                "redis.ttl": ttl_seconds
            })

            result = self.set_with_ttl(f"jwt:blocked:{token_id}", "1", ttl_seconds)
            if result:
                logger.info(f"Token blocked successfully: {token_id} (TTL: {ttl_seconds}s)")
            else:
                logger.error(f"Failed to block token: {token_id}")

            return result

    # Portal feature cache

    def cache_portal_features(self, features: Dict[str, Any], ttl_seconds: int = PORTAL_FEATURES_TTL_SECONDS) -> bool:
        return self.set_with_ttl(PORTAL_FEATURES_KEY, features, ttl_seconds)

    def get_cached_portal_features(self) -> Optional[Dict[str, Any]]:
        return self.get_json(PORTAL_FEATURES_KEY)

    def invalidate_portal_features(self) -> bool:
        result = self.delete(PORTAL_FEATURES_KEY)
        logger.debug("Portal feature cache invalidated")
        return result

    def health_check(self) -> Dict[str, Any]:
        """
        Perform Redis health check.

        Returns:
            Health check results
        """
        if not self.is_available():
            return {
                "status": "unavailable",
                "message": "Redis client not initialized",
                "timestamp": time.time()
            }

        try:
            start_time = time.time()

            test_key = f"health:check:{int(start_time)}"
            self.set_with_ttl(test_key, "test", 10)
            value = self.get(test_key)
            self.delete(test_key)

            response_time = (time.time() - start_time) * 1000

            if value == "test":
                return {
                    "status": "healthy",
                    "response_time_ms": round(response_time, 2),
                    "timestamp": time.time()
                }
            return {
                "status": "degraded",
                "message": "Redis operations not working correctly",
                "response_time_ms": round(response_time, 2),
                "timestamp": time.time()
            }

        except Exception as e:
            return {
                "status": "unhealthy",
                "message": str(e),
                "timestamp": time.time()
            }
