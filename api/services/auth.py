# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Token service for beneficiary sessions and operator access.

This module issues and validates RS256-signed JWTs. Beneficiary session
tokens are short lived and carry a unique `jti` so logout can blocklist them.
"""

import os
import uuid
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List, Tuple
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from opentelemetry import trace
import logging

from models.entities import Beneficiary

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

BENEFICIARY_TOKEN = "beneficiary"
STAFF_TOKEN = "staff"


class AuthenticationError(Exception):
    """Raised when a token cannot be issued."""
    pass


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


def generate_dev_key_pair() -> Tuple[str, str]:
    """Generate an RSA key pair for development use."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048
    )

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode('utf-8')

    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')

    return private_pem, public_pem


class AuthService:
    """
    JWT service with RS256 signing.

    Issues beneficiary session tokens after a successful PIN login or OTP
    confirmation, and validates operator tokens for the admin API.
    """

    def __init__(
        self,
        private_key: Optional[str] = None,
        public_key: Optional[str] = None,
        session_expire_minutes: int = 60,
        staff_token_expire_minutes: int = 15
    ):
        """
        Initialize the token service.

        Args:
            private_key: RS256 private key for token signing (PEM format)
            public_key: RS256 public key for token verification (PEM format)
            session_expire_minutes: Lifetime of beneficiary session tokens
            staff_token_expire_minutes: Lifetime of operator tokens
        """
        private_key = private_key or os.getenv("JWT_PRIVATE_KEY")
        public_key = public_key or os.getenv("JWT_PUBLIC_KEY")

        if not private_key or not public_key:
            # Both halves must come from the same pair
            logger.warning("No JWT key pair configured, generating development key pair")
            private_key, public_key = generate_dev_key_pair()

        self.private_key = private_key
        self.public_key = public_key
        self.algorithm = "RS256"
        self.session_expire_minutes = session_expire_minutes
        self.staff_token_expire_minutes = staff_token_expire_minutes

    def _encode(self, payload: Dict[str, Any]) -> str:
        try:
            return jwt.encode(payload, self.private_key, algorithm=self.algorithm)
        except Exception as e:
            logger.error(f"Token generation failed: {str(e)}")
            raise AuthenticationError(f"Failed to generate token: {str(e)}")

    def generate_beneficiary_token(self, beneficiary: Beneficiary) -> Dict[str, Any]:
        """
        Issue a session token for an authenticated beneficiary.

        Args:
            beneficiary: Beneficiary who completed authentication

        Returns:
            Dictionary containing access_token and metadata
        """
        with tracer.start_as_current_span("auth.generate_beneficiary_token") as span:
            span.set_attribute("beneficiary.id", beneficiary.id)

            now = datetime.now(timezone.utc)
            expires_at = now + timedelta(minutes=self.session_expire_minutes)

            access_token = self._encode({
                "sub": beneficiary.id,
                "national_id": beneficiary.national_id,
                "name": beneficiary.name,
                "jti": uuid.uuid4().hex,
                "iat": now,
                "exp": expires_at,
                "type": BENEFICIARY_TOKEN
            })

            logger.info(
                "Beneficiary session token issued",
                extra={"beneficiary_id": beneficiary.id, "expires_at": expires_at.isoformat()}
            )

            return {
                "access_token": access_token,
                "token_type": "Bearer",
                "expires_in": self.session_expire_minutes * 60,
                "expires_at": expires_at.isoformat()
            }

    def generate_staff_token(self, user_id: str, name: str, permissions: List[str]) -> Dict[str, Any]:
        """Issue an operator token carrying its permission list."""
        with tracer.start_as_current_span("auth.generate_staff_token") as span:
            span.set_attribute("user.id", user_id)

            now = datetime.now(timezone.utc)
            expires_at = now + timedelta(minutes=self.staff_token_expire_minutes)

            access_token = self._encode({
                "sub": user_id,
                "name": name,
                "permissions": permissions,
                "jti": uuid.uuid4().hex,
                "iat": now,
                "exp": expires_at,
                "type": STAFF_TOKEN
            })

            return {
                "access_token": access_token,
                "token_type": "Bearer",
                "expires_in": self.staff_token_expire_minutes * 60,
                "expires_at": expires_at.isoformat()
            }

    def validate_token(self, token: str, token_type: str = BENEFICIARY_TOKEN) -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate
            token_type: Expected token type ("beneficiary" or "staff")

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid, expired or of another type
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attribute("auth.token_type", token_type)

            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True}
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")
            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

            if payload.get("type") != token_type:
                span.set_attribute("auth.validation_result", "wrong_type")
                raise TokenValidationError(f"Invalid token type. Expected {token_type}")

            span.set_attributes({
                "auth.validation_result": "success",
                "auth.subject": payload.get("sub")
            })
            return payload

    @staticmethod
    def remaining_ttl(payload: Dict[str, Any]) -> int:
        """Seconds until the token expires, at least one."""
        expires_at = int(payload.get("exp", 0))
        now = int(datetime.now(timezone.utc).timestamp())
        return max(expires_at - now, 1)
