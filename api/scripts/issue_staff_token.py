#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Issue an operator token for a system user.

Permissions are aggregated from the user's active roles. Tokens are signed
with JWT_PRIVATE_KEY, so the key pair must match the one the API runs with.

Usage:
    python scripts/issue_staff_token.py <system_user_id>
"""

import sys
import os
import logging

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.administration import RolesService, SystemUsersService
from services.auth import AuthService
from services.mongodb import get_mongodb_service, close_mongodb_connection
from domain.authorization import aggregate_permissions_from_roles

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def issue_token(user_id: str) -> dict:
    mongodb_service = get_mongodb_service()

    user = SystemUsersService(mongodb_service).get_by_id(user_id)
    if not user:
        raise LookupError(f"System user not found: {user_id}")

    role_ids = user.get("role_ids") or ([user["role_id"]] if user.get("role_id") else [])
    roles = [role for role in RolesService(mongodb_service).get_all() if role["id"] in role_ids]
    permissions = aggregate_permissions_from_roles(roles)

    if not os.getenv("JWT_PRIVATE_KEY"):
        logger.warning("JWT_PRIVATE_KEY is not set; the token will not validate against the API")

    token = AuthService().generate_staff_token(user_id, user.get("name", ""), permissions)
    logger.info(f"Issued token for {user_id} with {len(permissions)} permissions")
    return token


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    try:
        print(issue_token(sys.argv[1])["access_token"])
    except LookupError as e:
        logger.error(str(e))
        sys.exit(1)
    finally:
        close_mongodb_connection()
