# SPDX-License-Identifier: Apache-2.0

"""
Authorization domain logic for operator permissions.

Operator tokens carry a flat list of permission strings aggregated from the
operator's roles. This module holds the known permissions and the pure checks
applied to them.
"""

from typing import List, Dict, Set, Any, Optional
from dataclasses import dataclass, field

from models.entities import StaffContext

FEATURES_READ = "features:read"
FEATURES_UPDATE = "features:update"
NOTIFICATIONS_READ = "notifications:read"
NOTIFICATIONS_MANAGE = "notifications:manage"
STATISTICS_READ = "statistics:read"
PACKAGES_MANAGE = "packages:manage"
BENEFICIARIES_READ = "beneficiaries:read"
ACTIVITY_READ = "activity:read"

PERMISSION_DESCRIPTIONS = {
    FEATURES_READ: "View portal feature toggles",
    FEATURES_UPDATE: "Enable or disable portal features",
    NOTIFICATIONS_READ: "View the WhatsApp notification queue",
    NOTIFICATIONS_MANAGE: "Queue, deliver and cancel WhatsApp notifications",
    STATISTICS_READ: "View overall statistics",
    PACKAGES_MANAGE: "Generate package tracking numbers",
    BENEFICIARIES_READ: "View and search beneficiaries",
    ACTIVITY_READ: "View the activity log"
}


@dataclass
class AuthorizationResult:
    """Result of an authorization check."""
    allowed: bool
    reason: Optional[str] = None
    missing_permissions: List[str] = field(default_factory=list)


def aggregate_permissions_from_roles(roles: List[Dict[str, Any]]) -> List[str]:
    """
    Aggregate unique known permissions from stored role rows.

    Args:
        roles: Role documents carrying a `permissions` list

    Returns:
        Sorted list of unique permission strings
    """
    permissions: Set[str] = set()

    for role in roles:
        if not role.get("is_active", True):
            continue
        permissions.update(p for p in role.get("permissions") or [] if p in PERMISSION_DESCRIPTIONS)

    return sorted(permissions)


def check_permission(staff_context: StaffContext, required_permission: str) -> AuthorizationResult:
    """
    Check if an operator has a specific permission.

    Args:
        staff_context: Operator context with permissions
        required_permission: Permission string to check

    Returns:
        AuthorizationResult indicating if permission is granted
    """
    if staff_context.has_permission(required_permission):
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason=f"Missing required permission: {required_permission}",
        missing_permissions=[required_permission]
    )
