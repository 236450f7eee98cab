"""
Policy-Based Authorization
==========================
Declarative role, permission and context rules gating command execution.
"""

from .models import (
    Actor,
    Comparator,
    Condition,
    ContextFieldCompare,
    PermissionIn,
    Policy,
    PolicyDefinitionError,
    Role,
    RoleIn,
    Rule,
    parse_condition,
)
from .service import PolicyService, derive_resource_action
from .defaults import DEFAULT_POLICIES, PARTNER_CONTRACT_APPROVAL_LIMIT

__all__ = [
    # Models
    "Actor",
    "Comparator",
    "Condition",
    "ContextFieldCompare",
    "PermissionIn",
    "Policy",
    "PolicyDefinitionError",
    "Role",
    "RoleIn",
    "Rule",
    "parse_condition",
    # Service
    "PolicyService",
    "derive_resource_action",
    # Defaults
    "DEFAULT_POLICIES",
    "PARTNER_CONTRACT_APPROVAL_LIMIT",
]
