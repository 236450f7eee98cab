"""
Default Policies
================
Role model of the legal practice, registered at startup by the container.
"""

from .models import Role

_STAFF = [Role.ADMIN, Role.PARTNER, Role.ASSOCIATE]
_ALL_STAFF = [Role.ADMIN, Role.PARTNER, Role.ASSOCIATE, Role.PARALEGAL]
_SENIOR = [Role.ADMIN, Role.PARTNER]

# Partners may approve contracts up to this value; admins have no ceiling.
PARTNER_CONTRACT_APPROVAL_LIMIT = 100_000

CLIENT_MANAGEMENT = {
    "name": "client-management",
    "rules": [
        {"resource": "Client", "action": "create", "conditions": {"role": _STAFF}},
        {"resource": "Client", "action": "update", "conditions": {"role": _STAFF}},
        {"resource": "Client", "action": "delete", "conditions": {"role": _SENIOR}},
        {"resource": "Client", "action": "view", "conditions": {"role": _ALL_STAFF}},
        {"resource": "ClientToLawyer", "action": "assign", "conditions": {"role": _SENIOR}},
    ],
}

MATTER_MANAGEMENT = {
    "name": "matter-management",
    "rules": [
        {"resource": "Matter", "action": "create", "conditions": {"role": _STAFF}},
        {"resource": "Matter", "action": "create", "conditions": {"permissions": ["matter.create"]}},
        {"resource": "Matter", "action": "update", "conditions": {"role": _STAFF}},
        {"resource": "Matter", "action": "close", "conditions": {"role": _SENIOR}},
    ],
}

CONTRACT_MANAGEMENT = {
    "name": "contract-management",
    "rules": [
        {"resource": "Contract", "action": "create", "conditions": {"role": _ALL_STAFF}},
        {
            "resource": "Contract",
            "action": "approve",
            "conditions": {
                "role": [Role.PARTNER],
                "context.contractValue": {"<": PARTNER_CONTRACT_APPROVAL_LIMIT},
            },
        },
        {"resource": "Contract", "action": "approve", "conditions": {"role": [Role.ADMIN]}},
    ],
}

DOCUMENT_ANALYSIS = {
    "name": "document-analysis",
    "rules": [
        {"resource": "Document", "action": "analyze", "conditions": {"role": _ALL_STAFF}},
        {"resource": "Document", "action": "analyze", "conditions": {"permissions": ["ai.analyze"]}},
        {"resource": "Document", "action": "upload", "conditions": {"role": _ALL_STAFF + [Role.CLIENT]}},
    ],
}

DEFAULT_POLICIES = (
    CLIENT_MANAGEMENT,
    MATTER_MANAGEMENT,
    CONTRACT_MANAGEMENT,
    DOCUMENT_ANALYSIS,
)
