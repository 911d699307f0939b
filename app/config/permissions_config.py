"""
Permissions and Roles Configuration
This config defines the permission matrix for every marketplace module and the
marketplace roles (buyer, seller, logistics, admin) that hold them.
A user's roles come from their profile and their company's capabilities; see
app.core.dependencies.get_user_roles.
"""

# Define modules and their actions
MODULES = {
    "companies": {
        "resource": "companies",
        "actions": ["read", "update"],
        "description": "Company profile and capability management"
    },
    "products": {
        "resource": "products",
        "actions": ["create", "read", "update", "delete"],
        "description": "Product listing management"
    },
    "rfqs": {
        "resource": "rfqs",
        "actions": ["create", "read", "update"],
        "description": "Requests for quotation"
    },
    "quotes": {
        "resource": "quotes",
        "actions": ["create", "read", "select"],
        "description": "Supplier quotes on RFQs"
    },
    "trades": {
        "resource": "trades",
        "actions": ["create", "read", "transition", "sign"],
        "description": "Trade kernel state machine"
    },
    "escrow": {
        "resource": "escrow",
        "actions": ["create", "read", "fund", "release", "refund"],
        "description": "Escrow and milestone payments"
    },
    "shipments": {
        "resource": "shipments",
        "actions": ["create", "read", "update", "accept"],
        "description": "Shipment tracking"
    },
    "payments": {
        "resource": "payments",
        "actions": ["create", "read"],
        "description": "Hosted payment links"
    },
    "notifications": {
        "resource": "notifications",
        "actions": ["read", "send", "dispatch"],
        "description": "Email, SMS and in-app notifications"
    },
    "documents": {
        "resource": "documents",
        "actions": ["create", "read", "delete"],
        "description": "Trade document storage"
    },
    "verification": {
        "resource": "verification",
        "actions": ["submit", "read", "finalize"],
        "description": "KYC/KYB identity verification"
    },
    "ai": {
        "resource": "ai",
        "actions": ["use", "evaluate"],
        "description": "KoniAI text completions"
    },
    "dashboard": {
        "resource": "dashboard",
        "actions": ["read"],
        "description": "Company dashboard summaries"
    },
}

# Actions granted to each marketplace role, per module.
# ADMIN holds every action of every module.
ROLE_TYPES = {
    "BUYER": {
        "permissions": {
            "companies": ["read", "update"],
            "products": ["read"],
            "rfqs": ["create", "read", "update"],
            "quotes": ["read", "select"],
            "trades": ["create", "read", "transition", "sign"],
            "escrow": ["create", "read", "fund"],
            "shipments": ["read"],
            "payments": ["create", "read"],
            "notifications": ["read", "send"],
            "documents": ["create", "read", "delete"],
            "verification": ["submit", "read"],
            "ai": ["use"],
            "dashboard": ["read"],
        },
        "description": "Buyer company member: posts RFQs, selects quotes, funds escrow"
    },
    "SELLER": {
        "permissions": {
            "companies": ["read", "update"],
            "products": ["create", "read", "update", "delete"],
            "rfqs": ["read"],
            "quotes": ["create", "read"],
            "trades": ["read", "transition", "sign"],
            "escrow": ["read"],
            "shipments": ["create", "read", "update"],
            "payments": ["read"],
            "notifications": ["read", "send"],
            "documents": ["create", "read", "delete"],
            "verification": ["submit", "read"],
            "ai": ["use"],
            "dashboard": ["read"],
        },
        "description": "Supplier company member: lists products, quotes, fulfils trades"
    },
    "LOGISTICS": {
        "permissions": {
            "companies": ["read"],
            "trades": ["read", "sign"],
            "shipments": ["read", "update", "accept"],
            "notifications": ["read", "send"],
            "documents": ["create", "read"],
            "verification": ["submit", "read"],
            "dashboard": ["read"],
        },
        "description": "Logistics partner: updates shipments, signs delivery"
    },
    "ADMIN": {
        "permissions": "*",
        "description": "Platform operator with full access"
    },
}

# Descriptions for actions that are not plain CRUD
MODULE_SPECIFIC_PERMISSIONS = {
    "quotes": {
        "select": "Accept a supplier quote for an RFQ"
    },
    "trades": {
        "create": "Open a direct or order trade with a supplier",
        "transition": "Move a trade to its next kernel state",
        "sign": "Add a consensus signature to a trade"
    },
    "shipments": {
        "accept": "Accept or decline a dispatched pickup job"
    },
    "escrow": {
        "fund": "Mark escrow funded",
        "release": "Release escrow to the supplier",
        "refund": "Refund escrow to the buyer"
    },
    "notifications": {
        "send": "Send email and SMS notifications",
        "dispatch": "Process the dispatch notification queue"
    },
    "verification": {
        "submit": "Submit identity or business verification",
        "finalize": "Approve or reject a verification"
    },
    "ai": {
        "use": "Use KoniAI assistants",
        "evaluate": "Run fraud evaluation"
    },
}


def get_permission_matrix():
    """
    Returns a dictionary with all permissions and the roles that hold them
    Format: {
        "permissions": [
            {"name": "rfqs:create", "resource": "rfqs", "action": "create", "description": "..."},
            ...
        ],
        "roles": [
            {"name": "buyer", "description": "...", "permissions": ["rfqs:create", ...]},
            ...
        ]
    }
    """
    permissions = []
    roles = []

    for module_name, module_config in MODULES.items():
        resource = module_config["resource"]
        for action in module_config["actions"]:
            description = f"{action.capitalize()} {resource}"
            if module_name in MODULE_SPECIFIC_PERMISSIONS and action in MODULE_SPECIFIC_PERMISSIONS[module_name]:
                description = MODULE_SPECIFIC_PERMISSIONS[module_name][action]
            permissions.append({
                "name": f"{resource}:{action}",
                "resource": resource,
                "action": action,
                "description": description
            })

    all_names = [p["name"] for p in permissions]
    for role_type, role_config in ROLE_TYPES.items():
        granted = role_config["permissions"]
        if granted == "*":
            role_permissions = list(all_names)
        else:
            role_permissions = []
            for module_name, actions in granted.items():
                module_actions = MODULES[module_name]["actions"]
                role_permissions.extend(
                    f"{MODULES[module_name]['resource']}:{a}" for a in actions if a in module_actions
                )
        roles.append({
            "name": role_type.lower(),
            "description": role_config["description"],
            "permissions": sorted(role_permissions)
        })

    return {
        "permissions": permissions,
        "roles": roles
    }


PERMISSION_MATRIX = get_permission_matrix()

ROLE_PERMISSIONS = {role["name"]: set(role["permissions"]) for role in PERMISSION_MATRIX["roles"]}


def permissions_for_roles(roles):
    """Union of permission names held by the given roles."""
    names = set()
    for role in roles:
        names |= ROLE_PERMISSIONS.get(role, set())
    return sorted(names)
