"""
ExeTeam - Permission System
Granular permission keys (module.action) + role presets + FastAPI dependencies.
Permissions are the source of truth. Roles are presets only.
"""

import logging
from typing import Dict

from fastapi import Depends, HTTPException

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# ALL PERMISSION KEYS
# ════════════════════════════════════════════════════════════════════════

ALL_PERMISSION_KEYS = [
    "dashboard.read",

    "tasks.read",
    "tasks.update",

    "timesheets.read",
    "timesheets.validate",
    "timesheets.export",

    "custom_fields.read",
    "custom_fields.update",
    "custom_fields.configure",

    "accounting.read",
    "accounting.write",

    "imports.create",
    "imports.read",

    "messaging.use",

    "demands.read",
    "demands.create",

    "activity.view",
]

_READ_ONLY = {"dashboard.read", "tasks.read", "timesheets.read", "custom_fields.read"}

# ════════════════════════════════════════════════════════════════════════
# ROLE PRESETS (defaults when creating a user with a role)
# ════════════════════════════════════════════════════════════════════════

ROLE_PRESETS: Dict[str, Dict[str, bool]] = {
    "super_admin": {k: True for k in ALL_PERMISSION_KEYS},

    "gerant": {k: True for k in ALL_PERMISSION_KEYS},

    "responsable_production": {
        **{k: False for k in ALL_PERMISSION_KEYS},
        **{k: True for k in _READ_ONLY},
        "tasks.update": True,
        "timesheets.validate": True,
        "custom_fields.update": True, "custom_fields.configure": True,
        "imports.create": True, "imports.read": True,
        "messaging.use": True,
        "demands.read": True,
    },

    # Saisie des temps via tasks.update
    "employe": {
        **{k: False for k in ALL_PERMISSION_KEYS},
        **{k: True for k in _READ_ONLY},
        "tasks.update": True,
        "custom_fields.update": True,
        "messaging.use": True,
    },

    "comptable": {
        **{k: False for k in ALL_PERMISSION_KEYS},
        **{k: True for k in _READ_ONLY},
        "timesheets.export": True,
        "accounting.read": True, "accounting.write": True,
        "imports.create": True, "imports.read": True,
    },

    "rh": {
        **{k: False for k in ALL_PERMISSION_KEYS},
        **{k: True for k in _READ_ONLY},
        "timesheets.export": True,
        "imports.create": True, "imports.read": True,
        "activity.view": True,
    },

    # Espace client uniquement, pas de messagerie interne
    "client": {
        **{k: False for k in ALL_PERMISSION_KEYS},
        "demands.read": True, "demands.create": True,
    },
}

VALID_ROLES = list(ROLE_PRESETS.keys())

# Rôles voyant toute l'équipe (validation des temps, vues d'équipe)
ADMIN_ROLES = {"super_admin", "gerant"}

# Tableaux de bord et exports financiers
FINANCE_ROLES = {"super_admin", "gerant", "comptable"}


def get_preset_permissions(role: str) -> Dict[str, bool]:
    """Returns the default permissions for a role."""
    return dict(ROLE_PRESETS.get(role, ROLE_PRESETS["employe"]))


# ════════════════════════════════════════════════════════════════════════
# PERMISSION CHECK HELPERS
# ════════════════════════════════════════════════════════════════════════

def user_has_permission(user: dict, key: str) -> bool:
    """Check if user has a specific permission."""
    if user.get("role") == "super_admin":
        return True
    perms = user.get("permissions")
    if perms is None:
        perms = get_preset_permissions(user.get("role", "employe"))
    if isinstance(perms, list):
        return key in perms
    return perms.get(key, False) is True


def is_admin(user: dict) -> bool:
    return user.get("role") in ADMIN_ROLES


def has_finance_access(user: dict) -> bool:
    return user.get("role") in FINANCE_ROLES


# ════════════════════════════════════════════════════════════════════════
# FASTAPI DEPENDENCIES
# ════════════════════════════════════════════════════════════════════════

def require_permission(permission_key: str):
    """
    FastAPI dependency factory.
    Usage: @router.get("/endpoint", dependencies=[Depends(require_permission("tasks.read"))])
    """
    from routes.auth import get_current_user

    async def _check(user: dict = Depends(get_current_user)):
        if not user_has_permission(user, permission_key):
            logger.warning(
                f"[PERMISSION_DENIED] user={user.get('email')} "
                f"key={permission_key} role={user.get('role')}"
            )
            raise HTTPException(
                status_code=403,
                detail=f"Permission requise: {permission_key}"
            )
        return user

    return _check
