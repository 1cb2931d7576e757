"""Role-based permissions for process execution.

  - Each role has a set of DEFAULT permissions (defined here, not in DB).
  - `UserProfile.custom_permissions` holds per-user {perm: True/False}
    overrides on top of the role defaults.
  - The effective set is embedded in the access token, so route checks
    never hit the database.

Permission naming: `<resource>.<action>`
"""

from __future__ import annotations


ALL_PERMISSIONS: set[str] = {
    # Lot runs and step runs
    "process.read",
    "process.write",          # update step runs, save step detail records
    "process.manage",         # create / complete lot runs, rework, skip steps

    # Measurements and non-conformances
    "quality.read",
    "quality.write",
    "quality.resolve",

    # Lot run signoffs
    "signoff.write",

    # Dashboard inventory and stats
    "inventory.read",

    # Daily checklist
    "checks.read",
    "checks.write",

    "users.read",
}


ROLE_DEFAULTS: dict[str, set[str]] = {
    "admin": ALL_PERMISSIONS.copy(),

    "planner": {
        "process.read", "process.write", "process.manage",
        "quality.read", "quality.write",
        "signoff.write",
        "inventory.read",
        "checks.read", "checks.write",
    },

    "qa": {
        "process.read", "process.write",
        "quality.read", "quality.write", "quality.resolve",
        "signoff.write",
        "inventory.read",
        "checks.read", "checks.write",
    },

    "viewer": {
        "process.read",
        "quality.read",
        "inventory.read",
        "checks.read",
    },
}


def resolve_permissions(
    role: str,
    custom_overrides: dict[str, bool] | None = None,
) -> list[str]:
    """Role defaults, then overrides ({perm: True} adds, False removes).

    Sorted for stable token claims.
    """
    base = ROLE_DEFAULTS.get(role, set()).copy()

    if custom_overrides:
        for perm, granted in custom_overrides.items():
            if perm not in ALL_PERMISSIONS:
                continue
            if granted:
                base.add(perm)
            else:
                base.discard(perm)

    return sorted(base)


def has_permission(user_permissions: list[str] | set[str], required: str) -> bool:
    return required in user_permissions
