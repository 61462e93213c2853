from __future__ import annotations

from enum import StrEnum


class OrgRole(StrEnum):
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"
    OWNER = "owner"


class GlobalRole(StrEnum):
    USER = "user"
    SUPERUSER = "superuser"


ROLE_LEVELS: dict[OrgRole, int] = {
    OrgRole.VIEWER: 0,
    OrgRole.EDITOR: 1,
    OrgRole.ADMIN: 2,
    OrgRole.OWNER: 3,
}

# Bulk mutations always run with this minimum role.
BULK_MINIMUM_ROLE = OrgRole.EDITOR


def role_level(role: OrgRole | str | None) -> int:
    if role is None:
        return -1
    try:
        return ROLE_LEVELS[OrgRole(role)]
    except ValueError:
        return -1


def role_satisfies(role: OrgRole | str | None, minimum_role: OrgRole | str) -> bool:
    return role_level(role) >= role_level(minimum_role)
