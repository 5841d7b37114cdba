from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from stockpos.core.security_current import get_current_user
from stockpos.models.user import User

ROLES = ("admin", "owner", "cashier")

PERMISSION_MATRIX: dict[str, set[str]] = {
    "admin": {"*"},
    "owner": {
        "products.read",
        "products.write",
        "products.delete",
        "entries.read",
        "entries.write",
        "entries.delete",
        "mermas.read",
        "mermas.write",
        "mermas.delete",
        "sales.read",
        "sales.create",
        "sales.void",
        "suppliers.read",
        "suppliers.write",
        "stats.read",
        "users.read",
        "users.write",
    },
    "cashier": {
        "products.read",
        "sales.read",
        "sales.create",
        "mermas.read",
        "mermas.write",
        "stats.read",
    },
}

ROLE_DESCRIPTIONS = {
    "admin": "Full access, including user deletion",
    "owner": "Manages inventory, sales, suppliers and users",
    "cashier": "Registers sales and mermas, reads products and stats",
}


def role_permissions(role: str) -> set[str]:
    normalized = (role or "").strip().lower()
    return set(PERMISSION_MATRIX.get(normalized, set()))


def has_permission(*, role: str, permission: str) -> bool:
    permissions = role_permissions(role)
    if "*" in permissions:
        return True
    return permission in permissions


def require_roles(*allowed_roles: str) -> Callable[[User], User]:
    normalized_allowed = {role.strip().lower() for role in allowed_roles if role.strip()}
    if not normalized_allowed:
        raise ValueError("At least one allowed role is required")

    def dependency(user: User = Depends(get_current_user)) -> User:
        if (user.role or "").lower() not in normalized_allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this action",
            )
        return user

    return dependency


def require_permission(permission: str) -> Callable[[User], User]:
    normalized_permission = (permission or "").strip().lower()
    if not normalized_permission:
        raise ValueError("Permission key is required")

    def dependency(user: User = Depends(get_current_user)) -> User:
        if not has_permission(role=user.role, permission=normalized_permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permission for this action",
            )
        return user

    return dependency
