from typing import Dict, FrozenSet

from fastapi import Depends, HTTPException, status

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.enums import UserRole

# module -> action -> roles allowed
ROLE_PERMISSIONS: Dict[str, Dict[str, FrozenSet[str]]] = {
    "semesters": {
        "read": frozenset({UserRole.ADMIN.value, UserRole.TEACHER.value, UserRole.CLASS_TEACHER.value}),
        "upgrade": frozenset({UserRole.ADMIN.value}),
    },
}


def has_permission(role: str, module: str, action: str) -> bool:
    if role == UserRole.ADMIN.value:
        return True
    return role in ROLE_PERMISSIONS.get(module, {}).get(action, frozenset())


def check_permission(module: str, action: str):
    """
    Dependency factory to enforce a specific permission.

    Example:
        Depends(check_permission("semesters", "upgrade"))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> None:
        if not has_permission(current_user.role, module, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

    return _checker
