"""
Caller-side guards that turn negative decisions into errors.
"""

import functools
from typing import Callable, Any, Optional, Sequence

from shared.logging import get_logger
from shared.errors import AccessDeniedError
from .main import RoleService


logger = get_logger("rbac.guards")


def ensure_access(
    service: RoleService,
    roles: Optional[Sequence[str]] = None,
    permissions: Optional[Sequence[str]] = None,
    require_all: bool = False,
    error_message: Optional[str] = None,
    **options: Any
) -> None:
    """Raise :class:`AccessDeniedError` unless the current user passes.

    With ``require_all`` every listed role and permission must be held,
    otherwise one role (if any are listed) and one permission (if any are
    listed) suffice. An empty guard always passes.
    """
    if not roles and not permissions:
        logger.warning("Guard used without roles or permissions")
        return

    checks = []
    if roles:
        check = service.has_all_roles if require_all else service.has_any_role
        checks.append(check(roles, **options))
    if permissions:
        check = service.has_all_permissions if require_all else service.has_any_permission
        checks.append(check(permissions, **options))

    if all(checks):
        return

    user_id = service.context_store.user_id
    logger.info(
        "Access denied by guard",
        user_id=user_id,
        roles=list(roles or []),
        permissions=list(permissions or []),
        require_all=require_all
    )
    raise AccessDeniedError(
        error_message or "Access denied",
        details={
            "user_id": user_id,
            "roles": list(roles or []),
            "permissions": list(permissions or []),
            "require_all": require_all,
        }
    )


def require_roles(service: RoleService, *roles: str, require_all: bool = False, **options: Any):
    """Decorator form of :func:`ensure_access` for roles."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            ensure_access(service, roles=roles, require_all=require_all, **options)
            return func(*args, **kwargs)
        return wrapper
    return decorator


def require_permissions(service: RoleService, *permissions: str, require_all: bool = False, **options: Any):
    """Decorator form of :func:`ensure_access` for permissions."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            ensure_access(service, permissions=permissions, require_all=require_all, **options)
            return func(*args, **kwargs)
        return wrapper
    return decorator
