"""
Holder of the current user context.
"""

from typing import Callable, Dict, Any, Optional, List, Union

from shared.logging import get_logger, set_user_context, clear_context
from ..audit.events import EventBus
from ..rules.models import UserContext, RbacEventType


ContextInput = Union[UserContext, Dict[str, Any]]


class ContextStore:
    """Keeps exactly one current :class:`UserContext`.

    Replacing the context purges cached decisions for the previous and the
    new user id through ``invalidate_user`` and then publishes
    ``context_updated``.
    """

    def __init__(self, event_bus: EventBus, invalidate_user: Callable[[str], int]):
        self.logger = get_logger("rbac.context")
        self.event_bus = event_bus
        self._invalidate_user = invalidate_user
        self._context: Optional[UserContext] = None

    @property
    def current(self) -> Optional[UserContext]:
        return self._context

    @property
    def user_id(self) -> Optional[str]:
        return self._context.user_id if self._context else None

    @property
    def tenant_id(self) -> Optional[str]:
        return self._context.tenant_id if self._context else None

    @property
    def role_ids(self) -> List[str]:
        return self._context.role_ids if self._context else []

    @property
    def permission_ids(self) -> List[str]:
        return self._context.permission_ids if self._context else []

    @property
    def is_authenticated(self) -> bool:
        return bool(self.role_ids or self.permission_ids)

    def set(self, context: ContextInput) -> UserContext:
        """Replace the current context wholesale."""
        if not isinstance(context, UserContext):
            context = UserContext.model_validate(context)

        previous = self._context
        self._context = context
        set_user_context(context.user_id, context.tenant_id)

        user_ids = {context.user_id}
        if previous is not None:
            user_ids.add(previous.user_id)
        removed = sum(self._invalidate_user(user_id) for user_id in sorted(user_ids))

        self.logger.debug(
            "User context set",
            user_id=context.user_id,
            previous_user_id=previous.user_id if previous else None,
            roles_count=len(context.roles),
            permissions_count=len(context.permissions),
            tenant_id=context.tenant_id,
            invalidated=removed
        )

        self.event_bus.emit(
            RbacEventType.CONTEXT_UPDATED,
            {
                "user_id": context.user_id,
                "previous_user_id": previous.user_id if previous else None,
                "tenant_id": context.tenant_id,
                "role_ids": context.role_ids,
                "permission_ids": context.permission_ids,
                "invalidated": removed,
            },
            user_id=context.user_id
        )

        return context

    def clear(self) -> Optional[UserContext]:
        """Drop the current context, purging the departing user's decisions."""
        previous = self._context
        if previous is None:
            return None

        self._context = None
        clear_context()
        removed = self._invalidate_user(previous.user_id)

        self.logger.debug("User context cleared", user_id=previous.user_id, invalidated=removed)

        self.event_bus.emit(
            RbacEventType.CONTEXT_UPDATED,
            {
                "user_id": None,
                "previous_user_id": previous.user_id,
                "tenant_id": None,
                "role_ids": [],
                "permission_ids": [],
                "invalidated": removed,
            }
        )

        return previous
