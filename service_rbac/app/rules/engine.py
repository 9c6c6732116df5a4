"""
Access decision engine for the RBAC service.
"""

from contextlib import nullcontext
from typing import Dict, Any, Optional, List, Iterable, Union, Mapping

from shared.config import RbacConfig
from shared.logging import get_logger, check_scope
from shared.errors import AccessLayerException
from shared.metrics import MetricsCollector
from ..cache.lru_cache import LruCache
from ..hierarchy.resolver import RoleHierarchyResolver, index_roles
from ..audit.recorder import AuditLog
from ..audit.events import EventBus
from ..context.store import ContextStore
from .models import (
    Role, Permission, UserContext, CheckType, CheckOptions,
    PermissionCheckResult, RbacEventType, ANONYMOUS_USER_ID
)


CACHE_KEY_PREFIX = "rbac"

OptionsInput = Union[CheckOptions, Mapping[str, Any], None]


def cache_key_prefix(check_type: CheckType, user_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}:{check_type.value}:{user_id}:"


def build_cache_key(check_type: CheckType, identifier: str, user_id: str, options: CheckOptions) -> str:
    """Key covering check type, user, identifier and the canonical options."""
    return f"{cache_key_prefix(check_type, user_id)}{identifier}:{options.canonical()}"


class DecisionEngine:
    """Evaluates role and permission checks against the current context."""

    def __init__(
        self,
        config: RbacConfig,
        context_store: ContextStore,
        resolver: RoleHierarchyResolver,
        cache: LruCache[PermissionCheckResult],
        audit_log: AuditLog,
        event_bus: EventBus,
        metrics: Optional[MetricsCollector] = None
    ):
        self.logger = get_logger("rbac.decision_engine")
        self.config = config
        self.context_store = context_store
        self.resolver = resolver
        self.cache = cache
        self.audit_log = audit_log
        self.event_bus = event_bus
        self.metrics = metrics

        self.system_roles: Dict[str, Role] = {}
        self.role_permissions: Dict[str, List[Permission]] = {}

    def check(
        self,
        check_type: Union[CheckType, str],
        identifier: str,
        options: OptionsInput = None
    ) -> PermissionCheckResult:
        """Evaluate one check, going through cache, audit and events.

        The cache keeps its own copy of every result and each caller gets a
        fresh copy, so mutating a returned result never leaks into later
        checks.
        """
        with check_scope():
            return self._check(check_type, identifier, options)

    def _check(
        self,
        check_type: Union[CheckType, str],
        identifier: str,
        options: OptionsInput
    ) -> PermissionCheckResult:
        context = self.context_store.current

        try:
            check_type = CheckType(check_type)
        except ValueError as e:
            return self._fail(str(getattr(check_type, "value", check_type)), identifier, context, e)

        if context is None:
            result = PermissionCheckResult(granted=False, reason="No user context available")
            self.audit_log.record(ANONYMOUS_USER_ID, f"check_{check_type.value}", identifier, result)
            self._publish(check_type.value, identifier, ANONYMOUS_USER_ID, result, cache_hit=False)
            return result

        with self._timed(check_type):
            try:
                options = self._coerce_options(options)
                cache_key = build_cache_key(check_type, identifier, context.user_id, options)

                cached = self._cache_lookup(check_type, cache_key)
                if cached is not None:
                    self.logger.debug("Check served from cache", cache_key=cache_key)
                    result = cached.model_copy(deep=True)
                    self._finish(check_type, identifier, context, result, cache_hit=True)
                    return result

                result = self.evaluate(check_type, identifier, context, options)

                if self.config.enable_caching:
                    self.cache.set(
                        cache_key, result.model_copy(deep=True), ttl=self.config.cache_timeout_seconds
                    )

            except Exception as e:
                return self._fail(check_type.value, identifier, context, e)

        self._finish(check_type, identifier, context, result, cache_hit=False)
        return result

    def _timed(self, check_type: CheckType):
        if not self.metrics:
            return nullcontext()
        return self.metrics.time_operation("rbac_check_duration_seconds", check_type=check_type.value)

    def evaluate(
        self,
        check_type: CheckType,
        identifier: str,
        context: UserContext,
        options: CheckOptions
    ) -> PermissionCheckResult:
        """Apply the matching rules without touching cache, audit or events."""
        if check_type == CheckType.ROLE:
            return self._check_role(identifier, context, options)
        return self._check_permission(identifier, context, options)

    def _check_role(self, role_id: str, context: UserContext, options: CheckOptions) -> PermissionCheckResult:
        tenant_id = self._tenant_for(context, options)
        include_inherited = (
            options.include_inherited
            if options.include_inherited is not None
            else self.config.enable_role_hierarchy
        )

        candidates = self._assigned_roles(context, tenant_id)

        if any(role.id == role_id for role in candidates):
            return PermissionCheckResult(
                granted=True,
                reason="Direct role assignment",
                granting_roles=[role_id]
            )

        if include_inherited and candidates:
            universe = self.role_universe(context)
            effective = self.resolver.resolve_hierarchy(candidates, universe, tenant_id)

            if any(role.id == role_id and role.active for role in effective):
                inherited_via = sorted(
                    role.id for role in candidates
                    if any(r.id == role_id for r in self.resolver.resolve_hierarchy([role], universe, tenant_id))
                )
                return PermissionCheckResult(
                    granted=True,
                    reason="Inherited role assignment",
                    granting_roles=[role_id],
                    metadata={"inherited_via": inherited_via}
                )

        return PermissionCheckResult(
            granted=False,
            reason=f"Role '{role_id}' not found in user's roles"
        )

    def _check_permission(
        self,
        permission_id: str,
        context: UserContext,
        options: CheckOptions
    ) -> PermissionCheckResult:
        tenant_id = self._tenant_for(context, options)
        resource, action = options.resource, options.action

        direct = self._matching(context.permissions, permission_id, resource, action, tenant_id)
        if direct:
            return PermissionCheckResult(
                granted=True,
                reason="Direct permission assignment",
                granting_permissions=direct
            )

        if self.role_permissions:
            include_inherited = (
                options.include_inherited
                if options.include_inherited is not None
                else self.config.enable_role_hierarchy
            )
            granting_roles: List[str] = []
            granting_permissions: List[str] = []

            for role in self._granting_roles(context, tenant_id, include_inherited):
                matched = self._matching(
                    self.role_permissions.get(role.id, []), permission_id, resource, action, tenant_id
                )
                if matched:
                    granting_roles.append(role.id)
                    granting_permissions.extend(p for p in matched if p not in granting_permissions)

            if granting_permissions:
                return PermissionCheckResult(
                    granted=True,
                    reason="Role-based permission assignment",
                    granting_roles=granting_roles,
                    granting_permissions=granting_permissions
                )

        return PermissionCheckResult(
            granted=False,
            reason=f"Permission '{permission_id}' not found"
        )

    def _matching(
        self,
        permissions: Iterable[Permission],
        permission_id: str,
        resource: Optional[str],
        action: Optional[str],
        tenant_id: Optional[str]
    ) -> List[str]:
        matched: List[str] = []
        for permission in permissions:
            if not permission.active or not permission.visible_to(tenant_id):
                continue
            if permission.matches(permission_id, resource, action) and permission.id not in matched:
                matched.append(permission.id)
        return matched

    def _granting_roles(self, context: UserContext, tenant_id: Optional[str], include_inherited: bool) -> List[Role]:
        assigned = self._assigned_roles(context, tenant_id)
        if not include_inherited or not assigned:
            return assigned

        effective = self.resolver.resolve_hierarchy(assigned, self.role_universe(context), tenant_id)
        return [role for role in effective if role.active]

    def _assigned_roles(self, context: UserContext, tenant_id: Optional[str]) -> List[Role]:
        """Active, tenant-visible roles assigned directly to the user."""
        return [role for role in context.roles if role.active and role.visible_to(tenant_id)]

    def _tenant_for(self, context: UserContext, options: CheckOptions) -> Optional[str]:
        return options.tenant_id or context.tenant_id or self.config.default_tenant_id

    def role_universe(self, context: Optional[UserContext] = None) -> List[Role]:
        """Registered roles, plus context roles the registry does not know."""
        universe = dict(self.system_roles)
        if context is not None:
            for role in context.roles:
                universe.setdefault(role.id, role)
        return list(universe.values())

    def effective_roles(self, context: Optional[UserContext] = None) -> List[Role]:
        """Active roles the user holds, with ancestors when the hierarchy is on."""
        context = context or self.context_store.current
        if context is None or not context.roles:
            return []

        tenant_id = context.tenant_id or self.config.default_tenant_id
        assigned = self._assigned_roles(context, tenant_id)

        if not self.config.enable_role_hierarchy:
            return assigned

        try:
            return self._granting_roles(context, tenant_id, include_inherited=True)
        except AccessLayerException as e:
            self.logger.error("Effective role resolution failed", user_id=context.user_id, error=e.message)
            if self.config.strict_mode:
                raise
            return assigned

    def effective_permissions(self, context: Optional[UserContext] = None) -> List[Permission]:
        """Direct permissions plus those mapped to the user's effective roles."""
        context = context or self.context_store.current
        if context is None:
            return []

        tenant_id = context.tenant_id or self.config.default_tenant_id
        permissions: Dict[str, Permission] = {}

        for permission in context.permissions:
            if permission.active and permission.visible_to(tenant_id):
                permissions.setdefault(permission.id, permission)

        for role in self.effective_roles(context):
            for permission in self.role_permissions.get(role.id, []):
                if permission.active and permission.visible_to(tenant_id):
                    permissions.setdefault(permission.id, permission)

        return list(permissions.values())

    def register_roles(self, roles: Iterable[Role]) -> None:
        self.system_roles = index_roles(roles)

    def register_role_permissions(self, mapping: Mapping[str, Iterable[Permission]]) -> None:
        self.role_permissions = {role_id: list(perms) for role_id, perms in mapping.items()}

    def invalidate_user(self, user_id: str) -> int:
        """Drop every cached decision scoped to ``user_id``."""
        prefixes = tuple(cache_key_prefix(t, user_id) for t in CheckType)
        removed = self.cache.invalidate_pattern(lambda key: key.startswith(prefixes))
        self.logger.debug("User cache cleared", user_id=user_id, removed_count=removed)
        return removed

    def _cache_lookup(self, check_type: CheckType, cache_key: str) -> Optional[PermissionCheckResult]:
        if not self.config.enable_caching:
            return None

        cached = self.cache.get(cache_key)
        if self.metrics:
            metric = "rbac_cache_hits_total" if cached is not None else "rbac_cache_misses_total"
            self.metrics.increment_counter(metric, check_type=check_type.value)
        return cached

    def _finish(
        self,
        check_type: CheckType,
        identifier: str,
        context: UserContext,
        result: PermissionCheckResult,
        cache_hit: bool
    ) -> None:
        self.audit_log.record(
            context.user_id, f"check_{check_type.value}", identifier, result, context.session_data
        )
        self._publish(check_type.value, identifier, context.user_id, result, cache_hit)

        self.logger.debug(
            "Access check evaluated",
            check_type=check_type.value,
            identifier=identifier,
            user_id=context.user_id,
            granted=result.granted,
            reason=result.reason,
            cache_hit=cache_hit
        )

    def _fail(
        self,
        kind: str,
        identifier: str,
        context: Optional[UserContext],
        error: Exception
    ) -> PermissionCheckResult:
        """Deny after an evaluation error; strict mode re-raises once audited."""
        user_id = context.user_id if context else ANONYMOUS_USER_ID
        message = error.message if isinstance(error, AccessLayerException) else str(error)
        self.logger.error(
            "Access check failed",
            check_type=kind,
            identifier=identifier,
            user_id=user_id,
            error=message
        )
        if self.metrics:
            self.metrics.record_error(type(error).__name__)

        result = PermissionCheckResult(
            granted=False,
            reason=f"Check failed: {message}",
            metadata={"error_type": type(error).__name__}
        )
        self.audit_log.record(
            user_id, f"check_{kind}", identifier, result, context.session_data if context else None
        )
        self._publish(kind, identifier, user_id, result, cache_hit=False)

        if self.config.strict_mode:
            raise error

        return result

    def _publish(
        self,
        kind: str,
        identifier: str,
        user_id: str,
        result: PermissionCheckResult,
        cache_hit: bool
    ) -> None:
        if self.metrics:
            self.metrics.increment_counter(
                "rbac_checks_total",
                check_type=kind,
                decision="granted" if result.granted else "denied"
            )

        self.event_bus.emit(
            RbacEventType.ACCESS_GRANTED if result.granted else RbacEventType.ACCESS_DENIED,
            {
                "type": kind,
                "identifier": identifier,
                "user_id": user_id,
                "result": result,
                "cache_hit": cache_hit,
            },
            user_id=user_id
        )

    @staticmethod
    def _coerce_options(options: OptionsInput) -> CheckOptions:
        if options is None:
            return CheckOptions()
        if isinstance(options, CheckOptions):
            return options
        return CheckOptions.model_validate(dict(options))
