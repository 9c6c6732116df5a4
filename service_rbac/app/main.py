"""
Role service for the RBAC decision core.
"""

import asyncio
import time
from typing import Callable, Dict, Any, Optional, List, Iterable, Mapping, Union

from shared.config import RbacConfig, get_config, merge_config
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector

from .audit.events import EventBus, EventListener
from .audit.recorder import AuditLog
from .cache.lru_cache import LruCache
from .context.store import ContextStore, ContextInput
from .hierarchy.resolver import RoleHierarchyResolver
from .rules.engine import DecisionEngine, OptionsInput
from .rules.models import (
    Role, Permission, UserContext, CheckType, CheckOptions, PermissionCheckResult,
    AuditLogEntry, RbacEventType
)


class RoleService:
    """Single entry point for role and permission decisions.

    Owns the decision cache, hierarchy resolver, audit log, event stream
    and the current user context. One instance per process; call
    :meth:`stop` to end periodic maintenance and complete the event stream.
    """

    def __init__(
        self,
        config: Optional[RbacConfig] = None,
        *,
        clock: Optional[Callable[[], float]] = None,
        metrics: Optional[MetricsCollector] = None,
        configure_logs: bool = False
    ):
        self.config = config or get_config()
        self.logger = get_logger("rbac.service")

        if configure_logs:
            configure_logging(
                self.config.service_name, self.config.effective_log_level, self.config.log_json
            )

        self.metrics = metrics or get_metrics_collector(self.config.service_name)

        self.cache: LruCache[PermissionCheckResult] = LruCache(
            max_size=self.config.max_cache_size,
            default_ttl=self.config.cache_timeout_seconds,
            clock=clock
        )
        self.hierarchy = RoleHierarchyResolver()
        self.audit_log = AuditLog(self.config.max_audit_log_size)
        self.events = EventBus()
        self.context_store = ContextStore(self.events, self._invalidate_user)
        self.engine = DecisionEngine(
            self.config,
            self.context_store,
            self.hierarchy,
            self.cache,
            self.audit_log,
            self.events,
            self.metrics
        )

        # Maintenance tasks
        self._cleanup_task: Optional[asyncio.Task] = None
        self._audit_trim_task: Optional[asyncio.Task] = None
        self.running = False

        self.logger.info(
            "Role service initialized",
            caching=self.config.enable_caching,
            role_hierarchy=self.config.enable_role_hierarchy,
            strict_mode=self.config.strict_mode
        )

    # Context

    def set_user_context(self, context: ContextInput) -> UserContext:
        """Replace the current user context."""
        # Context roles take part in hierarchy resolution
        self.hierarchy.clear_cache()
        return self.context_store.set(context)

    def clear_user_context(self) -> Optional[UserContext]:
        self.hierarchy.clear_cache()
        return self.context_store.clear()

    def get_user_context(self) -> Optional[UserContext]:
        return self.context_store.current

    def get_tenant(self) -> Optional[str]:
        return self.context_store.tenant_id

    def register_roles(self, roles: Iterable[Union[Role, Mapping[str, Any]]], validate: bool = True) -> List[Role]:
        """Install the role universe used for inheritance."""
        roles = [r if isinstance(r, Role) else Role.model_validate(r) for r in roles]

        if validate:
            self.hierarchy.validate_hierarchy(roles)

        self.engine.register_roles(roles)
        self.hierarchy.clear_cache()
        self.cache.clear()

        self.logger.info("Role universe registered", total_roles=len(roles))
        return roles

    def register_role_permissions(
        self,
        mapping: Mapping[str, Iterable[Union[Permission, Mapping[str, Any]]]]
    ) -> None:
        """Install permissions granted through roles, keyed by role id."""
        self.engine.register_role_permissions({
            role_id: [p if isinstance(p, Permission) else Permission.model_validate(p) for p in perms]
            for role_id, perms in mapping.items()
        })
        self.cache.clear()

        self.logger.info("Role permissions registered", roles=len(mapping))

    # Checks

    def check_access(
        self,
        kind: Union[CheckType, str],
        identifier: str,
        options: OptionsInput = None,
        **kwargs: Any
    ) -> PermissionCheckResult:
        """Detailed decision for a role or permission check."""
        if kwargs:
            if isinstance(options, CheckOptions):
                options = options.model_dump(exclude_none=True)
            options = {**dict(options or {}), **kwargs}
        return self.engine.check(kind, identifier, options)

    check_permission_detailed = check_access

    def has_role(self, role_id: str, options: OptionsInput = None, **kwargs: Any) -> bool:
        return self.check_access(CheckType.ROLE, role_id, options, **kwargs).granted

    def has_any_role(self, role_ids: Iterable[str], options: OptionsInput = None, **kwargs: Any) -> bool:
        results = [self.has_role(role_id, options, **kwargs) for role_id in role_ids]
        return any(results)

    def has_all_roles(self, role_ids: Iterable[str], options: OptionsInput = None, **kwargs: Any) -> bool:
        results = [self.has_role(role_id, options, **kwargs) for role_id in role_ids]
        return all(results)

    def has_permission(self, permission_id: str, options: OptionsInput = None, **kwargs: Any) -> bool:
        return self.check_access(CheckType.PERMISSION, permission_id, options, **kwargs).granted

    def has_any_permission(self, permission_ids: Iterable[str], options: OptionsInput = None, **kwargs: Any) -> bool:
        results = [self.has_permission(p, options, **kwargs) for p in permission_ids]
        return any(results)

    def has_all_permissions(self, permission_ids: Iterable[str], options: OptionsInput = None, **kwargs: Any) -> bool:
        results = [self.has_permission(p, options, **kwargs) for p in permission_ids]
        return all(results)

    # Derived views

    def get_effective_roles(self) -> List[Role]:
        return self.engine.effective_roles()

    def get_effective_permissions(self) -> List[Permission]:
        return self.engine.effective_permissions()

    # Cache and audit

    def _invalidate_user(self, user_id: str) -> int:
        return self.engine.invalidate_user(user_id)

    def clear_user_cache(self, user_id: str) -> int:
        """Drop cached decisions for one user."""
        return self._invalidate_user(user_id)

    def clear_all_caches(self) -> None:
        self.cache.clear()
        self.hierarchy.clear_cache()

        self.events.emit(RbacEventType.CACHE_CLEARED, {}, user_id=self.context_store.user_id)
        self.logger.info("All caches cleared")

    def get_audit_log(self, limit: int = 100) -> List[AuditLogEntry]:
        return self.audit_log.entries(limit)

    def get_stats(self) -> Dict[str, Any]:
        """Get service statistics."""
        cache_stats = self.cache.get_stats()
        self.metrics.set_gauge("rbac_cache_size", cache_stats["size"])

        return {
            "cache_stats": cache_stats,
            "hierarchy_cache_size": self.hierarchy.memo_size,
            "audit_log_size": len(self.audit_log),
            "registered_roles": len(self.engine.system_roles),
            "listeners": self.events.listener_count,
            "current_user_context": self.context_store.current,
        }

    # Events

    def subscribe(
        self,
        callback: EventListener,
        event_types: Optional[Iterable[RbacEventType]] = None
    ) -> Callable[[], bool]:
        """Listen to the change stream; call the returned handle to stop."""
        return self.events.subscribe(callback, event_types)

    # Configuration

    def configure(self, **overrides: Any) -> RbacConfig:
        """Merge new settings; cached decisions are dropped."""
        self.config = merge_config(self.config, **overrides)
        self.engine.config = self.config
        self.cache.default_ttl = self.config.cache_timeout_seconds
        self.cache.max_size = self.config.max_cache_size
        self.audit_log.max_size = self.config.max_audit_log_size

        self.cache.clear()
        self.hierarchy.clear_cache()

        self.logger.info("Service reconfigured", overrides=sorted(overrides))
        self.events.emit(
            RbacEventType.CONFIG_UPDATED,
            {"overrides": dict(overrides)},
            user_id=self.context_store.user_id
        )
        return self.config

    # Maintenance

    def run_maintenance(self) -> Dict[str, int]:
        """Expire cache entries and trim the audit log."""
        removed = {
            "expired_entries": self.cache.cleanup(),
            "audit_entries": self.audit_log.trim(),
        }
        if any(removed.values()):
            self.logger.debug("Maintenance completed", **removed)
        return removed

    async def start(self):
        """Start periodic maintenance."""
        if self.running:
            return
        self.running = True
        self._cleanup_task = asyncio.create_task(
            self._maintenance_loop(self.config.cleanup_interval_seconds, self.cache.cleanup, "cache_cleanup")
        )
        self._audit_trim_task = asyncio.create_task(
            self._maintenance_loop(self.config.audit_trim_interval_seconds, self.audit_log.trim, "audit_trim")
        )
        self.logger.info(
            "Role service started",
            cleanup_interval=self.config.cleanup_interval_seconds,
            audit_trim_interval=self.config.audit_trim_interval_seconds
        )

    async def stop(self):
        """Stop maintenance and complete the event stream."""
        self.running = False
        for task in (self._cleanup_task, self._audit_trim_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._cleanup_task = None
        self._audit_trim_task = None

        self.events.complete()
        self.logger.info("Role service stopped")

    async def _maintenance_loop(self, interval: float, job: Callable[[], int], name: str):
        while self.running:
            await asyncio.sleep(interval)
            try:
                start = time.perf_counter()
                removed = job()
                if removed:
                    self.logger.debug(
                        "Periodic maintenance completed",
                        job=name,
                        removed_count=removed,
                        duration_ms=(time.perf_counter() - start) * 1000
                    )
            except Exception as e:
                self.logger.error("Error in maintenance loop", job=name, error=str(e))


def create_role_service(**overrides: Any) -> RoleService:
    """Build a service from environment configuration plus overrides."""
    return RoleService(get_config(**overrides), configure_logs=True)
