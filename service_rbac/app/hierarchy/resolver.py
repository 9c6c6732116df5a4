"""
Role hierarchy resolution for the RBAC service.
"""

import time
from typing import Dict, Any, Optional, List, Iterable, Tuple

from shared.logging import get_logger
from shared.errors import HierarchyError, InvalidRoleError
from ..rules.models import Role


MemoKey = Tuple[Tuple[str, ...], Optional[str]]


def index_roles(roles: Iterable[Role]) -> Dict[str, Role]:
    """Map role id to role; later duplicates win."""
    return {role.id: role for role in roles}


def _cycle_message(path: List[str]) -> str:
    return f"Circular dependency detected in role hierarchy: {' -> '.join(path)}"


class RoleHierarchyResolver:
    """Resolves roles to their transitive closure over ``parent_role_id``."""

    def __init__(self):
        self.logger = get_logger("rbac.hierarchy")
        self._memo: Dict[MemoKey, List[Role]] = {}

    def resolve_hierarchy(
        self,
        user_roles: Iterable[Role],
        all_roles: Iterable[Role],
        tenant_id: Optional[str] = None
    ) -> List[Role]:
        """Return the given roles plus all their ancestors, sorted by id.

        Roles tagged with a tenant other than ``tenant_id`` are skipped
        together with their ancestors on that branch. A parent id that is
        not in ``all_roles`` ends the branch. A cycle raises
        :class:`HierarchyError`.

        Results are memoized by role ids and tenant only, not by
        ``all_roles``. Call :meth:`clear_cache` whenever the role universe
        changes, or a stale closure is returned.
        """
        user_roles = list(user_roles)
        memo_key = self._memo_key(user_roles, tenant_id)

        cached = self._memo.get(memo_key)
        if cached is not None:
            self.logger.debug(
                "Role hierarchy resolved from cache",
                role_ids=list(memo_key[0]),
                resolved_count=len(cached)
            )
            return list(cached)

        start_time = time.perf_counter()

        try:
            index = index_roles(all_roles)
            resolved: Dict[str, Role] = {}

            for role in user_roles:
                self._walk(role, index, resolved, tenant_id)

        except HierarchyError:
            raise
        except Exception as e:
            self.logger.error("Failed to resolve role hierarchy", error=str(e))
            raise HierarchyError(
                "Role hierarchy resolution failed",
                details={
                    "role_ids": list(memo_key[0]),
                    "tenant_id": tenant_id,
                    "error": str(e)
                }
            ) from e

        result = sorted(resolved.values(), key=lambda r: r.id)
        self._memo[memo_key] = result

        self.logger.debug(
            "Role hierarchy resolved",
            user_roles_count=len(user_roles),
            resolved_count=len(result),
            tenant_id=tenant_id,
            duration_ms=(time.perf_counter() - start_time) * 1000
        )

        return list(result)

    def _walk(
        self,
        role: Role,
        index: Dict[str, Role],
        resolved: Dict[str, Role],
        tenant_id: Optional[str]
    ) -> None:
        """Follow one parent chain, adding every visible role to ``resolved``."""
        path: List[str] = []
        on_path = set()
        current: Optional[Role] = role

        while current is not None:
            if current.id in on_path:
                cycle = path[path.index(current.id):] + [current.id]
                raise HierarchyError(
                    _cycle_message(cycle),
                    cycle=cycle,
                    details={"role_id": current.id}
                )

            if not current.visible_to(tenant_id):
                return

            # Ancestors of an already resolved role are resolved too
            if current.id in resolved and current is not role:
                return

            path.append(current.id)
            on_path.add(current.id)
            resolved.setdefault(current.id, current)

            parent_id = current.parent_role_id
            if not parent_id:
                return

            parent = index.get(parent_id)
            if parent is None:
                self.logger.warning(
                    "Parent role not found",
                    role_id=current.id,
                    parent_role_id=parent_id
                )
                return

            current = parent

    def has_inherited_role(self, role: Role, target_role_id: str, all_roles: Iterable[Role]) -> bool:
        """True if ``target_role_id`` is ``role`` or one of its ancestors.

        Shares the :meth:`resolve_hierarchy` memo, so a different
        ``all_roles`` needs a :meth:`clear_cache` first.
        """
        return any(r.id == target_role_id for r in self.resolve_hierarchy([role], all_roles))

    def get_child_roles(self, parent_role_id: str, all_roles: Iterable[Role]) -> List[Role]:
        """Direct children of a role (one level)."""
        return [role for role in all_roles if role.parent_role_id == parent_role_id]

    def get_hierarchy_path(self, role: Role, all_roles: Iterable[Role]) -> List[Role]:
        """Roles from ``role`` up to its root.

        Stops at an unresolvable parent. Does not detect cycles, so only
        call it on a graph that passed :meth:`validate_hierarchy`.
        """
        index = index_roles(all_roles)
        path: List[Role] = []
        current: Optional[Role] = role

        while current is not None:
            path.append(current)
            current = index.get(current.parent_role_id) if current.parent_role_id else None

        return path

    def validate_hierarchy(self, all_roles: Iterable[Role]) -> None:
        """Fail on the first cycle or dangling parent reference."""
        roles = list(all_roles)
        index = index_roles(roles)

        for role in roles:
            if role.parent_role_id:
                self._validate_chain(role, index)

        self.logger.debug("Role hierarchy validated", total_roles=len(roles))

    def _validate_chain(self, role: Role, index: Dict[str, Role]) -> int:
        """Walk one chain; returns its depth."""
        path = [role.id]
        current = role

        while current.parent_role_id:
            parent_id = current.parent_role_id

            if parent_id in path:
                cycle = path[path.index(parent_id):] + [parent_id]
                raise HierarchyError(
                    _cycle_message(path + [parent_id]),
                    cycle=cycle,
                    details={"role_id": role.id, "conflicting_role": parent_id}
                )

            parent = index.get(parent_id)
            if parent is None:
                raise InvalidRoleError(
                    f"Parent role not found: {parent_id}",
                    details={"role_id": current.id, "parent_role_id": parent_id}
                )

            path.append(parent_id)
            current = parent

        return len(path)

    def get_hierarchy_stats(self, all_roles: Iterable[Role]) -> Dict[str, Any]:
        """Summarize roots, depth, cycles and orphans of a role graph."""
        roles = list(all_roles)
        index = index_roles(roles)

        max_depth = 0
        circular: List[str] = []
        orphaned: List[str] = []

        for role in roles:
            if not role.parent_role_id:
                max_depth = max(max_depth, 1)
                continue

            if role.parent_role_id not in index:
                orphaned.append(role.id)

            try:
                max_depth = max(max_depth, self._validate_chain(role, index))
            except HierarchyError:
                circular.append(role.id)
            except InvalidRoleError as e:
                # Depth up to the missing parent still counts
                max_depth = max(max_depth, len(self.get_hierarchy_path(role, roles)))
                self.logger.debug("Orphaned chain", role_id=role.id, error=e.message)

        return {
            "total_roles": len(roles),
            "root_roles": sum(1 for r in roles if not r.parent_role_id),
            "max_depth": max_depth,
            "circular_dependencies": circular,
            "orphaned_roles": orphaned,
        }

    def clear_cache(self, tenant_id: Optional[str] = None) -> int:
        """Drop memoized resolutions, all of them or one tenant's."""
        if tenant_id is None:
            removed = len(self._memo)
            self._memo.clear()
        else:
            keys = [key for key in self._memo if key[1] == tenant_id]
            for key in keys:
                del self._memo[key]
            removed = len(keys)

        self.logger.debug("Role hierarchy cache cleared", tenant_id=tenant_id, removed_count=removed)
        return removed

    @property
    def memo_size(self) -> int:
        return len(self._memo)

    @staticmethod
    def _memo_key(roles: List[Role], tenant_id: Optional[str]) -> MemoKey:
        return tuple(sorted({r.id for r in roles})), tenant_id or None
