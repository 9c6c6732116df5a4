"""
Role hierarchy package.

Resolves a set of directly assigned roles to every role reachable through
``parent_role_id`` links, with cycle detection, tenant filtering and a
memo keyed by role ids and tenant. ``validate_hierarchy`` is the eager
pre-flight check for a whole role graph.
"""

from .resolver import RoleHierarchyResolver, index_roles

__all__ = ["RoleHierarchyResolver", "index_roles"]
