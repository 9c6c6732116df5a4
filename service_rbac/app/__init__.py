"""
RBAC decision core.

Answers whether the current user holds a role (directly or through the
parent-role hierarchy) or a permission (by id or by resource/action), and
explains why. It provides:

- app.main: RoleService, the entry point used by collaborators.
- app.rules: Models and the decision engine.
- app.hierarchy: Cycle-safe role hierarchy resolution.
- app.cache: In-process TTL + LRU decision cache.
- app.context: Holder of the current user context.
- app.audit: Audit log and change notification stream.
- app.guards: Helpers that raise AccessDeniedError on a denial.

Guidelines:
- Everything is in memory and synchronous; no I/O happens in a check.
- Fail closed: evaluation errors become denials unless strict mode is on.
- Keep decisions deterministic and observable (audit + events + logs).
"""
