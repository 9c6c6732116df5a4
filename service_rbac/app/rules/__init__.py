"""
Decision rules package.

Defines the role, permission and context models and the decision engine
used by the RBAC service. A check runs through a fixed sequence: no
context, cache hit, direct match, inherited match, then a denial that
names the missing identifier. Every check is audited and published.

Modules of interest:
- models: Pydantic records for roles, permissions, contexts and results.
- engine: Evaluation of role and permission checks with caching.
"""
