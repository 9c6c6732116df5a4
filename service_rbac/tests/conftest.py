"""
Shared fixtures for RBAC service tests.
"""

import os
import sys
from typing import Dict, Any, Optional, List

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), "..", ".."))

from shared.config import RbacConfig
from service_rbac.app.main import RoleService
from service_rbac.app.rules.models import Role, Permission, UserContext


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    @staticmethod
    def role(role_id: str, parent: Optional[str] = None, **kwargs: Any) -> Role:
        return Role(
            id=role_id,
            name=kwargs.pop("name", role_id.replace("-", " ").title()),
            parent_role_id=parent,
            **kwargs
        )

    @staticmethod
    def permission(permission_id: str, resource: str = "document", action: str = "read", **kwargs: Any) -> Permission:
        return Permission(
            id=permission_id,
            name=kwargs.pop("name", permission_id),
            resource=resource,
            action=action,
            **kwargs
        )

    @staticmethod
    def create_role_tree() -> List[Role]:
        """super-admin <- admin <- manager <- {analyst, editor}; guest is a root."""
        return [
            TestDataFactory.role("super-admin", level=0),
            TestDataFactory.role("admin", parent="super-admin", level=10),
            TestDataFactory.role("manager", parent="admin", level=20),
            TestDataFactory.role("analyst", parent="manager", level=30),
            TestDataFactory.role("editor", parent="manager", level=30),
            TestDataFactory.role("guest", level=40),
        ]

    @staticmethod
    def create_context(
        user_id: str = "user-123",
        roles: Optional[List[Role]] = None,
        permissions: Optional[List[Permission]] = None,
        tenant_id: Optional[str] = None,
        session_data: Optional[Dict[str, Any]] = None
    ) -> UserContext:
        return UserContext(
            user_id=user_id,
            roles=roles or [],
            permissions=permissions or [],
            tenant_id=tenant_id,
            session_data=session_data or {}
        )


@pytest.fixture
def factory():
    return TestDataFactory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def role_tree():
    return TestDataFactory.create_role_tree()


@pytest.fixture
def config():
    return RbacConfig(max_cache_size=100, cache_timeout_seconds=60)


@pytest.fixture
def service(config, clock):
    """RoleService with a private metrics registry and a fake clock."""
    return RoleService(config, clock=clock)
