"""
Unit tests for access guards.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import AccessDeniedError
from service_rbac.app.guards import ensure_access, require_roles, require_permissions


class TestGuards:
    """Test cases for ensure_access and the decorators."""

    @pytest.fixture
    def editor_service(self, service, factory):
        service.set_user_context(factory.create_context(
            roles=[factory.role("editor")],
            permissions=[factory.permission("p1")]
        ))
        return service

    def test_any_role_passes(self, editor_service):
        """Test a single matching role."""
        ensure_access(editor_service, roles=["admin", "editor"])

    def test_missing_role_raises(self, editor_service):
        """Test the denial error."""
        with pytest.raises(AccessDeniedError) as exc_info:
            ensure_access(editor_service, roles=["admin"], error_message="Admins only")

        error = exc_info.value
        assert error.code == "ACCESS_DENIED"
        assert error.message == "Admins only"
        assert error.details["user_id"] == "user-123"
        assert error.details["roles"] == ["admin"]

    def test_require_all(self, editor_service):
        """Test conjunctive guards."""
        ensure_access(editor_service, roles=["editor"], permissions=["p1"], require_all=True)

        with pytest.raises(AccessDeniedError):
            ensure_access(editor_service, roles=["editor", "admin"], require_all=True)

    def test_roles_and_permissions_both_required(self, editor_service):
        """Test that a role match does not cover a missing permission."""
        with pytest.raises(AccessDeniedError):
            ensure_access(editor_service, roles=["editor"], permissions=["p9"])

    def test_permission_options_forwarded(self, editor_service):
        """Test resource/action matching through the guard."""
        ensure_access(editor_service, permissions=["documents.view"], resource="document", action="read")

    def test_empty_guard_passes(self, service):
        """Test a guard without requirements."""
        ensure_access(service)

    def test_no_context_is_denied(self, service):
        """Test guards without a user."""
        with pytest.raises(AccessDeniedError) as exc_info:
            ensure_access(service, permissions=["p1"])

        assert exc_info.value.details["user_id"] is None

    def test_require_roles_decorator(self, editor_service):
        """Test the role decorator."""
        @require_roles(editor_service, "editor")
        def edit(doc_id):
            return f"edited {doc_id}"

        @require_roles(editor_service, "admin")
        def delete(doc_id):
            return f"deleted {doc_id}"

        assert edit("d1") == "edited d1"
        assert edit.__name__ == "edit"

        with pytest.raises(AccessDeniedError):
            delete("d1")

    def test_require_permissions_decorator(self, editor_service):
        """Test the permission decorator."""
        @require_permissions(editor_service, "p1", "p2", require_all=True)
        def export():
            return "exported"

        @require_permissions(editor_service, "p1", "p2")
        def view():
            return "viewed"

        assert view() == "viewed"

        with pytest.raises(AccessDeniedError):
            export()
