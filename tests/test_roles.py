"""
Tests for the organization role catalogue.
"""

import pytest

from taskpulse.errors import Conflict, Forbidden, NotFound, ValidationFailed
from taskpulse.services import RoleService

from conftest import add_user


@pytest.fixture
def roles(people, dispatcher):
    return RoleService(people, dispatcher)


@pytest.fixture
def designer(roles, admin):
    return roles.create_role(admin, {
        "name": "Designer",
        "permissions": [{"resource": "task", "actions": ["read", "update"]}],
        "level": 3,
    })


class TestRoles:
    """Test the custom role lifecycle."""

    def test_create(self, designer):
        assert designer["isSystem"] is False
        assert designer["permissions"] == [{"resource": "task", "actions": ["read", "update"]}]

    def test_only_admins_manage_roles(self, roles, manager, designer):
        with pytest.raises(Forbidden):
            roles.create_role(manager, {"name": "Lead designer"})
        with pytest.raises(Forbidden):
            roles.update_role(manager, designer["_id"], {"level": 5})
        assert roles.get_role(manager, designer["_id"])["name"] == "Designer"

    def test_duplicate_name(self, roles, admin, designer):
        with pytest.raises(Conflict):
            roles.create_role(admin, {"name": "  designer "})

    def test_unknown_action(self, roles, admin):
        with pytest.raises(ValidationFailed):
            roles.create_role(admin, {"name": "Chaos", "permissions": [{"resource": "task", "actions": ["explode"]}]})

    def test_system_role_is_read_only(self, roles, admin, store):
        system = store.insert("roles", {"name": "Admin", "isSystem": True, "isActive": True, "isDeleted": False})

        with pytest.raises(Forbidden) as exc:
            roles.update_role(admin, system["_id"], {"description": "changed"})
        assert exc.value.reason == "system_resource"
        with pytest.raises(Forbidden):
            roles.delete_role(admin, system["_id"])

    def test_list_hides_inactive(self, roles, admin, employee, designer):
        roles.update_role(admin, designer["_id"], {"isActive": False})
        assert roles.list_roles(employee) == []
        assert [r["name"] for r in roles.list_roles(employee, include_inactive=True)] == ["Designer"]

    def test_delete_in_use(self, roles, admin, store, designer):
        """A role held by any user cannot be deleted."""
        add_user(store, "U9", role="designer")
        with pytest.raises(Conflict):
            roles.delete_role(admin, designer["_id"])

        store.delete("users", {"_id": "U9"})
        roles.delete_role(admin, designer["_id"])
        with pytest.raises(NotFound):
            roles.get_role(admin, designer["_id"])
