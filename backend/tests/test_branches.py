"""
Branch management tests: one main branch, referential guards, admin-only.
"""

import pytest

from backoffice.errors import ErrorCode
from backoffice.models import Branch


def main_branches(store):
    return store.query(Branch).filter(Branch.is_main.is_(True)).all()


class TestBranches:

    def test_first_branch_is_main(self, branches):
        b1, b2 = branches
        assert b1.is_main
        assert not b2.is_main

    def test_promoting_demotes_previous_main(self, backoffice, admin_client, branches, store):
        b1, b2 = branches
        result = backoffice.update_branch(admin_client, b2.id, {"is_main": True})

        assert result.ok
        assert [b.id for b in main_branches(store)] == [b2.id]

    def test_new_main_branch_on_create(self, backoffice, admin_client, branches, store):
        result = backoffice.add_branch(admin_client, {"name": "Harbour", "code": "B3", "is_main": True})
        assert result.ok
        assert [b.id for b in main_branches(store)] == [result.value["id"]]

    def test_main_cannot_be_demoted_directly(self, backoffice, admin_client, branches):
        b1, _b2 = branches
        assert backoffice.update_branch(admin_client, b1.id, {"is_main": False}).error == ErrorCode.CONFLICT

    def test_main_cannot_be_deleted(self, backoffice, admin_client, branches):
        b1, _b2 = branches
        assert backoffice.delete_branch(admin_client, b1.id).error == ErrorCode.CONFLICT

    def test_referenced_branch_cannot_be_deleted(self, backoffice, admin_client, branches):
        _b1, b2 = branches
        backoffice.add_entity(admin_client, "customer", {"branch_id": b2.id, "name": "Regular", "phone": "1"})

        result = backoffice.delete_branch(admin_client, b2.id)
        assert result.error == ErrorCode.CONFLICT
        assert result.details["references"] == {"customers": 1}

    def test_unreferenced_branch_is_deleted(self, backoffice, admin_client, branches, store):
        _b1, b2 = branches
        assert backoffice.delete_entity(admin_client, "branch", b2.id).ok
        assert store.get(Branch, b2.id) is None

    @pytest.mark.parametrize("field,value", [("name", "Downtown"), ("code", "B2")])
    def test_unique_name_and_code(self, backoffice, admin_client, branches, field, value):
        fields = {"name": "Fresh", "code": "NEW"}
        fields[field] = value
        assert backoffice.add_branch(admin_client, fields).error == ErrorCode.CONFLICT

    def test_rename_to_own_name(self, backoffice, admin_client, branches):
        b1, _b2 = branches
        assert backoffice.update_branch(admin_client, b1.id, {"name": "Downtown", "phone": "+237 1"}).ok

    def test_coordinates_are_range_checked(self, backoffice, admin_client, branches):
        result = backoffice.add_branch(admin_client, {"name": "Nowhere", "latitude": 123.0})
        assert result.error == ErrorCode.VALIDATION_FAILED

    def test_manager_cannot_manage_branches(self, backoffice, manager_client, branches):
        b1, _b2 = branches
        assert backoffice.add_branch(manager_client, {"name": "Rogue"}).error == ErrorCode.PERMISSION_DENIED
        assert backoffice.update_branch(manager_client, b1.id, {"phone": "1"}).error == ErrorCode.PERMISSION_DENIED

    def test_manager_sees_only_own_branch(self, backoffice, manager_client, branches):
        b1, _b2 = branches
        listed = backoffice.list_entities(manager_client, "branch").value
        assert [b["id"] for b in listed] == [b1.id]
