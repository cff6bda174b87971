"""Tests for the policy engine, the role-to-permission matrix."""

from __future__ import annotations

import pathlib

import pytest

from workforce_session.auth.session import Role
from workforce_session.policy.engine import PolicyEngine, PolicyError


class TestPolicyResolution:
    """Verify that each role resolves to the expected permission set."""

    def test_admin_can_manage_users_and_settings(self, policy_engine: PolicyEngine) -> None:
        policy = policy_engine.resolve(Role.ADMIN)
        assert "users:manage" in policy.permissions
        assert "settings:manage" in policy.permissions
        assert "reports:manage" in policy.permissions

    def test_manager_runs_teams_but_not_the_system(self, policy_engine: PolicyEngine) -> None:
        policy = policy_engine.resolve("manager")
        assert "attendance:manage" in policy.permissions
        assert "leave:manage" in policy.permissions
        # Administrative screens stay admin-only.
        assert "users:manage" not in policy.permissions
        assert "settings:manage" not in policy.permissions

    def test_leader_manages_schedules_and_tasks_only(self, policy_engine: PolicyEngine) -> None:
        policy = policy_engine.resolve(Role.LEADER)
        manage = {p for p in policy.permissions if p.endswith(":manage")}
        assert manage == {"schedule:manage", "tasks:manage"}

    def test_employee_is_view_only(self, policy_engine: PolicyEngine) -> None:
        policy = policy_engine.resolve(Role.EMPLOYEE)
        assert policy.role == "employee"
        assert all(p.endswith(":view") for p in policy.permissions)
        assert "reports:view" not in policy.permissions

    def test_every_role_sees_the_dashboard(self, policy_engine: PolicyEngine) -> None:
        for role in Role:
            assert policy_engine.allows(role, "dashboard:view")

    def test_unknown_role_raises(self, policy_engine: PolicyEngine) -> None:
        with pytest.raises(PolicyError, match="Unknown role"):
            policy_engine.resolve("superadmin")

    def test_allows_is_false_for_unknown_role(self, policy_engine: PolicyEngine) -> None:
        assert not policy_engine.allows("superadmin", "dashboard:view")

    def test_allows_is_false_for_unknown_permission(self, policy_engine: PolicyEngine) -> None:
        assert not policy_engine.allows(Role.ADMIN, "payroll:manage")


class TestPolicyReload:
    def test_reload_does_not_raise(self, policy_engine: PolicyEngine) -> None:
        policy_engine.reload()

    def test_list_roles(self, policy_engine: PolicyEngine) -> None:
        assert set(policy_engine.list_roles()) == {role.value for role in Role}

    def test_reload_picks_up_changes(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "permissions.yaml"
        path.write_text("roles:\n  employee:\n    permissions: [dashboard:view]\n")
        engine = PolicyEngine(policy_path=path)
        assert not engine.allows(Role.EMPLOYEE, "chat:view")

        path.write_text("roles:\n  employee:\n    permissions: [dashboard:view, chat:view]\n")
        engine.reload()

        assert engine.allows(Role.EMPLOYEE, "chat:view")

    def test_role_without_permissions_gets_none(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "permissions.yaml"
        path.write_text("roles:\n  leader: {}\n")
        assert PolicyEngine(policy_path=path).resolve("leader").permissions == frozenset()


class TestMalformedPolicy:
    def test_missing_file(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(PolicyError, match="not found"):
            PolicyEngine(policy_path=tmp_path / "absent.yaml")

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "- just\n- a list\n",
            "permissions: []\n",
            "roles: [admin, employee]\n",
            "roles:\n  admin: everything\n",
        ],
    )
    def test_bad_layout_is_rejected(self, tmp_path: pathlib.Path, content: str) -> None:
        path = tmp_path / "permissions.yaml"
        path.write_text(content)
        with pytest.raises(PolicyError):
            PolicyEngine(policy_path=path)
