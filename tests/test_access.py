from __future__ import annotations

from pathlib import Path

import pytest
from sqlmodel import SQLModel

from orgtree.domain.models import Actor, MemberUpsert, OrganizationCreate, UserCreate
from orgtree.domain.permissions import GlobalRole, OrgRole, role_level, role_satisfies
from orgtree.infra import db
from orgtree.services.access_service import (
    AccessService,
    AuthError,
    ConflictError,
    OrganizationNotFoundError,
    PermissionDeniedError,
    UserNotFoundError,
)


@pytest.fixture()
def access(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> AccessService:
    test_engine = db.build_engine(f"sqlite:///{tmp_path / 'access_test.db'}")
    SQLModel.metadata.create_all(test_engine)
    monkeypatch.setattr(db, "engine", test_engine)
    return AccessService()


def _actor(access: AccessService, name: str, role: GlobalRole = GlobalRole.USER) -> Actor:
    user = access.create_user(UserCreate(name=name, email=f"{name.lower()}@example.test", password="pw"), role=role)
    return Actor(id=user.id, name=user.name, email=user.email)


def test_role_ordering() -> None:
    assert role_level(OrgRole.VIEWER) < role_level(OrgRole.EDITOR) < role_level(OrgRole.ADMIN)
    assert role_level(OrgRole.ADMIN) < role_level(OrgRole.OWNER)
    assert role_level(None) == -1
    assert role_level("janitor") == -1
    assert role_satisfies(OrgRole.ADMIN, OrgRole.EDITOR)
    assert role_satisfies("editor", "editor")
    assert not role_satisfies(OrgRole.VIEWER, OrgRole.EDITOR)
    assert not role_satisfies(None, OrgRole.VIEWER)


def test_creator_is_owner(access: AccessService) -> None:
    owner = _actor(access, "Owner")
    org = access.create_organization(OrganizationCreate(name="Acme"), owner.id)

    result = access.require_org_permission(org.id, owner.id, OrgRole.ADMIN)

    assert result.role == OrgRole.OWNER
    assert result.is_owner is True


def test_member_role_gates_access(access: AccessService) -> None:
    owner = _actor(access, "Owner")
    viewer = _actor(access, "Viewer")
    org = access.create_organization(OrganizationCreate(name="Acme"), owner.id)
    access.upsert_member(org.id, MemberUpsert(user_id=viewer.id, role=OrgRole.VIEWER), owner)

    assert access.require_org_permission(org.id, viewer.id).role == OrgRole.VIEWER
    with pytest.raises(PermissionDeniedError, match="Insufficient permissions"):
        access.require_org_permission(org.id, viewer.id, OrgRole.EDITOR)

    access.upsert_member(org.id, MemberUpsert(user_id=viewer.id, role=OrgRole.EDITOR), owner)
    assert access.require_org_permission(org.id, viewer.id, OrgRole.EDITOR).role == OrgRole.EDITOR
    assert [item.role for item in access.list_members(org.id, owner)] == [OrgRole.EDITOR]


def test_non_member_gets_not_found(access: AccessService) -> None:
    owner = _actor(access, "Owner")
    stranger = _actor(access, "Stranger")
    org = access.create_organization(OrganizationCreate(name="Acme"), owner.id)

    with pytest.raises(OrganizationNotFoundError, match="Organization not found"):
        access.require_org_permission(org.id, stranger.id)
    with pytest.raises(OrganizationNotFoundError):
        access.require_org_permission("no-such-org", owner.id)


def test_superuser_has_owner_access_to_existing_organizations(access: AccessService) -> None:
    owner = _actor(access, "Owner")
    root = _actor(access, "Root", GlobalRole.SUPERUSER)
    org = access.create_organization(OrganizationCreate(name="Acme"), owner.id)

    result = access.require_org_permission(org.id, root.id, OrgRole.ADMIN)

    assert result.role == OrgRole.OWNER
    assert result.is_owner is False
    with pytest.raises(OrganizationNotFoundError):
        access.require_org_permission("no-such-org", root.id)


def test_upsert_member_rules(access: AccessService) -> None:
    owner = _actor(access, "Owner")
    editor = _actor(access, "Editor")
    org = access.create_organization(OrganizationCreate(name="Acme"), owner.id)
    access.upsert_member(org.id, MemberUpsert(user_id=editor.id, role=OrgRole.EDITOR), owner)

    with pytest.raises(PermissionDeniedError):
        access.upsert_member(org.id, MemberUpsert(user_id=editor.id, role=OrgRole.ADMIN), editor)
    with pytest.raises(ConflictError):
        access.upsert_member(org.id, MemberUpsert(user_id=editor.id, role=OrgRole.OWNER), owner)
    with pytest.raises(ConflictError):
        access.upsert_member(org.id, MemberUpsert(user_id=owner.id, role=OrgRole.ADMIN), owner)
    with pytest.raises(UserNotFoundError):
        access.upsert_member(org.id, MemberUpsert(user_id="ghost", role=OrgRole.VIEWER), owner)


def test_duplicate_email_and_login(access: AccessService) -> None:
    _actor(access, "Owner")

    with pytest.raises(ConflictError, match="email already registered"):
        access.create_user(UserCreate(name="Other", email="owner@example.test", password="x"))

    assert access.dev_login("owner@example.test", "pw").name == "Owner"
    with pytest.raises(AuthError):
        access.dev_login("owner@example.test", "wrong")
    with pytest.raises(AuthError):
        access.dev_login("nobody@example.test", "pw")
