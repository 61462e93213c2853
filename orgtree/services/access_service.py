from __future__ import annotations

import hashlib
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from orgtree.domain.models import (
    Actor,
    MemberUpsert,
    Organization,
    OrganizationCreate,
    OrganizationMember,
    User,
    UserCreate,
    now_utc,
)
from orgtree.domain.permissions import GlobalRole, OrgRole, role_level, role_satisfies
from orgtree.infra.audit import write_audit_log
from orgtree.infra.db import get_engine

logger = logging.getLogger(__name__)


class AccessError(Exception):
    pass


class PermissionDeniedError(AccessError):
    pass


class OrganizationNotFoundError(PermissionDeniedError):
    pass


class UserNotFoundError(AccessError):
    pass


class ConflictError(AccessError):
    pass


class AuthError(AccessError):
    pass


class PermissionGate(Protocol):
    def require_org_permission(
        self,
        organization_id: str,
        user_id: str,
        minimum_role: OrgRole | str = ...,
    ) -> Any: ...


@dataclass(frozen=True)
class OrgAccess:
    has_access: bool
    role: OrgRole | None
    is_owner: bool


class AccessService:
    """Organization membership and the role gate every mutation passes through."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory

    def _session(self) -> Session:
        if self._session_factory is not None:
            return self._session_factory()
        return Session(get_engine(), expire_on_commit=False)

    def _hash_password(self, raw_password: str) -> str:
        salt = os.getenv("PASSWORD_SALT", "orgtree-dev-salt")
        return hashlib.sha256(f"{salt}:{raw_password}".encode()).hexdigest()

    def create_user(self, payload: UserCreate, role: GlobalRole = GlobalRole.USER) -> User:
        """Register a user. ``role`` is only set by trusted seeding code, never from a request."""
        with self._session() as session:
            user = User(
                name=payload.name,
                email=payload.email,
                password_hash=self._hash_password(payload.password),
                role=role,
            )
            session.add(user)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("email already registered") from exc
            session.refresh(user)
            return user

    def get_user(self, user_id: str) -> User:
        with self._session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFoundError("user not found")
            return user

    def dev_login(self, email: str, password: str) -> User:
        with self._session() as session:
            user = session.exec(select(User).where(User.email == email)).first()
            if user is None or user.password_hash != self._hash_password(password):
                raise AuthError("invalid credentials")
            return user

    def create_organization(self, payload: OrganizationCreate, owner_id: str) -> Organization:
        with self._session() as session:
            if session.get(User, owner_id) is None:
                raise UserNotFoundError("user not found")
            organization = Organization(name=payload.name, created_by_id=owner_id)
            session.add(organization)
            session.commit()
            session.refresh(organization)
            return organization

    def check_org_access(self, organization_id: str, user_id: str) -> OrgAccess:
        with self._session() as session:
            organization = session.get(Organization, organization_id)
            user = session.get(User, user_id)

            if organization is None:
                return OrgAccess(has_access=False, role=None, is_owner=False)
            if user is not None and user.role == GlobalRole.SUPERUSER:
                is_owner = organization.created_by_id == user_id
                return OrgAccess(has_access=True, role=OrgRole.OWNER, is_owner=is_owner)
            if organization.created_by_id == user_id:
                return OrgAccess(has_access=True, role=OrgRole.OWNER, is_owner=True)

            member = session.get(OrganizationMember, (organization_id, user_id))
            if member is None:
                return OrgAccess(has_access=False, role=None, is_owner=False)
            return OrgAccess(has_access=True, role=OrgRole(member.role), is_owner=False)

    def require_org_permission(
        self,
        organization_id: str,
        user_id: str,
        minimum_role: OrgRole | str = OrgRole.VIEWER,
    ) -> OrgAccess:
        access = self.check_org_access(organization_id, user_id)
        if not access.has_access:
            raise OrganizationNotFoundError("Organization not found")

        if not role_satisfies(access.role, minimum_role):
            logger.warning(
                "permission denied: user %s has role %s (%d) but %s (%d) is required for organization %s",
                user_id,
                access.role,
                role_level(access.role),
                minimum_role,
                role_level(minimum_role),
                organization_id,
            )
            with self._session() as session:
                write_audit_log(
                    organization_id=organization_id,
                    actor=self._actor_for(session, user_id),
                    action="permission_denied",
                    entity_type="security",
                    entity_id="organization_access",
                    snapshot={
                        "organization_id": organization_id,
                        "required_role": str(minimum_role),
                        "user_role": str(access.role),
                    },
                    session=session,
                )
                session.commit()
            raise PermissionDeniedError("Insufficient permissions")
        return access

    def _actor_for(self, session: Session, user_id: str) -> Actor:
        user = session.get(User, user_id)
        if user is None:
            return Actor(id=user_id, name="Unknown")
        return Actor(id=user.id, name=user.name, email=user.email)

    def upsert_member(self, organization_id: str, payload: MemberUpsert, actor: Actor) -> OrganizationMember:
        self.require_org_permission(organization_id, actor.id, OrgRole.ADMIN)
        if payload.role == OrgRole.OWNER:
            raise ConflictError("owner role cannot be granted through membership")

        with self._session() as session:
            if session.get(User, payload.user_id) is None:
                raise UserNotFoundError("user not found")
            organization = session.get(Organization, organization_id)
            if organization is not None and organization.created_by_id == payload.user_id:
                raise ConflictError("organization owner cannot be added as a member")

            member = session.get(OrganizationMember, (organization_id, payload.user_id))
            if member is None:
                member = OrganizationMember(
                    organization_id=organization_id,
                    user_id=payload.user_id,
                    role=payload.role,
                )
            else:
                member.role = payload.role
            session.add(member)
            if organization is not None:
                organization.updated_at = now_utc()
                session.add(organization)
            write_audit_log(
                organization_id=organization_id,
                actor=actor,
                action="updated",
                entity_type="member",
                entity_id=payload.user_id,
                snapshot={"user_id": payload.user_id, "role": str(payload.role)},
                session=session,
            )
            session.commit()
            session.refresh(member)
            return member

    def list_members(self, organization_id: str, actor: Actor) -> list[OrganizationMember]:
        self.require_org_permission(organization_id, actor.id, OrgRole.VIEWER)
        with self._session() as session:
            members = session.exec(
                select(OrganizationMember).where(OrganizationMember.organization_id == organization_id)
            ).all()
            return sorted(members, key=lambda item: (-role_level(item.role), item.user_id))
