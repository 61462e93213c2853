from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column, ForeignKeyConstraint, Index, String, UniqueConstraint
from sqlmodel import Field, SQLModel

from orgtree.domain.permissions import GlobalRole, OrgRole


def now_utc() -> datetime:
    return datetime.now(UTC)


class EventRecord(SQLModel, table=True):
    __tablename__ = "events"

    event_id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    event_type: str = Field(index=True)
    organization_id: str = Field(index=True)
    ts: datetime = Field(default_factory=now_utc, index=True)
    actor_id: str | None = Field(default=None, index=True)
    payload: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    organization_id: str | None = Field(default=None, index=True)
    actor_id: str | None = Field(default=None, index=True)
    actor_name: str | None = None
    action: str = Field(index=True)
    entity_type: str = Field(index=True)
    entity_id: str | None = Field(default=None, index=True)
    ts: datetime = Field(default_factory=now_utc, index=True)
    snapshot: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    password_hash: str = ""
    role: GlobalRole = Field(default=GlobalRole.USER, sa_column=Column(String(20), nullable=False))
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Organization(SQLModel, table=True):
    __tablename__ = "organizations"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str = Field(index=True)
    created_by_id: str = Field(foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc, index=True)


class OrganizationMember(SQLModel, table=True):
    __tablename__ = "organization_members"
    __table_args__ = (Index("ix_organization_members_user", "user_id"),)

    organization_id: str = Field(foreign_key="organizations.id", primary_key=True)
    user_id: str = Field(foreign_key="users.id", primary_key=True)
    role: OrgRole = Field(default=OrgRole.VIEWER, sa_column=Column(String(20), nullable=False))
    joined_at: datetime = Field(default_factory=now_utc, index=True)


class Department(SQLModel, table=True):
    __tablename__ = "departments"
    __table_args__ = (
        UniqueConstraint("organization_id", "id", name="uq_departments_org_id_id"),
        ForeignKeyConstraint(
            ["organization_id", "parent_id"],
            ["departments.organization_id", "departments.id"],
        ),
        Index("ix_departments_org_parent", "organization_id", "parent_id"),
        Index("ix_departments_org_deleted", "organization_id", "deleted_at"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    parent_id: str | None = Field(default=None, index=True)
    name: str
    description: str | None = None
    sort_order: int = Field(default=0)
    deleted_at: datetime | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc, index=True)


class Person(SQLModel, table=True):
    __tablename__ = "people"
    __table_args__ = (
        ForeignKeyConstraint(
            ["organization_id", "department_id"],
            ["departments.organization_id", "departments.id"],
        ),
        Index("ix_people_org_department", "organization_id", "department_id"),
        Index("ix_people_org_deleted", "organization_id", "deleted_at"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    department_id: str = Field(index=True)
    name: str
    title: str | None = None
    email: str | None = None
    phone: str | None = None
    sort_order: int = Field(default=0)
    is_starred: bool = Field(default=False)
    deleted_at: datetime | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc, index=True)


class EventEnvelope(BaseModel):
    event_id: str = PydanticField(default_factory=lambda: str(uuid4()))
    event_type: str
    organization_id: str
    ts: datetime = PydanticField(default_factory=now_utc)
    actor_id: str | None = None
    payload: dict[str, Any]


class Actor(BaseModel):
    id: str
    name: str
    email: str | None = None


class ORMReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    name: str
    email: str
    password: str


class UserRead(ORMReadModel):
    id: str
    name: str
    email: str
    role: GlobalRole
    created_at: datetime


class DevLoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class OrganizationCreate(BaseModel):
    name: str


class OrganizationRead(ORMReadModel):
    id: str
    name: str
    created_by_id: str
    created_at: datetime
    updated_at: datetime


class MemberUpsert(BaseModel):
    user_id: str
    role: OrgRole = OrgRole.VIEWER


class MemberRead(ORMReadModel):
    organization_id: str
    user_id: str
    role: OrgRole
    joined_at: datetime


class DepartmentCreate(BaseModel):
    name: str
    description: str | None = None
    parent_id: str | None = None


class DepartmentUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    parent_id: str | None = None


class DepartmentRead(ORMReadModel):
    id: str
    organization_id: str
    parent_id: str | None = None
    name: str
    description: str | None = None
    sort_order: int
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PersonCreate(BaseModel):
    department_id: str
    name: str
    title: str | None = None
    email: str | None = None
    phone: str | None = None


class PersonRead(ORMReadModel):
    id: str
    organization_id: str
    department_id: str
    name: str
    title: str | None = None
    email: str | None = None
    phone: str | None = None
    sort_order: int
    is_starred: bool
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PersonStarUpdate(BaseModel):
    is_starred: bool


class DepartmentTreeNode(BaseModel):
    id: str
    parent_id: str | None = None
    name: str
    description: str | None = None
    sort_order: int
    people: list[PersonRead] = PydanticField(default_factory=list)
    children: list[DepartmentTreeNode] = PydanticField(default_factory=list)


class PersonBulkUpdate(BaseModel):
    """Patch applied to every person in a bulk edit.

    Only fields present in ``model_fields_set`` are written; everything else is
    left unchanged. Unknown keys are dropped by pydantic.
    """

    title: str | None = None
    department_id: str | None = None
    email: str | None = None
    phone: str | None = None


class DepartmentBulkUpdate(BaseModel):
    """Patch for a bulk department edit. ``parent_id: null`` moves to the root."""

    parent_id: str | None = None


class BulkFailure(BaseModel):
    id: str
    error: str


class PersonBulkItem(BaseModel):
    id: str
    name: str
    title: str | None = None
    email: str | None = None
    phone: str | None = None
    department_id: str
    organization_id: str
    department_name: str


class DepartmentBulkItem(BaseModel):
    id: str
    name: str
    description: str | None = None
    parent_id: str | None = None
    organization_id: str


class BulkDeletePeopleResult(BaseModel):
    success: bool
    deleted: list[PersonBulkItem]
    failed: list[BulkFailure]
    deleted_count: int
    failed_count: int


class BulkMovePeopleResult(BaseModel):
    success: bool
    moved: list[PersonBulkItem]
    failed: list[BulkFailure]
    moved_count: int
    failed_count: int


class BulkEditPeopleResult(BaseModel):
    success: bool
    updated: list[PersonBulkItem]
    failed: list[BulkFailure]
    updated_count: int
    failed_count: int


class BulkDeleteDepartmentsResult(BaseModel):
    success: bool
    deleted: list[DepartmentBulkItem]
    failed: list[BulkFailure]
    warnings: list[str]
    deleted_count: int
    failed_count: int


class BulkEditDepartmentsResult(BaseModel):
    success: bool
    updated: list[DepartmentBulkItem]
    failed: list[BulkFailure]
    updated_count: int
    failed_count: int


class BulkDeletePeopleRequest(BaseModel):
    person_ids: list[str]


class BulkMovePeopleRequest(BaseModel):
    person_ids: list[str]
    target_department_id: str | None = None


class BulkEditPeopleRequest(BaseModel):
    person_ids: list[str]
    updates: PersonBulkUpdate | None = None


class BulkDeleteDepartmentsRequest(BaseModel):
    department_ids: list[str]


class BulkEditDepartmentsRequest(BaseModel):
    department_ids: list[str]
    updates: DepartmentBulkUpdate | None = None
