from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Session, col, select
from sqlmodel.sql.expression import SelectOfScalar

from orgtree.domain.models import Department, Person, now_utc


def active_departments(organization_id: str) -> SelectOfScalar[Department]:
    return (
        select(Department)
        .where(Department.organization_id == organization_id)
        .where(col(Department.deleted_at).is_(None))
    )


def active_people(organization_id: str) -> SelectOfScalar[Person]:
    return (
        select(Person)
        .where(Person.organization_id == organization_id)
        .where(col(Person.deleted_at).is_(None))
    )


class EntityStore:
    """Tenant-scoped reads and writes for departments and people.

    Every read except ``find_department_any_state`` and ``parent_links`` goes
    through ``active_departments`` / ``active_people``, so soft-deleted rows stay
    invisible. Writes stay inside the session's transaction; the caller commits.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_active_department(self, organization_id: str, department_id: str) -> Department | None:
        return self.session.exec(
            active_departments(organization_id).where(Department.id == department_id)
        ).first()

    def find_department_any_state(self, organization_id: str, department_id: str) -> Department | None:
        return self.session.exec(
            select(Department)
            .where(Department.organization_id == organization_id)
            .where(Department.id == department_id)
        ).first()

    def list_active_departments(self, organization_id: str) -> list[Department]:
        rows = self.session.exec(
            active_departments(organization_id).order_by(
                col(Department.sort_order), col(Department.created_at)
            )
        ).all()
        return list(rows)

    def get_active_person(self, organization_id: str, person_id: str) -> tuple[Person, Department] | None:
        row = self.session.exec(
            select(Person, Department)
            .join(
                Department,
                sa.and_(
                    Department.id == Person.department_id,
                    Department.organization_id == Person.organization_id,
                ),
            )
            .where(Person.organization_id == organization_id)
            .where(Person.id == person_id)
            .where(col(Person.deleted_at).is_(None))
            .where(col(Department.deleted_at).is_(None))
        ).first()
        if row is None:
            return None
        person, department = row
        return person, department

    def list_active_people(self, organization_id: str, department_ids: Iterable[str]) -> list[Person]:
        ids = list(department_ids)
        if not ids:
            return []
        rows = self.session.exec(
            active_people(organization_id)
            .where(col(Person.department_id).in_(ids))
            .order_by(col(Person.sort_order), col(Person.created_at))
        ).all()
        return list(rows)

    def parent_links(self, organization_id: str) -> dict[str, str | None]:
        # Soft-deleted rows stay in the map: the chain is structural metadata.
        rows = self.session.exec(
            select(Department.id, Department.parent_id).where(Department.organization_id == organization_id)
        ).all()
        return {department_id: parent_id for department_id, parent_id in rows}

    def active_child_ids(self, organization_id: str, parent_ids: Iterable[str]) -> list[str]:
        ids = list(parent_ids)
        if not ids:
            return []
        rows = self.session.exec(
            select(Department.id)
            .where(Department.organization_id == organization_id)
            .where(col(Department.parent_id).in_(ids))
            .where(col(Department.deleted_at).is_(None))
        ).all()
        return list(rows)

    def count_active_people(self, organization_id: str, department_ids: Iterable[str]) -> int:
        ids = list(department_ids)
        if not ids:
            return 0
        total = self.session.exec(
            select(sa.func.count())
            .select_from(Person)
            .where(Person.organization_id == organization_id)
            .where(col(Person.department_id).in_(ids))
            .where(col(Person.deleted_at).is_(None))
        ).one()
        return int(total)

    def next_department_sort_order(self, organization_id: str, parent_id: str | None) -> int:
        statement = (
            select(sa.func.max(Department.sort_order))
            .where(Department.organization_id == organization_id)
            .where(col(Department.deleted_at).is_(None))
        )
        if parent_id is None:
            statement = statement.where(col(Department.parent_id).is_(None))
        else:
            statement = statement.where(Department.parent_id == parent_id)
        current = self.session.exec(statement).one()
        return int(current or 0) + 1

    def next_person_sort_order(self, organization_id: str, department_id: str) -> int:
        current = self.session.exec(
            select(sa.func.max(Person.sort_order))
            .where(Person.organization_id == organization_id)
            .where(Person.department_id == department_id)
            .where(col(Person.deleted_at).is_(None))
        ).one()
        return int(current or 0) + 1

    def soft_delete_departments(
        self,
        organization_id: str,
        department_ids: Iterable[str],
        deleted_at: datetime | None = None,
    ) -> int:
        ids = list(department_ids)
        if not ids:
            return 0
        stamp = deleted_at or now_utc()
        result = self.session.execute(
            sa.update(Department)
            .where(col(Department.organization_id) == organization_id)
            .where(col(Department.id).in_(ids))
            .where(col(Department.deleted_at).is_(None))
            .values(deleted_at=stamp, updated_at=stamp)
        )
        return int(getattr(result, "rowcount", 0) or 0)

    def soft_delete_people_in(
        self,
        organization_id: str,
        department_ids: Iterable[str],
        deleted_at: datetime | None = None,
    ) -> int:
        ids = list(department_ids)
        if not ids:
            return 0
        stamp = deleted_at or now_utc()
        result = self.session.execute(
            sa.update(Person)
            .where(col(Person.organization_id) == organization_id)
            .where(col(Person.department_id).in_(ids))
            .where(col(Person.deleted_at).is_(None))
            .values(deleted_at=stamp, updated_at=stamp)
        )
        return int(getattr(result, "rowcount", 0) or 0)

    def soft_delete_person(self, person: Person) -> Person:
        stamp = now_utc()
        person.deleted_at = stamp
        person.updated_at = stamp
        self.session.add(person)
        self.session.flush()
        return person

    def save(self, entity: Department | Person) -> None:
        entity.updated_at = now_utc()
        self.session.add(entity)
        self.session.flush()
