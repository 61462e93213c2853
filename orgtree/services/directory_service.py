from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable

from sqlmodel import Session

from orgtree.domain.models import (
    Actor,
    Department,
    DepartmentCreate,
    DepartmentRead,
    DepartmentTreeNode,
    DepartmentUpdate,
    Person,
    PersonCreate,
    PersonRead,
)
from orgtree.domain.permissions import OrgRole
from orgtree.infra.db import get_engine
from orgtree.services.access_service import AccessService, PermissionGate
from orgtree.services.department_tree import CascadeResult, cascade_soft_delete, would_create_cycle
from orgtree.services.entity_store import EntityStore
from orgtree.services.notifier import ChangeNotifier, Notifier


class DirectoryError(Exception):
    pass


class NotFoundError(DirectoryError):
    pass


class ValidationError(DirectoryError):
    pass


class DirectoryService:
    def __init__(
        self,
        gate: PermissionGate | None = None,
        notifier: Notifier | None = None,
        session_factory: Callable[[], Session] | None = None,
    ) -> None:
        self._gate = gate or AccessService(session_factory=session_factory)
        self._notifier = notifier or ChangeNotifier()
        self._session_factory = session_factory

    def _session(self) -> Session:
        if self._session_factory is not None:
            return self._session_factory()
        return Session(get_engine(), expire_on_commit=False)

    def _require_department(self, store: EntityStore, organization_id: str, department_id: str) -> Department:
        department = store.get_active_department(organization_id, department_id)
        if department is None:
            raise NotFoundError("Department not found")
        return department

    def _resolve_parent(self, store: EntityStore, organization_id: str, parent_id: str | None) -> str | None:
        if not parent_id:
            return None
        if store.get_active_department(organization_id, parent_id) is None:
            raise ValidationError("Parent department not found")
        return parent_id

    def create_department(self, organization_id: str, payload: DepartmentCreate, actor: Actor) -> Department:
        self._gate.require_org_permission(organization_id, actor.id, OrgRole.EDITOR)
        with self._session() as session:
            store = EntityStore(session)
            parent_id = self._resolve_parent(store, organization_id, payload.parent_id)
            department = Department(
                organization_id=organization_id,
                parent_id=parent_id,
                name=payload.name,
                description=payload.description,
                sort_order=store.next_department_sort_order(organization_id, parent_id),
            )
            store.save(department)
            self._notifier.notify_created(
                session, organization_id, "department", DepartmentRead.model_validate(department), actor
            )
            session.commit()
            session.refresh(department)
            return department

    def get_department(self, organization_id: str, department_id: str, actor: Actor) -> Department:
        self._gate.require_org_permission(organization_id, actor.id, OrgRole.VIEWER)
        with self._session() as session:
            return self._require_department(EntityStore(session), organization_id, department_id)

    def list_departments(self, organization_id: str, actor: Actor) -> list[Department]:
        self._gate.require_org_permission(organization_id, actor.id, OrgRole.VIEWER)
        with self._session() as session:
            return EntityStore(session).list_active_departments(organization_id)

    def get_department_tree(self, organization_id: str, actor: Actor) -> list[DepartmentTreeNode]:
        self._gate.require_org_permission(organization_id, actor.id, OrgRole.VIEWER)
        with self._session() as session:
            store = EntityStore(session)
            departments = store.list_active_departments(organization_id)
            people = store.list_active_people(organization_id, [item.id for item in departments])

        people_by_department: dict[str, list[PersonRead]] = defaultdict(list)
        for person in people:
            people_by_department[person.department_id].append(PersonRead.model_validate(person))

        nodes = {
            item.id: DepartmentTreeNode(
                id=item.id,
                parent_id=item.parent_id,
                name=item.name,
                description=item.description,
                sort_order=item.sort_order,
                people=people_by_department.get(item.id, []),
            )
            for item in departments
        }
        roots: list[DepartmentTreeNode] = []
        for item in departments:
            node = nodes[item.id]
            parent = nodes.get(item.parent_id) if item.parent_id else None
            if parent is None:
                roots.append(node)
            else:
                parent.children.append(node)
        return roots

    def update_department(
        self,
        organization_id: str,
        department_id: str,
        payload: DepartmentUpdate,
        actor: Actor,
    ) -> Department:
        self._gate.require_org_permission(organization_id, actor.id, OrgRole.EDITOR)
        fields = payload.model_fields_set
        if "parent_id" in fields and payload.parent_id == department_id:
            raise ValidationError("Department cannot be its own parent")

        with self._session() as session:
            store = EntityStore(session)
            department = self._require_department(store, organization_id, department_id)

            if "name" in fields and payload.name is not None:
                department.name = payload.name
            if "description" in fields:
                department.description = payload.description
            if "parent_id" in fields:
                parent_id = self._resolve_parent(store, organization_id, payload.parent_id)
                if would_create_cycle(store, organization_id, department.id, parent_id):
                    raise ValidationError("Cannot move a department under one of its own descendants")
                department.parent_id = parent_id

            store.save(department)
            self._notifier.notify_updated(
                session, organization_id, "department", DepartmentRead.model_validate(department), actor
            )
            session.commit()
            session.refresh(department)
            return department

    def delete_department(self, organization_id: str, department_id: str, actor: Actor) -> CascadeResult:
        self._gate.require_org_permission(organization_id, actor.id, OrgRole.EDITOR)
        with self._session() as session:
            store = EntityStore(session)
            department = self._require_department(store, organization_id, department_id)
            snapshot = DepartmentRead.model_validate(department)
            result = cascade_soft_delete(store, organization_id, department_id)
            self._notifier.notify_deleted(session, organization_id, "department", snapshot, actor)
            session.commit()
            return result

    def create_person(self, organization_id: str, payload: PersonCreate, actor: Actor) -> Person:
        self._gate.require_org_permission(organization_id, actor.id, OrgRole.EDITOR)
        with self._session() as session:
            store = EntityStore(session)
            department = store.get_active_department(organization_id, payload.department_id)
            if department is None:
                raise ValidationError("Department not found")
            person = Person(
                organization_id=organization_id,
                department_id=department.id,
                name=payload.name,
                title=payload.title,
                email=payload.email,
                phone=payload.phone,
                sort_order=store.next_person_sort_order(organization_id, department.id),
            )
            store.save(person)
            self._notifier.notify_created(session, organization_id, "person", PersonRead.model_validate(person), actor)
            session.commit()
            session.refresh(person)
            return person

    def list_people(self, organization_id: str, department_id: str, actor: Actor) -> list[Person]:
        self._gate.require_org_permission(organization_id, actor.id, OrgRole.VIEWER)
        with self._session() as session:
            store = EntityStore(session)
            self._require_department(store, organization_id, department_id)
            return store.list_active_people(organization_id, [department_id])

    def set_person_starred(self, organization_id: str, person_id: str, starred: bool, actor: Actor) -> Person:
        self._gate.require_org_permission(organization_id, actor.id, OrgRole.EDITOR)
        with self._session() as session:
            store = EntityStore(session)
            found = store.get_active_person(organization_id, person_id)
            if found is None:
                raise NotFoundError("Person not found")
            person, _department = found
            person.is_starred = starred
            store.save(person)
            self._notifier.notify_updated(session, organization_id, "person", PersonRead.model_validate(person), actor)
            session.commit()
            session.refresh(person)
            return person
