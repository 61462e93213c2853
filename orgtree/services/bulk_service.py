from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from sqlmodel import Session

from orgtree.domain.models import (
    Actor,
    BulkDeleteDepartmentsResult,
    BulkDeletePeopleResult,
    BulkEditDepartmentsResult,
    BulkEditPeopleResult,
    BulkFailure,
    BulkMovePeopleResult,
    Department,
    DepartmentBulkItem,
    DepartmentBulkUpdate,
    Person,
    PersonBulkItem,
    PersonBulkUpdate,
)
from orgtree.domain.permissions import BULK_MINIMUM_ROLE
from orgtree.infra.db import get_engine
from orgtree.services.access_service import AccessService, PermissionGate
from orgtree.services.department_tree import cascade_soft_delete, collect_subtree, would_create_cycle
from orgtree.services.entity_store import EntityStore
from orgtree.services.notifier import ChangeNotifier, Notifier

logger = logging.getLogger(__name__)

MAX_BULK_ITEMS = 100

PERSON_NOT_FOUND = "Person not found in this organization"
DEPARTMENT_NOT_FOUND = "Department not found in this organization"

T = TypeVar("T")


class BulkOperationError(Exception):
    pass


class BadBatchError(BulkOperationError):
    pass


class TargetNotFoundError(BulkOperationError):
    pass


class ItemFailure(Exception):
    """A per-item conflict. Caught by the item loop and reported in ``failed``."""


def _require_ids(ids: Any, field_name: str) -> list[str]:
    if not isinstance(ids, list) or not ids:
        raise BadBatchError(f"{field_name} must be a non-empty array")
    return ids


def _check_batch_size(ids: list[str], verb: str) -> list[str]:
    if len(ids) > MAX_BULK_ITEMS:
        raise BadBatchError(f"Cannot {verb} more than {MAX_BULK_ITEMS} items at once")
    return ids


def _validate_batch(ids: Any, field_name: str, verb: str) -> list[str]:
    return _check_batch_size(_require_ids(ids, field_name), verb)


def _person_item(person: Person, department: Department) -> PersonBulkItem:
    return PersonBulkItem(
        id=person.id,
        name=person.name,
        title=person.title,
        email=person.email,
        phone=person.phone,
        department_id=person.department_id,
        organization_id=person.organization_id,
        department_name=department.name,
    )


def _department_item(department: Department) -> DepartmentBulkItem:
    return DepartmentBulkItem(
        id=department.id,
        name=department.name,
        description=department.description,
        parent_id=department.parent_id,
        organization_id=department.organization_id,
    )


class BulkService:
    """Applies one operation to up to ``MAX_BULK_ITEMS`` entities in one transaction.

    Structural problems (permission, batch shape, missing batch target) raise
    before anything is written. Each item then runs inside its own SAVEPOINT:
    a conflict or an unexpected exception rolls back only that item and lands
    in ``failed``, while every successful item commits with the transaction.
    """

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

    def _run_items(
        self,
        session: Session,
        ids: list[str],
        apply: Callable[[str], T | None],
        operation: str,
    ) -> tuple[list[T], list[BulkFailure]]:
        applied: list[T] = []
        failed: list[BulkFailure] = []
        for item_id in ids:
            try:
                with session.begin_nested():
                    outcome = apply(item_id)
            except ItemFailure as exc:
                failed.append(BulkFailure(id=item_id, error=str(exc)))
                continue
            except Exception as exc:
                logger.warning("%s: item %s failed: %s", operation, item_id, exc)
                failed.append(BulkFailure(id=item_id, error=str(exc) or exc.__class__.__name__))
                continue
            if outcome is not None:
                applied.append(outcome)
        return applied, failed

    def _log_summary(self, operation: str, organization_id: str, applied: int, failed: int) -> None:
        logger.info(
            "%s organization=%s applied=%d failed=%d",
            operation,
            organization_id,
            applied,
            failed,
        )

    def bulk_delete_people(
        self,
        organization_id: str,
        person_ids: list[str],
        actor: Actor,
    ) -> BulkDeletePeopleResult:
        self._gate.require_org_permission(organization_id, actor.id, BULK_MINIMUM_ROLE)
        ids = _validate_batch(person_ids, "person_ids", "delete")

        with self._session() as session:
            store = EntityStore(session)

            def _delete(person_id: str) -> PersonBulkItem:
                found = store.get_active_person(organization_id, person_id)
                if found is None:
                    raise ItemFailure(PERSON_NOT_FOUND)
                person, department = found
                item = _person_item(person, department)
                store.soft_delete_person(person)
                self._notifier.notify_deleted(session, organization_id, "person", item, actor)
                return item

            deleted, failed = self._run_items(session, ids, _delete, "bulk_delete_people")
            session.commit()

        self._log_summary("bulk_delete_people", organization_id, len(deleted), len(failed))
        return BulkDeletePeopleResult(
            success=len(deleted) > 0,
            deleted=deleted,
            failed=failed,
            deleted_count=len(deleted),
            failed_count=len(failed),
        )

    def bulk_move_people(
        self,
        organization_id: str,
        person_ids: list[str],
        target_department_id: str | None,
        actor: Actor,
    ) -> BulkMovePeopleResult:
        self._gate.require_org_permission(organization_id, actor.id, BULK_MINIMUM_ROLE)
        ids = _validate_batch(person_ids, "person_ids", "move")
        if not target_department_id:
            raise BadBatchError("target_department_id is required")

        with self._session() as session:
            store = EntityStore(session)
            target = store.get_active_department(organization_id, target_department_id)
            if target is None:
                raise TargetNotFoundError("Target department not found in this organization")

            def _move(person_id: str) -> PersonBulkItem:
                found = store.get_active_person(organization_id, person_id)
                if found is None:
                    raise ItemFailure(PERSON_NOT_FOUND)
                person, _department = found
                if person.department_id == target.id:
                    raise ItemFailure("Already in target department")
                person.department_id = target.id
                store.save(person)
                item = _person_item(person, target)
                self._notifier.notify_updated(session, organization_id, "person", item, actor)
                return item

            moved, failed = self._run_items(session, ids, _move, "bulk_move_people")
            session.commit()

        self._log_summary("bulk_move_people", organization_id, len(moved), len(failed))
        return BulkMovePeopleResult(
            success=len(moved) > 0,
            moved=moved,
            failed=failed,
            moved_count=len(moved),
            failed_count=len(failed),
        )

    def bulk_edit_people(
        self,
        organization_id: str,
        person_ids: list[str],
        updates: PersonBulkUpdate | None,
        actor: Actor,
    ) -> BulkEditPeopleResult:
        self._gate.require_org_permission(organization_id, actor.id, BULK_MINIMUM_ROLE)
        ids = _require_ids(person_ids, "person_ids")
        if updates is None or not updates.model_fields_set:
            raise BadBatchError("updates object is required and cannot be empty")
        _check_batch_size(ids, "edit")
        fields = updates.model_fields_set
        if "department_id" in fields and not updates.department_id:
            raise BadBatchError("department_id cannot be empty")

        with self._session() as session:
            store = EntityStore(session)
            target: Department | None = None
            if "department_id" in fields and updates.department_id:
                target = store.get_active_department(organization_id, updates.department_id)
                if target is None:
                    raise TargetNotFoundError("Target department not found in this organization")

            def _edit(person_id: str) -> PersonBulkItem:
                found = store.get_active_person(organization_id, person_id)
                if found is None:
                    raise ItemFailure(PERSON_NOT_FOUND)
                person, department = found
                if "title" in fields:
                    person.title = updates.title
                if "email" in fields:
                    person.email = updates.email
                if "phone" in fields:
                    person.phone = updates.phone
                if target is not None:
                    person.department_id = target.id
                    department = target
                store.save(person)
                item = _person_item(person, department)
                self._notifier.notify_updated(session, organization_id, "person", item, actor)
                return item

            updated, failed = self._run_items(session, ids, _edit, "bulk_edit_people")
            session.commit()

        self._log_summary("bulk_edit_people", organization_id, len(updated), len(failed))
        return BulkEditPeopleResult(
            success=len(updated) > 0,
            updated=updated,
            failed=failed,
            updated_count=len(updated),
            failed_count=len(failed),
        )

    def bulk_delete_departments(
        self,
        organization_id: str,
        department_ids: list[str],
        actor: Actor,
    ) -> BulkDeleteDepartmentsResult:
        self._gate.require_org_permission(organization_id, actor.id, BULK_MINIMUM_ROLE)
        ids = _validate_batch(department_ids, "department_ids", "delete")
        warnings: list[str] = []

        with self._session() as session:
            store = EntityStore(session)

            def _delete(department_id: str) -> DepartmentBulkItem | None:
                department = store.find_department_any_state(organization_id, department_id)
                if department is None:
                    raise ItemFailure(DEPARTMENT_NOT_FOUND)
                if department.deleted_at is not None:
                    # Already gone, usually through an ancestor earlier in this batch.
                    return None

                item = _department_item(department)
                subtree = collect_subtree(store, organization_id, department_id)
                descendant_count = len(subtree) - 1
                people_count = store.count_active_people(organization_id, subtree)

                cascade_soft_delete(store, organization_id, department_id, subtree=subtree)
                self._notifier.notify_deleted(session, organization_id, "department", item, actor)

                if descendant_count > 0:
                    warnings.append(
                        f"Department '{department.name}' had {descendant_count} sub-department(s) "
                        "that were also deleted"
                    )
                if people_count > 0:
                    warnings.append(
                        f"Department '{department.name}' had {people_count} person(s) that were also deleted"
                    )
                return item

            deleted, failed = self._run_items(session, ids, _delete, "bulk_delete_departments")
            session.commit()

        self._log_summary("bulk_delete_departments", organization_id, len(deleted), len(failed))
        return BulkDeleteDepartmentsResult(
            success=len(deleted) > 0,
            deleted=deleted,
            failed=failed,
            warnings=warnings,
            deleted_count=len(deleted),
            failed_count=len(failed),
        )

    def bulk_edit_departments(
        self,
        organization_id: str,
        department_ids: list[str],
        updates: DepartmentBulkUpdate | None,
        actor: Actor,
    ) -> BulkEditDepartmentsResult:
        self._gate.require_org_permission(organization_id, actor.id, BULK_MINIMUM_ROLE)
        ids = _require_ids(department_ids, "department_ids")
        if updates is None or not updates.model_fields_set:
            raise BadBatchError("updates object is required and cannot be empty")
        _check_batch_size(ids, "edit")
        new_parent_id = updates.parent_id or None
        if new_parent_id is not None and new_parent_id in ids:
            raise BadBatchError("Cannot set a department as its own parent")

        with self._session() as session:
            store = EntityStore(session)
            if new_parent_id is not None and store.get_active_department(organization_id, new_parent_id) is None:
                raise TargetNotFoundError("Parent department not found in this organization")

            def _edit(department_id: str) -> DepartmentBulkItem:
                department = store.get_active_department(organization_id, department_id)
                if department is None:
                    raise ItemFailure(DEPARTMENT_NOT_FOUND)
                if would_create_cycle(store, organization_id, department.id, new_parent_id):
                    raise ItemFailure("Cannot set parent to a descendant department")
                department.parent_id = new_parent_id
                store.save(department)
                item = _department_item(department)
                self._notifier.notify_updated(session, organization_id, "department", item, actor)
                return item

            updated, failed = self._run_items(session, ids, _edit, "bulk_edit_departments")
            session.commit()

        self._log_summary("bulk_edit_departments", organization_id, len(updated), len(failed))
        return BulkEditDepartmentsResult(
            success=len(updated) > 0,
            updated=updated,
            failed=failed,
            updated_count=len(updated),
            failed_count=len(failed),
        )
