from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from orgtree.domain.models import now_utc
from orgtree.services.entity_store import EntityStore

# Upper bound on parent hops; no real hierarchy comes close.
MAX_PARENT_WALK = 10_000


@dataclass(frozen=True)
class CascadeResult:
    department_ids: tuple[str, ...]
    departments_affected: int
    people_affected: int


def is_descendant(
    parent_links: Mapping[str, str | None],
    candidate_ancestor_id: str,
    start_id: str,
) -> bool:
    """Return True when ``candidate_ancestor_id`` is on the parent chain of ``start_id``.

    The chain includes ``start_id`` itself. The walk stops on a missing or null
    parent, on a revisited node (a corrupt cycle), or after ``MAX_PARENT_WALK``
    hops, and answers False in each of those cases.
    """
    visited: set[str] = set()
    current: str | None = start_id
    steps = 0
    while current is not None and steps <= MAX_PARENT_WALK:
        if current == candidate_ancestor_id:
            return True
        if current in visited:
            return False
        visited.add(current)
        current = parent_links.get(current)
        steps += 1
    return False


def would_create_cycle(
    store: EntityStore,
    organization_id: str,
    department_id: str,
    new_parent_id: str | None,
) -> bool:
    if new_parent_id is None:
        return False
    links = store.parent_links(organization_id)
    return is_descendant(links, department_id, new_parent_id)


def collect_subtree(store: EntityStore, organization_id: str, department_id: str) -> list[str]:
    """Breadth-first ids of ``department_id`` and all of its active descendants."""
    collected = [department_id]
    seen = {department_id}
    frontier = [department_id]
    while frontier:
        children = [
            child_id
            for child_id in store.active_child_ids(organization_id, frontier)
            if child_id not in seen
        ]
        if not children:
            break
        seen.update(children)
        collected.extend(children)
        frontier = children
    return collected


def cascade_soft_delete(
    store: EntityStore,
    organization_id: str,
    department_id: str,
    subtree: list[str] | None = None,
) -> CascadeResult:
    """Soft-delete a department, its descendants and their people.

    Runs inside the store's current transaction. Callers must not pass a
    department that is already soft-deleted.
    """
    department_ids = subtree if subtree is not None else collect_subtree(store, organization_id, department_id)
    stamp = now_utc()
    departments_affected = store.soft_delete_departments(organization_id, department_ids, stamp)
    people_affected = store.soft_delete_people_in(organization_id, department_ids, stamp)
    return CascadeResult(
        department_ids=tuple(department_ids),
        departments_affected=departments_affected,
        people_affected=people_affected,
    )
