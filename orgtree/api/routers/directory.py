from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from orgtree.api.deps import CurrentActor
from orgtree.domain.models import (
    DepartmentCreate,
    DepartmentRead,
    DepartmentTreeNode,
    DepartmentUpdate,
    MemberRead,
    MemberUpsert,
    OrganizationCreate,
    OrganizationRead,
    PersonCreate,
    PersonRead,
    PersonStarUpdate,
)
from orgtree.services.access_service import (
    AccessService,
    ConflictError,
    OrganizationNotFoundError,
    PermissionDeniedError,
    UserNotFoundError,
)
from orgtree.services.directory_service import DirectoryService, NotFoundError, ValidationError

router = APIRouter()


def get_directory_service() -> DirectoryService:
    return DirectoryService()


def get_access_service() -> AccessService:
    return AccessService()


Directory = Annotated[DirectoryService, Depends(get_directory_service)]
Access = Annotated[AccessService, Depends(get_access_service)]

DIRECTORY_ERRORS = (NotFoundError, ValidationError, PermissionDeniedError, UserNotFoundError, ConflictError)


def _handle_directory_error(exc: Exception) -> None:
    if isinstance(exc, (NotFoundError, OrganizationNotFoundError, UserNotFoundError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if isinstance(exc, PermissionDeniedError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    raise exc


@router.post("", response_model=OrganizationRead, status_code=status.HTTP_201_CREATED)
def create_organization(payload: OrganizationCreate, actor: CurrentActor, access: Access) -> OrganizationRead:
    try:
        organization = access.create_organization(payload, actor.id)
        return OrganizationRead.model_validate(organization)
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise


@router.put("/{org_id}/members", response_model=MemberRead)
def upsert_member(org_id: str, payload: MemberUpsert, actor: CurrentActor, access: Access) -> MemberRead:
    try:
        member = access.upsert_member(org_id, payload, actor)
        return MemberRead.model_validate(member)
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise


@router.get("/{org_id}/members", response_model=list[MemberRead])
def list_members(org_id: str, actor: CurrentActor, access: Access) -> list[MemberRead]:
    try:
        members = access.list_members(org_id, actor)
        return [MemberRead.model_validate(item) for item in members]
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise


@router.post("/{org_id}/departments", response_model=DepartmentRead, status_code=status.HTTP_201_CREATED)
def create_department(
    org_id: str,
    payload: DepartmentCreate,
    actor: CurrentActor,
    service: Directory,
) -> DepartmentRead:
    try:
        department = service.create_department(org_id, payload, actor)
        return DepartmentRead.model_validate(department)
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise


@router.get("/{org_id}/departments", response_model=list[DepartmentRead])
def list_departments(org_id: str, actor: CurrentActor, service: Directory) -> list[DepartmentRead]:
    try:
        departments = service.list_departments(org_id, actor)
        return [DepartmentRead.model_validate(item) for item in departments]
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise


@router.get("/{org_id}/departments/tree", response_model=list[DepartmentTreeNode])
def get_department_tree(org_id: str, actor: CurrentActor, service: Directory) -> list[DepartmentTreeNode]:
    try:
        return service.get_department_tree(org_id, actor)
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise


@router.get("/{org_id}/departments/{department_id}", response_model=DepartmentRead)
def get_department(org_id: str, department_id: str, actor: CurrentActor, service: Directory) -> DepartmentRead:
    try:
        department = service.get_department(org_id, department_id, actor)
        return DepartmentRead.model_validate(department)
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise


@router.patch("/{org_id}/departments/{department_id}", response_model=DepartmentRead)
def update_department(
    org_id: str,
    department_id: str,
    payload: DepartmentUpdate,
    actor: CurrentActor,
    service: Directory,
) -> DepartmentRead:
    try:
        department = service.update_department(org_id, department_id, payload, actor)
        return DepartmentRead.model_validate(department)
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise


@router.delete("/{org_id}/departments/{department_id}")
def delete_department(org_id: str, department_id: str, actor: CurrentActor, service: Directory) -> dict[str, int]:
    try:
        result = service.delete_department(org_id, department_id, actor)
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise
    return {
        "departments_affected": result.departments_affected,
        "people_affected": result.people_affected,
    }


@router.get("/{org_id}/departments/{department_id}/people", response_model=list[PersonRead])
def list_people(org_id: str, department_id: str, actor: CurrentActor, service: Directory) -> list[PersonRead]:
    try:
        people = service.list_people(org_id, department_id, actor)
        return [PersonRead.model_validate(item) for item in people]
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise


@router.post("/{org_id}/people", response_model=PersonRead, status_code=status.HTTP_201_CREATED)
def create_person(org_id: str, payload: PersonCreate, actor: CurrentActor, service: Directory) -> PersonRead:
    try:
        person = service.create_person(org_id, payload, actor)
        return PersonRead.model_validate(person)
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise


@router.put("/{org_id}/people/{person_id}/star", response_model=PersonRead)
def star_person(
    org_id: str,
    person_id: str,
    payload: PersonStarUpdate,
    actor: CurrentActor,
    service: Directory,
) -> PersonRead:
    try:
        person = service.set_person_starred(org_id, person_id, payload.is_starred, actor)
        return PersonRead.model_validate(person)
    except DIRECTORY_ERRORS as exc:
        _handle_directory_error(exc)
        raise
