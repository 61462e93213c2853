from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from orgtree.api.deps import CurrentActor
from orgtree.domain.models import (
    BulkDeleteDepartmentsRequest,
    BulkDeleteDepartmentsResult,
    BulkDeletePeopleRequest,
    BulkDeletePeopleResult,
    BulkEditDepartmentsRequest,
    BulkEditDepartmentsResult,
    BulkEditPeopleRequest,
    BulkEditPeopleResult,
    BulkMovePeopleRequest,
    BulkMovePeopleResult,
)
from orgtree.services.access_service import OrganizationNotFoundError, PermissionDeniedError
from orgtree.services.bulk_service import BadBatchError, BulkService, TargetNotFoundError

router = APIRouter()


def get_bulk_service() -> BulkService:
    return BulkService()


Service = Annotated[BulkService, Depends(get_bulk_service)]

BULK_ERRORS = (BadBatchError, TargetNotFoundError, PermissionDeniedError)


def _handle_bulk_error(exc: Exception) -> None:
    if isinstance(exc, BadBatchError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if isinstance(exc, (TargetNotFoundError, OrganizationNotFoundError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, PermissionDeniedError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    raise exc


@router.post("/{org_id}/people/bulk-delete", response_model=BulkDeletePeopleResult)
def bulk_delete_people(
    org_id: str,
    payload: BulkDeletePeopleRequest,
    actor: CurrentActor,
    service: Service,
) -> BulkDeletePeopleResult:
    try:
        return service.bulk_delete_people(org_id, payload.person_ids, actor)
    except BULK_ERRORS as exc:
        _handle_bulk_error(exc)
        raise


@router.post("/{org_id}/people/bulk-move", response_model=BulkMovePeopleResult)
def bulk_move_people(
    org_id: str,
    payload: BulkMovePeopleRequest,
    actor: CurrentActor,
    service: Service,
) -> BulkMovePeopleResult:
    try:
        return service.bulk_move_people(org_id, payload.person_ids, payload.target_department_id, actor)
    except BULK_ERRORS as exc:
        _handle_bulk_error(exc)
        raise


@router.put("/{org_id}/people/bulk-edit", response_model=BulkEditPeopleResult)
def bulk_edit_people(
    org_id: str,
    payload: BulkEditPeopleRequest,
    actor: CurrentActor,
    service: Service,
) -> BulkEditPeopleResult:
    try:
        return service.bulk_edit_people(org_id, payload.person_ids, payload.updates, actor)
    except BULK_ERRORS as exc:
        _handle_bulk_error(exc)
        raise


@router.post("/{org_id}/departments/bulk-delete", response_model=BulkDeleteDepartmentsResult)
def bulk_delete_departments(
    org_id: str,
    payload: BulkDeleteDepartmentsRequest,
    actor: CurrentActor,
    service: Service,
) -> BulkDeleteDepartmentsResult:
    try:
        return service.bulk_delete_departments(org_id, payload.department_ids, actor)
    except BULK_ERRORS as exc:
        _handle_bulk_error(exc)
        raise


@router.put("/{org_id}/departments/bulk-edit", response_model=BulkEditDepartmentsResult)
def bulk_edit_departments(
    org_id: str,
    payload: BulkEditDepartmentsRequest,
    actor: CurrentActor,
    service: Service,
) -> BulkEditDepartmentsResult:
    try:
        return service.bulk_edit_departments(org_id, payload.department_ids, payload.updates, actor)
    except BULK_ERRORS as exc:
        _handle_bulk_error(exc)
        raise
