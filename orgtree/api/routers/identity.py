from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from orgtree.api.deps import CurrentActor
from orgtree.domain.models import DevLoginRequest, TokenResponse, UserCreate, UserRead
from orgtree.infra.auth import create_access_token
from orgtree.services.access_service import AccessService, AuthError, ConflictError, UserNotFoundError

router = APIRouter()


def get_access_service() -> AccessService:
    return AccessService()


Service = Annotated[AccessService, Depends(get_access_service)]


def _handle_identity_error(exc: Exception) -> None:
    if isinstance(exc, UserNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, AuthError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    raise exc


@router.post("/users", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, service: Service) -> UserRead:
    try:
        user = service.create_user(payload)
        return UserRead.model_validate(user)
    except (ConflictError, AuthError) as exc:
        _handle_identity_error(exc)
        raise


@router.post("/dev-login", response_model=TokenResponse)
def dev_login(payload: DevLoginRequest, service: Service) -> TokenResponse:
    try:
        user = service.dev_login(payload.email, payload.password)
    except AuthError as exc:
        _handle_identity_error(exc)
        raise
    token = create_access_token(user_id=user.id, name=user.name, email=user.email)
    return TokenResponse(access_token=token)


@router.get("/me", response_model=UserRead)
def read_me(actor: CurrentActor, service: Service) -> UserRead:
    try:
        return UserRead.model_validate(service.get_user(actor.id))
    except UserNotFoundError as exc:
        _handle_identity_error(exc)
        raise
