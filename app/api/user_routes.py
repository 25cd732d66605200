"""
===============================================================================
TARJETA CRC — app/api/user_routes.py (Administración de usuarios)
===============================================================================

Responsabilidades:
  - CRUD administrativo de usuarios (alta, edición, baja lógica).
  - Reset de password (genera uno temporal si no se envía).
  - Listado y revocación de sesiones activas de un usuario.

Seguridad:
  - El gate exige users.view para /users/*; cada endpoint agrega su permiso
    específico vía require_permission().
  - Los errores de dominio se traducen a RFC7807 en exception_handlers.py.

Colaboradores:
  - application.auth_service.AuthenticationService
  - api.dependencies.require_permission
  - api.schemas
===============================================================================
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response

from ..application.auth_service import AuthenticatedUser, AuthenticationService
from ..container import get_auth_service
from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES
from ..identity.permissions import Permission
from .dependencies import require_permission
from .schemas import (
    CreateUserRequest,
    ResetPasswordRequest,
    ResetPasswordResponse,
    SessionResponse,
    UpdateUserRequest,
    UserResponse,
)

router = APIRouter(prefix="/users", tags=["users"], responses=OPENAPI_ERROR_RESPONSES)


@router.get("", response_model=list[UserResponse])
def list_users(
    _actor: AuthenticatedUser = Depends(require_permission(Permission.USERS_VIEW)),
    service: AuthenticationService = Depends(get_auth_service),
):
    return [UserResponse.from_user(user) for user in service.list_users()]


@router.post("", response_model=UserResponse, status_code=201)
def create_user(
    req: CreateUserRequest,
    actor: AuthenticatedUser = Depends(require_permission(Permission.USERS_CREATE)),
    service: AuthenticationService = Depends(get_auth_service),
):
    user = service.create_user(
        username=req.username,
        email=req.email,
        password=req.password,
        role=req.role,
        full_name=req.full_name,
        actor=actor,
        must_change_password=req.must_change_password,
    )
    return UserResponse.from_user(user)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: UUID,
    _actor: AuthenticatedUser = Depends(require_permission(Permission.USERS_VIEW)),
    service: AuthenticationService = Depends(get_auth_service),
):
    return UserResponse.from_user(service.get_user(user_id))


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: UUID,
    req: UpdateUserRequest,
    actor: AuthenticatedUser = Depends(require_permission(Permission.USERS_EDIT)),
    service: AuthenticationService = Depends(get_auth_service),
):
    changes = req.model_dump(exclude_unset=True)
    return UserResponse.from_user(service.update_user(user_id, changes, actor=actor))


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: UUID,
    actor: AuthenticatedUser = Depends(require_permission(Permission.USERS_DELETE)),
    service: AuthenticationService = Depends(get_auth_service),
):
    service.delete_user(user_id, actor=actor)
    return Response(status_code=204)


@router.post("/{user_id}/reset-password", response_model=ResetPasswordResponse)
def reset_password(
    user_id: UUID,
    req: ResetPasswordRequest | None = None,
    actor: AuthenticatedUser = Depends(
        require_permission(Permission.USERS_RESET_PASSWORDS)
    ),
    service: AuthenticationService = Depends(get_auth_service),
):
    """El password temporal se devuelve una única vez."""
    password = service.reset_user_password(
        user_id, new_password=req.password if req else None, actor=actor
    )
    return ResetPasswordResponse(temporary_password=password)


@router.get("/{user_id}/sessions", response_model=list[SessionResponse])
def list_user_sessions(
    user_id: UUID,
    _actor: AuthenticatedUser = Depends(require_permission(Permission.USERS_VIEW)),
    service: AuthenticationService = Depends(get_auth_service),
):
    return [
        SessionResponse.from_session(session)
        for session in service.list_user_sessions(user_id)
    ]


@router.delete("/{user_id}/sessions/{session_id}", status_code=204)
def revoke_user_session(
    user_id: UUID,
    session_id: UUID,
    actor: AuthenticatedUser = Depends(require_permission(Permission.USERS_EDIT)),
    service: AuthenticationService = Depends(get_auth_service),
):
    service.revoke_user_session(user_id, session_id, actor=actor)
    return Response(status_code=204)
