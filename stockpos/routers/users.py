from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockpos.core.api_docs import error_responses
from stockpos.core.deps import get_db
from stockpos.core.permissions import PERMISSION_MATRIX, ROLE_DESCRIPTIONS, ROLES, require_permission, require_roles
from stockpos.models.user import User
from stockpos.routers.auth import user_out
from stockpos.schemas.auth import PasswordResetIn, Role, RoleOut, UserActiveIn, UserCreate, UserOut, UserUpdate
from stockpos.schemas.common import Envelope
from stockpos.services import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get(
    "/roles",
    response_model=Envelope[list[RoleOut]],
    summary="Roles and their permissions",
    responses=error_responses(401, 403, 500),
)
def list_roles(_: User = Depends(require_permission("users.read"))):
    return Envelope(
        data=[
            RoleOut(
                role=role,
                description=ROLE_DESCRIPTIONS[role],
                permissions=sorted(PERMISSION_MATRIX[role]),
            )
            for role in ROLES
        ]
    )


@router.get(
    "",
    response_model=Envelope[list[UserOut]],
    summary="List users",
    responses=error_responses(401, 403, 500),
)
def list_users(
    active: bool | None = Query(default=None),
    role: Role | None = Query(default=None),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("users.read")),
):
    return Envelope(data=[user_out(user) for user in user_service.list_users(db, active=active, role=role)])


@router.get(
    "/{user_id}",
    response_model=Envelope[UserOut],
    summary="Get user",
    responses=error_responses(401, 403, 404, 500),
)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("users.read")),
):
    return Envelope(data=user_out(user_service.get_user(db, user_id)))


@router.post(
    "",
    response_model=Envelope[UserOut],
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
    responses=error_responses(400, 401, 403, 409, 500),
)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("users.write")),
):
    user = user_service.create_user(db, **payload.model_dump())
    return Envelope(data=user_out(user), message="User created")


@router.put(
    "/{user_id}",
    response_model=Envelope[UserOut],
    summary="Update user",
    responses=error_responses(400, 401, 403, 404, 409, 500),
)
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("users.write")),
):
    user = user_service.update_user(db, user_id, payload.model_dump(exclude_unset=True), actor=actor)
    return Envelope(data=user_out(user), message="User updated")


@router.patch(
    "/{user_id}/active",
    response_model=Envelope[UserOut],
    summary="Activate or deactivate user",
    responses=error_responses(400, 401, 403, 404, 500),
)
def toggle_active(
    user_id: int,
    payload: UserActiveIn,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("users.write")),
):
    user = user_service.set_active(db, user_id, payload.active, actor=actor)
    return Envelope(data=user_out(user), message="User activated" if user.is_active else "User deactivated")


@router.post(
    "/{user_id}/reset-password",
    response_model=Envelope[None],
    summary="Reset a user's password",
    responses=error_responses(400, 401, 403, 404, 500),
)
def reset_password(
    user_id: int,
    payload: PasswordResetIn,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("users.write")),
):
    user_service.reset_password(db, user_id, payload.new_password)
    return Envelope(message="Password reset")


@router.delete(
    "/{user_id}",
    response_model=Envelope[UserOut],
    summary="Delete (deactivate) user",
    description="Users are never removed; the account is deactivated. Admin only.",
    responses=error_responses(400, 401, 403, 404, 500),
)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_roles("admin")),
):
    user = user_service.set_active(db, user_id, False, actor=actor)
    return Envelope(data=user_out(user), message="User deactivated")
