from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockpos.core.config import settings
from stockpos.core.errors import ConflictError, UserNotFoundError, ValidationError
from stockpos.core.permissions import ROLES
from stockpos.core.security import hash_password, verify_password
from stockpos.db.unit_of_work import unit_of_work
from stockpos.models.user import User


def _check_password(password: str) -> None:
    if len(password or "") < settings.password_min_length:
        raise ValidationError(f"Password must be at least {settings.password_min_length} characters")


def _check_role(role: str) -> str:
    normalized = (role or "").strip().lower()
    if normalized not in ROLES:
        raise ValidationError(f"Unknown role: {role}")
    return normalized


def find_by_username(db: Session, username: str) -> User | None:
    return db.execute(
        select(User).where(func.lower(User.username) == (username or "").strip().lower())
    ).scalar_one_or_none()


def authenticate(db: Session, username: str, password: str) -> User | None:
    user = find_by_username(db, username)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    with unit_of_work(db):
        user.last_login_at = datetime.now(timezone.utc)
    return user


def create_user(
    db: Session,
    *,
    username: str,
    password: str,
    full_name: str,
    role: str = "cashier",
    email: str | None = None,
) -> User:
    _check_password(password)
    role = _check_role(role)
    with unit_of_work(db):
        if find_by_username(db, username) is not None:
            raise ConflictError(f"Username {username} is already taken")
        user = User(
            username=username.strip(),
            email=email,
            hashed_password=hash_password(password),
            full_name=full_name.strip(),
            role=role,
            is_active=True,
        )
        db.add(user)
        db.flush()
    return user


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def list_users(db: Session, *, active: bool | None = None, role: str | None = None) -> list[User]:
    query = select(User).order_by(User.username.asc())
    if active is not None:
        query = query.where(User.is_active.is_(active))
    if role:
        query = query.where(User.role == _check_role(role))
    return list(db.execute(query).scalars().all())


def update_user(db: Session, user_id: int, changes: dict, *, actor: User) -> User:
    with unit_of_work(db):
        user = get_user(db, user_id)
        if "username" in changes and changes["username"]:
            existing = find_by_username(db, changes["username"])
            if existing is not None and existing.id != user.id:
                raise ConflictError(f"Username {changes['username']} is already taken")
            user.username = changes["username"].strip()
        if changes.get("full_name"):
            user.full_name = changes["full_name"].strip()
        if "email" in changes:
            user.email = changes["email"]
        if changes.get("role"):
            user.role = _check_role(changes["role"])
        if changes.get("is_active") is False and user.id == actor.id:
            raise ValidationError("You cannot deactivate your own account")
        if changes.get("is_active") is not None:
            user.is_active = bool(changes["is_active"])
        db.flush()
    return user


def set_active(db: Session, user_id: int, active: bool, *, actor: User) -> User:
    if not active and user_id == actor.id:
        raise ValidationError("You cannot deactivate your own account")
    with unit_of_work(db):
        user = get_user(db, user_id)
        user.is_active = active
        db.flush()
    return user


def reset_password(db: Session, user_id: int, new_password: str) -> User:
    _check_password(new_password)
    with unit_of_work(db):
        user = get_user(db, user_id)
        user.hashed_password = hash_password(new_password)
        db.flush()
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.hashed_password):
        raise ValidationError("Current password is incorrect")
    _check_password(new_password)
    if current_password == new_password:
        raise ValidationError("New password must be different from the current one")
    with unit_of_work(db):
        user.hashed_password = hash_password(new_password)
        db.flush()
