from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import bcrypt
from jose import JWTError, jwt

from stockpos.core.config import settings

ALGORITHM = "HS256"


class TokenValidationError(ValueError):
    pass


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: str
    expires_at: datetime


def hash_password(password: str) -> str:
    # bcrypt only looks at the first 72 bytes.
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage.
        return False


def create_access_token(user_id: int, role: str, *, expires_delta: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "jti": str(uuid4()),
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> TokenClaims:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise TokenValidationError("Invalid or expired token") from exc

    if payload.get("type") != "access":
        raise TokenValidationError("Invalid token type")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise TokenValidationError("Invalid token subject") from exc

    exp = payload.get("exp")
    if not exp:
        raise TokenValidationError("Invalid token expiration")

    return TokenClaims(
        user_id=user_id,
        role=str(payload.get("role") or ""),
        expires_at=datetime.fromtimestamp(int(exp), tz=timezone.utc),
    )
