"""User service - signup, login, password change and identity lookup."""

from __future__ import annotations

import asyncio
import uuid

import bcrypt
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from apihost.config import get_settings
from apihost.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from apihost.models.user import User, UserRole
from apihost.utils.datetime import utcnow

logger = structlog.get_logger()

_MIN_PASSWORD_LEN = 8
# bcrypt only looks at the first 72 bytes
_MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _validate_password(password: str, field: str = "password") -> None:
    if len(password) < _MIN_PASSWORD_LEN:
        raise ValidationError(
            f"Password must be at least {_MIN_PASSWORD_LEN} characters",
            details={"field": field, "reason": "too_short"},
        )
    if len(password.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password must be at most {_MAX_PASSWORD_BYTES} bytes",
            details={"field": field, "reason": "too_long"},
        )


class UserService:
    """Manages user accounts."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._settings = get_settings()
        self._log = logger.bind(service="users")

    async def signup(
        self,
        *,
        email: str,
        password: str,
        name: str,
        role: str = UserRole.DEVELOPER.value,
    ) -> User:
        """Create an account.

        Raises:
            ValidationError: Missing fields, short password or unknown role
            ConflictError: Email already registered
        """
        email = email.strip().lower()
        name = name.strip()
        if not email or not name:
            raise ValidationError(
                "Email and name are required",
                details={"field": "email" if not email else "name", "reason": "empty"},
            )
        _validate_password(password)
        try:
            user_role = UserRole(role)
        except ValueError:
            raise ValidationError(
                f"Invalid role: {role}",
                details={"field": "role", "allowed": [r.value for r in UserRole]},
            )

        existing = await self._db.execute(select(User.id).where(User.email == email))
        if existing.first() is not None:
            raise ConflictError("Email already registered", details={"field": "email"})

        # bcrypt is CPU-bound; keep it off the event loop
        password_hash = await asyncio.to_thread(
            hash_password, password, self._settings.security.bcrypt_rounds
        )
        user = User(
            id=f"user-{uuid.uuid4().hex[:12]}",
            email=email,
            name=name,
            role=user_role,
            password_hash=password_hash,
            created_at=utcnow(),
            updated_at=utcnow(),
        )
        self._db.add(user)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            raise ConflictError("Email already registered", details={"field": "email"})
        await self._db.refresh(user)

        self._log.info("user.signup", user_id=user.id, role=user.role.value)
        return user

    async def authenticate(self, *, email: str, password: str) -> User:
        """Check credentials.

        Raises:
            UnauthorizedError: Unknown email or wrong password (same message)
        """
        result = await self._db.execute(
            select(User).where(User.email == email.strip().lower())
        )
        user = result.scalars().first()
        if user is None:
            self._log.info("user.login.failed", reason="unknown_email")
            raise UnauthorizedError("Invalid credentials")

        ok = await asyncio.to_thread(check_password, password, user.password_hash)
        if not ok:
            self._log.info("user.login.failed", reason="bad_password", user_id=user.id)
            raise UnauthorizedError("Invalid credentials")

        self._log.info("user.login", user_id=user.id)
        return user

    async def get_by_id(self, user_id: str) -> User:
        result = await self._db.execute(select(User).where(User.id == user_id))
        user = result.scalars().first()
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    async def change_password(
        self, user_id: str, *, current_password: str, new_password: str
    ) -> User:
        """Replace the password after re-checking the current one.

        Raises:
            NotFoundError: Unknown user
            UnauthorizedError: Current password is wrong
            ValidationError: New password too short/long or unchanged
        """
        user = await self.get_by_id(user_id)

        ok = await asyncio.to_thread(check_password, current_password, user.password_hash)
        if not ok:
            self._log.info("user.change_password.failed", user_id=user_id)
            raise UnauthorizedError("Invalid current password")

        _validate_password(new_password, field="new_password")
        if new_password == current_password:
            raise ValidationError(
                "New password must differ from the current one",
                details={"field": "new_password", "reason": "unchanged"},
            )

        user.password_hash = await asyncio.to_thread(
            hash_password, new_password, self._settings.security.bcrypt_rounds
        )
        user.updated_at = utcnow()
        self._db.add(user)
        await self._db.commit()
        await self._db.refresh(user)

        self._log.info("user.change_password", user_id=user_id)
        return user
