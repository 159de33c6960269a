"""API Key service.

Handles key generation, hashing, verification, masking and the key
lifecycle (create / list / deactivate). The plaintext secret leaves this
module exactly once: in the return value of ``create``.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from apihost.config import get_settings
from apihost.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from apihost.models.api_key import ApiKey
from apihost.models.api_resource import ApiResource, ApiStatus, Visibility
from apihost.utils.datetime import to_naive_utc, utcnow

logger = structlog.get_logger()

_KEY_DISPLAY_PREFIX_LEN = 12
_KEY_DISPLAY_SUFFIX_LEN = 8
_MASK_MIN_LEN = 16
_MASK_FILL = "••••••••••••••"


@dataclass(frozen=True, slots=True)
class IssuedKey:
    """A freshly created key together with its one-time plaintext."""

    api_key: ApiKey
    plaintext: str


class ApiKeyService:
    """Service for API key lifecycle management."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._settings = get_settings()
        self._log = logger.bind(service="api_key")

    # -- Pure helpers --

    @staticmethod
    def generate_key(prefix: str = "apk_") -> tuple[str, str]:
        """Generate a new API key.

        Returns:
            Tuple of (plaintext, key_hash)
        """
        plaintext = f"{prefix}{secrets.token_hex(32)}"  # 64 hex chars
        return plaintext, ApiKeyService.hash_key(plaintext)

    @staticmethod
    def hash_key(plaintext: str) -> str:
        """Hash a plaintext key using SHA-256."""
        return hashlib.sha256(plaintext.encode()).hexdigest()

    @staticmethod
    def mask(secret: str) -> str:
        """Redact the middle of a secret for display.

        Secrets shorter than 16 characters are returned unmodified;
        otherwise the first 12 and last 8 characters are revealed.
        """
        if len(secret) < _MASK_MIN_LEN:
            return secret
        return (
            secret[:_KEY_DISPLAY_PREFIX_LEN]
            + _MASK_FILL
            + secret[-_KEY_DISPLAY_SUFFIX_LEN:]
        )

    @staticmethod
    def masked_display(api_key: ApiKey) -> str:
        """Masked form of a stored key, rebuilt from its display fragments."""
        return api_key.key_prefix + _MASK_FILL + api_key.key_suffix

    # -- Lifecycle --

    async def create(
        self,
        user_id: str,
        *,
        name: str,
        api_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> IssuedKey:
        """Issue a new key. The returned plaintext is never retrievable again.

        Raises:
            ValidationError: Empty name or expiry in the past
            NotFoundError: Scope references an unknown or deleted API
            ConflictError: Hash collision (practically unreachable)
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError(
                "Name is required",
                details={"field": "name", "reason": "empty"},
            )

        if expires_at is not None:
            expires_at = to_naive_utc(expires_at)
            if expires_at <= utcnow():
                raise ValidationError(
                    "expires_at must be in the future",
                    details={"field": "expires_at", "reason": "in_past"},
                )

        if api_id is not None:
            result = await self._db.execute(
                select(ApiResource.id).where(
                    ApiResource.id == api_id,
                    ApiResource.status != ApiStatus.DELETED,
                )
            )
            if result.first() is None:
                raise NotFoundError(f"API not found: {api_id}")

        plaintext, key_hash = self.generate_key(self._settings.security.api_key_prefix)
        api_key = ApiKey(
            id=f"key-{uuid.uuid4().hex[:12]}",
            user_id=user_id,
            api_id=api_id,
            name=name,
            key_hash=key_hash,
            key_prefix=plaintext[:_KEY_DISPLAY_PREFIX_LEN],
            key_suffix=plaintext[-_KEY_DISPLAY_SUFFIX_LEN:],
            is_active=True,
            expires_at=expires_at,
            created_at=utcnow(),
        )
        self._db.add(api_key)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            raise ConflictError("Key generation collided, retry the request")
        await self._db.refresh(api_key)

        self._log.info(
            "api_key.create",
            key_id=api_key.id,
            key_prefix=api_key.key_prefix,
            user_id=user_id,
            api_id=api_id,
        )
        return IssuedKey(api_key=api_key, plaintext=plaintext)

    async def list_for_user(self, user_id: str) -> list[ApiKey]:
        """List a user's keys, newest first."""
        result = await self._db.execute(
            select(ApiKey)
            .where(ApiKey.user_id == user_id)
            .order_by(ApiKey.created_at.desc(), ApiKey.id)
        )
        return list(result.scalars().all())

    async def get(self, key_id: str, user_id: str) -> ApiKey:
        """Get a key owned by ``user_id``.

        Raises:
            NotFoundError: Unknown key
            ForbiddenError: Key belongs to someone else
        """
        result = await self._db.execute(select(ApiKey).where(ApiKey.id == key_id))
        api_key = result.scalars().first()
        if api_key is None:
            raise NotFoundError(f"API key not found: {key_id}")
        if api_key.user_id != user_id:
            raise ForbiddenError("Not the owner of this API key")
        return api_key

    async def deactivate(self, key_id: str, user_id: str) -> ApiKey:
        """Deactivate a key. Terminal and idempotent."""
        api_key = await self.get(key_id, user_id)
        if api_key.is_active:
            api_key.is_active = False
            api_key.deactivated_at = utcnow()
            await self._db.commit()
            await self._db.refresh(api_key)
            self._log.info(
                "api_key.deactivate",
                key_id=api_key.id,
                key_prefix=api_key.key_prefix,
            )
        return api_key

    async def verify(self, presented: str | None) -> ApiKey:
        """Resolve a presented secret to an active, non-expired key.

        Fails closed: any miss raises UnauthorizedError with the same message
        so callers cannot distinguish unknown, inactive and expired keys.
        """
        if not presented:
            raise UnauthorizedError("API key required")

        key_hash = self.hash_key(presented)
        result = await self._db.execute(select(ApiKey).where(ApiKey.key_hash == key_hash))
        api_key = result.scalars().first()

        if api_key is None or not hmac.compare_digest(api_key.key_hash, key_hash):
            raise UnauthorizedError("Invalid API key")
        if not api_key.is_usable(utcnow()):
            self._log.debug("api_key.verify.unusable", key_prefix=api_key.key_prefix)
            raise UnauthorizedError("Invalid API key")
        return api_key

    async def authorize_invocation(self, api: ApiResource, presented: str | None) -> ApiKey | None:
        """Gate a call to a deployed endpoint by visibility.

        - public: open, no key needed (a presented key is ignored)
        - paid: a usable key scoped to this API or unscoped
        - private: a usable key owned by the API owner

        Returns:
            The verified key, or None for public APIs

        Raises:
            UnauthorizedError: Missing or invalid key
            ForbiddenError: Key does not grant access to this API
        """
        if api.visibility == Visibility.PUBLIC:
            return None

        api_key = await self.verify(presented)

        if api_key.api_id is not None and api_key.api_id != api.id:
            raise ForbiddenError(
                "API key is not scoped to this API",
                details={"api_id": api.id},
            )
        if api.visibility == Visibility.PRIVATE and api_key.user_id != api.owner_id:
            raise ForbiddenError("API is private", details={"api_id": api.id})

        return api_key
