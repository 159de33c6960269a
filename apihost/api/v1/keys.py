"""API key endpoints.

The plaintext key appears only in the response to ``POST /keys``; every
other read returns the masked form.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from apihost.api.dependencies import ApiKeyServiceDep, CurrentUser
from apihost.models.api_key import ApiKey
from apihost.services.api_key import ApiKeyService
from apihost.utils.datetime import utcnow

router = APIRouter()


class CreateKeyRequest(BaseModel):
    name: str
    api_id: str | None = None
    expires_at: datetime | None = None


class KeyResponse(BaseModel):
    id: str
    name: str
    api_id: str | None
    masked_key: str
    is_active: bool
    expires_at: datetime | None
    deactivated_at: datetime | None
    created_at: datetime


class CreatedKeyResponse(KeyResponse):
    # Only ever present here
    key: str


class KeyListResponse(BaseModel):
    items: list[KeyResponse]


def _key_fields(api_key: ApiKey) -> dict:
    return {
        "id": api_key.id,
        "name": api_key.name,
        "api_id": api_key.api_id,
        "masked_key": ApiKeyService.masked_display(api_key),
        # Expired keys read as inactive
        "is_active": api_key.is_usable(utcnow()),
        "expires_at": api_key.expires_at,
        "deactivated_at": api_key.deactivated_at,
        "created_at": api_key.created_at,
    }


@router.post("", response_model=CreatedKeyResponse, status_code=201)
async def create_key(
    request: CreateKeyRequest, keys: ApiKeyServiceDep, user: CurrentUser
) -> CreatedKeyResponse:
    issued = await keys.create(
        user.id,
        name=request.name,
        api_id=request.api_id,
        expires_at=request.expires_at,
    )
    return CreatedKeyResponse(**_key_fields(issued.api_key), key=issued.plaintext)


@router.get("", response_model=KeyListResponse)
async def list_keys(keys: ApiKeyServiceDep, user: CurrentUser) -> KeyListResponse:
    items = await keys.list_for_user(user.id)
    return KeyListResponse(items=[KeyResponse(**_key_fields(k)) for k in items])


@router.post("/{key_id}/deactivate", response_model=KeyResponse)
async def deactivate_key(
    key_id: str, keys: ApiKeyServiceDep, user: CurrentUser
) -> KeyResponse:
    api_key = await keys.deactivate(key_id, user.id)
    return KeyResponse(**_key_fields(api_key))
