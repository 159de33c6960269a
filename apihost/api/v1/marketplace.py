"""Marketplace endpoints (unauthenticated, read-only)."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel

from apihost.api.dependencies import MarketplaceDep
from apihost.models.api_resource import ApiResource

router = APIRouter()


class MarketplaceItem(BaseModel):
    id: str
    name: str
    description: str
    version: str
    runtime: str
    visibility: str
    endpoint: str | None
    requires_key: bool
    created_at: datetime


class MarketplaceListResponse(BaseModel):
    items: list[MarketplaceItem]


def _to_item(api: ApiResource) -> MarketplaceItem:
    return MarketplaceItem(
        id=api.id,
        name=api.name,
        description=api.description,
        version=api.version,
        runtime=api.runtime.value,
        visibility=api.visibility.value,
        endpoint=api.endpoint,
        requires_key=api.visibility.value == "paid",
        created_at=api.created_at,
    )


@router.get("/apis", response_model=MarketplaceListResponse)
async def list_marketplace_apis(
    marketplace: MarketplaceDep,
    search: str | None = Query(None),
    runtime: str | None = Query(None),
) -> MarketplaceListResponse:
    apis = await marketplace.list_public(search=search, runtime=runtime)
    return MarketplaceListResponse(items=[_to_item(api) for api in apis])


@router.get("/apis/{api_id}", response_model=MarketplaceItem)
async def get_marketplace_api(api_id: str, marketplace: MarketplaceDep) -> MarketplaceItem:
    return _to_item(await marketplace.get_public(api_id))
