"""API v1 router."""

from fastapi import APIRouter

from apihost.api.v1.apis import router as apis_router
from apihost.api.v1.auth import router as auth_router
from apihost.api.v1.execute import router as execute_router
from apihost.api.v1.keys import router as keys_router
from apihost.api.v1.marketplace import router as marketplace_router

router = APIRouter()

# Include sub-routers
router.include_router(auth_router, prefix="/auth", tags=["auth"])
router.include_router(apis_router, prefix="/apis", tags=["apis"])
router.include_router(keys_router, prefix="/keys", tags=["keys"])
router.include_router(marketplace_router, prefix="/marketplace", tags=["marketplace"])
router.include_router(execute_router, tags=["execute"])
