"""
API v1 router aggregator.

All v1 routes are registered here.
"""

from fastapi import APIRouter

from tenantguard.features.permissions.router import router as access_router
from tenantguard.features.tenants.router import router as tenants_router
from tenantguard.features.users.router import router as users_router
from tenantguard.schemas.common import ErrorResponse

# Error bodies every guarded route can return
GUARD_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Authentication required"},
    403: {"model": ErrorResponse, "description": "Denied by tenant or permission checks"},
}

# V1 API router
v1_router = APIRouter(prefix="/v1", responses=GUARD_RESPONSES)

# Register all feature routers
v1_router.include_router(tenants_router)
v1_router.include_router(users_router, responses={
    402: {"model": ErrorResponse, "description": "Plan limit reached"},
})
v1_router.include_router(access_router)
