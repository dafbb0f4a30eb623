"""API v1 router aggregator.

All v1 endpoint routers are included here and mounted under /api/v1.
"""

from fastapi import APIRouter

from templink.api.v1 import links

router = APIRouter()

# =============================================================================
# Temporary links (activation, password reset, redemption)
# =============================================================================

router.include_router(links.router, prefix="/links", tags=["links"])
