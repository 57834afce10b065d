"""API v1 router aggregator.

All v1 endpoint routers are included here under /api/v1.
"""

from fastapi import APIRouter

from socialstream.api.v1 import auth_oauth, connected_accounts

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

router.include_router(auth_oauth.router, prefix="/auth", tags=["auth"])

# =============================================================================
# Connected Accounts
# =============================================================================

router.include_router(
    connected_accounts.router,
    prefix="/connected-accounts",
    tags=["connected-accounts"],
)
