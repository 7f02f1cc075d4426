"""API v1 router aggregator.

URL structure with /api/v1 prefix. All v1 endpoint routers are included
here.
"""

from fastapi import APIRouter

from guest_access.api.v1 import guest_actions, otp, reviews, session

router = APIRouter()

# =============================================================================
# Verification
# =============================================================================

router.include_router(otp.router, prefix="/otp", tags=["otp"])
router.include_router(session.router, prefix="/session", tags=["session"])

# =============================================================================
# Scoped guest actions
# =============================================================================

router.include_router(guest_actions.router, tags=["guest-actions"])
router.include_router(reviews.router, tags=["reviews"])
