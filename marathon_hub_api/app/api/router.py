"""
Top‑level router.

This router aggregates the domain‑specific routers.  When new
endpoints are added or new domains are introduced, update this file to
include their routers.
"""

from fastapi import APIRouter

from .endpoints import auth, marathons, registrations


router = APIRouter()

router.include_router(auth.router, tags=["auth"])
# Both routers define their own paths internally (``/marathons``,
# ``/my-marathons``, ``/random-marathons``...), so no prefix here.
router.include_router(marathons.router, tags=["marathons"])
router.include_router(registrations.router, prefix="/registrations", tags=["registrations"])
