"""
Auth endpoints.

``POST /jwt`` signs the posted claims into a one‑hour token and stores
it in an http‑only cookie; ``POST /logout`` clears that cookie.  The
cookie flags follow the environment (see ``core.security.cookie_options``).
"""

import logging

from fastapi import APIRouter, Response

from marathon_hub_api.app.core.security import clear_token_cookie, create_access_token, set_token_cookie
from marathon_hub_api.app.schemas.auth import SuccessResponse, TokenRequest


router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/jwt", response_model=SuccessResponse)
async def issue_token(user: TokenRequest, response: Response) -> dict:
    """Issue a signed token for the posted user and set it as a cookie."""
    claims = {k: v for k, v in user.model_dump().items() if v is not None}
    set_token_cookie(response, create_access_token(claims))
    logger.info("Issued token for %s", claims.get("email"))
    return {"success": True}


@router.post("/logout", response_model=SuccessResponse)
async def logout(response: Response) -> dict:
    clear_token_cookie(response)
    return {"success": True}
