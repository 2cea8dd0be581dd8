"""Pydantic models for the cookie token endpoints."""

from typing import Optional

from pydantic import BaseModel, Field


class TokenRequest(BaseModel):
    """Claims the client wants embedded in its token."""

    email: Optional[str] = Field(None, example="runner@example.com")

    model_config = {
        "extra": "allow",
    }


class SuccessResponse(BaseModel):
    success: bool = True
