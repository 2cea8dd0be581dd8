"""
Pydantic models for marathon registrations.

A registration references a marathon by id (``marathonId``) and a
registrant by ``email``.  Both are declared optional here so that a
missing value is reported by the service as a ``400`` with the usual
``{"success": false, "message": ...}`` body instead of a schema error.
The remaining attributes (names, contact number, notes...) are
whatever the user typed in and are stored as-is.
"""

from typing import Optional

from pydantic import BaseModel, Field


class RegistrationCreate(BaseModel):
    marathonId: Optional[str] = Field(None, example="6751b2f0c2a4e1d3f5a7b9c1")
    email: Optional[str] = Field(None, example="runner@example.com")
    title: Optional[str] = Field(None, example="Spring City Marathon", description="Marathon title, used by search")

    model_config = {
        "extra": "allow",
    }


class RegistrationUpdate(BaseModel):
    """Schema for updating a registration.

    ``marathonId`` cannot be changed through this model; it is dropped
    by the service.
    """

    model_config = {
        "extra": "allow",
    }
