"""
Pydantic models for marathon data.

Marathons are free-form documents: organisers submit whatever the
front-end form collects (location, distance, image, dates...).  Only
the fields the services rely on are declared; everything else passes
through untouched thanks to ``extra="allow"``.
"""

from typing import Optional

from pydantic import BaseModel, Field


class MarathonBase(BaseModel):
    title: Optional[str] = Field(None, example="Spring City Marathon")
    email: Optional[str] = Field(None, example="organizer@example.com", description="Owner (organiser) email")
    startRegistrationDate: Optional[str] = Field(None, example="2026-11-01T00:00:00.000Z")
    endRegistrationDate: Optional[str] = Field(None, example="2026-11-30T00:00:00.000Z")
    marathonStartDate: Optional[str] = Field(None, example="2026-12-15T06:00:00.000Z")

    model_config = {
        "extra": "allow",
    }


class MarathonCreate(MarathonBase):
    """Schema for publishing a marathon.

    ``createdAt`` is filled in by the service when the client does not
    send it; ``totalRegistrationCount`` always starts at zero.
    """

    createdAt: Optional[str] = None


class MarathonUpdate(MarathonBase):
    """Schema for updating a marathon.

    All fields are optional; only provided fields will be updated.
    ``totalRegistrationCount`` is ignored if supplied.
    """
    pass
