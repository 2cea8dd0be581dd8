"""
Registration endpoints.

These routes let runners sign up for a marathon, list and edit their
registrations and cancel them.  They rely on ``RegistrationService``,
which keeps each marathon's ``totalRegistrationCount`` in step with
the registrations collection.  Listing requires the token cookie and
is limited to the caller's own email.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from marathon_hub_api.app.core.db import DocumentStore, get_store
from marathon_hub_api.app.core.errors import ServiceError, as_http_exception
from marathon_hub_api.app.core.security import ensure_same_email, get_current_user
from marathon_hub_api.app.schemas.registration import RegistrationCreate, RegistrationUpdate
from marathon_hub_api.app.services.registration_service import RegistrationService


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_registration(
    registration: RegistrationCreate,
    store: DocumentStore = Depends(get_store),
) -> dict:
    """Register for a marathon.

    Returns ``400`` if the runner is already registered for it.  On
    success the body holds the insert result and the count update
    result; ``countUpdated`` is ``false`` when the marathon id did not
    match any marathon.
    """
    payload = registration.model_dump(exclude_unset=True)
    try:
        return await RegistrationService.register(store, payload)
    except ServiceError as e:
        raise as_http_exception(e) from e


@router.get("", response_model=List[dict])
async def search_registrations(
    email: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Case-insensitive marathon title filter"),
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> List[dict]:
    """List the caller's registrations, optionally filtered by title."""
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is required")
    ensure_same_email(current_user, email)
    try:
        return await RegistrationService.list_by_email(store, email, search)
    except ServiceError as e:
        raise as_http_exception(e) from e


@router.get("/{email}", response_model=List[dict])
async def list_registrations_by_email(
    email: str = Path(..., description="Registrant email"),
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> List[dict]:
    ensure_same_email(current_user, email)
    try:
        return await RegistrationService.list_by_email(store, email)
    except ServiceError as e:
        raise as_http_exception(e) from e


@router.put("/{registration_id}")
async def update_registration(
    registration_id: str = Path(..., description="ID of the registration"),
    update: RegistrationUpdate | None = None,
    store: DocumentStore = Depends(get_store),
) -> dict:
    """Modify the user-supplied fields of a registration.

    ``marathonId`` cannot be changed.  A 404 error is returned if the
    registration does not exist or nothing changed.
    """
    update_dict: dict = update.model_dump(exclude_unset=True) if update else {}
    try:
        return await RegistrationService.update_registration(store, registration_id, update_dict)
    except ServiceError as e:
        raise as_http_exception(e) from e


@router.delete("/{registration_id}")
async def delete_registration(
    registration_id: str = Path(..., description="ID of the registration"),
    store: DocumentStore = Depends(get_store),
) -> dict:
    """Cancel a registration and decrement the marathon's count.

    If the marathon no longer exists the registration is still deleted
    and the message reports that the count was not updated.
    """
    try:
        return await RegistrationService.unregister(store, registration_id)
    except ServiceError as e:
        raise as_http_exception(e) from e
