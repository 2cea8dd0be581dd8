"""
Marathon endpoints.

CRUD for organiser-published marathons plus the two showcase lists
used by the home page (``/random-marathons``, ``/upcoming-marathons``)
and the organiser dashboard (``/my-marathons``).  Store failures are
reported as ``500`` with a short message; malformed ids as ``400``.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from marathon_hub_api.app.core.db import DocumentStore, get_store
from marathon_hub_api.app.core.errors import ServiceError, StoreError, as_http_exception
from marathon_hub_api.app.core.security import ensure_same_email, get_current_user
from marathon_hub_api.app.schemas.marathon import MarathonCreate, MarathonUpdate
from marathon_hub_api.app.services.marathon_service import MarathonService


router = APIRouter()


def _store_failure(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


@router.post("/marathons", status_code=status.HTTP_201_CREATED)
async def create_marathon(
    marathon: MarathonCreate,
    store: DocumentStore = Depends(get_store),
) -> dict:
    """Publish a marathon.  Returns the store insert result (``insertedId``)."""
    data = marathon.model_dump(exclude_unset=True)
    try:
        return await MarathonService.create_marathon(store, data)
    except StoreError as e:
        raise _store_failure("Failed to create marathon") from e
    except ServiceError as e:
        raise as_http_exception(e) from e


@router.get("/marathons", response_model=List[dict])
async def list_marathons(
    sort: str = Query("asc", description="Order by creation time: asc or desc"),
    store: DocumentStore = Depends(get_store),
) -> List[dict]:
    try:
        return await MarathonService.list_marathons(store, sort)
    except StoreError as e:
        raise _store_failure("Failed to fetch marathons") from e


@router.get("/marathons/{marathon_id}")
async def get_marathon(
    marathon_id: str,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict:
    """Retrieve a single marathon.  Requires a valid token cookie."""
    try:
        return await MarathonService.get_marathon(store, marathon_id)
    except StoreError as e:
        raise _store_failure("Failed to fetch marathon") from e
    except ServiceError as e:
        raise as_http_exception(e) from e


@router.get("/random-marathons", response_model=List[dict])
async def random_marathons(store: DocumentStore = Depends(get_store)) -> List[dict]:
    try:
        return await MarathonService.random_marathons(store)
    except StoreError as e:
        raise _store_failure("Server error") from e


@router.get("/upcoming-marathons", response_model=List[dict])
async def upcoming_marathons(store: DocumentStore = Depends(get_store)) -> List[dict]:
    """Up to six marathons whose registration has not opened yet, soonest first."""
    try:
        return await MarathonService.upcoming_marathons(store)
    except StoreError as e:
        raise _store_failure("Server error") from e


@router.get("/my-marathons")
async def my_marathons(
    email: Optional[str] = Query(None),
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict:
    """Marathons published by the authenticated organiser.

    The ``email`` query parameter must match the token's email.
    """
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User email is required")
    ensure_same_email(current_user, email)
    try:
        return await MarathonService.list_mine(store, email)
    except StoreError as e:
        raise _store_failure("Failed to fetch marathons") from e
    except ServiceError as e:
        raise as_http_exception(e) from e


@router.put("/marathons/{marathon_id}")
async def update_marathon(
    marathon_id: str,
    updates: MarathonUpdate,
    store: DocumentStore = Depends(get_store),
) -> dict:
    """Update an existing marathon.

    Partial updates are supported; unspecified fields remain unchanged.
    ``totalRegistrationCount`` is managed by registrations and ignored here.
    """
    update_dict = updates.model_dump(exclude_unset=True)
    try:
        return await MarathonService.update_marathon(store, marathon_id, update_dict)
    except StoreError as e:
        raise _store_failure("Failed to update marathon") from e
    except ServiceError as e:
        raise as_http_exception(e) from e


@router.delete("/marathons/{marathon_id}")
async def delete_marathon(
    marathon_id: str,
    store: DocumentStore = Depends(get_store),
) -> dict:
    try:
        return await MarathonService.delete_marathon(store, marathon_id)
    except StoreError as e:
        raise _store_failure("Failed to delete marathon") from e
    except ServiceError as e:
        raise as_http_exception(e) from e
