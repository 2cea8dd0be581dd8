"""
Business logic for marathons.

Organisers publish marathons, edit and delete them; visitors browse
them.  The cached ``totalRegistrationCount`` belongs to
``RegistrationService``: it starts at zero on creation and cannot be
overwritten through ``update_marathon``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from marathon_hub_api.app.core.db import DocumentStore, normalize_object_id
from marathon_hub_api.app.core.errors import NotFound, ValidationError


logger = logging.getLogger(__name__)

MARATHONS = "marathons"
SHOWCASE_LIMIT = 6


def utc_now_iso() -> str:
    """Current time in the ``2026-01-31T09:30:00.000Z`` form the front end stores."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _check_id(marathon_id: str) -> str:
    normalized = normalize_object_id(marathon_id)
    if normalized is None:
        raise ValidationError("Invalid marathon id")
    return normalized


class MarathonService:
    """Service for publishing and browsing marathons."""

    @classmethod
    async def create_marathon(cls, store: DocumentStore, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new marathon and return the store insert result."""
        marathon = {k: v for k, v in data.items() if k != "_id"}
        if not marathon.get("createdAt"):
            marathon["createdAt"] = utc_now_iso()
        marathon["totalRegistrationCount"] = 0
        result = store.insert_one(MARATHONS, marathon)
        logger.info("Marathon %s '%s' created by %s", result.inserted_id, marathon.get("title"), marathon.get("email"))
        return result.to_dict()

    @classmethod
    async def list_marathons(cls, store: DocumentStore, sort: str = "asc") -> List[Dict[str, Any]]:
        """All marathons ordered by creation time (``desc`` for newest first)."""
        direction = -1 if sort == "desc" else 1
        return store.find(MARATHONS, sort=[("createdAt", direction)])

    @classmethod
    async def get_marathon(cls, store: DocumentStore, marathon_id: str) -> Dict[str, Any]:
        marathon = store.find_one(MARATHONS, {"_id": _check_id(marathon_id)})
        if not marathon:
            raise NotFound("Marathon not found")
        return marathon

    @classmethod
    async def random_marathons(cls, store: DocumentStore) -> List[Dict[str, Any]]:
        return store.find(MARATHONS, limit=SHOWCASE_LIMIT)

    @classmethod
    async def upcoming_marathons(cls, store: DocumentStore, now: Optional[str] = None) -> List[Dict[str, Any]]:
        """Marathons whose registration opens now or later, soonest first.

        Dates are ISO-8601 UTC strings, so comparing them as text
        orders them chronologically.
        """
        return store.find(
            MARATHONS,
            {"startRegistrationDate": {"$gte": now or utc_now_iso()}},
            sort=[("startRegistrationDate", 1)],
            limit=SHOWCASE_LIMIT,
        )

    @classmethod
    async def list_mine(cls, store: DocumentStore, email: str) -> Dict[str, Any]:
        """Marathons published by the organiser ``email``."""
        if not email:
            raise ValidationError("User email is required")
        return {"success": True, "marathons": store.find(MARATHONS, {"email": email})}

    @classmethod
    async def update_marathon(cls, store: DocumentStore, marathon_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        changes = {k: v for k, v in data.items() if k not in ("_id", "totalRegistrationCount")}
        result = store.update_one(MARATHONS, {"_id": _check_id(marathon_id)}, {"$set": changes})
        if result.modified_count == 0:
            raise NotFound("Marathon not found or no changes made")
        return {"success": True, "message": "Marathon updated successfully"}

    @classmethod
    async def delete_marathon(cls, store: DocumentStore, marathon_id: str) -> Dict[str, Any]:
        """Delete a marathon.

        Registrations pointing at it are left in place; unregistering
        them later succeeds with a "count not updated" warning.
        """
        result = store.delete_one(MARATHONS, {"_id": _check_id(marathon_id)})
        if result.deleted_count == 0:
            raise NotFound("Marathon not found")
        logger.info("Marathon %s deleted", marathon_id)
        return {"success": True, "message": "Marathon deleted successfully"}
