"""
Business logic for marathon registrations.

``RegistrationService`` keeps two collections in step:

* ``registrations`` holds one document per (marathon, runner) pair.  A
  unique index on ``(marathonId, email)`` in the store guarantees that
  at most one such document exists, even when two requests race past
  the duplicate check below.
* ``marathons`` caches the number of registrations of each marathon in
  ``totalRegistrationCount``.

The insert/increment and delete/decrement pairs are two separate store
operations.  A failure between them leaves the cached count off by one
until ``reconcile_counts`` recomputes it from the registrations
themselves; an increment that matches no marathon is not rolled back.
The counter is never clamped at zero.
"""

import logging
import re
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

from marathon_hub_api.app.core.db import DocumentStore, UpdateResult, normalize_object_id
from marathon_hub_api.app.core.errors import (
    DuplicateKeyError,
    DuplicateRegistration,
    NotFound,
    RegistrationFailed,
    StoreError,
    ValidationError,
)


logger = logging.getLogger(__name__)

REGISTRATIONS = "registrations"
MARATHONS = "marathons"
COUNT_FIELD = "totalRegistrationCount"


class RegistrationService:
    """Service for registering runners and keeping marathon counts in sync."""

    @classmethod
    def _adjust_count(cls, store: DocumentStore, marathon_id: Any, delta: int) -> UpdateResult:
        """Add ``delta`` to the marathon's registration count.

        A malformed marathon id cannot match anything, so it is reported
        the same way as a missing marathon: zero matched documents.
        """
        marathon_id = normalize_object_id(marathon_id)
        if marathon_id is None:
            return UpdateResult(matched_count=0, modified_count=0)
        return store.update_one(MARATHONS, {"_id": marathon_id}, {"$inc": {COUNT_FIELD: delta}})

    @classmethod
    async def register(cls, store: DocumentStore, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Register ``payload["email"]`` for ``payload["marathonId"]``.

        Steps: reject duplicates, insert the registration, then bump
        the marathon's ``totalRegistrationCount``.  When the increment
        matches no marathon the registration is kept and the result
        carries ``countUpdated: False``.

        Raises
        ------
        ValidationError
            ``marathonId`` or ``email`` is missing.
        DuplicateRegistration
            The runner is already registered for this marathon, either
            found by the lookup or rejected by the unique index.
        RegistrationFailed
            The store failed.  If the failure happened after the insert,
            the registration exists but the count was not incremented.
        """
        registration = {k: v for k, v in payload.items() if k != "_id"}
        marathon_id = registration.get("marathonId")
        email = registration.get("email")
        if not marathon_id:
            raise ValidationError("Marathon id is required")
        if not email:
            raise ValidationError("Email is required")
        # Store the canonical id so the duplicate check and the unique
        # index see one spelling per marathon.
        canonical_id = normalize_object_id(marathon_id)
        if canonical_id is not None:
            marathon_id = registration["marathonId"] = canonical_id

        try:
            existing = store.find_one(REGISTRATIONS, {"marathonId": marathon_id, "email": email})
        except StoreError as e:
            logger.exception("Duplicate check failed for marathon %s", marathon_id)
            raise RegistrationFailed() from e
        if existing:
            logger.info("Rejected duplicate registration of %s for marathon %s", email, marathon_id)
            raise DuplicateRegistration()

        try:
            result = store.insert_one(REGISTRATIONS, registration)
        except DuplicateKeyError as e:
            logger.info("Unique index rejected registration of %s for marathon %s", email, marathon_id)
            raise DuplicateRegistration() from e
        except StoreError as e:
            logger.exception("Inserting registration for marathon %s failed", marathon_id)
            raise RegistrationFailed() from e

        try:
            update_result = cls._adjust_count(store, marathon_id, 1)
        except StoreError as e:
            logger.exception(
                "Registration %s stored but count of marathon %s was not incremented",
                result.inserted_id,
                marathon_id,
            )
            raise RegistrationFailed() from e

        count_updated = update_result.matched_count > 0
        if not count_updated:
            logger.warning(
                "Registration %s stored but marathon %s was not found; count not incremented",
                result.inserted_id,
                marathon_id,
            )
        return {
            "success": True,
            "result": result.to_dict(),
            "updateResult": update_result.to_dict(),
            "countUpdated": count_updated,
        }

    @classmethod
    async def unregister(cls, store: DocumentStore, registration_id: str) -> Dict[str, Any]:
        """Delete a registration and decrement its marathon's count.

        The deletion is authoritative: once it has committed the call
        succeeds, even if the marathon no longer exists or the
        decrement fails.  In that case the message says so and
        ``countUpdated`` is ``False``.
        """
        registration_id = normalize_object_id(registration_id)
        if registration_id is None:
            raise ValidationError("Invalid registration id")

        try:
            registration = store.find_one(REGISTRATIONS, {"_id": registration_id})
            if not registration:
                raise NotFound("Registration not found!")
            deleted = store.delete_one(REGISTRATIONS, {"_id": registration_id})
        except StoreError as e:
            logger.exception("Deleting registration %s failed", registration_id)
            raise StoreError("Failed to delete registration!") from e
        if deleted.deleted_count == 0:
            # Someone else deleted it between the lookup and the delete.
            raise NotFound("Failed to delete registration!")

        marathon_id = registration.get("marathonId")
        try:
            update_result = cls._adjust_count(store, marathon_id, -1)
            count_updated = update_result.matched_count > 0
        except StoreError:
            logger.exception(
                "Registration %s deleted but decrementing marathon %s failed", registration_id, marathon_id
            )
            count_updated = False

        if not count_updated:
            logger.warning(
                "Registration %s deleted but count of marathon %s not updated", registration_id, marathon_id
            )
            return {
                "success": True,
                "message": "Registration deleted but marathon count not updated",
                "countUpdated": False,
            }
        return {
            "success": True,
            "message": "Registration deleted successfully!",
            "countUpdated": True,
        }

    @classmethod
    async def list_by_email(
        cls,
        store: DocumentStore,
        email: str,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """List a runner's registrations.

        When ``search`` is given only registrations whose ``title``
        contains it (case-insensitively) are returned.  The term is
        matched literally, not as a regular expression.
        """
        if not email:
            raise ValidationError("Email is required")
        query: Dict[str, Any] = {"email": email}
        if search:
            query["title"] = {"$regex": re.escape(search), "$options": "i"}
        try:
            return store.find(REGISTRATIONS, query)
        except StoreError as e:
            logger.exception("Fetching registrations of %s failed", email)
            raise StoreError("Failed to fetch registrations") from e

    @classmethod
    async def update_registration(
        cls,
        store: DocumentStore,
        registration_id: str,
        data: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Update the user-supplied fields of a registration.

        ``marathonId`` is not updatable because moving a registration
        to another marathon would leave both counts wrong.
        """
        registration_id = normalize_object_id(registration_id)
        if registration_id is None:
            raise ValidationError("Invalid registration id")
        changes = {k: v for k, v in data.items() if k not in ("_id", "marathonId")}
        try:
            result = store.update_one(REGISTRATIONS, {"_id": registration_id}, {"$set": changes})
        except DuplicateKeyError as e:
            raise DuplicateRegistration() from e
        except StoreError as e:
            logger.exception("Updating registration %s failed", registration_id)
            raise StoreError("Failed to update registration!") from e
        if result.modified_count == 0:
            raise NotFound("Registration not found")
        return {"success": True, "message": "Registration updated successfully!"}

    @classmethod
    async def find_count_drift(cls, store: DocumentStore) -> Tuple[int, List[Dict[str, Any]]]:
        """Compare every marathon's cached count with its registrations.

        Returns the number of marathons checked and one entry
        (``_id``, ``title``, ``stored``, ``actual``) per marathon whose
        count is off.
        """
        counts = Counter(
            normalize_object_id(r.get("marathonId")) or str(r.get("marathonId"))
            for r in store.find(REGISTRATIONS)
        )
        marathons = store.find(MARATHONS)
        drift = []
        for marathon in marathons:
            actual = counts.get(marathon["_id"], 0)
            stored = marathon.get(COUNT_FIELD)
            if stored != actual:
                drift.append(
                    {"_id": marathon["_id"], "title": marathon.get("title"), "stored": stored, "actual": actual}
                )
        return len(marathons), drift

    @classmethod
    async def reconcile_counts(cls, store: DocumentStore) -> Dict[str, int]:
        """Recompute every marathon's count from its registrations.

        Idempotent: marathons whose count is already right are left
        alone.  Returns how many marathons were checked and repaired.
        """
        checked, drift = await cls.find_count_drift(store)
        for entry in drift:
            store.update_one(MARATHONS, {"_id": entry["_id"]}, {"$set": {COUNT_FIELD: entry["actual"]}})
            logger.warning("Marathon %s count repaired: %s -> %s", entry["_id"], entry["stored"], entry["actual"])
        logger.info("Reconciled %s marathons, %s repaired", checked, len(drift))
        return {"checked": checked, "repaired": len(drift)}
