import asyncio

import pytest

from marathon_hub_api.app.core.db import DeleteResult
from marathon_hub_api.app.core.errors import (
    DuplicateRegistration,
    NotFound,
    RegistrationFailed,
    StoreError,
    ValidationError,
)
from marathon_hub_api.app.services.registration_service import RegistrationService
from tests.conftest import make_marathon


def run(coro):
    return asyncio.run(coro)


def count_of(store, marathon_id):
    # Reads through find() so tests that patch find_one still see real data.
    return store.find("marathons", {"_id": marathon_id})[0]["totalRegistrationCount"]


def register(store, marathon_id, email, **fields):
    payload = {"marathonId": marathon_id, "email": email, "title": "Spring Run", **fields}
    return run(RegistrationService.register(store, payload))


def test_register_creates_registration_and_increments_count(store):
    marathon_id = make_marathon(store)

    result = register(store, marathon_id, "a@x.com", firstName="Ann")

    assert result["success"] is True
    assert result["countUpdated"] is True
    assert result["updateResult"]["modifiedCount"] == 1
    registration = store.find_one("registrations", {"_id": result["result"]["insertedId"]})
    assert registration["email"] == "a@x.com"
    assert registration["firstName"] == "Ann"
    assert count_of(store, marathon_id) == 1


def test_second_registration_for_same_pair_is_rejected(store):
    marathon_id = make_marathon(store)
    register(store, marathon_id, "a@x.com")

    with pytest.raises(DuplicateRegistration):
        register(store, marathon_id, "a@x.com")

    assert count_of(store, marathon_id) == 1
    assert store.count_documents("registrations", {"marathonId": marathon_id}) == 1


def test_unique_index_catches_duplicate_that_passed_the_lookup(store, monkeypatch):
    marathon_id = make_marathon(store)
    register(store, marathon_id, "a@x.com")
    # Simulate a concurrent request that ran its lookup before the first insert.
    monkeypatch.setattr(store, "find_one", lambda *args, **kwargs: None)

    with pytest.raises(DuplicateRegistration):
        register(store, marathon_id, "a@x.com")

    assert count_of(store, marathon_id) == 1
    assert store.count_documents("registrations", {"marathonId": marathon_id}) == 1


def test_same_email_may_register_for_different_marathons(store):
    first = make_marathon(store)
    second = make_marathon(store, title="Fall Run")

    register(store, first, "a@x.com")
    register(store, second, "a@x.com")

    assert count_of(store, first) == 1
    assert count_of(store, second) == 1


@pytest.mark.parametrize("payload", [{"email": "a@x.com"}, {"marathonId": "0" * 24}, {}])
def test_register_requires_marathon_id_and_email(store, payload):
    with pytest.raises(ValidationError):
        run(RegistrationService.register(store, payload))
    assert store.count_documents("registrations") == 0


def test_register_for_unknown_marathon_keeps_registration(store):
    result = register(store, "f" * 24, "a@x.com")

    assert result["success"] is True
    assert result["countUpdated"] is False
    assert result["updateResult"]["matchedCount"] == 0
    assert store.count_documents("registrations") == 1


def test_register_store_failure_before_insert_leaves_no_state(store, monkeypatch):
    marathon_id = make_marathon(store)

    def broken(*args, **kwargs):
        raise StoreError("disk I/O error")

    monkeypatch.setattr(store, "find_one", broken)

    with pytest.raises(RegistrationFailed):
        register(store, marathon_id, "a@x.com")

    assert store.count_documents("registrations") == 0
    assert count_of(store, marathon_id) == 0


def test_register_increment_failure_keeps_registration(store, monkeypatch):
    marathon_id = make_marathon(store)

    def broken(*args, **kwargs):
        raise StoreError("database is locked")

    monkeypatch.setattr(store, "update_one", broken)

    with pytest.raises(RegistrationFailed):
        register(store, marathon_id, "a@x.com")

    # The insert committed; only the cached count lags until reconciled.
    assert store.count_documents("registrations", {"marathonId": marathon_id, "email": "a@x.com"}) == 1
    assert count_of(store, marathon_id) == 0


def test_unregister_decrement_failure_still_deletes(store, monkeypatch):
    marathon_id = make_marathon(store)
    registration_id = register(store, marathon_id, "a@x.com")["result"]["insertedId"]

    def broken(*args, **kwargs):
        raise StoreError("database is locked")

    monkeypatch.setattr(store, "update_one", broken)

    result = run(RegistrationService.unregister(store, registration_id))

    assert result == {
        "success": True,
        "message": "Registration deleted but marathon count not updated",
        "countUpdated": False,
    }
    assert store.count_documents("registrations") == 0
    assert count_of(store, marathon_id) == 1


def test_upper_case_marathon_id_counts_against_the_same_marathon(store):
    marathon_id = make_marathon(store)

    result = register(store, marathon_id.upper(), "a@x.com")

    assert result["countUpdated"] is True
    assert count_of(store, marathon_id) == 1
    stored = store.find_one("registrations", {"_id": result["result"]["insertedId"]})
    assert stored["marathonId"] == marathon_id
    with pytest.raises(DuplicateRegistration):
        register(store, marathon_id, "a@x.com")
    assert count_of(store, marathon_id) == 1

    unregistered = run(RegistrationService.unregister(store, result["result"]["insertedId"].upper()))

    assert unregistered["countUpdated"] is True
    assert count_of(store, marathon_id) == 0


def test_count_follows_sequential_registrations(store):
    marathon_id = make_marathon(store, totalRegistrationCount=2)
    ids = [
        register(store, marathon_id, f"runner{i}@x.com")["result"]["insertedId"]
        for i in range(3)
    ]
    assert count_of(store, marathon_id) == 5

    result = run(RegistrationService.unregister(store, ids[0]))

    assert result["message"] == "Registration deleted successfully!"
    assert result["countUpdated"] is True
    assert count_of(store, marathon_id) == 4
    assert store.find_one("registrations", {"_id": ids[0]}) is None


def test_unregister_unknown_id_is_not_found_and_changes_nothing(store):
    marathon_id = make_marathon(store)
    register(store, marathon_id, "a@x.com")
    before = (store.find("marathons"), store.find("registrations"))

    with pytest.raises(NotFound):
        run(RegistrationService.unregister(store, "a" * 24))

    assert (store.find("marathons"), store.find("registrations")) == before


def test_unregister_rejects_malformed_id(store):
    with pytest.raises(ValidationError):
        run(RegistrationService.unregister(store, "not-an-id"))


def test_unregister_losing_delete_race_is_not_found(store, monkeypatch):
    marathon_id = make_marathon(store)
    registration_id = register(store, marathon_id, "a@x.com")["result"]["insertedId"]
    monkeypatch.setattr(store, "delete_one", lambda *args, **kwargs: DeleteResult(deleted_count=0))

    with pytest.raises(NotFound):
        run(RegistrationService.unregister(store, registration_id))

    assert count_of(store, marathon_id) == 1


def test_unregister_when_marathon_is_gone_still_succeeds(store):
    marathon_id = make_marathon(store)
    registration_id = register(store, marathon_id, "a@x.com")["result"]["insertedId"]
    store.delete_one("marathons", {"_id": marathon_id})

    result = run(RegistrationService.unregister(store, registration_id))

    assert result["success"] is True
    assert result["countUpdated"] is False
    assert result["message"] == "Registration deleted but marathon count not updated"
    assert store.count_documents("registrations") == 0


def test_scenario_register_duplicate_unregister(store):
    marathon_id = make_marathon(store)

    registration_id = register(store, marathon_id, "a@x.com")["result"]["insertedId"]
    assert count_of(store, marathon_id) == 1

    with pytest.raises(DuplicateRegistration):
        register(store, marathon_id, "a@x.com")
    assert count_of(store, marathon_id) == 1

    run(RegistrationService.unregister(store, registration_id))
    assert count_of(store, marathon_id) == 0
    assert store.find_one("registrations", {"_id": registration_id}) is None


def test_search_filters_titles_case_insensitively(store):
    spring = make_marathon(store, title="Spring Run")
    fall = make_marathon(store, title="Fall Run")
    register(store, spring, "a@x.com", title="Spring Run")
    register(store, fall, "a@x.com", title="Fall Run")
    register(store, spring, "b@y.com", title="Spring Run")

    for term in ("Spring", "spring", "SPRING"):
        found = run(RegistrationService.list_by_email(store, "a@x.com", term))
        assert [r["title"] for r in found] == ["Spring Run"]

    everything = run(RegistrationService.list_by_email(store, "a@x.com"))
    assert sorted(r["title"] for r in everything) == ["Fall Run", "Spring Run"]


def test_search_term_is_matched_literally(store):
    marathon_id = make_marathon(store)
    register(store, marathon_id, "a@x.com", title="Spring Run")

    assert run(RegistrationService.list_by_email(store, "a@x.com", "R.n")) == []
    assert run(RegistrationService.list_by_email(store, "a@x.com", ".*")) == []


def test_update_registration_keeps_marathon_reference(store):
    marathon_id = make_marathon(store)
    other = make_marathon(store, title="Fall Run")
    registration_id = register(store, marathon_id, "a@x.com")["result"]["insertedId"]

    result = run(
        RegistrationService.update_registration(
            store, registration_id, {"marathonId": other, "contactNumber": "555-0100"}
        )
    )

    assert result["success"] is True
    registration = store.find_one("registrations", {"_id": registration_id})
    assert registration["marathonId"] == marathon_id
    assert registration["contactNumber"] == "555-0100"


def test_update_registration_without_changes_is_not_found(store):
    with pytest.raises(NotFound):
        run(RegistrationService.update_registration(store, "b" * 24, {"firstName": "Ann"}))


def test_update_registration_email_collision_is_duplicate(store):
    marathon_id = make_marathon(store)
    register(store, marathon_id, "a@x.com")
    second = register(store, marathon_id, "b@y.com")["result"]["insertedId"]

    with pytest.raises(DuplicateRegistration):
        run(RegistrationService.update_registration(store, second, {"email": "a@x.com"}))


def test_reconcile_counts_repairs_drift(store):
    accurate = make_marathon(store)
    drifted = make_marathon(store, title="Fall Run")
    register(store, accurate, "a@x.com")
    register(store, drifted, "a@x.com")
    register(store, drifted, "b@y.com")
    store.update_one("marathons", {"_id": drifted}, {"$inc": {"totalRegistrationCount": 3}})

    summary = run(RegistrationService.reconcile_counts(store))

    assert summary == {"checked": 2, "repaired": 1}
    assert count_of(store, accurate) == 1
    assert count_of(store, drifted) == 2
    assert run(RegistrationService.reconcile_counts(store)) == {"checked": 2, "repaired": 0}


def test_find_count_drift_reports_without_writing(store):
    accurate = make_marathon(store)
    drifted = make_marathon(store, title="Fall Run", totalRegistrationCount=3)
    register(store, accurate, "a@x.com")

    checked, drift = run(RegistrationService.find_count_drift(store))

    assert checked == 2
    assert drift == [{"_id": drifted, "title": "Fall Run", "stored": 3, "actual": 0}]
    assert count_of(store, drifted) == 3
