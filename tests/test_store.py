import pytest

from ugc_reviews.store import ConditionFailed, WriteOp, conflict_retrying


def test_put_requires_absent_key_on_first_write(store):
    first = store.put("coupon#A", {"code": "A"})

    assert first.version == 1
    with pytest.raises(ConditionFailed) as exc:
        store.put("coupon#A", {"code": "A2"})
    assert exc.value.keys == ("coupon#A",)
    assert store.get("coupon#A").value == {"code": "A"}


def test_put_with_stale_version_is_rejected(store):
    store.put("review#1", {"status": "pending"})
    store.put("review#1", {"status": "approved"}, expected_version=1)

    with pytest.raises(ConditionFailed):
        store.put("review#1", {"status": "rejected"}, expected_version=1)

    item = store.get("review#1")
    assert item.version == 2
    assert item.value["status"] == "approved"


def test_transact_writes_nothing_when_any_condition_fails(store):
    store.put("coupon#TAKEN", {"code": "TAKEN"})
    store.put("review#1", {"status": "pending"})

    with pytest.raises(ConditionFailed) as exc:
        store.transact(
            [
                WriteOp("coupon#TAKEN", {"code": "TAKEN"}),
                WriteOp("review#1", {"status": "approved"}, expected_version=1),
            ]
        )

    assert exc.value.keys == ("coupon#TAKEN",)
    assert store.get("review#1").value == {"status": "pending"}


def test_returned_values_are_copies(store):
    store.put("review#1", {"image_urls": ["a"]})

    item = store.get("review#1")
    item.value["image_urls"].append("b")

    assert store.get("review#1").value == {"image_urls": ["a"]}


def test_scan_filters_by_prefix_in_key_order(store):
    store.put("review#b", {})
    store.put("coupon#x", {})
    store.put("review#a", {})

    assert [item.key for item in store.scan("review#")] == ["review#a", "review#b"]
    assert store.scan("nothing#") == []


def test_get_missing_key_returns_none(store):
    assert store.get("review#missing") is None


def test_conflict_retrying_retries_then_reraises():
    calls = []

    def always_conflicts():
        calls.append(1)
        raise ConditionFailed(["review#1"])

    with pytest.raises(ConditionFailed):
        for attempt in conflict_retrying(3):
            with attempt:
                always_conflicts()

    assert len(calls) == 3


def test_conflict_retrying_does_not_retry_other_errors():
    calls = []

    with pytest.raises(KeyError):
        for attempt in conflict_retrying(3):
            with attempt:
                calls.append(1)
                raise KeyError("boom")

    assert len(calls) == 1
