"""Tests for IdempotencyStore on fake Redis."""
import json

import pytest

from sitepress.services.idempotency import IdempotencyStore, derive_key


@pytest.fixture
def store(redis_client):
    return IdempotencyStore(client=redis_client)


def test_derive_key_is_stable_and_scoped():
    key = derive_key("stripe", "checkout.session.completed", "cs_1")
    assert key == derive_key("stripe", "checkout.session.completed", "cs_1")
    assert key != derive_key("stripe", "charge.failed", "cs_1")
    assert len(key) == 64


def test_check_and_set_claims_once(store):
    assert store.check_and_set("k") is True
    assert store.check_and_set("k") is False


def test_check_and_set_applies_ttl(store, redis_client):
    store.check_and_set("k", ttl_seconds=60)
    assert 0 < redis_client.ttl("idempotency:k") <= 60
    record = json.loads(redis_client.get("idempotency:k"))
    assert "expiresAt" in record


def test_pending_claim_has_no_result(store):
    store.check_and_set("k")
    assert store.get_result("k") is None


def test_store_and_get_result(store):
    store.check_and_set("k")
    store.store_result("k", {"operationId": "op-1"})
    assert store.get_result("k") == {"operationId": "op-1"}


def test_release_allows_retry(store):
    store.check_and_set("k")
    store.release("k")
    assert store.check_and_set("k") is True


def test_run_once_executes_once(store):
    calls = []

    def action():
        calls.append(1)
        return "sent"

    assert store.run_once("k", action) == (True, "sent")
    assert store.run_once("k", action) == (False, "sent")
    assert len(calls) == 1


def test_run_once_releases_on_failure(store):
    def failing():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.run_once("k", failing)
    assert store.run_once("k", lambda: "ok") == (True, "ok")


def test_corrupt_record_reads_as_none(store, redis_client):
    redis_client.set("idempotency:k", "not json")
    assert store.get_result("k") is None
