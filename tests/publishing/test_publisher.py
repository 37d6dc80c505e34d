"""Tests for Publisher: repository first, mirror second, CDN best-effort."""
from unittest.mock import MagicMock

import pybreaker
import pytest

from sitepress.services.circuit_breaker import RedisCircuitBreakerStorage, get_circuit_breaker
from sitepress.services.publishing import ObjectStore, Publisher
from sitepress.services.publishing.object_store import CdnInvalidator
from sitepress.services.publishing.repository import RepoFile


def _breaker():
    return get_circuit_breaker("cdn-test", storage=pybreaker.CircuitMemoryStorage(pybreaker.STATE_CLOSED))


def _publisher(existing=None, cdn=None):
    repository = MagicMock()
    repository.get_file.return_value = existing
    repository.create_files_commit.return_value = "commit-new"
    repository.update_file.return_value = "commit-upd"
    s3 = MagicMock()
    cdn = cdn or CdnInvalidator(client=MagicMock(), distribution_id="")
    publisher = Publisher(repository, ObjectStore(client=s3, bucket="sites"), cdn, _breaker())
    return publisher, repository, s3


def test_first_publish_commits_html_and_owner_marker():
    publisher, repository, s3 = _publisher()

    result = publisher.publish("bakery", "<html></html>", "owner@example.com")

    assert result.created is True
    assert result.commit_sha == "commit-new"
    assert result.url == "https://bakery.e-info.click"
    files = repository.create_files_commit.call_args.args[0]
    assert files == {
        "projects/bakery/index.html": "<html></html>",
        "projects/bakery/.owner-marker": "owner@example.com",
    }
    assert repository.create_files_commit.call_args.kwargs["message"] == "Add bakery project"
    kwargs = s3.put_object.call_args.kwargs
    assert kwargs["Key"] == "projects/bakery/index.html"
    assert kwargs["ContentType"].startswith("text/html")


def test_republish_updates_existing_file():
    publisher, repository, _ = _publisher(existing=RepoFile("projects/bakery/index.html", "sha-1", b"old"))

    result = publisher.publish("bakery", "<html>v2</html>", "owner@example.com")

    assert result.created is False
    repository.update_file.assert_called_once_with(
        "projects/bakery/index.html", "<html>v2</html>", "sha-1", message="Update bakery project"
    )
    repository.create_files_commit.assert_not_called()


def test_mirror_failure_propagates():
    publisher, _, s3 = _publisher()
    s3.put_object.side_effect = RuntimeError("S3 down")
    with pytest.raises(RuntimeError):
        publisher.publish("bakery", "<html></html>", "owner@example.com")


def test_cdn_invalidation_paths():
    cloudfront = MagicMock()
    cloudfront.create_invalidation.return_value = {"Invalidation": {"Id": "I1"}}
    publisher, _, _ = _publisher(cdn=CdnInvalidator(client=cloudfront, distribution_id="E123"))

    publisher.publish("bakery", "<html></html>", "owner@example.com")

    batch = cloudfront.create_invalidation.call_args.kwargs["InvalidationBatch"]
    assert cloudfront.create_invalidation.call_args.kwargs["DistributionId"] == "E123"
    assert batch["Paths"] == {"Quantity": 1, "Items": ["/projects/bakery/*"]}


def test_cdn_failure_does_not_fail_publish():
    cloudfront = MagicMock()
    cloudfront.create_invalidation.side_effect = RuntimeError("throttled")
    publisher, _, _ = _publisher(cdn=CdnInvalidator(client=cloudfront, distribution_id="E123"))

    result = publisher.publish("bakery", "<html></html>", "owner@example.com")

    assert result.commit_sha == "commit-new"


def test_disabled_cdn_is_not_called():
    cloudfront = MagicMock()
    publisher, _, _ = _publisher(cdn=CdnInvalidator(client=cloudfront, distribution_id=""))
    publisher.publish("bakery", "<html></html>", "owner@example.com")
    cloudfront.create_invalidation.assert_not_called()


def test_public_url():
    store = ObjectStore(client=MagicMock(), bucket="sites")
    assert store.public_url("projects/bakery/images/hero.png") == "/projects/bakery/images/hero.png"


def test_redis_breaker_storage_opens_after_failures(redis_client):
    storage = RedisCircuitBreakerStorage("cdn-redis", client=redis_client)
    breaker = get_circuit_breaker("cdn-redis", storage=storage)

    def failing():
        raise RuntimeError("down")

    for _ in range(breaker.fail_max - 1):
        with pytest.raises(RuntimeError):
            breaker.call(failing)
    with pytest.raises(pybreaker.CircuitBreakerError):
        breaker.call(failing)

    assert redis_client.get("cb:cdn-redis:state") == pybreaker.STATE_OPEN
    assert storage.opened_at is not None
    with pytest.raises(pybreaker.CircuitBreakerError):
        breaker.call(lambda: "ok")


def test_redis_breaker_storage_persists_success_counter(redis_client):
    storage = RedisCircuitBreakerStorage("cdn-success", client=redis_client)
    storage.increment_success_counter()
    storage.increment_success_counter()

    shared = RedisCircuitBreakerStorage("cdn-success", client=redis_client)
    assert shared.success_counter == 2

    shared.reset_success_counter()
    assert storage.success_counter == 0
