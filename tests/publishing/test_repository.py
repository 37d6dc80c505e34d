"""Tests for ArtifactRepository against httpx.MockTransport."""
import base64
import json

import httpx
import pytest

from sitepress.services.generation.errors import PublishConflictError
from sitepress.services.publishing.repository import ArtifactRepository

PREFIX = "/repos/acme/sites"


class FakeGitHub:
    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len(PREFIX):]
        handler = self.routes.get((request.method, path))
        if handler is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if callable(handler):
            return handler(request)
        status, body = handler
        return httpx.Response(status, json=body)


def _repository(routes):
    github = FakeGitHub(routes)
    client = httpx.Client(base_url="https://api.github.test", transport=httpx.MockTransport(github))
    return ArtifactRepository(client=client), github


def test_get_file_decodes_content():
    content = base64.b64encode(b"<html></html>").decode()
    repository, github = _repository(
        {("GET", "/contents/projects/bakery/index.html"): (200, {"sha": "s1", "encoding": "base64", "content": content})}
    )
    file = repository.get_file("projects/bakery/index.html")
    assert file.sha == "s1"
    assert file.content == b"<html></html>"
    assert github.requests[0].url.params["ref"] == "master"


def test_missing_file_is_none():
    repository, _ = _repository({})
    assert repository.get_file("projects/nope/index.html") is None
    assert repository.get_text("templates/nope/index.html") is None


def test_get_text_requests_raw_body():
    def raw(request):
        assert request.headers["Accept"] == "application/vnd.github.raw+json"
        return httpx.Response(200, text="<html>raw</html>")

    repository, _ = _repository({("GET", "/contents/templates/restaurant/index.html"): raw})
    assert repository.get_text("templates/restaurant/index.html") == "<html>raw</html>"


def test_server_error_raises():
    repository, _ = _repository({("GET", "/contents/a.html"): (502, {"message": "bad gateway"})})
    with pytest.raises(httpx.HTTPStatusError):
        repository.get_file("a.html")


def _commit_routes(ref_status=200):
    blobs = iter(["blob-1", "blob-2"])
    return {
        ("GET", "/git/ref/heads/master"): (200, {"object": {"sha": "base"}}),
        ("GET", "/git/commits/base"): (200, {"tree": {"sha": "base-tree"}}),
        ("POST", "/git/blobs"): lambda request: httpx.Response(201, json={"sha": next(blobs)}),
        ("POST", "/git/trees"): (201, {"sha": "tree-1"}),
        ("POST", "/git/commits"): (201, {"sha": "commit-1"}),
        ("PATCH", "/git/refs/heads/master"): (ref_status, {"object": {"sha": "commit-1"}}),
    }


def test_create_files_commit_flow():
    repository, github = _repository(_commit_routes())

    sha = repository.create_files_commit(
        {"projects/bakery/index.html": "<html></html>", "projects/bakery/.owner-marker": "owner@example.com"},
        message="Add bakery project",
    )

    assert sha == "commit-1"
    tree = json.loads(next(r for r in github.requests if r.url.path.endswith("/git/trees")).content)
    assert tree["base_tree"] == "base-tree"
    assert [entry["sha"] for entry in tree["tree"]] == ["blob-1", "blob-2"]
    commit = json.loads(next(r for r in github.requests if r.url.path.endswith("/git/commits")).content)
    assert commit == {"message": "Add bakery project", "tree": "tree-1", "parents": ["base"]}
    ref = json.loads(github.requests[-1].content)
    assert ref == {"sha": "commit-1", "force": False}


def test_moved_branch_is_conflict():
    repository, _ = _repository(_commit_routes(ref_status=422))
    with pytest.raises(PublishConflictError):
        repository.create_files_commit({"a.html": "x"}, message="Add a project")


def test_update_file_sends_sha():
    def put(request):
        body = json.loads(request.content)
        assert body["sha"] == "old-sha"
        assert base64.b64decode(body["content"]) == b"<html>new</html>"
        return httpx.Response(200, json={"commit": {"sha": "commit-2"}})

    repository, _ = _repository({("PUT", "/contents/projects/bakery/index.html"): put})
    sha = repository.update_file("projects/bakery/index.html", "<html>new</html>", "old-sha", "Update bakery project")
    assert sha == "commit-2"


def test_update_file_conflict():
    repository, _ = _repository({("PUT", "/contents/a.html"): (409, {"message": "sha mismatch"})})
    with pytest.raises(PublishConflictError):
        repository.update_file("a.html", "x", "stale", "Update a project")
