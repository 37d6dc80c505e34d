"""Tests for TemplateCache with an in-memory repository."""
import pytest

from sitepress.services.generation.errors import TemplateNotFoundError
from sitepress.services.templates.cache import TemplateCache


class FakeRepository:
    def __init__(self, files):
        self.files = files
        self.reads = []

    def get_text(self, path):
        self.reads.append(path)
        return self.files.get(path)


@pytest.fixture
def repository():
    return FakeRepository(
        {
            "templates/restaurant/index.html": "<html><body>hi</body></html>",
            "templates/restaurant/langs/en.json": '{"headline": "Welcome"}',
            "templates/broken/index.html": "<html></html>",
            "templates/broken/langs/en.json": "{not json",
        }
    )


def test_template_loaded_once(repository):
    cache = TemplateCache(repository)
    assert cache.get_template("restaurant") == "<html><body>hi</body></html>"
    assert cache.get_template("restaurant") == "<html><body>hi</body></html>"
    assert repository.reads.count("templates/restaurant/index.html") == 1
    assert cache.stats() == {"hits": 1, "misses": 1, "entries": 1}


def test_missing_template_raises(repository):
    with pytest.raises(TemplateNotFoundError):
        TemplateCache(repository).get_template("nope")


def test_langs_parsed(repository):
    assert TemplateCache(repository).get_langs("restaurant") == {"headline": "Welcome"}


def test_missing_or_invalid_json_is_empty(repository):
    cache = TemplateCache(repository)
    assert cache.get_base_images("restaurant") == {}
    assert cache.get_langs("broken") == {}
    cache.get_langs("broken")
    assert repository.reads.count("templates/broken/langs/en.json") == 1
