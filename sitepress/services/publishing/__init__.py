"""
Publishing (internal library): artifact repository, object store mirror, CDN.
"""
from sitepress.services.publishing.object_store import CdnInvalidator, ObjectStore
from sitepress.services.publishing.repository import ArtifactRepository, RepoFile
from sitepress.services.publishing.service import PublishResult, Publisher, site_url

__all__ = [
    "ArtifactRepository",
    "CdnInvalidator",
    "ObjectStore",
    "PublishResult",
    "Publisher",
    "RepoFile",
    "site_url",
]
