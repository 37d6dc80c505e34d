"""
Artifact repository client (GitHub REST v3) using httpx sync client.
Holds templates under templates/{id}/ and published sites under projects/{name}/.
"""
import base64
import logging
from dataclasses import dataclass

import httpx

from sitepress.core.config import settings
from sitepress.services.generation.errors import PublishConflictError

logger = logging.getLogger(__name__)

_CONFLICT_STATUSES = (409, 422)


@dataclass(frozen=True)
class RepoFile:
    path: str
    sha: str
    content: bytes


class ArtifactRepository:
    """
    Sync GitHub client for Celery workers.
    Pass `client` (e.g. httpx.Client(transport=httpx.MockTransport(...))) in tests.
    """

    def __init__(self, client: httpx.Client | None = None) -> None:
        self.owner = settings.github_owner
        self.repo = settings.github_repo
        self.branch = settings.github_branch
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=settings.github_api_url,
                timeout=settings.github_timeout,
                headers={
                    "Authorization": f"Bearer {settings.github_token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
            )
        return self._client

    def _url(self, suffix: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/{suffix}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_file(self, path: str) -> RepoFile | None:
        """File at the branch head, or None if it does not exist."""
        resp = self.client.get(self._url(f"contents/{path}"), params={"ref": self.branch})
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        data = resp.json()
        content = base64.b64decode(data.get("content") or "") if data.get("encoding") == "base64" else b""
        return RepoFile(path=path, sha=data["sha"], content=content)

    def get_text(self, path: str) -> str | None:
        """Raw file body as text (no 1 MB contents-API limit), or None if absent."""
        resp = self.client.get(
            self._url(f"contents/{path}"),
            params={"ref": self.branch},
            headers={"Accept": "application/vnd.github.raw+json"},
        )
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.text

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_files_commit(self, files: dict[str, str], message: str) -> str:
        """
        Commit several new files atomically via the git data API:
        ref -> base commit -> blobs -> tree -> commit -> fast-forward ref.
        Returns the new commit SHA.
        """
        ref_path = f"git/ref/heads/{self.branch}"
        resp = self.client.get(self._url(ref_path))
        resp.raise_for_status()
        base_sha = resp.json()["object"]["sha"]

        resp = self.client.get(self._url(f"git/commits/{base_sha}"))
        resp.raise_for_status()
        base_tree = resp.json()["tree"]["sha"]

        tree_entries = []
        for path, text in files.items():
            resp = self.client.post(
                self._url("git/blobs"),
                json={"content": base64.b64encode(text.encode("utf-8")).decode("ascii"), "encoding": "base64"},
            )
            resp.raise_for_status()
            tree_entries.append({"path": path, "mode": "100644", "type": "blob", "sha": resp.json()["sha"]})

        resp = self.client.post(self._url("git/trees"), json={"base_tree": base_tree, "tree": tree_entries})
        resp.raise_for_status()
        tree_sha = resp.json()["sha"]

        resp = self.client.post(
            self._url("git/commits"),
            json={"message": message, "tree": tree_sha, "parents": [base_sha]},
        )
        resp.raise_for_status()
        commit_sha = resp.json()["sha"]

        resp = self.client.patch(
            self._url(f"git/refs/heads/{self.branch}"),
            json={"sha": commit_sha, "force": False},
        )
        if resp.status_code in _CONFLICT_STATUSES:
            raise PublishConflictError(
                f"Branch {self.branch} moved during commit",
                detail={"status_code": resp.status_code},
            )
        resp.raise_for_status()
        logger.info("repository_commit_created", extra={"commit_sha": commit_sha, "key": ",".join(files)})
        return commit_sha

    def update_file(self, path: str, text: str, sha: str, message: str) -> str:
        """Replace an existing file; `sha` is the blob the caller read. Returns the commit SHA."""
        resp = self.client.put(
            self._url(f"contents/{path}"),
            json={
                "message": message,
                "content": base64.b64encode(text.encode("utf-8")).decode("ascii"),
                "sha": sha,
                "branch": self.branch,
            },
        )
        if resp.status_code in _CONFLICT_STATUSES:
            raise PublishConflictError(
                f"{path} changed since it was read",
                detail={"status_code": resp.status_code, "path": path},
            )
        resp.raise_for_status()
        commit_sha = resp.json()["commit"]["sha"]
        logger.info("repository_file_updated", extra={"commit_sha": commit_sha, "key": path})
        return commit_sha
