"""GitHub-backed storage for published updates.

Each update lives in its own directory ``<update_id>/`` on one branch of a
repository: ``manifest.json`` plus the config files at their relative paths.
Publishing writes the whole directory as a single commit through the git data
API, so readers never observe a half-published update.
"""

import base64
import logging
from typing import Optional, Protocol, Sequence, Tuple
from urllib.parse import quote

import requests

from .config import API_TIMEOUT, GITHUB_API, MANIFEST_FILE_NAME, UPDATE_BRANCH, USER_AGENT
from .errors import TransportError
from .models import ConfigFile, Manifest, normalize_relative_path

logger = logging.getLogger(__name__)


class UpdateStore(Protocol):
    def fetch_manifest(self, update_id: str) -> Manifest:
        ...

    def fetch_config_file(self, update_id: str, relative_path: str) -> ConfigFile:
        ...

    def commit_update(
        self,
        update_id: str,
        manifest: Manifest,
        config_files: Sequence[ConfigFile],
        message: Optional[str] = None,
    ) -> str:
        ...


def parse_repo(repo: str) -> Tuple[str, str]:
    owner, _, name = repo.strip().partition("/")
    if not owner or not name or "/" in name:
        raise ValueError(f"Invalid repo format {repo!r}; expected 'owner/name'")
    return owner, name


class GithubUpdateStore:
    def __init__(
        self,
        repo: str,
        token: Optional[str] = None,
        branch: str = UPDATE_BRANCH,
        session: Optional[requests.Session] = None,
        api_base: str = GITHUB_API,
    ) -> None:
        self.owner, self.name = parse_repo(repo)
        self.branch = branch
        self.api_base = api_base.rstrip("/")
        self.session = session or requests.Session()
        self.headers = {"User-Agent": USER_AGENT, "Accept": "application/vnd.github+json"}
        if token:
            self.headers["Authorization"] = f"token {token}"

    @property
    def repo_url(self) -> str:
        return f"{self.api_base}/repos/{self.owner}/{self.name}"

    def _request(self, method: str, path: str, expected: Tuple[int, ...] = (200,), **kwargs) -> requests.Response:
        url = f"{self.repo_url}/{path}"
        headers = dict(self.headers)
        headers.update(kwargs.pop("headers", {}))
        try:
            response = self.session.request(method, url, headers=headers, timeout=API_TIMEOUT, **kwargs)
        except requests.RequestException as exc:
            raise TransportError(url, reason=str(exc)) from exc
        if response.status_code not in expected:
            raise TransportError(url, status=response.status_code, body=response.text or "")
        return response

    def _raw(self, update_id: str, relative_path: str) -> bytes:
        path = quote(f"{update_id}/{relative_path}")
        response = self._request(
            "GET",
            f"contents/{path}",
            params={"ref": self.branch},
            headers={"Accept": "application/vnd.github.raw"},
        )
        return response.content

    # ───────────────────────────────
    # Reading an update
    # ───────────────────────────────
    def fetch_manifest(self, update_id: str) -> Manifest:
        logger.info("Fetching manifest for update %s", update_id)
        data = self._raw(update_id, MANIFEST_FILE_NAME)
        return Manifest.from_json(data.decode("utf-8"))

    def fetch_config_file(self, update_id: str, relative_path: str) -> ConfigFile:
        relative_path = normalize_relative_path(relative_path)
        return ConfigFile(relative_path=relative_path, content=self._raw(update_id, relative_path))

    def fetch_config_files(self, update_id: str, manifest: Manifest) -> list[ConfigFile]:
        return [self.fetch_config_file(update_id, ref.relative_path) for ref in manifest.config_files]

    def fetch_update(self, update_id: str) -> Tuple[Manifest, list[ConfigFile]]:
        manifest = self.fetch_manifest(update_id)
        return manifest, self.fetch_config_files(update_id, manifest)

    # ───────────────────────────────
    # Publishing an update
    # ───────────────────────────────
    def _create_blob(self, content: bytes) -> str:
        payload = {"content": base64.b64encode(content).decode("ascii"), "encoding": "base64"}
        return self._request("POST", "git/blobs", expected=(201,), json=payload).json()["sha"]

    def commit_update(
        self,
        update_id: str,
        manifest: Manifest,
        config_files: Sequence[ConfigFile],
        message: Optional[str] = None,
    ) -> str:
        """Publish ``manifest`` and ``config_files`` under ``update_id`` as one commit.

        The branch ref is only moved by the last request; if any earlier step
        fails the branch still points at its previous head.
        """
        head_sha = self._request("GET", f"git/ref/heads/{self.branch}").json()["object"]["sha"]
        base_tree = self._request("GET", f"git/commits/{head_sha}").json()["tree"]["sha"]

        files = [(MANIFEST_FILE_NAME, manifest.to_json().encode("utf-8"))]
        files.extend((config.relative_path, config.content) for config in config_files)
        entries = []
        for relative_path, content in files:
            entries.append(
                {
                    "path": f"{update_id}/{relative_path}",
                    "mode": "100644",
                    "type": "blob",
                    "sha": self._create_blob(content),
                }
            )

        tree_sha = self._request(
            "POST", "git/trees", expected=(201,), json={"base_tree": base_tree, "tree": entries}
        ).json()["sha"]
        commit_sha = self._request(
            "POST",
            "git/commits",
            expected=(201,),
            json={
                "message": message or f"Upload update {update_id}",
                "tree": tree_sha,
                "parents": [head_sha],
            },
        ).json()["sha"]
        self._request("PATCH", f"git/refs/heads/{self.branch}", json={"sha": commit_sha, "force": False})
        logger.info("Published update %s as commit %s (%d file(s))", update_id, commit_sha, len(entries))
        return commit_sha
