# src/ekko_server/infra/github_store.py
"""
GitHub contents API adapter.

Every shard is one file under `{data_dir}/` in a repository branch; the blob
`sha` GitHub returns is the version token. GitHub rejects a PUT whose `sha`
is not the file's current sha (409), or which omits `sha` for an existing
file (422 naming the sha), which gives us single-file compare-and-swap.
Any other 422 is a rejected request and surfaces as UpstreamUnavailable.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional

import httpx

from ekko_server.errors import BlobNotFound, ConflictError, UpstreamUnavailable
from ekko_server.ports.storage import Blob, BlobStorePort

logger = logging.getLogger(__name__)


class GitHubBlobStore(BlobStorePort):
    def __init__(
        self,
        user: str,
        repo: str,
        token: str,
        branch: str = "main",
        data_dir: str = "data",
        api: str = "https://api.github.com",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.branch = branch
        self.data_dir = data_dir.strip("/")
        self._http = httpx.Client(
            base_url=f"{api.rstrip('/')}/repos/{user}/{repo}/contents",
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def _path(self, name: str) -> str:
        return f"/{self.data_dir}/{name}" if self.data_dir else f"/{name}"

    def _request(self, method: str, name: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._http.request(method, self._path(name), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("GitHub %s %s failed: %s", method, name, exc.__class__.__name__)
            raise UpstreamUnavailable(f"{method} {name} failed", {"name": name}) from exc

    # --- Port methods ---
    def get(self, name: str) -> Blob:
        resp = self._request("GET", name, params={"ref": self.branch})
        if resp.status_code == 404:
            raise BlobNotFound(f"{name} not found", {"name": name})
        if resp.status_code != 200:
            raise UpstreamUnavailable(
                f"GET {name} returned {resp.status_code}",
                {"name": name, "status": resp.status_code},
            )
        try:
            body = resp.json()
            content = base64.b64decode(body["content"])
            version = body["sha"]
        except (ValueError, KeyError, TypeError) as exc:
            raise UpstreamUnavailable(f"GET {name} returned an unexpected body", {"name": name}) from exc
        return Blob(content=content, version=version)

    def put(self, name: str, content: bytes, version: Optional[str], message: str) -> str:
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        if version is not None:
            body["sha"] = version

        resp = self._request("PUT", name, json=body)
        if self._is_conflict(resp, version):
            raise ConflictError(f"{name} version mismatch", {"name": name})
        if resp.status_code not in (200, 201):
            logger.warning("GitHub PUT %s returned %s", name, resp.status_code)
            raise UpstreamUnavailable(
                f"PUT {name} returned {resp.status_code}",
                {"name": name, "status": resp.status_code},
            )
        try:
            return resp.json()["content"]["sha"]
        except (ValueError, KeyError, TypeError) as exc:
            raise UpstreamUnavailable(f"PUT {name} returned an unexpected body", {"name": name}) from exc

    @staticmethod
    def _is_conflict(resp: httpx.Response, version: Optional[str]) -> bool:
        if resp.status_code == 409:
            return True
        if resp.status_code != 422 or version is not None:
            return False
        # 422 is also used for plain validation failures; only a missing sha
        # for a file that already exists is a version conflict
        try:
            message = str(resp.json().get("message", ""))
        except (ValueError, AttributeError):
            return False
        return "sha" in message.lower()
