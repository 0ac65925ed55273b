"""
GitHub Gist transport over httpx.

Maps the blob contract onto the Gists REST API:

- create_blob -> POST   /gists
- read_blob   -> GET    /gists/{id}
- update_blob -> PATCH  /gists/{id}   (a part set to None is deleted)
- delete_blob -> DELETE /gists/{id}

Reads are lenient: any failure is logged and reported as a missing blob.
Writes raise TransportError.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from gistdb.core.contracts import GITHUB_API_URL, Blob
from gistdb.core.errors import TransportError
from gistdb.transport.base import BlobTransport

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"


class GistTransport(BlobTransport):
    """BlobTransport backed by the GitHub Gists API."""

    def __init__(
        self,
        token: str,
        api_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the transport.

        Args:
            token: GitHub token with the gist scope
            api_url: API root
            timeout: Per-request timeout in seconds
            client: Pre-built client (tests inject one with a MockTransport)
        """
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if client is None:
            client = httpx.Client(base_url=api_url, timeout=timeout)
        client.headers.update(headers)
        self._client = client

    def close(self):
        self._client.close()

    def create_blob(
        self,
        parts: Dict[str, str],
        public: bool = False,
        description: Optional[str] = None,
    ) -> Blob:
        payload: Dict[str, Any] = {
            "public": public,
            "files": {name: {"content": content} for name, content in parts.items()},
        }
        if description is not None:
            payload["description"] = description
        data = self._write("POST", "/gists", payload)
        logger.debug("gist.created id=%s files=%d", data.get("id"), len(parts))
        return self._to_blob(data)

    def read_blob(self, blob_id: str) -> Optional[Blob]:
        try:
            res = self._client.get(f"/gists/{blob_id}")
        except httpx.RequestError as e:
            logger.warning("gist.read_error id=%s err=%s", blob_id, e)
            return None

        if res.status_code != 200:
            if res.status_code != 404:
                logger.warning("gist.read_failed id=%s status=%d", blob_id, res.status_code)
            return None

        try:
            data = res.json()
        except ValueError:
            logger.warning("gist.read_bad_json id=%s", blob_id)
            return None
        return self._to_blob(data)

    def update_blob(
        self,
        blob_id: str,
        parts: Dict[str, Optional[str]],
        description: Optional[str] = None,
    ) -> Blob:
        files = {
            name: (None if content is None else {"content": content})
            for name, content in parts.items()
        }
        payload: Dict[str, Any] = {"files": files}
        if description is not None:
            payload["description"] = description
        return self._to_blob(self._write("PATCH", f"/gists/{blob_id}", payload))

    def delete_blob(self, blob_id: str) -> bool:
        try:
            res = self._client.delete(f"/gists/{blob_id}")
        except httpx.RequestError as e:
            logger.warning("gist.delete_error id=%s err=%s", blob_id, e)
            return False

        if res.status_code in (204, 404):
            return True
        logger.warning("gist.delete_failed id=%s status=%d", blob_id, res.status_code)
        return False

    def _write(self, method: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            res = self._client.request(method, path, json=payload)
        except httpx.RequestError as e:
            logger.error("gist.request_error method=%s path=%s err=%s", method, path, e)
            raise TransportError(f"{method} {path} failed: {e}") from e

        if not res.is_success:
            logger.error("gist.bad_status method=%s path=%s status=%d", method, path, res.status_code)
            raise TransportError(
                f"{method} {path} returned {res.status_code}", status_code=res.status_code
            )

        try:
            return res.json()
        except ValueError as e:
            raise TransportError(f"{method} {path} returned invalid JSON", res.status_code) from e

    def _to_blob(self, data: Dict[str, Any]) -> Blob:
        parts: Dict[str, str] = {}
        for name, file in (data.get("files") or {}).items():
            if not file:
                continue
            content = file.get("content")
            if file.get("truncated") and file.get("raw_url"):
                content = self._fetch_raw(file["raw_url"])
            if content is not None:
                parts[name] = content
        return Blob(
            id=data["id"],
            url=data.get("html_url") or data.get("url", ""),
            parts=parts,
            description=data.get("description"),
        )

    def _fetch_raw(self, raw_url: str) -> Optional[str]:
        """Content of a file the API truncated (over ~1MB)."""
        try:
            res = self._client.get(raw_url)
        except httpx.RequestError as e:
            logger.warning("gist.raw_error url=%s err=%s", raw_url, e)
            return None
        if res.status_code != 200:
            logger.warning("gist.raw_failed url=%s status=%d", raw_url, res.status_code)
            return None
        return res.text
