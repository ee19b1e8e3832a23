"""
core/blobstore.py -- Image hosting client (the Blob Store).

ImgbbBlobStore.upload(data) posts the bytes (base64-encoded form field) to the
ImgBB upload API and returns the public URL from the response. Any transport
error, non-2xx status, or response without data.url raises BlobStoreError --
callers treat that as terminal for the request.

A requests.Session is held per instance for connection pooling.
max_redirects=3 replaces the requests default of 30 -- ImgBB is a known
public API and never needs a long redirect chain.

Layer rule: core/ is the kernel. No imports from api/, auth/, or media/.
"""

from __future__ import annotations

import base64
import logging

import requests

logger = logging.getLogger("memberdesk.blobstore")

IMGBB_UPLOAD_URL = "https://api.imgbb.com/1/upload"


class BlobStoreError(Exception):
    """Upload failed or the host returned no URL."""


class ImgbbBlobStore:
    def __init__(self, api_key: str, session: requests.Session | None = None, timeout: float = 30.0) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    def upload(self, data: bytes) -> str:
        """Upload raw image bytes and return the hosted URL."""
        if not self.api_key:
            raise BlobStoreError("Image hosting is not configured (IMGBB_API_KEY is empty).")
        try:
            resp = self._session.post(
                IMGBB_UPLOAD_URL,
                params={"key": self.api_key},
                data={"image": base64.b64encode(data).decode("ascii")},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("ImgBB upload failed: %s", exc)
            raise BlobStoreError("Failed to upload image.") from exc

        url = (payload.get("data") or {}).get("url") if isinstance(payload, dict) else None
        if not url:
            logger.error("ImgBB response missing data.url: %r", payload)
            raise BlobStoreError("Image host returned no URL.")
        logger.info("Image uploaded: %s", url)
        return url

    def close(self) -> None:
        self._session.close()
