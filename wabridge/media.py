"""
Media Fetcher and local media store.

The fetcher downloads provider media by opaque id through the Graph API and
stores it under MEDIA_ROOT. It never retries: any non-success status,
transport error or timeout is reported as None and the message is stored
without media.
"""

import logging
import os
import time
from pathlib import Path
from typing import Optional, Protocol

import httpx
from pydantic import BaseModel

from wabridge.notifications import MediaReference

logger = logging.getLogger(__name__)

MEDIA_DIR = "files/temp"


class StoredMedia(BaseModel):
    """A media file written to the local store."""
    path: str
    kind: str
    mime_type: str
    filename: str


class MediaFetcher(Protocol):
    def fetch(self, media: MediaReference) -> Optional[StoredMedia]:
        """Return the stored media, or None when it could not be downloaded."""
        ...


class LocalMediaStore:
    """Write-once blob storage addressed by relative path."""

    def __init__(self, root: str) -> None:
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        return self.root / path

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def put(self, path: str, data: bytes) -> bool:
        """Write bytes at path. Returns False if the path already holds a file."""
        target = self._resolve(path)
        if target.is_file():
            return False
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return True


def media_path(media: MediaReference) -> str:
    # basename keeps provider-supplied filenames inside MEDIA_DIR
    return f"{MEDIA_DIR}/{os.path.basename(media.resolved_filename())}"


class GraphMediaFetcher:
    """
    Downloads WhatsApp Business media.

    Two calls: resolve the media id to a short-lived URL, then download it.
    Both use the access token. MEDIA_FETCH_TIMEOUT bounds the whole fetch.
    """

    def __init__(
        self,
        store: LocalMediaStore,
        access_token: str,
        graph_url: str = "https://graph.facebook.com",
        graph_version: str = "v20.0",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.store = store
        self.access_token = access_token
        self.graph_url = graph_url.rstrip("/")
        self.graph_version = graph_version
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def media_url(self, media_id: str) -> str:
        return f"{self.graph_url}/{self.graph_version}/{media_id}"

    def _stored(self, media: MediaReference, path: str) -> StoredMedia:
        return StoredMedia(
            path=path,
            kind=media.kind,
            mime_type=media.mime_type,
            filename=os.path.basename(path),
        )

    def fetch(self, media: MediaReference) -> Optional[StoredMedia]:
        path = media_path(media)
        if self.store.exists(path):
            logger.debug(f"Media already stored: {path}")
            return self._stored(media, path)

        # httpx timeouts apply per read, so the whole fetch gets its own deadline
        deadline = time.monotonic() + self.timeout
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                meta = client.get(self.media_url(media.media_id), headers=self._headers())
                if meta.status_code != 200:
                    logger.warning(f"Media lookup failed for {media.media_id}: HTTP {meta.status_code}")
                    return None

                body = meta.json()
                url = body.get("url") if isinstance(body, dict) else None
                if not url:
                    logger.warning(f"Media lookup for {media.media_id} returned no url")
                    return None

                chunks = []
                with client.stream("GET", url, headers=self._headers()) as download:
                    if download.status_code != 200:
                        logger.warning(f"Media download failed for {media.media_id}: HTTP {download.status_code}")
                        return None
                    for chunk in download.iter_bytes():
                        if time.monotonic() > deadline:
                            logger.warning(f"Media download for {media.media_id} exceeded {self.timeout}s")
                            return None
                        chunks.append(chunk)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Media fetch error for {media.media_id}: {e!r}")
            return None

        self.store.put(path, b"".join(chunks))
        logger.info(f"Media stored: {path}")
        return self._stored(media, path)
