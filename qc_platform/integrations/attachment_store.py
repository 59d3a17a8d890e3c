"""
Attachment Store gateway.

Byte storage for inspection photos, videos and documents sits outside the
core's transactional boundary.  The Instance Manager only records the
returned reference after ``upload`` succeeded, and only forgets a reference
after its own commit.

Two implementations:
  - LocalAttachmentStore:  files under a root directory (dev / single node)
  - HttpAttachmentStore:   remote object service over HTTP via ``requests``
                           (retry with backoff, per-call timeout)

All failures surface as ExternalServiceError.

Testability: pass a mock ``session`` to HttpAttachmentStore() in tests instead
of letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

import requests
from werkzeug.utils import secure_filename

from qc_platform.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]

_DEFAULT_TIMEOUT = 30


@dataclass(frozen=True)
class AttachmentRef:
    """What the store hands back after a successful upload."""

    storage_path: str
    filename: str
    size_bytes: int
    content_type: str | None = None


class AttachmentStore(ABC):
    """External byte storage."""

    @abstractmethod
    def upload(self, data: bytes, metadata: dict) -> AttachmentRef:
        """Store ``data``; ``metadata`` carries at least ``filename``."""
        ...

    @abstractmethod
    def delete(self, storage_path: str) -> None:
        ...


class LocalAttachmentStore(AttachmentStore):
    """Filesystem-backed store; paths are relative to ``root``."""

    def __init__(self, root: str):
        self.root = root

    def upload(self, data: bytes, metadata: dict) -> AttachmentRef:
        filename = secure_filename(metadata.get("filename") or "") or "upload.bin"
        folder = str(metadata.get("instance_id") or "unassigned")
        relative = os.path.join(folder, f"{uuid.uuid4().hex[:12]}_{filename}")
        target = os.path.join(self.root, relative)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as fh:
                fh.write(data)
        except OSError as exc:
            logger.error("Local attachment upload failed path=%s: %s", target, exc)
            raise ExternalServiceError("attachment_store", str(exc)) from exc

        logger.info("Stored attachment %s (%d bytes)", relative, len(data))
        return AttachmentRef(
            storage_path=relative,
            filename=filename,
            size_bytes=len(data),
            content_type=metadata.get("content_type"),
        )

    def delete(self, storage_path: str) -> None:
        target = os.path.join(self.root, storage_path)
        try:
            os.remove(target)
        except FileNotFoundError:
            logger.warning("Attachment already absent: %s", storage_path)
        except OSError as exc:
            raise ExternalServiceError("attachment_store", str(exc)) from exc


class HttpAttachmentStore(AttachmentStore):
    """Remote object store.

    Expected endpoints:
        POST   {base_url}/objects          multipart "file" → {"path": ..., "size": ...}
        DELETE {base_url}/objects/{path}
    """

    def __init__(self, base_url: str, api_key: str | None = None,
                 session: requests.Session | None = None, timeout: int = _DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    def _request_with_retry(self, method: str, url: str, **kwargs) -> requests.Response:
        last_error = None
        for attempt in range(_RETRY_MAX + 1):
            try:
                resp = self.session.request(
                    method, url, headers=self._headers(), timeout=self.timeout, **kwargs,
                )
                if resp.status_code < 500:
                    return resp
                last_error = f"HTTP {resp.status_code}"
            except requests.RequestException as exc:
                last_error = str(exc)
            if attempt < _RETRY_MAX:
                sleep_s = _RETRY_BACKOFF_SECONDS[attempt]
                logger.warning(
                    "Attachment store %s %s failed (attempt %d): %s, retrying in %ds",
                    method, url, attempt + 1, last_error, sleep_s,
                )
                time.sleep(sleep_s)
        raise ExternalServiceError("attachment_store", last_error or "request failed")

    def upload(self, data: bytes, metadata: dict) -> AttachmentRef:
        filename = secure_filename(metadata.get("filename") or "") or "upload.bin"
        resp = self._request_with_retry(
            "POST",
            f"{self.base_url}/objects",
            files={"file": (filename, data, metadata.get("content_type") or "application/octet-stream")},
            data={k: str(v) for k, v in metadata.items() if k not in ("filename", "content_type")},
        )
        if not resp.ok:
            raise ExternalServiceError("attachment_store", f"upload rejected: HTTP {resp.status_code}")
        body = resp.json()
        path = body.get("path")
        if not path:
            raise ExternalServiceError("attachment_store", "upload response missing 'path'")
        return AttachmentRef(
            storage_path=path,
            filename=filename,
            size_bytes=int(body.get("size", len(data))),
            content_type=metadata.get("content_type"),
        )

    def delete(self, storage_path: str) -> None:
        resp = self._request_with_retry("DELETE", f"{self.base_url}/objects/{storage_path}")
        if resp.status_code == 404:
            logger.warning("Attachment already absent in remote store: %s", storage_path)
            return
        if not resp.ok:
            raise ExternalServiceError("attachment_store", f"delete rejected: HTTP {resp.status_code}")


def build_attachment_store(config) -> AttachmentStore:
    """Pick the store implementation from app config."""
    url = config.get("ATTACHMENT_STORE_URL")
    if url:
        return HttpAttachmentStore(
            url,
            api_key=config.get("ATTACHMENT_STORE_API_KEY"),
            timeout=config.get("ATTACHMENT_STORE_TIMEOUT", _DEFAULT_TIMEOUT),
        )
    return LocalAttachmentStore(config.get("ATTACHMENT_STORE_ROOT", "uploads"))
