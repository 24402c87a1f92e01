# Overview: Parses receipt attachment references and resolves them to expiring signed URLs.

"""
Attachment Resolver

WHY: Waybill photos are stored in a blob store; receipts keep only
bucket-relative paths. Viewers need short-lived signed URLs.

INGESTION (parse once):
Receipts arrive with attachment references in one of these shapes:
- None                                   -> []
- "a/b.jpg"                              -> ["a/b.jpg"]
- ["a.jpg", "", None, "b.jpg"]           -> ["a.jpg", "b.jpg"]
- {"urls": [...]} / {"files": [...]} / {"paths": [...]}
Anything else is a ValidationError. The canonical ordered list is what the
receipt row stores; nothing downstream inspects shapes again.

RESOLUTION:
- Each path is signed independently on a bounded thread pool.
- A failure or timeout degrades that one attachment to "unavailable".
- Signed URLs expire; nothing is cached across calls.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Protocol
from urllib.parse import quote, unquote, urlsplit

import httpx
from flask import current_app

from ..time_utils import to_utc_z, utcnow
from .errors import AttachmentUnavailable, ValidationError


BLOB_STORE_EXTENSION_KEY = "stockledger.blob_store"

# Keys under which older clients wrapped the path list
WRAPPER_KEYS = ("urls", "files", "paths")

MAX_ATTACHMENTS = 20

STATUS_AVAILABLE = "available"
STATUS_UNAVAILABLE = "unavailable"


# =============================================================================
# PARSING
# =============================================================================

def _clean_entries(values: Iterable, *, bucket: str | None) -> list[str]:
    cleaned = []
    for value in values:
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValidationError("Attachment entries must be strings")
        path = extract_object_path(value, bucket) if bucket else value.strip()
        if path:
            cleaned.append(path)
    return cleaned


def parse_attachments(raw, *, bucket: str | None = None) -> list[str]:
    """
    Normalize a loosely-shaped attachment reference into an ordered path list.

    Order is preserved, empty/null entries are dropped. With a bucket name,
    full storage URLs are reduced to bucket-relative paths.
    """
    if raw is None:
        return []

    if isinstance(raw, str):
        return _clean_entries([raw], bucket=bucket)

    if isinstance(raw, (list, tuple)):
        paths = _clean_entries(raw, bucket=bucket)
    elif isinstance(raw, dict):
        key = next((k for k in WRAPPER_KEYS if k in raw), None)
        if key is None:
            raise ValidationError(
                f"Attachment object must wrap a list under one of: {', '.join(WRAPPER_KEYS)}"
            )
        inner = raw[key]
        if inner is None:
            return []
        if not isinstance(inner, (list, tuple)):
            raise ValidationError(f"Attachment '{key}' must be a list")
        paths = _clean_entries(inner, bucket=bucket)
    else:
        raise ValidationError("Attachments must be a path, a list of paths, or a wrapped list")

    if len(paths) > MAX_ATTACHMENTS:
        raise ValidationError(f"At most {MAX_ATTACHMENTS} attachments per receipt")
    return paths


def extract_object_path(value: str, bucket: str) -> str:
    """
    Turn a public or signed storage URL back into a bucket-relative path.

    Plain paths are returned trimmed. A leading "<bucket>/" is stripped.
    """
    s = (value or "").strip()
    if not s:
        return ""

    if not s.lower().startswith(("http://", "https://")):
        prefix = f"{bucket}/"
        if s.lower().startswith(prefix.lower()):
            return s[len(prefix):]
        return s

    path = unquote(urlsplit(s).path)
    marker = f"/{bucket}/".lower()
    idx = path.lower().find(marker)
    if idx >= 0:
        return path[idx + len(marker):]

    # URL from some other host/bucket: keep as given
    return s


# =============================================================================
# BLOB STORE COLLABORATORS
# =============================================================================

class BlobStore(Protocol):
    def sign(self, path: str, ttl_seconds: int) -> str: ...


class NullBlobStore:
    """Used when no storage is configured: every attachment is unavailable."""

    def sign(self, path: str, ttl_seconds: int) -> str:
        raise AttachmentUnavailable("Attachment storage is not configured")


class HttpBlobStore:
    """
    Storage-API style signer:

        POST {base_url}/object/sign/{bucket}/{path}  {"expiresIn": ttl}
        -> {"signedURL": "/object/sign/...?token=..."}
    """

    def __init__(
        self,
        base_url: str,
        bucket: str,
        *,
        api_key: str | None = None,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
            headers["apikey"] = api_key
        self.client = httpx.Client(timeout=timeout, headers=headers, transport=transport)

    def sign(self, path: str, ttl_seconds: int) -> str:
        url = f"{self.base_url}/object/sign/{quote(self.bucket)}/{quote(path)}"
        try:
            response = self.client.post(url, json={"expiresIn": int(ttl_seconds)})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AttachmentUnavailable(f"Signing failed for {path}: {exc}") from exc

        signed = payload.get("signedURL") or payload.get("signedUrl")
        if not signed:
            raise AttachmentUnavailable(f"Storage returned no signed URL for {path}")
        if signed.startswith("/"):
            return f"{self.base_url}{signed}"
        return signed

    def close(self) -> None:
        self.client.close()


def build_blob_store(config) -> BlobStore:
    base_url = config.get("ATTACHMENT_STORAGE_URL")
    if not base_url:
        return NullBlobStore()
    return HttpBlobStore(
        base_url,
        config.get("ATTACHMENT_BUCKET", "waybills"),
        api_key=config.get("ATTACHMENT_STORAGE_KEY"),
        timeout=float(config.get("ATTACHMENT_RESOLVE_TIMEOUT_SECONDS", 5)),
    )


def get_blob_store() -> BlobStore:
    return current_app.extensions[BLOB_STORE_EXTENSION_KEY]


# =============================================================================
# RESOLUTION
# =============================================================================

@dataclass
class ResolvedAttachment:
    path: str
    status: str
    url: str | None = None
    expires_at: datetime | None = None
    error: str | None = field(default=None)

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "status": self.status,
            "url": self.url,
            "expires_at": to_utc_z(self.expires_at),
            "error": self.error,
        }


def resolve_attachments(
    paths: list[str],
    blob_store: BlobStore,
    *,
    ttl_seconds: int = 3600,
    timeout: float = 5.0,
    max_workers: int = 4,
) -> list[ResolvedAttachment]:
    """
    Sign every path in parallel, keeping input order.

    Never raises for a single attachment: failures and timeouts come back as
    status="unavailable" with the reason in `error`.
    """
    if not paths:
        return []

    issued_at = utcnow()
    expires_at = issued_at + timedelta(seconds=ttl_seconds)

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(paths))))
    try:
        futures = [executor.submit(blob_store.sign, path, ttl_seconds) for path in paths]
        wait(futures, timeout=timeout)

        results = []
        for path, future in zip(paths, futures):
            if not future.done():
                future.cancel()
                results.append(ResolvedAttachment(path, STATUS_UNAVAILABLE, error="timed out"))
                continue
            exc = future.exception()
            if exc is not None:
                results.append(ResolvedAttachment(path, STATUS_UNAVAILABLE, error=str(exc) or type(exc).__name__))
                continue
            results.append(ResolvedAttachment(path, STATUS_AVAILABLE, url=future.result(), expires_at=expires_at))
        return results
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def resolve_for_receipt(paths: list[str]) -> list[ResolvedAttachment]:
    """resolve_attachments() with the app's blob store and settings, logging degradations."""
    config = current_app.config
    resolved = resolve_attachments(
        list(paths or []),
        get_blob_store(),
        ttl_seconds=int(config.get("ATTACHMENT_URL_TTL_SECONDS", 3600)),
        timeout=float(config.get("ATTACHMENT_RESOLVE_TIMEOUT_SECONDS", 5)),
        max_workers=int(config.get("ATTACHMENT_MAX_WORKERS", 4)),
    )
    for item in resolved:
        if item.status == STATUS_UNAVAILABLE:
            current_app.logger.warning("Attachment unavailable path=%s reason=%s", item.path, item.error)
    return resolved
