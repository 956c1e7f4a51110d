"""Read-only client for S3-compatible buckets using the REST API."""
from __future__ import annotations

import contextlib
from typing import AsyncIterator, Dict, List, Optional, Protocol, Tuple
from urllib.parse import quote

import httpx
import structlog
from bs4 import BeautifulSoup

from catalog.fetch.fetcher import fetch_with_retries
from catalog.fetch.objects import ObjectInfo
from catalog.normalize.dates import parse_timestamp
from catalog.observability.metrics import MetricsRegistry
from catalog.orchestrator.settings import StoreSettings

LOGGER = structlog.get_logger(__name__)


class ObjectStoreError(RuntimeError):
    """Raised when the object store answers with a non-success status."""

    def __init__(self, message: str, *, key: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.key = key
        self.status = status


class ObjectStore(Protocol):
    """What the catalog service needs from a bucket."""

    async def list_objects(self) -> List[ObjectInfo]: ...

    async def get_object(self, key: str) -> str: ...


def _text(node, name: str) -> Optional[str]:
    child = node.find(name)
    if child is None:
        return None
    return child.get_text(strip=True)


def parse_list_response(xml_text: str) -> Tuple[List[ObjectInfo], Optional[str]]:
    """Parse one ListObjectsV2 page into objects and the next continuation token."""
    soup = BeautifulSoup(xml_text, "xml")
    root = soup.find("ListBucketResult")
    if root is None:
        raise ObjectStoreError("Unexpected ListObjectsV2 response: missing ListBucketResult")
    objects: List[ObjectInfo] = []
    for content in root.find_all("Contents", recursive=False):
        key = _text(content, "Key")
        if not key:
            continue
        size = _text(content, "Size")
        raw_modified = _text(content, "LastModified")
        last_modified = parse_timestamp(raw_modified)
        if raw_modified and last_modified is None:
            LOGGER.warning("invalid_last_modified", key=key, value=raw_modified)
        objects.append(
            ObjectInfo(
                key=key,
                size=int(size) if size and size.isdigit() else 0,
                last_modified=last_modified,
                etag=(_text(content, "ETag") or "").strip('"') or None,
            )
        )
    truncated = (_text(root, "IsTruncated") or "").lower() == "true"
    token = _text(root, "NextContinuationToken")
    return objects, token if truncated else None


class S3ObjectStore:
    """Lists and reads objects of a public bucket over path-style URLs."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: StoreSettings,
        *,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._metrics = metrics or MetricsRegistry()

    @property
    def bucket(self) -> str:
        return self._settings.bucket

    async def _get(self, url: str, params: Optional[Dict[str, str]] = None) -> httpx.Response:
        return await fetch_with_retries(
            self._client,
            url,
            params=params,
            metrics=self._metrics,
            attempts=self._settings.retry_attempts,
            backoff=self._settings.retry_backoff_seconds,
        )

    async def list_objects(self) -> List[ObjectInfo]:
        """Return every object in the bucket, following continuation tokens."""
        url = self._settings.bucket_url()
        objects: List[ObjectInfo] = []
        token: Optional[str] = None
        while True:
            params = {"list-type": "2", "max-keys": str(self._settings.max_keys)}
            if token:
                params["continuation-token"] = token
            response = await self._get(url, params)
            if response.status_code != httpx.codes.OK:
                raise ObjectStoreError(
                    f"Failed to list objects: {response.status_code} {response.reason_phrase}",
                    status=response.status_code,
                )
            page, token = parse_list_response(response.text)
            objects.extend(page)
            self._metrics.incr("list_pages")
            LOGGER.debug("list_page", page_objects=len(page), total=len(objects), more=bool(token))
            if not token:
                break
        self._metrics.incr("objects_listed", len(objects))
        LOGGER.info("bucket_listed", bucket=self.bucket, objects=len(objects))
        return objects

    async def get_object(self, key: str) -> str:
        """Return the body of ``key`` decoded as text."""
        url = f"{self._settings.bucket_url()}/{quote(key)}"
        response = await self._get(url)
        if response.status_code != httpx.codes.OK:
            raise ObjectStoreError(
                f"Failed to get object {key}: {response.status_code} {response.reason_phrase}",
                key=key,
                status=response.status_code,
            )
        return response.text


@contextlib.asynccontextmanager
async def open_object_store(
    settings: StoreSettings,
    *,
    metrics: Optional[MetricsRegistry] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[S3ObjectStore]:
    """Yield an `S3ObjectStore` owning its HTTP client for the duration of the context."""
    headers = {"User-Agent": settings.user_agent, "Accept": "application/xml"}
    limits = httpx.Limits(
        max_connections=settings.concurrency,
        max_keepalive_connections=settings.concurrency,
    )
    async with httpx.AsyncClient(
        headers=headers,
        limits=limits,
        timeout=settings.timeout_seconds,
        transport=transport,
    ) as client:
        yield S3ObjectStore(client, settings, metrics=metrics)
