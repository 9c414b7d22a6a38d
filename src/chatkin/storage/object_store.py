"""
Read-only access to stored attachments.

Attachment URLs handed to the engine point either at the permanent file library or at the
short-lived upload area.  :func:`parse_attachment_url` turns such a URL into a bucket selector plus
an object key, and an :class:`ObjectStore` turns that pair into bytes.

Two stores ship out of the box:

1. **Supabase Storage** over its REST API (default).
2. **Local directory** with one sub-directory per bucket, handy for development and tests.
"""

import asyncio
import logging
import mimetypes
from abc import (
    ABC,
    abstractmethod,
)
from enum import Enum
from pathlib import Path
from typing import (
    Callable,
    Dict,
    Optional,
    Tuple,
    Type,
)
from urllib.parse import (
    quote,
    unquote,
    urlparse,
)

import httpx
from pydantic import BaseModel

from chatkin.config import settings
from chatkin.core.errors import InputError

logger = logging.getLogger(__name__)


class ObjectStoreError(RuntimeError):
    """Raised when the store is reachable but the read fails."""


class BucketSelector(str, Enum):
    """Which bucket an attachment lives in."""

    PERMANENT = "permanent"
    TEMPORARY = "temporary"


class StoredObject(BaseModel):
    """Bytes of one object plus the content type the store reports, if any."""

    data: bytes
    content_type: Optional[str] = None


def parse_attachment_url(url: str, temp_path: str | None = None) -> Tuple[BucketSelector, str]:
    """
    Split an attachment URL into ``(bucket, key)``.

    URLs served from the temp-files route select the temporary bucket; everything else is
    permanent.  The key is the final path segment.

    Raises
    ------
    InputError
        If the URL is empty or has no final path segment.
    """
    if not url or not url.strip():
        raise InputError("Attachment URL is empty")

    temp_path = temp_path or settings.TEMP_FILES_PATH
    path = urlparse(url).path or url
    key = unquote(path.split("/")[-1])
    if not key:
        raise InputError(f"Invalid file URL: {url}")

    bucket = BucketSelector.TEMPORARY if temp_path in url else BucketSelector.PERMANENT
    return bucket, key


def _default_bucket_names() -> Dict[BucketSelector, str]:
    return {
        BucketSelector.PERMANENT: settings.PERMANENT_BUCKET,
        BucketSelector.TEMPORARY: settings.TEMP_BUCKET,
    }


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_STORE_REGISTRY: dict[str, Type["ObjectStore"]] = {}


def register_object_store(name: str) -> Callable:
    """Decorator to register an object store class under *name*."""

    def wrapper(cls: Type["ObjectStore"]) -> Type["ObjectStore"]:
        _STORE_REGISTRY[name] = cls
        return cls

    return wrapper


def load_object_store(name: str | None = None) -> "ObjectStore":
    """Instantiate the store named *name*, falling back to ``settings.OBJECT_STORE``."""
    target = name or settings.OBJECT_STORE
    cls = _STORE_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Object store '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class ObjectStore(ABC):
    """Read-only bucket/key lookup."""

    def __init__(self, bucket_names: Dict[BucketSelector, str] | None = None) -> None:
        self.bucket_names = bucket_names or _default_bucket_names()

    @abstractmethod
    async def get(self, bucket: BucketSelector, key: str) -> StoredObject | None:
        """Return the object, or *None* if it does not exist."""


# ---------------------------------------------------------------------------
# Concrete stores
# ---------------------------------------------------------------------------
@register_object_store("supabase")
class SupabaseObjectStore(ObjectStore):
    """Supabase Storage reader using httpx."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        bucket_names: Dict[BucketSelector, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(bucket_names)
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.api_key = api_key or settings.SUPABASE_ANON_KEY
        self._client = client

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            return {}
        return {"apikey": self.api_key, "Authorization": f"Bearer {self.api_key}"}

    async def get(self, bucket: BucketSelector, key: str) -> StoredObject | None:
        url = f"{self.base_url}/storage/v1/object/{self.bucket_names[bucket]}/{quote(key)}"
        if self._client is not None:
            return await self._fetch(self._client, url)
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
            return await self._fetch(client, url)

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> StoredObject | None:
        try:
            resp = await client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.error("Object store request error for %s: %s", url, exc)
            raise ObjectStoreError(f"Storage request failed: {exc}") from exc

        if resp.status_code == 404:
            logger.debug("Object not found: %s", url)
            return None
        if resp.is_error:
            logger.error("Object store returned %d for %s", resp.status_code, url)
            raise ObjectStoreError(f"Storage returned HTTP {resp.status_code}")

        content_type = resp.headers.get("content-type")
        return StoredObject(data=resp.content, content_type=content_type)


@register_object_store("local")
class LocalObjectStore(ObjectStore):
    """Directory-backed store: ``<root>/<bucket name>/<key>``."""

    def __init__(
        self,
        root: str | Path | None = None,
        bucket_names: Dict[BucketSelector, str] | None = None,
    ) -> None:
        super().__init__(bucket_names)
        self.root = Path(root or settings.LOCAL_STORAGE_DIR)

    async def get(self, bucket: BucketSelector, key: str) -> StoredObject | None:
        bucket_dir = (self.root / self.bucket_names[bucket]).resolve()
        path = (bucket_dir / key).resolve()
        if not path.is_relative_to(bucket_dir):
            raise ObjectStoreError(f"Key escapes bucket: {key}")
        if not path.is_file():
            return None

        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            logger.error("Failed to read %s: %s", path, exc)
            raise ObjectStoreError(f"Failed to read object: {exc}") from exc

        content_type, _ = mimetypes.guess_type(path.name)
        return StoredObject(data=data, content_type=content_type)
