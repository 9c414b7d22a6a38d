"""Attachment URL parsing and the object store backends."""

import pytest
import respx
from httpx import Response

from chatkin.core.errors import InputError
from chatkin.storage.object_store import (
    BucketSelector,
    LocalObjectStore,
    ObjectStoreError,
    SupabaseObjectStore,
    load_object_store,
    parse_attachment_url,
)

BUCKETS = {BucketSelector.PERMANENT: "files", BucketSelector.TEMPORARY: "temp"}


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://api.example.com/api/files/abc123.png", (BucketSelector.PERMANENT, "abc123.png")),
        ("https://api.example.com/api/temp-files/up-1.jpg", (BucketSelector.TEMPORARY, "up-1.jpg")),
        ("/api/temp-files/my%20photo.webp?v=2", (BucketSelector.TEMPORARY, "my photo.webp")),
    ],
)
def test_parse_attachment_url(url, expected) -> None:
    assert parse_attachment_url(url) == expected


@pytest.mark.parametrize("url", ["", "   ", "https://api.example.com/api/files/"])
def test_parse_attachment_url_rejects_malformed(url) -> None:
    with pytest.raises(InputError):
        parse_attachment_url(url)


def test_load_object_store_unknown_name() -> None:
    with pytest.raises(ValueError, match="not registered"):
        load_object_store("s3-but-not-really")


async def test_local_store_reads_from_bucket_directory(tmp_path) -> None:
    (tmp_path / "temp").mkdir()
    (tmp_path / "temp" / "cat.png").write_bytes(b"\x89PNG")
    store = LocalObjectStore(root=tmp_path, bucket_names=BUCKETS)

    found = await store.get(BucketSelector.TEMPORARY, "cat.png")
    missing = await store.get(BucketSelector.PERMANENT, "cat.png")

    assert found is not None
    assert found.data == b"\x89PNG"
    assert found.content_type == "image/png"
    assert missing is None


async def test_local_store_refuses_keys_outside_bucket(tmp_path) -> None:
    (tmp_path / "files").mkdir()
    (tmp_path / "secret.txt").write_text("nope")
    store = LocalObjectStore(root=tmp_path, bucket_names=BUCKETS)

    with pytest.raises(ObjectStoreError):
        await store.get(BucketSelector.PERMANENT, "../secret.txt")


async def test_supabase_store_fetches_object() -> None:
    store = SupabaseObjectStore(base_url="http://store.test", api_key="k", bucket_names=BUCKETS)

    with respx.mock(assert_all_called=True) as respx_mock:
        respx_mock.get("http://store.test/storage/v1/object/files/a.gif").mock(
            return_value=Response(200, content=b"GIF89a", headers={"content-type": "image/gif"})
        )
        respx_mock.get("http://store.test/storage/v1/object/temp/gone.png").mock(
            return_value=Response(404, json={"error": "not_found"})
        )

        found = await store.get(BucketSelector.PERMANENT, "a.gif")
        missing = await store.get(BucketSelector.TEMPORARY, "gone.png")

    assert found is not None
    assert found.data == b"GIF89a"
    assert found.content_type == "image/gif"
    assert missing is None


async def test_supabase_store_raises_on_server_error() -> None:
    store = SupabaseObjectStore(base_url="http://store.test", api_key="k", bucket_names=BUCKETS)

    with respx.mock(assert_all_called=True) as respx_mock:
        respx_mock.get("http://store.test/storage/v1/object/files/a.gif").mock(
            return_value=Response(500)
        )
        with pytest.raises(ObjectStoreError, match="500"):
            await store.get(BucketSelector.PERMANENT, "a.gif")
