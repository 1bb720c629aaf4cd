import time

import anyio
import pytest
from zentao_mcp.core.errors import SessionError
from zentao_mcp.core.images import (
    ImageFetchPipeline,
    extract_file_ids,
    extract_image_urls,
    sniff_mime_type,
    to_base64,
    unique_urls,
)
from zentao_mcp.models import Bug, DownloadResult, Story

JPEG_BYTES = b"\xff\xd8\xff\xe0jpeg"
PNG_BYTES = b"\x89PNG\r\n\x1a\npng"


class FakeSession:
    def __init__(self, responses, delays=None):
        self.responses = responses
        self.delays = delays or {}
        self.active = 0
        self.peak = 0

    async def fetch_binary(self, url, *, timeout=30.0):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await anyio.sleep(self.delays.get(url, 0))
            result = self.responses[url]
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.active -= 1


def test_extract_image_urls_in_document_order():
    html = (
        '<p>see <img src="/zentao/file-read-1.png" alt="a"/></p>'
        '<IMG class="x" src="/zentao/file-read-2.jpg">'
        '<img src="/zentao/file-read-1.png">'
    )
    assert extract_image_urls(html) == [
        "/zentao/file-read-1.png",
        "/zentao/file-read-2.jpg",
        "/zentao/file-read-1.png",
    ]
    assert extract_file_ids(html) == ["1", "2", "1"]
    assert extract_image_urls(None) == []
    assert unique_urls(extract_image_urls(html)) == [
        "/zentao/file-read-1.png",
        "/zentao/file-read-2.jpg",
    ]


@pytest.mark.parametrize(
    "data, mime",
    [
        (JPEG_BYTES, "image/jpeg"),
        (b"GIF89a...", "image/gif"),
        (PNG_BYTES, "image/png"),
        (b"RIFF....WEBP", "image/png"),
    ],
)
def test_sniff_mime_type(data, mime):
    assert sniff_mime_type(data) == mime


@pytest.mark.asyncio
async def test_slow_item_times_out_without_blocking_others():
    session = FakeSession(
        {"a": JPEG_BYTES, "slow": PNG_BYTES, "c": b"GIF89a"},
        delays={"slow": 10},
    )
    pipeline = ImageFetchPipeline(session)

    started = time.monotonic()
    results = await pipeline.fetch_all(["a", "slow", "c"], timeout_ms=200)
    elapsed = time.monotonic() - started

    assert [r.url for r in results] == ["a", "slow", "c"]
    assert [r.success for r in results] == [True, False, True]
    assert results[1].timed_out
    assert results[1].content is None
    assert results[0].mime_type == "image/jpeg"
    assert results[2].mime_type == "image/gif"
    assert results[0].size == len(JPEG_BYTES)
    assert elapsed < 2


@pytest.mark.asyncio
async def test_failures_are_isolated_per_item():
    session = FakeSession(
        {"ok": PNG_BYTES, "bad": SessionError("expired twice"), "boom": RuntimeError()}
    )
    results = await ImageFetchPipeline(session).fetch_all(["bad", "ok", "boom"])

    assert [r.success for r in results] == [False, True, False]
    assert results[0].error == "expired twice"
    assert results[2].error
    assert not results[0].timed_out


@pytest.mark.asyncio
async def test_result_order_follows_input_not_completion():
    urls = [f"u{i}" for i in range(6)]
    session = FakeSession(
        {u: PNG_BYTES for u in urls},
        delays={u: 0.05 * (6 - i) for i, u in enumerate(urls)},
    )
    results = await ImageFetchPipeline(session).fetch_all(urls)
    assert [r.url for r in results] == urls


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    urls = [f"u{i}" for i in range(10)]
    session = FakeSession({u: PNG_BYTES for u in urls}, delays={u: 0.02 for u in urls})
    await ImageFetchPipeline(session, max_concurrency=3).fetch_all(urls)
    assert session.peak == 3


@pytest.mark.asyncio
async def test_serial_mode_runs_one_at_a_time():
    session = FakeSession({"a": PNG_BYTES, "b": b"bad-data"}, delays={"a": 0.01})
    results = await ImageFetchPipeline(session).fetch_all(["a", "b"], parallel=False)
    assert session.peak == 1
    assert [r.success for r in results] == [True, True]
    assert to_base64(results[0]) == "iVBORw0KGgpwbmc="


@pytest.mark.asyncio
async def test_empty_input_and_embedded_dedup():
    pipeline = ImageFetchPipeline(FakeSession({"/zentao/file-read-1.png": PNG_BYTES}))
    assert await pipeline.fetch_all([]) == []

    results = await pipeline.fetch_embedded(
        [
            '<img src="/zentao/file-read-1.png">',
            None,
            'again <img src="/zentao/file-read-1.png">',
        ]
    )
    assert len(results) == 1
    assert results[0].success


def test_failed_result_has_no_base64():
    assert to_base64(DownloadResult(url="x", success=False, error="nope")) is None


@pytest.mark.asyncio
async def test_fetch_entity_images_reads_story_and_bug_bodies():
    session = FakeSession(
        {"/zentao/file-read-1.png": PNG_BYTES, "/zentao/file-read-2.jpg": JPEG_BYTES}
    )
    entities = [
        Story(id=1, title="a", spec='<img src="/zentao/file-read-1.png">'),
        Bug(id=2, title="b", steps='<img src="/zentao/file-read-2.jpg">'),
        Story(id=3, title="c", spec='<img src="/zentao/file-read-1.png">'),
    ]

    results = await ImageFetchPipeline(session).fetch_entity_images(entities)

    assert [r.url for r in results] == [
        "/zentao/file-read-1.png",
        "/zentao/file-read-2.jpg",
    ]
    assert [r.mime_type for r in results] == ["image/png", "image/jpeg"]
