"""
Image download pipeline for pictures embedded in story specs and bug steps.

Every URL yields exactly one DownloadResult at its input position, whether
the download succeeded, failed or timed out.
"""

from __future__ import annotations

import base64
import logging
import re
from typing import Any, Iterable, List, Optional

import anyio

from zentao_mcp.models import DownloadResult

from .observability import log_event

IMG_SRC_RE = re.compile(r'<img[^>]+src="([^"]+)"[^>]*>', re.IGNORECASE)
FILE_ID_RE = re.compile(r"file-read-(\d+)")

DEFAULT_TIMEOUT_MS = 15000
DEFAULT_MAX_CONCURRENCY = 8

JPEG = "image/jpeg"
GIF = "image/gif"
PNG = "image/png"


def extract_image_urls(html: Optional[str]) -> List[str]:
    """All <img src="..."> URLs in document order (duplicates kept)."""
    if not html:
        return []
    return IMG_SRC_RE.findall(html)


def extract_file_ids(html: Optional[str]) -> List[str]:
    if not html:
        return []
    return FILE_ID_RE.findall(html)


def unique_urls(urls: Iterable[str]) -> List[str]:
    """Deduplicate, keeping the first occurrence of each URL."""
    return list(dict.fromkeys(urls))


def sniff_mime_type(data: bytes) -> str:
    if data[:2] == b"\xff\xd8":
        return JPEG
    if data[:2] == b"GI":
        return GIF
    # PNG (89 50) and anything unrecognized
    return PNG


def to_base64(result: DownloadResult) -> Optional[str]:
    if not result.success or result.content is None:
        return None
    return base64.b64encode(result.content).decode("ascii")


class ImageFetchPipeline:
    """
    Downloads URLs through the session's authenticated binary fetch.

    Parallel mode runs all items in one task group, bounded by a semaphore;
    serial mode runs them one by one. Each item is cancelled when it exceeds
    its timeout; no item failure ever fails the batch.
    """

    def __init__(
        self,
        session,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        logger: Optional[logging.Logger] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.session = session
        self.max_concurrency = max_concurrency
        self.log = logger or logging.getLogger("zentao_mcp.images")

    async def fetch_one(
        self, url: str, timeout_ms: int = DEFAULT_TIMEOUT_MS
    ) -> DownloadResult:
        try:
            with anyio.fail_after(timeout_ms / 1000):
                data = await self.session.fetch_binary(url)
        except TimeoutError:
            return DownloadResult(
                url=url,
                success=False,
                error=f"download timed out after {timeout_ms}ms",
                timed_out=True,
            )
        except Exception as exc:
            # isolated per item; the batch reports it instead of raising
            self.log.debug("Image download failed for %s: %s", url, exc)
            return DownloadResult(url=url, success=False, error=str(exc) or repr(exc))

        return DownloadResult(
            url=url,
            success=True,
            content=data,
            mime_type=sniff_mime_type(data),
            size=len(data),
        )

    async def fetch_all(
        self,
        urls: Iterable[str],
        parallel: bool = True,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> List[DownloadResult]:
        url_list = list(urls)
        if not url_list:
            return []

        results: List[Optional[DownloadResult]] = [None] * len(url_list)

        if parallel:
            limiter = anyio.Semaphore(self.max_concurrency)

            async def run(index: int, url: str) -> None:
                async with limiter:
                    results[index] = await self.fetch_one(url, timeout_ms)

            async with anyio.create_task_group() as tg:
                for index, url in enumerate(url_list):
                    tg.start_soon(run, index, url)
        else:
            for index, url in enumerate(url_list):
                results[index] = await self.fetch_one(url, timeout_ms)

        done: List[DownloadResult] = [r for r in results if r is not None]
        succeeded = sum(1 for r in done if r.success)
        log_event(
            "image_batch",
            self.log,
            urls=len(url_list),
            succeeded=succeeded,
            failed=len(done) - succeeded,
        )
        return done

    async def fetch_embedded(
        self,
        texts: Iterable[Optional[str]],
        parallel: bool = True,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> List[DownloadResult]:
        """Download every distinct image referenced by the given HTML bodies."""
        urls = unique_urls(url for text in texts for url in extract_image_urls(text))
        return await self.fetch_all(urls, parallel=parallel, timeout_ms=timeout_ms)

    async def fetch_entity_images(
        self,
        entities: Iterable[Any],
        parallel: bool = True,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> List[DownloadResult]:
        """Download the images embedded in each entity's spec or steps."""
        return await self.fetch_embedded(
            (entity.body_text for entity in entities),
            parallel=parallel,
            timeout_ms=timeout_ms,
        )


__all__ = [
    "ImageFetchPipeline",
    "extract_image_urls",
    "extract_file_ids",
    "unique_urls",
    "sniff_mime_type",
    "to_base64",
]
