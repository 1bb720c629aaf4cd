from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from zentao_mcp.core.endpoints import format_endpoint
from zentao_mcp.core.envelope import (
    optional_name,
    parse_record,
    parse_records,
    records_of,
    require_object,
)
from zentao_mcp.core.errors import TransportError, UpstreamDataError
from zentao_mcp.core.pagination import STORIES, PaginatedFetcher
from zentao_mcp.core.search import DEFAULT_LIMIT, SearchEngine
from zentao_mcp.core.session import SessionManager
from zentao_mcp.core.tools.products import get_product_modules, get_products
from zentao_mcp.models import Story, TestCase
from zentao_mcp.utils.date_parser import DateLike

log = logging.getLogger("zentao_mcp.tools.stories")


async def get_product_stories(
    session: SessionManager,
    product_id: int,
    status: Optional[str] = None,
    module_id: Optional[int] = None,
    *,
    fetcher: Optional[PaginatedFetcher] = None,
) -> List[Story]:
    """
    All stories of a product, optionally narrowed to a module and/or status.
    Without a module the listing is browsed as 'unclosed' (11.x returns
    nothing for 'all'), or as 'closed' when closed stories are asked for;
    any other status is then applied locally.
    """
    fetcher = fetcher or PaginatedFetcher(session)
    records = await fetcher.fetch_filtered(
        STORIES, product_id, status=status, module_id=module_id
    )
    return parse_records(Story, records)


async def get_story_detail(session: SessionManager, story_id: int) -> Story:
    data = await session.authenticated_request(
        format_endpoint("story_view", story_id=story_id)
    )
    raw: Dict[str, Any] = dict(require_object(data, "story"))
    raw["productName"] = optional_name(data, "product")

    story = parse_record(Story, raw)
    if story.module and story.product:
        try:
            modules = await get_product_modules(session, story.product)
        except (TransportError, UpstreamDataError) as exc:
            log.warning("Module name lookup failed for story %s: %s", story_id, exc)
        else:
            name = modules.get(story.module)
            if name:
                story = story.model_copy(update={"module_name": name})
    return story


async def get_story_test_cases(session: SessionManager, story_id: int) -> List[TestCase]:
    data = await session.authenticated_request(
        format_endpoint("story_view", story_id=story_id)
    )
    return parse_records(TestCase, records_of(data, "cases"))


async def _collect_stories(
    session: SessionManager,
    product_id: Optional[int],
    status: Optional[str],
    fetcher: PaginatedFetcher,
) -> List[Story]:
    if product_id:
        return await get_product_stories(session, product_id, status, fetcher=fetcher)

    stories: List[Story] = []
    for product in await get_products(session):
        try:
            stories.extend(
                await get_product_stories(session, product.id, status, fetcher=fetcher)
            )
        except (TransportError, UpstreamDataError) as exc:
            log.warning(
                "Skipping product %s (%s) during search: %s", product.id, product.name, exc
            )
    return stories


async def search_stories(
    session: SessionManager,
    keyword: str,
    *,
    product_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = DEFAULT_LIMIT,
    deep_search: bool = False,
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
    engine: Optional[SearchEngine] = None,
    fetcher: Optional[PaginatedFetcher] = None,
) -> List[Story]:
    """
    Keyword search over stories, ranked by relevance.

    Searches one product, or every product when product_id is omitted
    (a product whose listing fails is skipped). With deep_search, weak
    title matches are re-scored against their full detail record.
    """
    engine = engine or SearchEngine()
    fetcher = fetcher or PaginatedFetcher(session)

    stories = await _collect_stories(session, product_id, status, fetcher)

    async def fetch_detail(story: Story) -> Story:
        return await get_story_detail(session, story.id)

    ranked = await engine.search(
        stories,
        keyword,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
        deep_search=deep_search,
        fetch_detail=fetch_detail,
    )
    return [item.entity for item in ranked]


async def search_stories_by_product_name(
    session: SessionManager,
    product_name: str,
    keyword: str,
    *,
    status: Optional[str] = None,
    limit: int = DEFAULT_LIMIT,
    engine: Optional[SearchEngine] = None,
) -> List[Dict[str, Any]]:
    """
    Search stories in every product whose name contains `product_name`.
    Returns [{"product": Product, "stories": [Story, ...]}] for products with hits.
    """
    needle = product_name.strip().casefold()
    products = [p for p in await get_products(session) if needle in p.name.casefold()]

    results: List[Dict[str, Any]] = []
    for product in products:
        try:
            stories = await search_stories(
                session,
                keyword,
                product_id=product.id,
                status=status,
                limit=limit,
                engine=engine,
            )
        except (TransportError, UpstreamDataError) as exc:
            log.warning("Search failed for product %s: %s", product.id, exc)
            continue
        if stories:
            results.append({"product": product, "stories": stories})
    return results
