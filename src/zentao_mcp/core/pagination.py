"""
Page walker for the legacy `*-browse-*` listings.

A listing accepts exactly one filter selector (`browseType` + `param`):
everything, one status, or one module. Pages are requested strictly in
order, one at a time, because the backend keeps the pager cursor in the
session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import ValidationError

from zentao_mcp.models import Pager

from .endpoints import format_endpoint
from .envelope import records_of
from .observability import log_event

MAX_PAGES = 100
DEFAULT_PAGE_SIZE = 100
STATUS_ALL = "all"


@dataclass(frozen=True)
class FilterSelector:
    browse_type: str = STATUS_ALL
    param: int = 0

    @classmethod
    def all(cls) -> "FilterSelector":
        return cls(STATUS_ALL, 0)

    @classmethod
    def by_status(cls, status: str) -> "FilterSelector":
        return cls(status, 0)

    @classmethod
    def by_module(cls, module_id: int) -> "FilterSelector":
        return cls("byModule", int(module_id))


@dataclass(frozen=True)
class ListingResource:
    endpoint: str
    record_key: str
    # selector used when neither module nor a native status applies
    default_browse: str = STATUS_ALL
    # statuses the backend can select itself; None means every status
    native_statuses: Optional[FrozenSet[str]] = None

    def serves_status(self, status: str) -> bool:
        return self.native_statuses is None or status in self.native_statuses


# `unclosed` holds every open story, `closed` the rest
STORIES = ListingResource(
    "product_browse",
    "stories",
    default_browse="unclosed",
    native_statuses=frozenset({"closed"}),
)
BUGS = ListingResource("bug_browse", "bugs")
TEST_CASES = ListingResource("testcase_browse", "cases")


def _pager_of(payload: Any) -> Optional[Pager]:
    raw = payload.get("pager") if isinstance(payload, dict) else None
    if not isinstance(raw, dict):
        return None
    try:
        return Pager.model_validate(raw)
    except ValidationError:
        return None


class PaginatedFetcher:
    """Aggregates every page of a listing into one ordered record list."""

    def __init__(
        self,
        session,
        *,
        max_pages: int = MAX_PAGES,
        logger: Optional[logging.Logger] = None,
    ):
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        self.session = session
        self.max_pages = max_pages
        self.log = logger or logging.getLogger("zentao_mcp.pagination")

    async def fetch_all(
        self,
        resource: ListingResource,
        product_id: int,
        selector: Optional[FilterSelector] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> List[Dict[str, Any]]:
        """
        Walk pages 1..N for a single selector.
        Stops when the pager says we are on the last page, when a page comes
        back empty, when no pager is present, or at `max_pages`.
        Any error aborts the whole walk; partial results are discarded.
        """
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        selector = selector or FilterSelector.all()

        records: List[Dict[str, Any]] = []
        page = 1
        while True:
            path = format_endpoint(
                resource.endpoint,
                product_id=product_id,
                browse_type=selector.browse_type,
                param=selector.param,
                rec_per_page=page_size,
                page_id=page,
            )
            payload = await self.session.authenticated_request(path)
            batch = records_of(payload, resource.record_key)
            records.extend(batch)

            pager = _pager_of(payload)
            log_event(
                "page_fetched",
                self.log,
                level=logging.DEBUG,
                resource=resource.record_key,
                page=page,
                records=len(batch),
                total_pages=pager.total_pages if pager else None,
            )

            if pager is None or not batch or page >= pager.total_pages:
                break
            if page >= self.max_pages:
                log_event(
                    "page_cap_reached",
                    self.log,
                    level=logging.WARNING,
                    resource=resource.record_key,
                    page=page,
                    total_pages=pager.total_pages,
                )
                break
            page += 1

        return records

    async def fetch_filtered(
        self,
        resource: ListingResource,
        product_id: int,
        *,
        status: Optional[str] = None,
        module_id: Optional[int] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> List[Dict[str, Any]]:
        """
        Fetch by module and/or status.
        The backend takes one selector only, so a module listing is
        aggregated first and the status is applied locally afterwards.
        """
        wanted = status if status and status != STATUS_ALL else None

        local_status: Optional[str] = None
        if module_id:
            selector = FilterSelector.by_module(module_id)
            local_status = wanted
        elif wanted and resource.serves_status(wanted):
            selector = FilterSelector.by_status(wanted)
        else:
            selector = FilterSelector(resource.default_browse, 0)
            if wanted != resource.default_browse:
                local_status = wanted

        records = await self.fetch_all(resource, product_id, selector, page_size)
        if local_status:
            records = [r for r in records if r.get("status") == local_status]
        return records


__all__ = [
    "PaginatedFetcher",
    "FilterSelector",
    "ListingResource",
    "STORIES",
    "BUGS",
    "TEST_CASES",
    "MAX_PAGES",
    "DEFAULT_PAGE_SIZE",
]
