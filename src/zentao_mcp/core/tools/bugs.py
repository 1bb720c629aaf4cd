from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from zentao_mcp.core.endpoints import format_endpoint
from zentao_mcp.core.envelope import (
    optional_name,
    parse_record,
    parse_records,
    records_of,
    require_object,
)
from zentao_mcp.core.errors import ZentaoError
from zentao_mcp.core.pagination import BUGS, PaginatedFetcher
from zentao_mcp.core.session import SessionManager
from zentao_mcp.models import BatchItemResult, BatchResult, Bug, BugResolutionInput


async def get_my_bugs(session: SessionManager) -> List[Bug]:
    data = await session.authenticated_request(format_endpoint("my_bugs"))
    return parse_records(Bug, records_of(data, "bugs"))


async def get_product_bugs(
    session: SessionManager,
    product_id: int,
    status: Optional[str] = None,
    module_id: Optional[int] = None,
    *,
    fetcher: Optional[PaginatedFetcher] = None,
) -> List[Bug]:
    """
    All bugs of a product. With both module_id and status, the module
    listing is fetched and filtered by status locally.
    """
    fetcher = fetcher or PaginatedFetcher(session)
    records = await fetcher.fetch_filtered(
        BUGS, product_id, status=status, module_id=module_id
    )
    return parse_records(Bug, records)


async def get_bug_detail(session: SessionManager, bug_id: int) -> Bug:
    data = await session.authenticated_request(format_endpoint("bug_view", bug_id=bug_id))
    raw: Dict[str, Any] = dict(require_object(data, "bug"))
    raw["productName"] = optional_name(data, "product")
    return parse_record(Bug, raw)


def _resolution_form(resolution: BugResolutionInput) -> Dict[str, Any]:
    form: Dict[str, Any] = {
        "resolution": resolution.resolution,
        "resolvedBuild": resolution.resolved_build or "",
        "comment": resolution.comment or "",
    }
    if resolution.duplicate_bug is not None:
        form["duplicateBug"] = resolution.duplicate_bug
    return form


async def resolve_bug(
    session: SessionManager, bug_id: int, resolution: BugResolutionInput
) -> None:
    if resolution.resolution == "duplicate" and resolution.duplicate_bug is None:
        raise ValueError("duplicate_bug is required when resolution is 'duplicate'.")
    await session.authenticated_request(
        format_endpoint("bug_resolve", bug_id=bug_id),
        method="POST",
        data=_resolution_form(resolution),
    )


async def batch_resolve_bugs(
    session: SessionManager, bug_ids: Iterable[int], resolution: BugResolutionInput
) -> BatchResult:
    """
    Resolve bugs one by one; a failing bug is recorded and the batch goes on.
    """
    results: List[BatchItemResult] = []
    for bug_id in bug_ids:
        try:
            await resolve_bug(session, bug_id, resolution)
            bug = await get_bug_detail(session, bug_id)
        except (ZentaoError, ValueError) as exc:
            results.append(BatchItemResult(item_id=bug_id, success=False, error=str(exc)))
            continue
        results.append(BatchItemResult(item_id=bug_id, success=True, value=bug))
    return BatchResult(results=results)
