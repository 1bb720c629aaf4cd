from __future__ import annotations

from typing import Any, Dict, List, Optional

from zentao_mcp.core.endpoints import format_endpoint
from zentao_mcp.core.envelope import (
    optional_name,
    parse_record,
    parse_records,
    records_of,
    require_object,
)
from zentao_mcp.core.errors import UpstreamDataError
from zentao_mcp.core.pagination import TEST_CASES, PaginatedFetcher
from zentao_mcp.core.session import SessionManager
from zentao_mcp.models import (
    TestCase,
    TestCaseCreateInput,
    TestRunInput,
    TestRunResult,
    TestTask,
)


async def get_product_test_cases(
    session: SessionManager,
    product_id: int,
    status: Optional[str] = None,
    module_id: Optional[int] = None,
    *,
    fetcher: Optional[PaginatedFetcher] = None,
) -> List[TestCase]:
    fetcher = fetcher or PaginatedFetcher(session)
    records = await fetcher.fetch_filtered(
        TEST_CASES, product_id, status=status, module_id=module_id
    )
    return parse_records(TestCase, records)


async def get_test_case_detail(session: SessionManager, case_id: int) -> TestCase:
    data = await session.authenticated_request(
        format_endpoint("testcase_view", case_id=case_id)
    )
    raw: Dict[str, Any] = dict(require_object(data, "case"))
    raw["productName"] = optional_name(data, "product")
    return parse_record(TestCase, raw)


async def create_test_case(session: SessionManager, case: TestCaseCreateInput) -> int:
    """
    Create a test case and return its id.
    Some builds reply without an id; 0 is returned then.
    """
    form = case.model_dump(exclude={"product"})
    data = await session.authenticated_request(
        format_endpoint("testcase_create", product_id=case.product),
        method="POST",
        data=form,
    )
    raw_id = data.get("id") if isinstance(data, dict) else None
    if raw_id in (None, ""):
        return 0
    try:
        return int(raw_id)
    except (TypeError, ValueError):
        raise UpstreamDataError(
            f"Test case creation returned a non-numeric id: {raw_id!r}",
            response_excerpt=str(data),
        ) from None


async def get_test_tasks(
    session: SessionManager, product_id: Optional[int] = None
) -> List[TestTask]:
    """Test tasks of a product, or of the current user when product_id is None."""
    if product_id:
        path = format_endpoint("testtask_browse", product_id=product_id)
    else:
        path = format_endpoint("my_testtasks")
    data = await session.authenticated_request(path)
    return parse_records(TestTask, records_of(data, "tasks"))


async def get_test_task_detail(session: SessionManager, task_id: int) -> TestTask:
    data = await session.authenticated_request(
        format_endpoint("testtask_view", task_id=task_id)
    )
    raw: Dict[str, Any] = dict(require_object(data, "task"))
    raw["productName"] = optional_name(data, "product") or raw.get("productName")
    return parse_record(TestTask, raw)


async def get_test_task_results(
    session: SessionManager, task_id: int
) -> List[TestRunResult]:
    data = await session.authenticated_request(
        format_endpoint("testtask_cases", task_id=task_id)
    )
    return parse_records(TestRunResult, records_of(data, "runs"))


async def run_test_case(session: SessionManager, task_id: int, run: TestRunInput) -> None:
    await session.authenticated_request(
        format_endpoint("testtask_run_case", task_id=task_id, case_id=run.case_id),
        method="POST",
        data={
            "version": run.version,
            "caseResult": run.result,
            "steps": run.steps,
            "comment": run.comment,
        },
    )
