from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from zentao_mcp.core.endpoints import format_endpoint
from zentao_mcp.core.envelope import parse_record, parse_records, records_of, require_object
from zentao_mcp.core.errors import ZentaoError
from zentao_mcp.core.session import SessionManager
from zentao_mcp.models import BatchItemResult, BatchResult, Task, TaskUpdateInput


async def get_my_tasks(session: SessionManager) -> List[Task]:
    data = await session.authenticated_request(format_endpoint("my_tasks"))
    return parse_records(Task, records_of(data, "tasks"))


async def get_task_detail(session: SessionManager, task_id: int) -> Task:
    data = await session.authenticated_request(
        format_endpoint("task_view", task_id=task_id)
    )
    return parse_record(Task, require_object(data, "task"))


def _edit_form(update: TaskUpdateInput) -> Dict[str, Any]:
    form: Dict[str, Any] = {
        "consumed": update.consumed,
        "left": update.left,
        "status": update.status,
        "comment": update.comment or "",
    }
    # the edit page keeps any field that is not posted
    return {k: v for k, v in form.items() if v is not None}


async def update_task(
    session: SessionManager, task_id: int, update: TaskUpdateInput
) -> Task:
    """Edit a task and return its state as re-read from the server."""
    await session.authenticated_request(
        format_endpoint("task_edit", task_id=task_id),
        method="POST",
        data=_edit_form(update),
    )
    return await get_task_detail(session, task_id)


async def finish_task(
    session: SessionManager,
    task_id: int,
    update: Optional[TaskUpdateInput] = None,
    *,
    today: Optional[date] = None,
) -> None:
    update = update or TaskUpdateInput()
    finished = update.finished_date or today or date.today()
    await session.authenticated_request(
        format_endpoint("task_finish", task_id=task_id),
        method="POST",
        data={
            "consumed": update.consumed or 0,
            "finishedDate": finished.isoformat(),
            "comment": update.comment or "",
        },
    )


async def batch_update_tasks(
    session: SessionManager, task_ids: Iterable[int], update: TaskUpdateInput
) -> BatchResult:
    results: List[BatchItemResult] = []
    for task_id in task_ids:
        try:
            task = await update_task(session, task_id, update)
        except ZentaoError as exc:
            results.append(BatchItemResult(item_id=task_id, success=False, error=str(exc)))
            continue
        results.append(BatchItemResult(item_id=task_id, success=True, value=task))
    return BatchResult(results=results)
