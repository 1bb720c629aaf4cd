from datetime import date
from urllib.parse import parse_qs

import httpx
import pytest
from conftest import ok
from zentao_mcp.core.tools.statistics import get_my_bug_statistics, get_my_task_statistics
from zentao_mcp.core.tools.tasks import (
    batch_update_tasks,
    finish_task,
    get_my_tasks,
    get_task_detail,
    update_task,
)
from zentao_mcp.models import TaskUpdateInput

SUCCESS = {"status": "success"}


def _form(route, index=0):
    return parse_qs(route.calls[index].request.content.decode(), keep_blank_values=True)


@pytest.mark.asyncio
async def test_get_my_tasks_and_detail(zentao_api, session):
    zentao_api.get("/my-task.json").mock(
        return_value=ok(
            {"tasks": {"4": {"id": "4", "name": "Docs", "pri": "2", "deadline": "0000-00-00"}}}
        )
    )
    zentao_api.get("/task-view-4.json").mock(
        return_value=ok({"task": {"id": "4", "name": "Docs", "story": "9", "desc": None}})
    )

    tasks = await get_my_tasks(session)
    detail = await get_task_detail(session, 4)

    assert [(t.id, t.name, t.pri) for t in tasks] == [(4, "Docs", 2)]
    assert detail.story == 9
    assert detail.desc == ""


@pytest.mark.asyncio
async def test_update_task_posts_only_given_fields(zentao_api, session):
    edit = zentao_api.post("/task-edit-4.json").mock(
        return_value=httpx.Response(200, json=SUCCESS)
    )
    zentao_api.get("/task-view-4.json").mock(
        return_value=ok({"task": {"id": "4", "name": "Docs", "status": "doing"}})
    )

    task = await update_task(session, 4, TaskUpdateInput(left=3, status="doing"))

    assert task.status == "doing"
    assert _form(edit) == {"left": ["3.0"], "status": ["doing"], "comment": [""]}


@pytest.mark.asyncio
async def test_finish_task_defaults(zentao_api, session):
    route = zentao_api.post("/task-finish-4.json").mock(
        return_value=httpx.Response(200, json=SUCCESS)
    )

    await finish_task(session, 4, today=date(2024, 6, 1))
    await finish_task(
        session,
        4,
        TaskUpdateInput(consumed=2.5, finishedDate="2024-05-30", comment="done"),
    )

    assert _form(route, 0) == {
        "consumed": ["0"],
        "finishedDate": ["2024-06-01"],
        "comment": [""],
    }
    assert _form(route, 1) == {
        "consumed": ["2.5"],
        "finishedDate": ["2024-05-30"],
        "comment": ["done"],
    }


@pytest.mark.asyncio
async def test_batch_update_tasks_reports_each_item(zentao_api, session):
    zentao_api.post("/task-edit-1.json").mock(return_value=httpx.Response(200, json=SUCCESS))
    zentao_api.get("/task-view-1.json").mock(
        return_value=ok({"task": {"id": "1", "name": "A", "status": "done"}})
    )
    zentao_api.post("/task-edit-2.json").mock(return_value=httpx.Response(403))

    batch = await batch_update_tasks(session, [1, 2], TaskUpdateInput(status="done"))

    assert [r.success for r in batch.results] == [True, False]
    assert batch.results[0].value.status == "done"
    assert "403" in batch.results[1].error


@pytest.mark.asyncio
async def test_task_statistics(zentao_api, session):
    zentao_api.get("/my-task.json").mock(
        return_value=ok(
            {
                "tasks": [
                    {"id": "1", "status": "wait", "pri": "1"},
                    {"id": "2", "status": "doing", "pri": "3"},
                    {"id": "3", "status": "doing", "pri": "3"},
                    {"id": "4", "status": "cancel", "pri": ""},
                ]
            }
        )
    )

    stats = await get_my_task_statistics(session)

    assert stats == {
        "total": 4,
        "wait": 1,
        "doing": 2,
        "done": 0,
        "byPriority": {"1": 1, "2": 0, "3": 2, "4": 0},
    }


@pytest.mark.asyncio
async def test_bug_statistics(zentao_api, session):
    zentao_api.get("/my-bug.json").mock(
        return_value=ok(
            {
                "bugs": {
                    "1": {"id": "1", "status": "active", "severity": "1"},
                    "2": {"id": "2", "status": "resolved", "severity": "3"},
                    "3": {"id": "3", "status": "active", "severity": "3"},
                }
            }
        )
    )

    stats = await get_my_bug_statistics(session)

    assert stats == {
        "total": 3,
        "active": 2,
        "resolved": 1,
        "closed": 0,
        "bySeverity": {"1": 1, "2": 0, "3": 2, "4": 0},
    }
