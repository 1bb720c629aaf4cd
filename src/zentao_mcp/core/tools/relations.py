from __future__ import annotations

import logging
from typing import List, Optional

import anyio

from zentao_mcp.core.errors import ZentaoError
from zentao_mcp.core.session import SessionManager
from zentao_mcp.core.tools.bugs import get_bug_detail, get_my_bugs
from zentao_mcp.core.tools.stories import get_story_detail
from zentao_mcp.models import Bug, Story

log = logging.getLogger("zentao_mcp.tools.relations")

DETAIL_CONCURRENCY = 8


async def get_story_related_bugs(
    session: SessionManager,
    story_id: int,
    *,
    max_concurrency: int = DETAIL_CONCURRENCY,
) -> List[Bug]:
    """
    Bugs assigned to the current user that are linked to `story_id`.

    The bug list does not carry the story link, so every bug's detail is
    loaded; a bug whose detail cannot be read is left out.
    """
    bugs = await get_my_bugs(session)
    details: List[Optional[Bug]] = [None] * len(bugs)
    limiter = anyio.Semaphore(max_concurrency)

    async def load(index: int, bug_id: int) -> None:
        async with limiter:
            try:
                details[index] = await get_bug_detail(session, bug_id)
            except ZentaoError as exc:
                log.debug("Skipping bug %s: %s", bug_id, exc)

    async with anyio.create_task_group() as tg:
        for index, bug in enumerate(bugs):
            tg.start_soon(load, index, bug.id)

    return [b for b in details if b is not None and b.story == story_id]


async def get_bug_related_story(session: SessionManager, bug_id: int) -> Optional[Story]:
    bug = await get_bug_detail(session, bug_id)
    if not bug.story:
        return None
    return await get_story_detail(session, bug.story)
