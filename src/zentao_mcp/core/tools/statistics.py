from __future__ import annotations

from collections import Counter
from typing import Any, Dict

from zentao_mcp.core.session import SessionManager
from zentao_mcp.core.tools.bugs import get_my_bugs
from zentao_mcp.core.tools.tasks import get_my_tasks

TASK_STATUSES = ("wait", "doing", "done")
BUG_STATUSES = ("active", "resolved", "closed")
LEVELS = (1, 2, 3, 4)


def _level_counts(counter: Counter) -> Dict[str, int]:
    return {str(level): counter.get(level, 0) for level in LEVELS}


async def get_my_task_statistics(session: SessionManager) -> Dict[str, Any]:
    """Counts of my tasks by status and by priority (1-4)."""
    tasks = await get_my_tasks(session)
    by_status = Counter(t.status for t in tasks)
    stats: Dict[str, Any] = {"total": len(tasks)}
    stats.update({s: by_status.get(s, 0) for s in TASK_STATUSES})
    stats["byPriority"] = _level_counts(Counter(t.pri for t in tasks))
    return stats


async def get_my_bug_statistics(session: SessionManager) -> Dict[str, Any]:
    """Counts of my bugs by status and by severity (1-4)."""
    bugs = await get_my_bugs(session)
    by_status = Counter(b.status for b in bugs)
    stats: Dict[str, Any] = {"total": len(bugs)}
    stats.update({s: by_status.get(s, 0) for s in BUG_STATUSES})
    stats["bySeverity"] = _level_counts(Counter(b.severity for b in bugs))
    return stats
