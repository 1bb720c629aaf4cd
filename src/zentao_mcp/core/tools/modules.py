"""
Module links copied from the ZenTao web UI, e.g.
``http://host/zentao/product-browse-245--byModule-1377.html``.
"""

from __future__ import annotations

import re
from typing import Optional, Sequence

from zentao_mcp.core.session import SessionManager
from zentao_mcp.core.tools.bugs import get_product_bugs
from zentao_mcp.core.tools.stories import get_product_stories
from zentao_mcp.core.tools.testcases import get_product_test_cases, get_test_task_detail
from zentao_mcp.models import Entity, ModuleRef

_HOST_RE = re.compile(r"^https?://[^/]+")

# story and bug links carry an empty branch segment, hence the double hyphen
STORY_MODULE_RE = re.compile(r"product-browse-(\d+)--byModule-(\d+)")
TESTTASK_MODULE_RE = re.compile(r"testtask-cases-(\d+)-byModule-(\d+)")
TESTCASE_MODULE_RE = re.compile(r"testcase-browse-(\d+)-byModule-(\d+)")
BUG_MODULE_RE = re.compile(r"bug-browse-(\d+)--byModule-(\d+)")


def parse_module_url(url: str) -> Optional[ModuleRef]:
    """
    Recognize a module-browse link. Returns None for anything else.
    Test task links have no product in the URL; product_id is 0 there.
    """
    path = _HOST_RE.sub("", url.strip())

    m = STORY_MODULE_RE.search(path)
    if m:
        return ModuleRef(type="story", product_id=int(m[1]), module_id=int(m[2]))
    m = TESTTASK_MODULE_RE.search(path)
    if m:
        return ModuleRef(
            type="testcase", product_id=0, module_id=int(m[2]), task_id=int(m[1])
        )
    m = TESTCASE_MODULE_RE.search(path)
    if m:
        return ModuleRef(type="testcase", product_id=int(m[1]), module_id=int(m[2]))
    m = BUG_MODULE_RE.search(path)
    if m:
        return ModuleRef(type="bug", product_id=int(m[1]), module_id=int(m[2]))
    return None


async def get_module_items(
    session: SessionManager, url: str, status: Optional[str] = None
) -> Sequence[Entity]:
    """Every story, bug or test case under the module a UI link points at."""
    ref = parse_module_url(url)
    if ref is None:
        raise ValueError(
            f"Unsupported module link: {url}. Expected one of "
            "product-browse-{product}--byModule-{module}, "
            "bug-browse-{product}--byModule-{module}, "
            "testcase-browse-{product}-byModule-{module}, "
            "testtask-cases-{task}-byModule-{module}"
        )

    if ref.type == "story":
        return await get_product_stories(session, ref.product_id, status, ref.module_id)
    if ref.type == "bug":
        return await get_product_bugs(session, ref.product_id, status, ref.module_id)

    product_id = ref.product_id
    if ref.task_id is not None and not product_id:
        task = await get_test_task_detail(session, ref.task_id)
        product_id = task.product or 0
    if not product_id:
        raise ValueError(f"Test task {ref.task_id} is not linked to a product: {url}")
    return await get_product_test_cases(session, product_id, status, ref.module_id)
