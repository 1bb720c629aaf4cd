"""
Declarative table of the legacy ZenTao endpoints.

ZenTao 11.x addresses everything as ``/{resource}-{verb}[-{arg}...].json``;
positional arguments are joined with hyphens in a fixed order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Tuple

BROWSE_PARAMS = (
    "product_id",
    "branch",
    "browse_type",
    "param",
    "order_by",
    "rec_total",
    "rec_per_page",
    "page_id",
)
BROWSE_DEFAULTS = {"branch": 0, "param": 0, "order_by": "id_desc", "rec_total": 0}


@dataclass(frozen=True)
class Endpoint:
    resource: str
    verb: str
    params: Tuple[str, ...] = ()
    defaults: Mapping[str, Any] = field(default_factory=dict)

    def format(self, **values: Any) -> str:
        merged: Dict[str, Any] = {**self.defaults, **values}
        unknown = set(values) - set(self.params)
        if unknown:
            raise ValueError(
                f"Unknown parameter(s) for {self.resource}-{self.verb}: "
                f"{', '.join(sorted(unknown))}"
            )
        parts = [self.resource, self.verb]
        for name in self.params:
            if name not in merged:
                raise ValueError(
                    f"Missing parameter '{name}' for {self.resource}-{self.verb}"
                )
            parts.append(str(merged[name]))
        return "/" + "-".join(parts) + ".json"


ENDPOINTS: Dict[str, Endpoint] = {
    # session
    "session_id": Endpoint("api", "getSessionID"),
    "login": Endpoint("user", "login"),
    # products
    "products": Endpoint("product", "index", ("locate",), {"locate": "no"}),
    "product_browse": Endpoint("product", "browse", BROWSE_PARAMS, BROWSE_DEFAULTS),
    "product_modules": Endpoint("product", "browse", ("product_id",)),
    # stories
    "story_view": Endpoint("story", "view", ("story_id",)),
    "story_create": Endpoint("story", "create", ("product_id",)),
    # bugs
    "bug_browse": Endpoint("bug", "browse", BROWSE_PARAMS, BROWSE_DEFAULTS),
    "bug_view": Endpoint("bug", "view", ("bug_id",)),
    "bug_resolve": Endpoint("bug", "resolve", ("bug_id",)),
    "my_bugs": Endpoint("my", "bug"),
    # tasks
    "my_tasks": Endpoint("my", "task"),
    "task_view": Endpoint("task", "view", ("task_id",)),
    "task_edit": Endpoint("task", "edit", ("task_id",)),
    "task_finish": Endpoint("task", "finish", ("task_id",)),
    # test cases
    "testcase_browse": Endpoint("testcase", "browse", BROWSE_PARAMS, BROWSE_DEFAULTS),
    "testcase_view": Endpoint("testcase", "view", ("case_id",)),
    "testcase_create": Endpoint("testcase", "create", ("product_id",)),
    # test tasks
    "my_testtasks": Endpoint("my", "testtask"),
    "testtask_browse": Endpoint("testtask", "browse", ("product_id",)),
    "testtask_view": Endpoint("testtask", "view", ("task_id",)),
    "testtask_cases": Endpoint("testtask", "cases", ("task_id",)),
    "testtask_run_case": Endpoint("testtask", "runCase", ("task_id", "case_id")),
}


def format_endpoint(name: str, **values: Any) -> str:
    """
    Build the request path for a named endpoint.
    Example: format_endpoint("bug_view", bug_id=7) -> '/bug-view-7.json'
    """
    try:
        endpoint = ENDPOINTS[name]
    except KeyError:
        raise ValueError(f"Unknown endpoint '{name}'") from None
    return endpoint.format(**values)


__all__ = ["Endpoint", "ENDPOINTS", "format_endpoint", "BROWSE_PARAMS"]
