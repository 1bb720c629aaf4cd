from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


# ZenTao sends numbers as strings and "missing" as ''.
OptInt = Annotated[Optional[int], BeforeValidator(_blank_to_none)]
OptFloat = Annotated[Optional[float], BeforeValidator(_blank_to_none)]
OptStr = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
Text = Annotated[str, BeforeValidator(_none_to_empty)]


class ZentaoRecord(BaseModel):
    """
    Base for records returned by the legacy API.
    Records are frozen snapshots: refine with model_copy(update=...).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class Entity(ZentaoRecord):
    """
    A searchable record (story, bug, task, test case).
    Subclasses map their own title/body fields onto display_title/body_text.
    """

    id: int
    module_name: OptStr = Field(default=None, alias="moduleName")
    product_name: OptStr = Field(default=None, alias="productName")
    opened_date: OptStr = Field(default=None, alias="openedDate")

    @property
    def display_title(self) -> str:
        return ""

    @property
    def body_text(self) -> str:
        return ""


class Product(ZentaoRecord):
    id: int
    name: Text = ""
    code: Text = ""
    status: Text = "normal"
    desc: Text = ""


class Story(Entity):
    title: Text = ""
    status: OptStr = None
    pri: OptInt = None
    stage: OptStr = None
    estimate: OptFloat = None
    opened_by: OptStr = Field(default=None, alias="openedBy")
    assigned_to: OptStr = Field(default=None, alias="assignedTo")
    spec: Text = ""
    module: OptInt = None
    product: OptInt = None

    @property
    def display_title(self) -> str:
        return self.title

    @property
    def body_text(self) -> str:
        return self.spec


class Bug(Entity):
    title: Text = ""
    status: OptStr = None
    severity: OptInt = None
    steps: Text = ""
    story: OptInt = None
    product: OptInt = None
    module: OptInt = None

    @property
    def display_title(self) -> str:
        return self.title

    @property
    def body_text(self) -> str:
        return self.steps


class Task(Entity):
    name: Text = ""
    status: OptStr = None
    pri: OptInt = None
    deadline: OptStr = None
    desc: Text = ""
    story: OptInt = None
    product: OptInt = None

    @property
    def display_title(self) -> str:
        return self.name

    @property
    def body_text(self) -> str:
        return self.desc


class TestCase(Entity):
    __test__ = False

    product: OptInt = None
    module: OptInt = None
    story: OptInt = None
    title: Text = ""
    type: OptStr = None
    pri: OptInt = None
    status: OptStr = None
    precondition: Text = ""
    steps: Text = ""
    opened_by: OptStr = Field(default=None, alias="openedBy")
    last_edited_by: OptStr = Field(default=None, alias="lastEditedBy")
    last_edited_date: OptStr = Field(default=None, alias="lastEditedDate")

    @property
    def display_title(self) -> str:
        return self.title

    @property
    def body_text(self) -> str:
        if self.precondition:
            return f"{self.precondition}\n{self.steps}"
        return self.steps


class TestTask(ZentaoRecord):
    __test__ = False

    id: int
    name: Text = ""
    product: OptInt = None
    product_name: OptStr = Field(default=None, alias="productName")
    project: OptInt = None
    execution: OptInt = None
    build: OptStr = None
    owner: OptStr = None
    status: OptStr = None
    begin: OptStr = None
    end: OptStr = None
    desc: Text = ""


class TestRunResult(ZentaoRecord):
    __test__ = False

    id: int
    run: OptInt = Field(default=None, alias="task")
    case: OptInt = None
    case_title: OptStr = Field(default=None, alias="title")
    version: OptInt = None
    status: OptStr = Field(default=None, alias="caseStatus")
    last_runner: OptStr = Field(default=None, alias="lastRunner")
    last_run_date: OptStr = Field(default=None, alias="lastRunDate")
    last_run_result: OptStr = Field(default=None, alias="lastRunResult")


class Pager(ZentaoRecord):
    rec_total: int = Field(default=0, alias="recTotal")
    rec_per_page: int = Field(default=0, alias="recPerPage")
    page_id: int = Field(default=1, alias="pageID")

    @property
    def total_pages(self) -> int:
        if self.rec_per_page <= 0:
            return 0
        return -(-self.rec_total // self.rec_per_page)


# --- Input Models ---


class TaskUpdateInput(BaseModel):
    consumed: Optional[float] = None
    left: Optional[float] = None
    status: Optional[Literal["wait", "doing", "done"]] = None
    finished_date: Optional[date] = Field(default=None, alias="finishedDate")
    comment: Optional[str] = None

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class BugResolutionInput(BaseModel):
    resolution: Literal[
        "fixed",
        "notrepro",
        "duplicate",
        "bydesign",
        "willnotfix",
        "tostory",
        "external",
    ]
    resolved_build: Optional[str] = Field(default=None, alias="resolvedBuild")
    duplicate_bug: Optional[int] = Field(default=None, alias="duplicateBug")
    comment: Optional[str] = None

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class TestCaseCreateInput(BaseModel):
    __test__ = False

    product: int
    title: str
    module: int = 0
    story: int = 0
    type: str = "feature"
    pri: int = 3
    precondition: str = ""
    steps: str = ""
    status: str = "normal"

    model_config = ConfigDict(extra="forbid")


class TestRunInput(BaseModel):
    __test__ = False

    case_id: int = Field(alias="caseId")
    result: Literal["pass", "fail", "blocked"]
    version: int = 1
    steps: str = ""
    comment: str = ""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# --- Results ---


class DownloadResult(BaseModel):
    url: str
    success: bool
    content: Optional[bytes] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    error: Optional[str] = None
    timed_out: bool = False

    model_config = ConfigDict(frozen=True)


class BatchItemResult(BaseModel):
    item_id: int
    success: bool
    value: Any = None
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class BatchResult(BaseModel):
    results: List[BatchItemResult] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> List[BatchItemResult]:
        return [r for r in self.results if not r.success]

    def raise_for_failures(self) -> "BatchResult":
        from zentao_mcp.core.errors import PartialBatchFailure

        if self.failed:
            raise PartialBatchFailure(self.results)
        return self

    def summary(self) -> Dict[str, int]:
        return {"total": self.total, "success": self.succeeded}


class ModuleRef(BaseModel):
    type: Literal["story", "bug", "testcase"]
    product_id: int
    module_id: int
    task_id: Optional[int] = None

    model_config = ConfigDict(frozen=True)


def parse_opened_date(raw: Optional[str]) -> Optional[date]:
    """Date portion of an upstream timestamp ('2024-03-01 10:00:00')."""
    if not raw:
        return None
    text = raw.strip()
    if not text or text.startswith("0000-00-00"):
        return None
    try:
        return datetime.fromisoformat(text.replace(" ", "T", 1)).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None
