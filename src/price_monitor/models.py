"""Data models for price-check tasks, parsed requests and extraction results."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .exceptions import InvalidTransitionError

TASK_TYPE = "price_monitoring"


class TaskStatus(str, Enum):
    """Lifecycle status of a price-check task."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    OK = "OK"
    NOT_FOUND = "NOT_FOUND"
    CAPTCHA = "CAPTCHA"
    BLOCKED = "BLOCKED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    CLARIFICATION_NEEDED = "CLARIFICATION_NEEDED"
    LAYOUT_CHANGED = "LAYOUT_CHANGED"  # no automatic detector yet
    TIMEOUT = "TIMEOUT"

    @property
    def is_terminal(self) -> bool:
        return self not in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


# Statuses reachable only from an execution outcome
EXECUTION_STATUSES = frozenset(
    {
        TaskStatus.OK,
        TaskStatus.NOT_FOUND,
        TaskStatus.CAPTCHA,
        TaskStatus.BLOCKED,
        TaskStatus.LAYOUT_CHANGED,
        TaskStatus.TIMEOUT,
    }
)


class Availability(str, Enum):
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    UNKNOWN = "unknown"


SourceMode = Literal["google", "specific_sites", "direct_url"]


# --- Parsed task ---


class Product(BaseModel):
    model_config = ConfigDict(frozen=True)

    brand: str | None = None
    model: str | None = None
    category: str | None = None
    color: str | None = None
    gender: str | None = None


class Constraints(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_price: float | None = None
    currency: str | None = None
    size: str | None = None


class Sources(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: SourceMode | None = "google"
    sites: list[str] | None = None
    url: str | None = None


class ParsedTask(BaseModel):
    """Structured interpretation of a free-text price-check request."""

    model_config = ConfigDict(frozen=True)

    task_type: str = TASK_TYPE
    product: Product = Field(default_factory=Product)
    constraints: Constraints = Field(default_factory=Constraints)
    sources: Sources = Field(default_factory=Sources)
    search_strategy: Literal["google", "site_internal"] | None = None
    confidence: float = 0.5


# --- Extraction results ---


def meets_price_ceiling(amount: float | None, max_price: float | None) -> bool:
    """Single rule used by every strategy: a price must exist and respect the ceiling if one is set."""
    if amount is None:
        return False
    if max_price is not None:
        return amount <= max_price
    return True


class ExtractionResult(BaseModel):
    """Price/availability evidence for one product on one page."""

    model_config = ConfigDict(frozen=True)

    product_name: str
    current_price: float = Field(ge=0)
    currency: str
    store_name: str = "Unknown Store"
    availability: Availability = Availability.UNKNOWN
    selected_size: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    source_url: str = ""
    screenshot_path: str | None = None
    meets_criteria: bool = False
    extraction_method: str | None = None


class ExecutionOutcome(BaseModel):
    """What a strategy hands back to the orchestrator."""

    status: TaskStatus
    results: list[ExtractionResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


# --- Site configuration ---


class SiteSelectors(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    price: str | None = None
    product_name: str | None = None
    result_container: str | None = None
    store: str | None = None


class SiteConfig(BaseModel):
    """Per-site search template, selectors and politeness delay. Read-only during a task."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    search_url: str
    selectors: SiteSelectors = Field(default_factory=SiteSelectors)
    rate_limit: int | None = None  # milliseconds
    domains: list[str] = Field(default_factory=list)
    captcha: list[str] = Field(default_factory=list)

    @classmethod
    def from_catalog(cls, key: str, data: dict[str, Any]) -> "SiteConfig":
        return cls(key=key, **data)

    def build_search_url(self, query: str) -> str:
        from urllib.parse import quote_plus

        return self.search_url.replace("{query}", quote_plus(query))


# --- Task ---


class Task(BaseModel):
    """One end-to-end price-check request and its lifecycle."""

    id: str
    original_query: str
    status: TaskStatus = TaskStatus.PENDING
    parsed_task: ParsedTask | None = None
    results: list[ExtractionResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    execution_time_ms: int = 0

    _execution_started: bool = PrivateAttr(default=False)

    def transition_to(self, status: TaskStatus) -> None:
        """Move to a new status, enforcing the task state machine."""
        current = self.status
        if current.is_terminal:
            raise InvalidTransitionError(f"Task {self.id} is already {current.value}")
        if current == TaskStatus.PENDING and status != TaskStatus.IN_PROGRESS:
            raise InvalidTransitionError(f"Task {self.id} must start before reaching {status.value}")
        if current == TaskStatus.IN_PROGRESS:
            if status in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS):
                raise InvalidTransitionError(f"Task {self.id} cannot go back to {status.value}")
            if status in (TaskStatus.VALIDATION_FAILED, TaskStatus.CLARIFICATION_NEEDED) and self._execution_started:
                raise InvalidTransitionError(f"{status.value} is only reachable before execution")
            if status in EXECUTION_STATUSES and not self._execution_started:
                raise InvalidTransitionError(f"{status.value} is only reachable from an execution outcome")
        self.status = status

    def mark_execution_started(self) -> None:
        self._execution_started = True

    @property
    def execution_started(self) -> bool:
        return self._execution_started

    def add_results(self, results: list[ExtractionResult]) -> None:
        self.results.extend(results)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


# --- Response projection ---


class TaskSummary(BaseModel):
    total_results: int
    matching_criteria: int
    lowest_price: float | None


class ResultView(BaseModel):
    product_name: str
    current_price: float
    currency: str
    store_name: str
    availability: Availability
    source_url: str
    meets_criteria: bool
    screenshot: str | None = None


class ParsedView(BaseModel):
    product: Product
    constraints: Constraints
    sources: Sources
    confidence: float


class TaskResponse(BaseModel):
    """Public projection of a finished task."""

    task_id: str
    status: TaskStatus
    original_query: str
    parsed: ParsedView | None = None
    results: list[ResultView] | None = None
    summary: TaskSummary | None = None
    clarification_needed: list[str] | None = None
    errors: list[str] | None = None
    execution_time_ms: int
    timestamp: str

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        parsed = None
        if task.parsed_task:
            pt = task.parsed_task
            parsed = ParsedView(product=pt.product, constraints=pt.constraints, sources=pt.sources, confidence=pt.confidence)

        results = None
        summary = None
        if task.status == TaskStatus.OK and task.results:
            results = [
                ResultView(
                    product_name=r.product_name,
                    current_price=r.current_price,
                    currency=r.currency,
                    store_name=r.store_name,
                    availability=r.availability,
                    source_url=r.source_url,
                    meets_criteria=r.meets_criteria,
                    screenshot=r.screenshot_path,
                )
                for r in task.results
            ]
            summary = TaskSummary(
                total_results=len(task.results),
                matching_criteria=sum(1 for r in task.results if r.meets_criteria),
                lowest_price=min(r.current_price for r in task.results),
            )

        clarification = None
        errors = None
        if task.errors:
            if task.status == TaskStatus.CLARIFICATION_NEEDED:
                clarification = list(task.errors)
            else:
                errors = list(task.errors)

        completed = task.completed_at or datetime.now(UTC)
        return cls(
            task_id=task.id,
            status=task.status,
            original_query=task.original_query,
            parsed=parsed,
            results=results,
            summary=summary,
            clarification_needed=clarification,
            errors=errors,
            execution_time_ms=task.execution_time_ms,
            timestamp=completed.isoformat(),
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
