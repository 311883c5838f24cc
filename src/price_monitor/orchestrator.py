"""Task orchestration: parse, clarify, validate, execute, persist, finalize."""

import asyncio
import logging
import threading
import uuid
from datetime import UTC, datetime
from typing import Any

from .agents import ExecutionStrategy, create_strategy
from .agents.directed import build_directed_goal
from .config import settings
from .exceptions import ResultWriteError
from .models import ParsedTask, Task, TaskResponse, TaskStatus
from .observability import bind_task_context, clear_task_context, log_task_event
from .output.results import ResultSink
from .parsing import IntentParserProtocol, create_intent_parser
from .validation.guardrails import needs_clarification, validate_task

logger = logging.getLogger(__name__)


class ActiveTaskRegistry:
    """Tasks currently being processed, keyed by id.

    Tasks are inserted on creation and removed on finalization; nothing else mutates the map.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = threading.Lock()

    def add(self, task: Task) -> None:
        with self._lock:
            self._tasks[task.id] = task

    def remove(self, task_id: str) -> Task | None:
        with self._lock:
            return self._tasks.pop(task_id, None)

    def get(self, task_id: str) -> Task | None:
        with self._lock:
            return self._tasks.get(task_id)

    def snapshot(self) -> list[Task]:
        with self._lock:
            return list(self._tasks.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._tasks


def _task_view(task: Task) -> dict[str, Any]:
    return {
        "task_id": task.id,
        "status": task.status.value,
        "original_query": task.original_query,
        "created_at": task.created_at.isoformat(),
        "results_so_far": len(task.results),
    }


class TaskOrchestrator:
    """Single caller of the parser, guardrails, strategies and result sink."""

    def __init__(
        self,
        parser: IntentParserProtocol | None = None,
        strategy: ExecutionStrategy | None = None,
        sink: ResultSink | None = None,
        registry: ActiveTaskRegistry | None = None,
        timeout: float | None = None,
        min_confidence: float | None = None,
        dry_run: bool | None = None,
        use_directed: bool | None = None,
    ):
        self.dry_run = settings.agent.dry_run if dry_run is None else dry_run
        self.use_directed = settings.agent.use_directed_agent if use_directed is None else use_directed
        self.parser = parser or create_intent_parser(self.dry_run)
        self._strategy = strategy
        self._sink = sink
        self.registry = registry or ActiveTaskRegistry()
        self.timeout = timeout or settings.agent.task_timeout_seconds
        self.min_confidence = min_confidence

    @property
    def sink(self) -> ResultSink:
        if self._sink is None:
            self._sink = ResultSink()
        return self._sink

    def select_strategy(self) -> ExecutionStrategy:
        # A fresh strategy per task so no browser session is shared
        return self._strategy or create_strategy(use_directed=self.use_directed, dry_run=self.dry_run)

    async def process_query(self, text: str) -> TaskResponse:
        """Run one request end to end. Always returns a finalized task response."""
        task = Task(id=str(uuid.uuid4()), original_query=text)
        task.transition_to(TaskStatus.IN_PROGRESS)
        self.registry.add(task)
        bind_task_context(task.id)
        log_task_event("task_created", query=text[:100])

        try:
            await self._run(task)
        except Exception as e:
            logger.exception(f"Task {task.id} failed: {e}")
            task.errors.append(str(e))
            if not task.is_terminal:
                task.transition_to(TaskStatus.TIMEOUT if task.execution_started else TaskStatus.VALIDATION_FAILED)
        finally:
            self._finalize(task)
            log_task_event("task_finalized", status=task.status.value, results=len(task.results), execution_time_ms=task.execution_time_ms)
            clear_task_context()

        return TaskResponse.from_task(task)

    async def _run(self, task: Task) -> None:

        parse = await self.parser.parse(task.original_query, task.id)
        if not parse.success or parse.parsed_task is None:
            if parse.questions:
                task.errors.extend(parse.questions)
                task.transition_to(TaskStatus.CLARIFICATION_NEEDED)
            else:
                task.errors.append(parse.error or "Could not understand the request")
                task.transition_to(TaskStatus.VALIDATION_FAILED)
            return

        parsed = parse.parsed_task
        task.parsed_task = parsed
        log_task_event("task_parsed", brand=parsed.product.brand, model=parsed.product.model, confidence=parsed.confidence)

        clarification = needs_clarification(parsed, self.min_confidence)
        if clarification.needs_clarification:
            task.errors.extend(clarification.questions)
            task.transition_to(TaskStatus.CLARIFICATION_NEEDED)
            log_task_event("clarification_needed", questions=clarification.questions)
            return

        validation = validate_task(parsed, self.min_confidence)
        for warning in validation.warnings:
            logger.warning(f"Task {task.id}: {warning}")
        if not validation.valid:
            task.errors.extend(validation.errors)
            task.transition_to(TaskStatus.VALIDATION_FAILED)
            log_task_event("validation_failed", errors=validation.errors)
            return

        await self._execute(task, parsed)

    async def _execute(self, task: Task, parsed: ParsedTask) -> None:
        strategy = self.select_strategy()
        bind_task_context(task.id, strategy.name)
        if strategy.name == "directed":
            log_task_event("directed_goal", goal=build_directed_goal(parsed))

        task.mark_execution_started()
        log_task_event("execution_started")
        try:
            outcome = await asyncio.wait_for(strategy.execute(parsed, task.id), timeout=self.timeout)
        except TimeoutError:
            task.errors.append(f"Execution exceeded {self.timeout:.0f}s")
            task.transition_to(TaskStatus.TIMEOUT)
            return

        task.add_results(outcome.results)
        task.errors.extend(outcome.errors)
        task.transition_to(outcome.status)
        log_task_event("execution_completed", status=outcome.status.value, result_count=len(outcome.results))

        if task.results:
            task.execution_time_ms = self._elapsed_ms(task)
            try:
                self.sink.write_results(task)
            except ResultWriteError as e:
                # Findings are still returned to the caller
                logger.error(str(e))
                task.errors.append(str(e))

    @staticmethod
    def _elapsed_ms(task: Task) -> int:
        return int((datetime.now(UTC) - task.created_at).total_seconds() * 1000)

    def _finalize(self, task: Task) -> None:
        task.completed_at = datetime.now(UTC)
        task.execution_time_ms = self._elapsed_ms(task)
        self.registry.remove(task.id)

    def get_task_status(self, task_id: str) -> dict[str, Any] | None:
        """Status of an in-flight task; finished tasks are only in the result files."""
        task = self.registry.get(task_id)
        return _task_view(task) if task else None

    def get_active_tasks(self) -> list[dict[str, Any]]:
        return [_task_view(t) for t in self.registry.snapshot()]


_orchestrator: TaskOrchestrator | None = None


def get_orchestrator() -> TaskOrchestrator:
    """Get the singleton TaskOrchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = TaskOrchestrator()
    return _orchestrator
