"""Execution strategies that turn a ParsedTask into extraction results."""

from typing import Protocol

from ..config import settings
from ..models import ExecutionOutcome, ParsedTask
from .deterministic import DeterministicAgent, MockDeterministicAgent, load_sites
from .directed import DirectedAgent, DirectedRunResult, DirectedStrategy, MockDirectedAgent, build_directed_goal


class ExecutionStrategy(Protocol):
    """Anything that can execute a parsed task. Selected by configuration."""

    name: str

    async def execute(self, parsed: ParsedTask, task_id: str) -> ExecutionOutcome: ...


def create_strategy(use_directed: bool | None = None, dry_run: bool | None = None) -> ExecutionStrategy:
    """Pick the strategy from settings; dry-run swaps in offline agents."""
    use_directed = settings.agent.use_directed_agent if use_directed is None else use_directed
    dry_run = settings.agent.dry_run if dry_run is None else dry_run

    if use_directed:
        if dry_run or not settings.planner.get_api_key():
            return DirectedStrategy(MockDirectedAgent())
        return DirectedStrategy(DirectedAgent())

    if dry_run:
        return MockDeterministicAgent()
    return DeterministicAgent()


__all__ = [
    "DeterministicAgent",
    "DirectedAgent",
    "DirectedRunResult",
    "DirectedStrategy",
    "ExecutionStrategy",
    "MockDeterministicAgent",
    "MockDirectedAgent",
    "build_directed_goal",
    "create_strategy",
    "load_sites",
]
