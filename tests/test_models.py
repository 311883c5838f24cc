"""Tests for the task state machine and response projection."""

import pytest

from price_monitor.exceptions import InvalidTransitionError
from price_monitor.models import (
    Availability,
    ExtractionResult,
    ParsedTask,
    Product,
    SiteConfig,
    Task,
    TaskResponse,
    TaskStatus,
    meets_price_ceiling,
)


def make_result(price: float, meets: bool = True) -> ExtractionResult:
    return ExtractionResult(
        product_name="Nike Air Force 1",
        current_price=price,
        currency="EUR",
        store_name="Zalando",
        availability=Availability.IN_STOCK,
        source_url="https://www.zalando.es/nike-af1",
        meets_criteria=meets,
    )


class TestTransitions:
    def test_happy_path(self):
        task = Task(id="t1", original_query="q")
        task.transition_to(TaskStatus.IN_PROGRESS)
        task.mark_execution_started()
        task.transition_to(TaskStatus.OK)
        assert task.is_terminal

    def test_pending_must_start_first(self):
        task = Task(id="t1", original_query="q")
        with pytest.raises(InvalidTransitionError):
            task.transition_to(TaskStatus.OK)

    def test_terminal_is_final(self):
        task = Task(id="t1", original_query="q")
        task.transition_to(TaskStatus.IN_PROGRESS)
        task.transition_to(TaskStatus.VALIDATION_FAILED)
        with pytest.raises(InvalidTransitionError):
            task.transition_to(TaskStatus.IN_PROGRESS)

    def test_execution_statuses_need_execution(self):
        task = Task(id="t1", original_query="q")
        task.transition_to(TaskStatus.IN_PROGRESS)
        with pytest.raises(InvalidTransitionError):
            task.transition_to(TaskStatus.CAPTCHA)

    def test_timeout_needs_execution(self):
        task = Task(id="t1", original_query="q")
        task.transition_to(TaskStatus.IN_PROGRESS)
        with pytest.raises(InvalidTransitionError):
            task.transition_to(TaskStatus.TIMEOUT)

        task.mark_execution_started()
        task.transition_to(TaskStatus.TIMEOUT)
        assert task.status == TaskStatus.TIMEOUT

    def test_no_clarification_after_execution(self):
        task = Task(id="t1", original_query="q")
        task.transition_to(TaskStatus.IN_PROGRESS)
        task.mark_execution_started()
        with pytest.raises(InvalidTransitionError):
            task.transition_to(TaskStatus.CLARIFICATION_NEEDED)


def test_meets_price_ceiling():
    assert meets_price_ceiling(90, 100)
    assert meets_price_ceiling(100, 100)
    assert not meets_price_ceiling(100.01, 100)
    assert meets_price_ceiling(500, None)
    assert not meets_price_ceiling(None, 100)


def test_extraction_result_rejects_negative_price():
    with pytest.raises(ValueError):
        make_result(-1)


def test_parsed_task_is_immutable():
    parsed = ParsedTask(product=Product(brand="Nike"))
    with pytest.raises(ValueError):
        parsed.confidence = 1.0


def test_site_config_builds_encoded_search_url():
    site = SiteConfig(key="zalando", name="Zalando", search_url="https://www.zalando.com/catalog/?q={query}")
    assert site.build_search_url("Nike Air Force 1") == "https://www.zalando.com/catalog/?q=Nike+Air+Force+1"


class TestTaskResponse:
    def test_ok_response_has_summary(self):
        task = Task(id="t1", original_query="nike", parsed_task=ParsedTask(product=Product(brand="Nike")))
        task.transition_to(TaskStatus.IN_PROGRESS)
        task.mark_execution_started()
        task.add_results([make_result(95), make_result(120, meets=False)])
        task.transition_to(TaskStatus.OK)

        data = TaskResponse.from_task(task).to_dict()
        assert data["status"] == "OK"
        assert data["summary"] == {"total_results": 2, "matching_criteria": 1, "lowest_price": 95.0}
        assert data["parsed"]["product"]["brand"] == "Nike"
        assert "errors" not in data

    def test_clarification_questions_exposed(self):
        task = Task(id="t2", original_query="something")
        task.transition_to(TaskStatus.IN_PROGRESS)
        task.errors.append("What brand or specific product model are you looking for?")
        task.transition_to(TaskStatus.CLARIFICATION_NEEDED)

        data = TaskResponse.from_task(task).to_dict()
        assert data["clarification_needed"] == ["What brand or specific product model are you looking for?"]
        assert "results" not in data
        assert "errors" not in data
