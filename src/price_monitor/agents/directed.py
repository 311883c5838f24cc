"""Vision-model-directed browsing: a remote planner chooses each action from screenshots.

The loop follows the computer-use protocol: the model sees the goal and a
screenshot, answers with function calls in a 0-999 coordinate space, and
receives each call's outcome together with a fresh screenshot.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urlparse

from google import genai
from google.genai import errors, types

from ..config import get_currency_catalog, settings
from ..exceptions import PlanningServiceError
from ..models import Availability, ExecutionOutcome, ExtractionResult, ParsedTask, TaskStatus, meets_price_ceiling
from ..output.screenshots import ScreenshotManager
from ..validation.normalizers import AMOUNT_BODY, parse_amount, parse_price
from .browser import BrowserPage, PageDriver
from .retry import is_retryable_status, retry_on_status

logger = logging.getLogger(__name__)

START_URL = "https://www.google.com"
SEARCH_URL = "https://www.google.com"
NORMALIZED_MAX = 999
DOCUMENT_SCROLL_PX = 500
DEFAULT_SCROLL_MAGNITUDE = 800
DOM_SCAN_LIMIT = 20

# "Product name - 123,45 € - Store" as reported in the model's prose
PROSE_PRODUCT_RE = re.compile(rf"([^,\n]+?)\s*[-–:]\s*€?\s*({AMOUNT_BODY})\s*€?\s*(?:[-–]\s*([^,\n]+))?")

GOAL_SUFFIX = ". Find the product price and extract it. Navigate to a product page if needed, scroll to see the price, and report the price you find."


def denormalize(value: float, dimension: int) -> int:
    """Map a 0-999 model coordinate to a pixel on an axis of `dimension` pixels."""
    return round(value / 1000 * dimension)


def normalize(pixel: float, dimension: int) -> int:
    return min(NORMALIZED_MAX, max(0, round(pixel / dimension * 1000)))


@dataclass
class CandidateProduct:
    """A raw finding before it becomes an ExtractionResult."""

    product_name: str
    price: float
    currency: str = "EUR"
    store_name: str = "Unknown Store"
    source_url: str = ""
    availability: Availability = Availability.UNKNOWN
    screenshot_path: str | None = None
    method: str = "dom_scan"

    @property
    def key(self) -> tuple[str, float, str]:
        return (self.product_name, self.price, self.store_name)


def dedupe_candidates(candidates: Iterable[CandidateProduct]) -> list[CandidateProduct]:
    """Drop repeats of (name, price, store), keeping the first occurrence."""
    seen: set[tuple[str, float, str]] = set()
    unique = []
    for candidate in candidates:
        if candidate.key in seen:
            continue
        seen.add(candidate.key)
        unique.append(candidate)
    return unique


def parse_text_for_products(text: str) -> list[CandidateProduct]:
    products = []
    for match in PROSE_PRODUCT_RE.finditer(text):
        products.append(
            CandidateProduct(
                product_name=match.group(1).strip() or "Unknown",
                price=parse_amount(match.group(2)),
                store_name=(match.group(3) or "").strip() or "Unknown Store",
                availability=Availability.IN_STOCK,
                method="text_response",
            )
        )
    return products


# --- Conversation ---


@dataclass(frozen=True)
class Turn:
    role: str
    parts: tuple[types.Part, ...]


class Conversation:
    """Append-only log of turns, addressed by position."""

    def __init__(self) -> None:
        self._turns: list[Turn] = []

    def append(self, role: str, parts: Iterable[types.Part]) -> int:
        self._turns.append(Turn(role=role, parts=tuple(parts)))
        return len(self._turns) - 1

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    def __len__(self) -> int:
        return len(self._turns)

    def to_contents(self) -> list[types.Content]:
        return [types.Content(role=turn.role, parts=list(turn.parts)) for turn in self._turns]


# --- Planner ---


class ActionPlanner(Protocol):
    async def plan(self, contents: list[types.Content]) -> types.Content: ...


class GeminiPlanner:
    """Computer-use planning through the google-genai async client."""

    def __init__(self, api_key: str | None = None, model: str | None = None, client: genai.Client | None = None):
        self.model = model or settings.planner.model_name
        self._client = client or genai.Client(api_key=api_key or settings.planner.get_api_key())
        self._config = types.GenerateContentConfig(
            tools=[types.Tool(computer_use=types.ComputerUse(environment=types.Environment.ENVIRONMENT_BROWSER))],
        )

    async def plan(self, contents: list[types.Content]) -> types.Content:
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(model=self.model, contents=contents, config=self._config),
                timeout=settings.planner.request_timeout,
            )
        except errors.APIError as e:
            raise PlanningServiceError(f"Planning call failed: {e}", status_code=e.code) from e
        except TimeoutError as e:
            raise PlanningServiceError(f"Planning call timed out after {settings.planner.request_timeout}s") from e

        if not response.candidates or response.candidates[0].content is None:
            raise PlanningServiceError("Planning service returned no candidates")
        return response.candidates[0].content


# --- Agent ---


@dataclass
class DirectedRunResult:
    success: bool
    results: list[CandidateProduct] = field(default_factory=list)
    turns: int = 0
    error: str | None = None


class DirectedAgent:
    """Bounded observe-plan-act loop over one browser tab."""

    def __init__(
        self,
        planner: ActionPlanner | None = None,
        page_factory: Callable[[], PageDriver] | None = None,
        screenshots: ScreenshotManager | None = None,
        max_turns: int | None = None,
        max_retries: int | None = None,
        base_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.planner = planner or GeminiPlanner()
        self._page_factory = page_factory or (lambda: BrowserPage(settings.planner.screen_width, settings.planner.screen_height))
        self._screenshots = screenshots
        self.max_turns = max_turns or settings.agent.max_turns
        self._sleep = sleep
        self._plan = retry_on_status(
            is_retryable_status,
            max_retries=settings.planner.max_retries if max_retries is None else max_retries,
            base_delay=settings.planner.base_delay if base_delay is None else base_delay,
            sleep=sleep,
        )(self.planner.plan)

    @property
    def screenshots(self) -> ScreenshotManager:
        if self._screenshots is None:
            self._screenshots = ScreenshotManager()
        return self._screenshots

    async def execute_task(self, goal: str, task_id: str) -> DirectedRunResult:
        logger.info(f"Directed run for task {task_id}: {goal}")
        page = self._page_factory()
        conversation = Conversation()
        candidates: list[CandidateProduct] = []
        turn = 0

        try:
            await page.start()
            await page.navigate(START_URL)
            screenshot = await page.screenshot()
            conversation.append("user", [types.Part(text=goal), types.Part.from_bytes(data=screenshot, mime_type="image/png")])

            while turn < self.max_turns:
                turn += 1
                logger.debug(f"Turn {turn}/{self.max_turns}")

                content = await self._plan(conversation.to_contents())
                parts = list(content.parts or [])
                conversation.append(content.role or "model", parts)

                calls = [p.function_call for p in parts if p.function_call]
                if not calls:
                    text = " ".join(p.text for p in parts if p.text)
                    logger.info(f"Planner finished after {turn} turns")
                    if text:
                        candidates.extend(parse_text_for_products(text))
                    break

                responses = []
                for call in calls:
                    response, found = await self._handle_call(page, call, task_id, turn)
                    responses.append(response)
                    candidates.extend(found)
                conversation.append("user", [types.Part(function_response=r) for r in responses])

            return DirectedRunResult(success=True, results=dedupe_candidates(candidates), turns=turn)

        except Exception as e:
            logger.error(f"Directed run for task {task_id} failed: {e}")
            return DirectedRunResult(success=False, results=dedupe_candidates(candidates), turns=turn, error=str(e))

        finally:
            await page.close()

    async def _handle_call(
        self, page: PageDriver, call: types.FunctionCall, task_id: str, turn: int
    ) -> tuple[types.FunctionResponse, list[CandidateProduct]]:
        name = call.name or ""
        args = dict(call.args or {})

        safety = args.get("safety_decision") or {}
        if safety.get("decision") == "require_confirmation":
            logger.warning(f"Skipping {name}: confirmation required ({safety.get('explanation', '')})")
            url = await page.current_url()
            return types.FunctionResponse(name=name, response={"url": url, "skipped": "requires user confirmation"}), []

        try:
            await self.execute_action(page, name, args)
        except Exception as e:
            # The model sees the failure through the next screenshot
            logger.error(f"Action {name} failed: {e}")
        await page.wait(settings.browser.settle_delay)

        url = await page.current_url()
        path = self.screenshots.path_for(task_id, f"action_{turn}_{name}")
        screenshot = await page.screenshot(path)
        found = await self.scan_page(page, url, str(path))

        response = types.FunctionResponse(
            name=name,
            response={"url": url, "screenshot_path": str(path)},
            parts=[types.FunctionResponsePart(inline_data=types.FunctionResponseBlob(mime_type="image/png", data=screenshot))],
        )
        return response, found

    async def execute_action(self, page: PageDriver, name: str, args: dict[str, Any]) -> None:
        w, h = page.width, page.height

        match name:
            case "open_web_browser":
                pass
            case "wait_5_seconds":
                await page.wait(5)
            case "go_back":
                await page.go_back()
            case "go_forward":
                await page.go_forward()
            case "search":
                await page.navigate(SEARCH_URL)
            case "navigate":
                await page.navigate(args["url"])
            case "click_at":
                await page.click(denormalize(args["x"], w), denormalize(args["y"], h))
            case "hover_at":
                await page.hover(denormalize(args["x"], w), denormalize(args["y"], h))
            case "type_text_at":
                await page.click(denormalize(args["x"], w), denormalize(args["y"], h))
                if args.get("clear_before_typing", True):
                    await page.press_keys(["Control", "a"])
                    await page.press_keys(["Backspace"])
                await page.type_text(args.get("text", ""))
                if args.get("press_enter", True):
                    await page.press_keys(["Enter"])
            case "key_combination":
                await page.press_keys(str(args.get("keys", "")).split("+"))
            case "scroll_document":
                direction = args.get("direction", "down")
                amount = -DOCUMENT_SCROLL_PX if direction in ("up", "left") else DOCUMENT_SCROLL_PX
                vertical = direction in ("up", "down")
                await page.scroll(w // 2, h // 2, 0 if vertical else amount, amount if vertical else 0)
            case "scroll_at":
                x, y = denormalize(args["x"], w), denormalize(args["y"], h)
                direction = args.get("direction", "down")
                magnitude = args.get("magnitude", DEFAULT_SCROLL_MAGNITUDE)
                signed = -magnitude if direction in ("up", "left") else magnitude
                if direction in ("up", "down"):
                    await page.scroll(x, y, 0, denormalize(signed, h))
                else:
                    await page.scroll(x, y, denormalize(signed, w), 0)
            case "drag_and_drop":
                await page.drag(
                    denormalize(args["x"], w),
                    denormalize(args["y"], h),
                    denormalize(args["destination_x"], w),
                    denormalize(args["destination_y"], h),
                )
            case _:
                logger.warning(f"Unknown action: {name}")

    async def scan_page(self, page: PageDriver, url: str, screenshot_path: str) -> list[CandidateProduct]:
        """Independent DOM channel: visible price elements on the current page."""
        try:
            found = await page.scan_prices(DOM_SCAN_LIMIT)
        except Exception as e:
            logger.debug(f"DOM price scan failed: {e}")
            return []

        store = urlparse(url).hostname or "Unknown Store"
        candidates = []
        for item in found:
            price = parse_price(item.get("price"))
            if price.amount is None:
                continue
            candidates.append(
                CandidateProduct(
                    product_name=(item.get("name") or "Unknown Product").strip(),
                    price=price.amount,
                    currency=price.currency or "EUR",
                    store_name=store,
                    source_url=url,
                    screenshot_path=screenshot_path,
                )
            )
        return candidates


class MockDirectedAgent:
    """Dry-run stand-in returning canned findings keyed off the goal text."""

    async def execute_task(self, goal: str, task_id: str) -> DirectedRunResult:
        logger.info(f"Mock directed run for task {task_id}")
        lowered = goal.lower()
        results = []

        if "tomir" in lowered:
            results += [
                CandidateProduct("NNormal Tomir 02", 145.00, store_name="i-Run.pt", source_url="https://www.i-run.pt/nnormal-tomir-02"),
                CandidateProduct("Nnormal Tomir 2.0 GTX Unisex", 189.95, store_name="Zalando PT", source_url="https://www.zalando.pt/nnormal-tomir-gtx"),
            ]
        if "kjerag" in lowered:
            results.append(CandidateProduct("NNormal Kjerag 02", 190.00, store_name="NNormal", source_url="https://www.nnormal.com/es_ES/kjerag-02"))
        if not results:
            results.append(CandidateProduct("Mock Product", 99.99, store_name="Mock Store", source_url="https://example.com"))

        for r in results:
            r.availability = Availability.IN_STOCK
            r.method = "mock"
        return DirectedRunResult(success=True, results=results, turns=1)


# --- Strategy adapter ---


def build_directed_goal(parsed: ParsedTask) -> str:
    """Natural-language instruction for the planner built from a parsed task."""
    sources = parsed.sources
    if sources.mode == "direct_url" and sources.url:
        parts = [f"Go to {sources.url} and search on that website for"]
    elif sources.mode == "google":
        parts = ["Go to Google.com and search for"]
    elif sources.sites:
        parts = [f"Go to {sources.sites[0]}.com and search for"]
    else:
        parts = ["Search on Google for"]

    product = parsed.product
    parts += [v for v in (product.brand, product.model, product.color, product.category) if v]

    max_price = parsed.constraints.max_price
    if max_price:
        amount = int(max_price) if float(max_price).is_integer() else max_price
        code = parsed.constraints.currency or "EUR"
        symbol = (get_currency_catalog().get(code) or {}).get("symbol", code)
        parts.append(f"under {amount}{symbol}")

    return " ".join(parts) + GOAL_SUFFIX


class DirectedStrategy:
    """Runs a directed agent for a parsed task and maps its findings to results."""

    name = "directed"

    def __init__(self, agent: DirectedAgent | MockDirectedAgent, goal_builder: Callable[[ParsedTask], str] = build_directed_goal):
        self.agent = agent
        self.goal_builder = goal_builder

    async def execute(self, parsed: ParsedTask, task_id: str) -> ExecutionOutcome:
        goal = self.goal_builder(parsed)
        run = await self.agent.execute_task(goal, task_id)
        max_price = parsed.constraints.max_price

        results = [
            ExtractionResult(
                product_name=c.product_name or "Unknown",
                current_price=c.price,
                currency=c.currency or parsed.constraints.currency or "EUR",
                store_name=c.store_name,
                availability=c.availability,
                selected_size=parsed.constraints.size,
                source_url=c.source_url,
                screenshot_path=c.screenshot_path,
                meets_criteria=meets_price_ceiling(c.price, max_price),
                extraction_method=c.method,
            )
            for c in run.results
            if c.price >= 0
        ]

        if not run.success:
            return ExecutionOutcome(status=TaskStatus.TIMEOUT, results=results, errors=[run.error or "Directed execution failed"])
        status = TaskStatus.OK if results else TaskStatus.NOT_FOUND
        return ExecutionOutcome(status=status, results=results)
