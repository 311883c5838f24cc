"""Intent parsing: free text to ParsedTask, via an LLM or an offline regex parser."""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import ValidationError

from ..config import settings
from ..exceptions import IntentParseError
from ..models import TASK_TYPE, Constraints, ParsedTask, Product, Sources
from ..validation.normalizers import extract_site_name, normalize_brand, normalize_color, normalize_currency, normalize_gender, normalize_size
from .prompts import INTENT_SYSTEM_PROMPT, get_intent_prompt

if TYPE_CHECKING:
    from browser_use.llm.base import BaseChatModel

logger = logging.getLogger(__name__)


@dataclass
class ParseResult:
    """Outcome of parsing: a task, a clarification request, or an error."""

    success: bool
    parsed_task: ParsedTask | None = None
    questions: list[str] = field(default_factory=list)
    error: str | None = None
    raw_response: str | None = None


class IntentParserProtocol(Protocol):
    async def parse(self, text: str, task_id: str) -> ParseResult: ...


def _clamp(value: Any, default: float = 0.5) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return default
    return max(0.0, min(1.0, float(value)))


def normalize_parsed(data: dict[str, Any]) -> ParsedTask:
    """Build a ParsedTask from raw model output, normalizing every field."""
    product = data.get("product") or {}
    constraints = data.get("constraints") or {}
    sources = data.get("sources") or {}

    max_price = constraints.get("max_price")
    if isinstance(max_price, bool) or not isinstance(max_price, int | float):
        max_price = None

    sites = sources.get("sites")
    if sites:
        sites = [site for site in (extract_site_name(s) for s in sites) if site]

    return ParsedTask(
        task_type=data.get("task_type") or TASK_TYPE,
        product=Product(
            brand=normalize_brand(product.get("brand")),
            model=product.get("model") or None,
            category=product.get("category") or None,
            color=normalize_color(product.get("color")),
            gender=normalize_gender(product.get("gender")),
        ),
        constraints=Constraints(
            max_price=max_price,
            currency=normalize_currency(constraints.get("currency")) or "EUR",
            size=normalize_size(constraints.get("size")),
        ),
        sources=Sources(
            mode=sources.get("mode") or "google",
            sites=sites or None,
            url=sources.get("url") or None,
        ),
        search_strategy=data.get("search_strategy") or None,
        confidence=_clamp(data.get("confidence")),
    )


def _extract_json(content: str) -> dict[str, Any]:
    content = str(content).strip()

    # Handle markdown code blocks
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0].strip()
    elif "```" in content:
        content = content.split("```")[1].split("```")[0].strip()

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise IntentParseError(f"Invalid JSON from model: {e}") from e
    if not isinstance(data, dict):
        raise IntentParseError("Model response is not a JSON object")
    return data


class IntentParser:
    """LLM-backed parser using a browser-use chat model."""

    def __init__(self, llm: "BaseChatModel"):
        self.llm = llm

    async def parse(self, text: str, task_id: str) -> ParseResult:
        from browser_use.llm.messages import SystemMessage, UserMessage

        logger.info(f"Parsing intent for task {task_id} ({len(text)} chars)")

        try:
            response = await self.llm.ainvoke([SystemMessage(content=INTENT_SYSTEM_PROMPT), UserMessage(content=get_intent_prompt(text))])
        except Exception as e:
            logger.warning(f"Intent model call failed for task {task_id}: {e}")
            return ParseResult(success=False, error=f"Intent model unavailable: {e}")

        try:
            content = response.completion
            if not content:
                raise IntentParseError("Empty response from model")

            data = _extract_json(content)
            questions = data.get("questions")
            if questions and "product" not in data:
                return ParseResult(success=False, questions=[str(q) for q in questions], raw_response=str(content))

            parsed = normalize_parsed(data)
        except (IntentParseError, ValidationError) as e:
            logger.warning(f"Intent parsing failed for task {task_id}: {e}")
            return ParseResult(success=False, error=str(e))

        logger.info(f"Parsed task {task_id}: brand={parsed.product.brand} model={parsed.product.model} confidence={parsed.confidence}")
        return ParseResult(success=True, parsed_task=parsed, raw_response=str(content))


# --- Offline parser ---

BRAND_RE = re.compile(r"\b(nnormal|nike|adidas|puma|patagonia|zara|h&m|new balance|converse|vans|the north face)\b", re.IGNORECASE)
COLOR_RE = re.compile(r"\b(black|white|red|blue|green|grey|gray|navy|pink|brown|negro|blanco|azul)\b", re.IGNORECASE)
PRICE_RE = re.compile(r"(\d+)\s*€|€\s*(\d+)|under\s+(\d+)|below\s+(\d+)|debajo de\s+(\d+)", re.IGNORECASE)
SITE_RE = re.compile(r"\b(zalando|farfetch|asos|zara|h&m|sportsshoes|nnormal\.com)", re.IGNORECASE)
URL_RE = re.compile(r"https?://(?:www\.)?[a-zA-Z0-9-]+(?:\.[a-zA-Z]{2,})+\S*", re.IGNORECASE)
GOOGLE_RE = re.compile(r"google|online|internet|search", re.IGNORECASE)

KNOWN_MODELS = [
    "Tomir 02 Gore-Tex",
    "Tomir 02",
    "Tomir",
    "Kjerag 02",
    "Kjerag",
    "Kboix",
    "Air Force 1",
    "Air Max",
    "Air Jordan",
    "Dunk",
    "Blazer",
    "Samba",
    "Stan Smith",
    "Superstar",
    "Gazelle",
    "Ultraboost",
    "Down Sweater",
    "Nano Puff",
    "Nuptse",
    "574",
    "990",
    "550",
]

CATEGORIES = {
    "sneakers": ["sneaker", "shoe", "trainer", "kick"],
    "jacket": ["jacket", "coat", "puffer"],
    "t-shirt": ["t-shirt", "tee", "shirt"],
    "hoodie": ["hoodie", "sweatshirt", "sweater"],
    "jeans": ["jeans", "denim"],
    "dress": ["dress"],
    "pants": ["pants", "trousers"],
}


def _extract_model(text: str) -> str | None:
    lowered = text.lower()
    for model in KNOWN_MODELS:
        if model.lower() in lowered:
            return model
    return None


def _extract_category(text: str) -> str | None:
    lowered = text.lower()
    for category, keywords in CATEGORIES.items():
        if any(kw in lowered for kw in keywords):
            return category
    return None


def _extract_gender(text: str) -> str | None:
    lowered = text.lower()
    if re.search(r"\b(men|man|male|mens|men's)\b", lowered):
        return "men"
    if re.search(r"\b(women|woman|female|womens|women's)\b", lowered):
        return "women"
    if re.search(r"\b(kid|kids|children|child)\b", lowered):
        return "kids"
    return None


def _extract_size(text: str) -> str | None:
    match = re.search(r"\bsize\s+(\w+)\b", text, re.IGNORECASE) or re.search(r"\b(XS|XL|XXL|S|M|L)\s+size\b", text, re.IGNORECASE)
    return normalize_size(match.group(1)) if match else None


class MockIntentParser:
    """Regex parser for dry-run mode and tests. Never calls a remote service."""

    async def parse(self, text: str, task_id: str) -> ParseResult:
        logger.info(f"Mock parsing for task {task_id} (dry-run)")

        brand_match = BRAND_RE.search(text)
        color_match = COLOR_RE.search(text)
        price_match = PRICE_RE.search(text)
        max_price = None
        if price_match:
            max_price = float(next(g for g in price_match.groups() if g))

        url_match = URL_RE.search(text)
        site_matches = [m.lower() for m in SITE_RE.findall(text)]

        if url_match:
            url = url_match.group(0)
            sources = Sources(mode="direct_url", sites=[extract_site_name(url)], url=url)
        elif site_matches:
            sites = list(dict.fromkeys(extract_site_name(s) for s in site_matches))
            sources = Sources(mode="specific_sites", sites=sites)
        else:
            sources = Sources(mode="google")

        brand = brand_match.group(1) if brand_match else None
        parsed = ParsedTask(
            product=Product(
                brand=normalize_brand(brand),
                model=_extract_model(text),
                category=_extract_category(text),
                color=normalize_color(color_match.group(1) if color_match else None),
                gender=_extract_gender(text),
            ),
            constraints=Constraints(max_price=max_price, currency="EUR", size=_extract_size(text)),
            sources=sources,
            search_strategy="google" if GOOGLE_RE.search(text) else "site_internal",
            confidence=0.75 if brand else 0.5,
        )
        return ParseResult(success=True, parsed_task=parsed, raw_response=parsed.model_dump_json())


def create_intent_parser(dry_run: bool | None = None) -> IntentParserProtocol:
    """Return the LLM parser, or the offline one in dry-run mode or without an API key."""
    dry_run = settings.agent.dry_run if dry_run is None else dry_run
    api_key = settings.llm.get_api_key_for_provider()
    if dry_run or (settings.llm.requires_api_key() and not api_key):
        return MockIntentParser()

    from ..providers import get_intent_llm

    return IntentParser(get_intent_llm())
