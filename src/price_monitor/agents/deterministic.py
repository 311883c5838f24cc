"""Selector and heuristic extraction driven through a fixed per-site procedure."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from urllib.parse import urljoin

from ..config import settings
from ..exceptions import BrowserError
from ..models import Availability, ExecutionOutcome, ExtractionResult, ParsedTask, SiteConfig, TaskStatus, meets_price_ceiling
from ..output.screenshots import ScreenshotManager
from ..validation.normalizers import build_search_query, extract_site_name, find_price_in_text, normalize_currency, parse_price
from .browser import BrowserPage, PageDriver

logger = logging.getLogger(__name__)

CONSENT_SELECTORS = [
    "#onetrust-accept-btn-handler",
    '[data-testid="cookie-banner-accept"]',
    "#uc-btn-accept-banner",
    ".cookie-accept",
    '[aria-label="Accept cookies"]',
    'button[id*="accept"]',
]
CONSENT_BUTTON_TEXTS = ["accept all", "accept", "i accept", "agree", "got it"]

CAPTCHA_SELECTORS = [
    'iframe[src*="recaptcha"]',
    'iframe[src*="captcha"]',
    'iframe[src*="hcaptcha"]',
    ".g-recaptcha",
    "#captcha",
    '[class*="captcha"]',
]
CAPTCHA_PHRASES = ["verify you are human", "not a robot", "are you a robot"]

BLOCKED_STATUS_CODES = frozenset({403, 429})

# Machine-readable price attributes (schema.org microdata, data attributes)
PRICE_ATTRIBUTES = [
    ('[itemprop="price"]', "content"),
    ("[data-price]", "data-price"),
]
PRICE_CURRENCY_ATTRIBUTE = ('[itemprop="priceCurrency"]', "content")

PRICE_HEURISTIC_SELECTORS = [
    '[itemprop="price"]',
    '[data-testid*="price"]',
    ".product-price",
    ".current-price",
    ".sale-price",
    '[class*="price"]',
]

NAME_SELECTORS = [
    "h1",
    '[data-testid*="product-name"]',
    '[class*="product-name"]',
    '[class*="product-title"]',
    '[itemprop="name"]',
]

OUT_OF_STOCK_SELECTORS = ['[class*="out-of-stock"]', '[class*="sold-out"]', '[data-available="false"]']
OUT_OF_STOCK_PHRASES = ["out of stock", "sold out", "currently unavailable", "not available"]
IN_STOCK_SELECTORS = ['[class*="in-stock"]', '[data-available="true"]']
IN_STOCK_PHRASES = ["in stock", "add to cart", "add to bag", "available"]

GENERIC_SEARCH_URL = "https://www.google.com/search?q={query}"


@dataclass
class TargetOutcome:
    """What a single site/URL produced."""

    status: TaskStatus
    results: list[ExtractionResult] = field(default_factory=list)
    error: str | None = None


@dataclass
class Target:
    site: SiteConfig
    url: str
    # google: parse result cards; site: follow the first result; direct: extract in place
    kind: str = "site"


def load_sites() -> dict[str, SiteConfig]:
    from ..config import get_site_catalog

    return {key: SiteConfig.from_catalog(key, data) for key, data in get_site_catalog().items()}


class DeterministicAgent:
    """Navigates each target and extracts price, name and availability without a model."""

    name = "deterministic"

    def __init__(
        self,
        page_factory: Callable[[], PageDriver] | None = None,
        screenshots: ScreenshotManager | None = None,
        sites: dict[str, SiteConfig] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_google_results: int | None = None,
    ):
        self._page_factory = page_factory or BrowserPage
        self._screenshots = screenshots
        self._sites = sites
        self._sleep = sleep
        self.max_google_results = max_google_results or settings.agent.max_google_results

    @property
    def sites(self) -> dict[str, SiteConfig]:
        if self._sites is None:
            self._sites = load_sites()
        return self._sites

    @property
    def screenshots(self) -> ScreenshotManager:
        if self._screenshots is None:
            self._screenshots = ScreenshotManager()
        return self._screenshots

    async def execute(self, parsed: ParsedTask, task_id: str) -> ExecutionOutcome:
        return await self.execute_task(parsed, task_id)

    def build_targets(self, parsed: ParsedTask) -> list[Target]:
        p = parsed.product
        query = build_search_query(p.brand, p.model, p.category, p.color, p.gender)
        sources = parsed.sources

        if sources.mode == "direct_url" and sources.url:
            key = extract_site_name(sources.url) or "direct"
            site = self.sites.get(key) or SiteConfig(key=key, name=key, search_url=sources.url, rate_limit=0)
            return [Target(site=site, url=sources.url, kind="direct")]

        if sources.mode == "specific_sites" and sources.sites:
            targets = []
            for name in sources.sites:
                site = self.sites.get(name.lower())
                if site is None:
                    logger.warning(f"Unknown site '{name}', using a generic search")
                    site = SiteConfig(key=name, name=name, search_url=GENERIC_SEARCH_URL)
                    targets.append(Target(site=site, url=site.build_search_url(f"{query} {name}")))
                else:
                    targets.append(Target(site=site, url=site.build_search_url(query)))
            return targets

        google = self.sites.get("google") or SiteConfig(key="google", name="Google Shopping", search_url=GENERIC_SEARCH_URL)
        return [Target(site=google, url=google.build_search_url(query), kind="google")]

    async def execute_task(self, parsed: ParsedTask, task_id: str) -> ExecutionOutcome:
        """Run every target in order. One target's failure never stops the others."""
        targets = self.build_targets(parsed)
        results: list[ExtractionResult] = []
        errors: list[str] = []
        resistance: TaskStatus | None = None

        page = self._page_factory()
        try:
            await page.start()
            for target in targets:
                try:
                    outcome = await self._run_target(page, target, parsed, task_id)
                except Exception as e:
                    logger.error(f"Target {target.site.key} failed: {e}")
                    errors.append(f"{target.site.key}: {e}")
                    continue

                results.extend(outcome.results)
                if outcome.error:
                    errors.append(f"{target.site.key}: {outcome.error}")
                if resistance is None and outcome.status in (TaskStatus.CAPTCHA, TaskStatus.BLOCKED):
                    resistance = outcome.status
        finally:
            await page.close()

        if results:
            status = TaskStatus.OK
        else:
            status = resistance or TaskStatus.NOT_FOUND
        logger.info(f"Deterministic run for task {task_id}: {status.value} with {len(results)} results")
        return ExecutionOutcome(status=status, results=results, errors=errors)

    async def _rate_gate(self, site: SiteConfig) -> None:
        delay_ms = site.rate_limit if site.rate_limit is not None else settings.agent.default_rate_limit_ms
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)

    async def _open(self, page: PageDriver, url: str, site: SiteConfig) -> TargetOutcome | None:
        """Navigate and check for resistance. Returns an outcome only when the target must stop."""
        nav = await page.navigate(url)
        if nav.error:
            raise BrowserError(f"Navigation failed: {nav.error}")

        await self.dismiss_consent(page)

        if await self.detect_captcha(page, site):
            logger.warning(f"CAPTCHA detected on {site.name}")
            return TargetOutcome(status=TaskStatus.CAPTCHA, error="CAPTCHA detected")

        if nav.status in BLOCKED_STATUS_CODES:
            logger.warning(f"Access blocked on {site.name} (HTTP {nav.status})")
            return TargetOutcome(status=TaskStatus.BLOCKED, error=f"Blocked with HTTP {nav.status}")

        return None

    async def _run_target(self, page: PageDriver, target: Target, parsed: ParsedTask, task_id: str) -> TargetOutcome:
        site = target.site
        await self._rate_gate(site)
        logger.info(f"Checking {site.name}: {target.url}")

        stopped = await self._open(page, target.url, site)
        if stopped:
            return stopped

        if target.kind == "google":
            results = await self._extract_google_cards(page, site, parsed)
        else:
            if target.kind == "site":
                product_url = await self._first_result_link(page, site)
                if product_url:
                    await self._sleep(random.uniform(0.5, 1.5))
                    stopped = await self._open(page, product_url, site)
                    if stopped:
                        return stopped
            result = await self._extract_product(page, site, parsed)
            results = [result] if result else []

        screenshot = await page.screenshot()
        path = self.screenshots.save(task_id, site.key, screenshot)
        results = [r.model_copy(update={"screenshot_path": str(path)}) for r in results]

        if not results:
            return TargetOutcome(status=TaskStatus.NOT_FOUND, error="No price found")
        return TargetOutcome(status=TaskStatus.OK, results=results)

    async def dismiss_consent(self, page: PageDriver) -> bool:
        for selector in CONSENT_SELECTORS:
            if await page.click_selector(selector):
                logger.debug(f"Consent dialog dismissed via {selector}")
                return True
        return await page.click_button_with_text(CONSENT_BUTTON_TEXTS)

    async def detect_captcha(self, page: PageDriver, site: SiteConfig | None = None) -> bool:
        selectors = CAPTCHA_SELECTORS + (site.captcha if site else [])
        for selector in selectors:
            if await page.is_visible(selector):
                return True
        text = (await page.visible_text()).lower()
        return any(phrase in text for phrase in CAPTCHA_PHRASES)

    async def _first_result_link(self, page: PageDriver, site: SiteConfig) -> str | None:
        container = site.selectors.result_container
        if not container:
            return None
        cards = await page.query_cards(container, {}, limit=1)
        href = cards[0].get("href") if cards else None
        if not href:
            return None
        return urljoin(await page.current_url(), href)

    async def _extract_google_cards(self, page: PageDriver, site: SiteConfig, parsed: ParsedTask) -> list[ExtractionResult]:
        selectors = site.selectors
        if not selectors.result_container:
            result = await self._extract_product(page, site, parsed)
            return [result] if result else []

        fields = {"price": selectors.price or '[class*="price"]', "name": selectors.product_name or "h3"}
        if selectors.store:
            fields["store"] = selectors.store
        cards = await page.query_cards(selectors.result_container, fields, limit=self.max_google_results)
        fallback_url = await page.current_url()

        results = []
        for card in cards:
            price = parse_price(card.get("price"))
            if price.amount is None:
                continue
            results.append(
                ExtractionResult(
                    product_name=(card.get("name") or "Unknown Product").strip(),
                    current_price=price.amount,
                    currency=price.currency or parsed.constraints.currency or "EUR",
                    store_name=(card.get("store") or site.name).strip(),
                    availability=Availability.UNKNOWN,
                    selected_size=parsed.constraints.size,
                    source_url=card.get("href") or fallback_url,
                    meets_criteria=meets_price_ceiling(price.amount, parsed.constraints.max_price),
                    extraction_method="selector",
                )
            )
        return results

    async def extract_price(self, page: PageDriver, site: SiteConfig) -> tuple[float | None, str | None, str | None]:
        """Three tiers: site selector, generic price attributes and selectors, visible-text regex.

        Returns (amount, currency, method); all None when nothing matched.
        """
        if site.selectors.price:
            price = parse_price(await page.text_of(site.selectors.price))
            if price.amount is not None:
                return price.amount, price.currency, "selector"

        for selector, attribute in PRICE_ATTRIBUTES:
            price = parse_price(await page.attribute_of(selector, attribute))
            if price.amount is not None:
                currency = price.currency or normalize_currency(await page.attribute_of(*PRICE_CURRENCY_ATTRIBUTE))
                return price.amount, currency, "heuristic"

        for selector in PRICE_HEURISTIC_SELECTORS:
            price = parse_price(await page.text_of(selector))
            if price.amount is not None:
                return price.amount, price.currency, "heuristic"

        price = find_price_in_text(await page.visible_text())
        if price.amount is not None:
            return price.amount, price.currency, "regex"

        return None, None, None

    async def extract_product_name(self, page: PageDriver, site: SiteConfig) -> str:
        selectors = [site.selectors.product_name] if site.selectors.product_name else []
        for selector in selectors + NAME_SELECTORS:
            text = await page.text_of(selector)
            if text and text.strip():
                return text.strip()
        return await page.title() or "Unknown Product"

    async def extract_availability(self, page: PageDriver) -> Availability:
        text = (await page.visible_text()).lower()

        for selector in OUT_OF_STOCK_SELECTORS:
            if await page.is_visible(selector):
                return Availability.OUT_OF_STOCK
        if any(phrase in text for phrase in OUT_OF_STOCK_PHRASES):
            return Availability.OUT_OF_STOCK

        for selector in IN_STOCK_SELECTORS:
            if await page.is_visible(selector):
                return Availability.IN_STOCK
        if any(phrase in text for phrase in IN_STOCK_PHRASES):
            return Availability.IN_STOCK

        return Availability.UNKNOWN

    async def _extract_product(self, page: PageDriver, site: SiteConfig, parsed: ParsedTask) -> ExtractionResult | None:
        amount, currency, method = await self.extract_price(page, site)
        if amount is None:
            logger.warning(f"Could not extract a price on {site.name}")
            return None

        return ExtractionResult(
            product_name=await self.extract_product_name(page, site),
            current_price=amount,
            currency=currency or parsed.constraints.currency or "EUR",
            store_name=site.name,
            availability=await self.extract_availability(page),
            selected_size=parsed.constraints.size,
            source_url=await page.current_url(),
            meets_criteria=meets_price_ceiling(amount, parsed.constraints.max_price),
            extraction_method=method,
        )


class MockDeterministicAgent:
    """Offline stand-in used in dry-run mode; prices are a fixed fraction of the ceiling."""

    name = "deterministic-mock"

    def __init__(self, price_factor: float = 0.9):
        self.price_factor = price_factor

    async def execute(self, parsed: ParsedTask, task_id: str) -> ExecutionOutcome:
        return await self.execute_task(parsed, task_id)

    async def execute_task(self, parsed: ParsedTask, task_id: str) -> ExecutionOutcome:
        logger.info(f"Mock deterministic run for task {task_id}")
        p = parsed.product
        query = build_search_query(p.brand, p.model, p.category, p.color, p.gender)

        if parsed.sources.mode == "google":
            stores = ["Google Shopping"]
        else:
            stores = parsed.sources.sites or ["unknown"]

        base = parsed.constraints.max_price or 100
        price = round(base * self.price_factor, 2)
        name = f"{p.brand or ''} {p.model or query}".strip() or "Mock Product"

        results = [
            ExtractionResult(
                product_name=name,
                current_price=price,
                currency=parsed.constraints.currency or "EUR",
                store_name=store,
                availability=Availability.IN_STOCK,
                selected_size=parsed.constraints.size,
                source_url=f"https://example.com/mock/{store.lower().replace(' ', '-')}",
                meets_criteria=meets_price_ceiling(price, parsed.constraints.max_price),
                extraction_method="mock",
            )
            for store in stores
        ]
        return ExecutionOutcome(status=TaskStatus.OK, results=results)
