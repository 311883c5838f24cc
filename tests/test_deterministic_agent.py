"""Tests for the selector/heuristic agent against an in-memory page."""

import pytest
from conftest import FakePage

from price_monitor.agents.deterministic import DeterministicAgent, MockDeterministicAgent
from price_monitor.models import Availability, Constraints, ParsedTask, Product, SiteConfig, SiteSelectors, Sources, TaskStatus


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def direct_task(url: str = "https://shop.example/item", max_price: float | None = 100) -> ParsedTask:
    return ParsedTask(
        product=Product(brand="Nike", model="Air Force 1"),
        constraints=Constraints(max_price=max_price, currency="EUR"),
        sources=Sources(mode="direct_url", url=url),
        confidence=0.9,
    )


def make_agent(page, screenshots, sites=None, sleep=None) -> DeterministicAgent:
    return DeterministicAgent(
        page_factory=lambda: page,
        screenshots=screenshots,
        sites={} if sites is None else sites,
        sleep=sleep or SleepRecorder(),
    )


class TestResistance:
    @pytest.mark.anyio
    async def test_forbidden_response_is_blocked(self, screenshots):
        page = FakePage(status=403, texts={'[itemprop="price"]': "89,95 €"})
        outcome = await make_agent(page, screenshots).execute_task(direct_task(), "task-blocked")

        assert outcome.status == TaskStatus.BLOCKED
        assert outcome.results == []
        assert any("403" in e for e in outcome.errors)
        assert page.closed

    @pytest.mark.anyio
    async def test_captcha_detected(self, screenshots):
        page = FakePage(visible={"#captcha"})
        outcome = await make_agent(page, screenshots).execute_task(direct_task(), "task-captcha")

        assert outcome.status == TaskStatus.CAPTCHA
        assert outcome.results == []

    @pytest.mark.anyio
    async def test_captcha_phrase_in_text(self, screenshots):
        page = FakePage(body="Please verify you are human to continue")
        outcome = await make_agent(page, screenshots).execute_task(direct_task(), "task-captcha-text")
        assert outcome.status == TaskStatus.CAPTCHA

    @pytest.mark.anyio
    async def test_site_specific_captcha_selector(self, screenshots):
        page = FakePage(visible={"#px-captcha"})
        agent = make_agent(page, screenshots)
        site = SiteConfig(key="zara", name="Zara", search_url="https://www.zara.com/search?searchTerm={query}", captcha=["#px-captcha"])
        assert await agent.detect_captcha(page, site)
        assert not await agent.detect_captcha(page)


class TestExtraction:
    @pytest.mark.anyio
    async def test_direct_url_extraction(self, screenshots):
        page = FakePage(
            texts={'[itemprop="price"]': "89,95 €", "h1": "Nike Air Force 1 '07"},
            body="Nike Air Force 1 '07. Add to cart",
        )
        outcome = await make_agent(page, screenshots).execute_task(direct_task(), "task-direct")

        assert outcome.status == TaskStatus.OK
        [result] = outcome.results
        assert result.current_price == 89.95
        assert result.currency == "EUR"
        assert result.product_name == "Nike Air Force 1 '07"
        assert result.availability == Availability.IN_STOCK
        assert result.extraction_method == "heuristic"
        assert result.meets_criteria
        assert result.screenshot_path
        assert screenshots.get_task_screenshots("task-direct")
        assert page.closed

    @pytest.mark.anyio
    async def test_site_selector_wins(self, screenshots):
        page = FakePage(texts={".money-amount__main": "49,95 EUR", '[itemprop="price"]': "10 €"})
        agent = make_agent(page, screenshots)
        site = SiteConfig(key="zara", name="Zara", search_url="{query}", selectors=SiteSelectors(price=".money-amount__main"))

        amount, currency, method = await agent.extract_price(page, site)
        assert (amount, currency, method) == (49.95, "EUR", "selector")

    @pytest.mark.anyio
    async def test_grouped_price_over_ceiling(self, screenshots):
        page = FakePage(texts={'[itemprop="price"]': "$1,299.99", "h1": "Trail runner"})
        outcome = await make_agent(page, screenshots).execute_task(direct_task(max_price=100), "task-grouped")

        [result] = outcome.results
        assert result.current_price == 1299.99
        assert result.currency == "USD"
        assert not result.meets_criteria

    @pytest.mark.anyio
    async def test_microdata_attribute_before_text(self, screenshots):
        page = FakePage(
            attributes={('[itemprop="price"]', "content"): "1299.00", ('[itemprop="priceCurrency"]', "content"): "EUR"},
            texts={'[class*="price"]': "Save 20 €"},
        )
        agent = make_agent(page, screenshots)
        site = SiteConfig(key="shop", name="Shop", search_url="{query}")

        amount, currency, method = await agent.extract_price(page, site)
        assert (amount, currency, method) == (1299.0, "EUR", "heuristic")

    @pytest.mark.anyio
    async def test_regex_fallback(self, screenshots):
        page = FakePage(body="Limited offer: now 59,99 € only", title="Sneaker page")
        outcome = await make_agent(page, screenshots).execute_task(direct_task(max_price=50), "task-regex")

        [result] = outcome.results
        assert result.extraction_method == "regex"
        assert result.product_name == "Sneaker page"
        assert not result.meets_criteria

    @pytest.mark.anyio
    async def test_no_price_is_not_found(self, screenshots):
        page = FakePage(body="Nothing to see here")
        outcome = await make_agent(page, screenshots).execute_task(direct_task(), "task-empty")

        assert outcome.status == TaskStatus.NOT_FOUND
        assert outcome.results == []

    @pytest.mark.anyio
    async def test_out_of_stock_checked_first(self, screenshots):
        page = FakePage(body="Sold out. Add to cart to be notified")
        assert await make_agent(page, screenshots).extract_availability(page) == Availability.OUT_OF_STOCK

    @pytest.mark.anyio
    async def test_google_result_cards(self, screenshots):
        google = SiteConfig(
            key="google",
            name="Google Shopping",
            search_url="https://www.google.com/search?tbm=shop&q={query}",
            rate_limit=3000,
            selectors=SiteSelectors(result_container="[data-docid]", price=".price", product_name="h3", store=".store"),
        )
        page = FakePage(
            cards=[
                {"price": "95,00 €", "name": "Nike Air Force 1", "store": "Zalando", "href": "https://www.zalando.es/af1"},
                {"price": "n/a", "name": "Broken card", "store": "X", "href": None},
                {"price": "120 €", "name": "Nike Air Force 1 Premium", "store": None, "href": None},
            ]
        )
        sleep = SleepRecorder()
        parsed = ParsedTask(
            product=Product(brand="Nike", model="Air Force 1"),
            constraints=Constraints(max_price=100, currency="EUR"),
            sources=Sources(mode="google"),
            confidence=0.9,
        )

        outcome = await make_agent(page, screenshots, sites={"google": google}, sleep=sleep).execute_task(parsed, "task-google")

        assert outcome.status == TaskStatus.OK
        assert [r.current_price for r in outcome.results] == [95.0, 120.0]
        assert outcome.results[0].store_name == "Zalando"
        assert outcome.results[1].store_name == "Google Shopping"
        assert outcome.results[1].source_url == page.url
        assert [r.meets_criteria for r in outcome.results] == [True, False]
        assert sleep.delays == [3.0]
        assert page.navigations == ["https://www.google.com/search?tbm=shop&q=Nike+Air+Force+1"]


class FailingFirstNavigationPage(FakePage):
    async def navigate(self, url):
        if not self.navigations:
            self.navigations.append(url)
            raise RuntimeError("connection reset")
        return await super().navigate(url)


@pytest.mark.anyio
async def test_one_failing_site_does_not_stop_the_others(screenshots):
    sites = {
        "alpha": SiteConfig(key="alpha", name="Alpha", search_url="https://alpha.example/?q={query}", rate_limit=0),
        "beta": SiteConfig(key="beta", name="Beta", search_url="https://beta.example/?q={query}", rate_limit=0),
    }
    page = FailingFirstNavigationPage(texts={'[itemprop="price"]': "75 €"})
    parsed = ParsedTask(
        product=Product(brand="Nike"),
        constraints=Constraints(max_price=100),
        sources=Sources(mode="specific_sites", sites=["alpha", "beta"]),
        confidence=0.9,
    )

    outcome = await make_agent(page, screenshots, sites=sites).execute_task(parsed, "task-partial")

    assert outcome.status == TaskStatus.OK
    assert [r.store_name for r in outcome.results] == ["Beta"]
    assert len(outcome.errors) == 1
    assert outcome.errors[0].startswith("alpha:")
    assert page.closed


def test_unknown_site_uses_generic_search(screenshots):
    agent = make_agent(FakePage(), screenshots)
    parsed = ParsedTask(product=Product(brand="Nike"), sources=Sources(mode="specific_sites", sites=["myshop"]))

    [target] = agent.build_targets(parsed)
    assert target.url == "https://www.google.com/search?q=Nike+myshop"


@pytest.mark.anyio
async def test_mock_agent_prices_below_ceiling():
    parsed = ParsedTask(
        product=Product(brand="Nike"),
        constraints=Constraints(max_price=100, currency="EUR"),
        sources=Sources(mode="specific_sites", sites=["zalando", "farfetch"]),
    )
    outcome = await MockDeterministicAgent().execute(parsed, "task-mock")

    assert outcome.status == TaskStatus.OK
    assert [r.store_name for r in outcome.results] == ["zalando", "farfetch"]
    assert all(r.current_price == 90.0 and r.meets_criteria for r in outcome.results)
