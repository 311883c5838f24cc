"""Pytest configuration and fixtures for price-monitor tests."""

from pathlib import Path

import pytest

from price_monitor.agents.browser import NavigationResult
from price_monitor.output.results import ResultSink
from price_monitor.output.screenshots import ScreenshotManager

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "e2e: End-to-end tests requiring real API keys and browser")
    config.addinivalue_line("markers", "integration: Integration tests with a real browser")
    config.addinivalue_line("markers", "slow: Tests that take longer to run")


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakePage:
    """In-memory page driver recording every call.

    `texts` maps a selector to the text it yields; `attributes` maps (selector, attribute) to a value;
    `visible` lists selectors that count as visible.
    """

    def __init__(
        self,
        status: int | None = 200,
        url: str = "https://shop.example/product",
        title: str = "Example product",
        body: str = "",
        texts: dict[str, str] | None = None,
        attributes: dict[tuple[str, str], str] | None = None,
        visible: set[str] | None = None,
        cards: list[dict[str, str | None]] | None = None,
        prices: list[dict[str, str | None]] | None = None,
        navigation_error: str | None = None,
        width: int = 1440,
        height: int = 900,
    ):
        self.status = status
        self.url = url
        self._title = title
        self.body = body
        self.texts = texts or {}
        self.attributes = attributes or {}
        self.visible = visible or set()
        self.cards = cards or []
        self.prices = prices or []
        self.navigation_error = navigation_error
        self.width = width
        self.height = height

        self.started = False
        self.closed = False
        self.navigations: list[str] = []
        self.actions: list[tuple] = []

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def navigate(self, url: str) -> NavigationResult:
        self.navigations.append(url)
        if self.navigation_error:
            return NavigationResult(url=url, error=self.navigation_error)
        self.url = url
        return NavigationResult(url=url, status=self.status)

    async def current_url(self) -> str:
        return self.url

    async def title(self) -> str:
        return self._title

    async def visible_text(self) -> str:
        return self.body

    async def is_visible(self, selector: str) -> bool:
        return selector in self.visible

    async def text_of(self, selector: str) -> str | None:
        return self.texts.get(selector)

    async def attribute_of(self, selector: str, attribute: str) -> str | None:
        return self.attributes.get((selector, attribute))

    async def click_selector(self, selector: str) -> bool:
        return False

    async def click_button_with_text(self, texts: list[str]) -> bool:
        return False

    async def query_cards(self, container: str, fields: dict[str, str], limit: int) -> list[dict[str, str | None]]:
        return self.cards[:limit]

    async def scan_prices(self, limit: int) -> list[dict[str, str | None]]:
        return self.prices[:limit]

    async def screenshot(self, path: Path | None = None) -> bytes:
        if path is not None:
            path.write_bytes(PNG_BYTES)
        return PNG_BYTES

    async def click(self, x: int, y: int) -> None:
        self.actions.append(("click", x, y))

    async def hover(self, x: int, y: int) -> None:
        self.actions.append(("hover", x, y))

    async def type_text(self, text: str) -> None:
        self.actions.append(("type", text))

    async def press_keys(self, keys: list[str]) -> None:
        self.actions.append(("keys", tuple(keys)))

    async def scroll(self, x: int, y: int, delta_x: int, delta_y: int) -> None:
        self.actions.append(("scroll", x, y, delta_x, delta_y))

    async def drag(self, x: int, y: int, dest_x: int, dest_y: int) -> None:
        self.actions.append(("drag", x, y, dest_x, dest_y))

    async def go_back(self) -> None:
        self.actions.append(("back",))

    async def go_forward(self) -> None:
        self.actions.append(("forward",))

    async def wait(self, seconds: float) -> None:
        pass


async def no_sleep(seconds: float) -> None:
    pass


@pytest.fixture
def screenshots(tmp_path) -> ScreenshotManager:
    return ScreenshotManager(tmp_path / "screenshots")


@pytest.fixture
def sink(tmp_path) -> ResultSink:
    return ResultSink(tmp_path / "results")
