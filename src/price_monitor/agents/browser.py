"""Thin page driver over a browser-use BrowserSession.

All commands are session-scoped CDP calls so they bypass browser-use's
watchdogs; the agents only talk to `BrowserPage`, which keeps them testable
with an in-memory fake.
"""

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from browser_use import BrowserProfile
from browser_use.browser.profile import ProxySettings

from ..config import settings
from ..exceptions import BrowserError

if TYPE_CHECKING:
    from browser_use.browser.session import BrowserSession, CDPSession

logger = logging.getLogger(__name__)

# CDP modifier bitmask
MODIFIERS = {"alt": 1, "control": 2, "ctrl": 2, "meta": 4, "command": 4, "shift": 8}

SPECIAL_KEYS = {
    "enter": ("Enter", "Enter", 13),
    "return": ("Enter", "Enter", 13),
    "backspace": ("Backspace", "Backspace", 8),
    "tab": ("Tab", "Tab", 9),
    "escape": ("Escape", "Escape", 27),
    "esc": ("Escape", "Escape", 27),
    "delete": ("Delete", "Delete", 46),
    "space": (" ", "Space", 32),
    "arrowup": ("ArrowUp", "ArrowUp", 38),
    "arrowdown": ("ArrowDown", "ArrowDown", 40),
    "arrowleft": ("ArrowLeft", "ArrowLeft", 37),
    "arrowright": ("ArrowRight", "ArrowRight", 39),
    "pageup": ("PageUp", "PageUp", 33),
    "pagedown": ("PageDown", "PageDown", 34),
    "home": ("Home", "Home", 36),
    "end": ("End", "End", 35),
}


@dataclass
class NavigationResult:
    url: str
    status: int | None = None
    error: str | None = None


class PageDriver(Protocol):
    """What the agents need from a browser tab."""

    width: int
    height: int

    async def start(self) -> None: ...
    async def close(self) -> None: ...
    async def navigate(self, url: str) -> NavigationResult: ...
    async def current_url(self) -> str: ...
    async def title(self) -> str: ...
    async def visible_text(self) -> str: ...
    async def is_visible(self, selector: str) -> bool: ...
    async def text_of(self, selector: str) -> str | None: ...
    async def attribute_of(self, selector: str, attribute: str) -> str | None: ...
    async def click_selector(self, selector: str) -> bool: ...
    async def click_button_with_text(self, texts: list[str]) -> bool: ...
    async def query_cards(self, container: str, fields: dict[str, str], limit: int) -> list[dict[str, str | None]]: ...
    async def scan_prices(self, limit: int) -> list[dict[str, str | None]]: ...
    async def screenshot(self, path: Path | None = None) -> bytes: ...
    async def click(self, x: int, y: int) -> None: ...
    async def hover(self, x: int, y: int) -> None: ...
    async def type_text(self, text: str) -> None: ...
    async def press_keys(self, keys: list[str]) -> None: ...
    async def scroll(self, x: int, y: int, delta_x: int, delta_y: int) -> None: ...
    async def drag(self, x: int, y: int, dest_x: int, dest_y: int) -> None: ...
    async def go_back(self) -> None: ...
    async def go_forward(self) -> None: ...
    async def wait(self, seconds: float) -> None: ...


def build_browser_profile() -> BrowserProfile:
    proxy = None
    if settings.browser.proxy_server:
        proxy = ProxySettings(server=settings.browser.proxy_server, bypass=settings.browser.proxy_bypass)
    return BrowserProfile(
        headless=settings.browser.headless,
        proxy=proxy,
        user_agent=settings.browser.user_agent,
    )


_CARDS_JS = """
(function() {
    const container = %s;
    const fields = %s;
    const limit = %d;
    const cards = Array.from(document.querySelectorAll(container)).slice(0, limit);
    return JSON.stringify(cards.map(card => {
        const out = {};
        for (const [name, selector] of Object.entries(fields)) {
            const el = card.querySelector(selector);
            out[name] = el ? el.textContent.trim() : null;
        }
        const link = card.tagName === 'A' ? card : card.querySelector('a[href]');
        out.href = link ? link.href : null;
        return out;
    }));
})()
"""

_PRICE_SCAN_JS = """
(function() {
    const limit = %d;
    const nodes = document.querySelectorAll('[class*="price"], [data-testid*="price"], [itemprop="price"]');
    const found = [];
    for (const el of nodes) {
        const rect = el.getBoundingClientRect();
        if (rect.width === 0 || rect.height === 0) continue;
        const text = el.textContent.trim();
        if (!text || text.length > 40) continue;
        const card = el.closest('article, li, [class*="product"], [data-testid*="product"]') || document.body;
        const heading = card.querySelector('h1, h2, h3, [class*="name"], [class*="title"]');
        found.push({price: text, name: heading ? heading.textContent.trim() : document.title});
        if (found.length >= limit) break;
    }
    return JSON.stringify(found);
})()
"""


class BrowserPage:
    """Single-tab page driver backed by a browser-use session, owned by one task."""

    def __init__(self, width: int | None = None, height: int | None = None, profile: BrowserProfile | None = None):
        self.width = width or settings.browser.viewport_width
        self.height = height or settings.browser.viewport_height
        self._profile = profile
        self._session: "BrowserSession | None" = None
        self._cdp: "CDPSession | None" = None

    async def start(self) -> None:
        from browser_use.browser.session import BrowserSession

        self._session = BrowserSession(browser_profile=self._profile or build_browser_profile())
        await self._session.start()
        self._cdp = await self._session.get_or_create_cdp_session()

        for domain in ("Page", "Runtime"):
            try:
                await getattr(self._session.cdp_client.send, domain).enable(session_id=self._cdp.session_id)
            except Exception as e:
                # May already be enabled by the session manager
                logger.debug(f"{domain}.enable: {e}")

        await self._send(
            "Emulation",
            "setDeviceMetricsOverride",
            {"width": self.width, "height": self.height, "deviceScaleFactor": 1, "mobile": False},
        )
        logger.debug(f"Browser started with viewport {self.width}x{self.height}")

    async def close(self) -> None:
        if self._session is None:
            return
        try:
            await self._session.stop()
        finally:
            self._session = None
            self._cdp = None

    async def _send(self, domain: str, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if self._session is None or self._cdp is None:
            raise BrowserError("Browser session is not started")
        command = getattr(getattr(self._session.cdp_client.send, domain), method)
        if params is None:
            return await command(session_id=self._cdp.session_id)
        return await command(params=params, session_id=self._cdp.session_id)

    async def evaluate(self, expression: str) -> Any:
        result = await self._send("Runtime", "evaluate", {"expression": expression, "returnByValue": True, "awaitPromise": True})
        if result.get("exceptionDetails"):
            raise BrowserError(f"Script failed: {result['exceptionDetails'].get('text', 'unknown error')}")
        return result.get("result", {}).get("value")

    async def _wait_for_load(self, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            try:
                if await self.evaluate("document.readyState") == "complete":
                    return
            except BrowserError as e:
                logger.debug(f"readyState check failed: {e}")
            await asyncio.sleep(0.25)
        logger.debug(f"Page did not reach readyState=complete within {timeout}s")

    async def navigate(self, url: str) -> NavigationResult:
        timeout = settings.browser.navigation_timeout
        try:
            nav = await asyncio.wait_for(self._send("Page", "navigate", {"url": url, "transitionType": "address_bar"}), timeout=timeout)
        except TimeoutError as e:
            raise BrowserError(f"Navigation to {url} timed out after {timeout}s") from e

        if nav.get("errorText"):
            return NavigationResult(url=url, error=nav["errorText"])

        await self._wait_for_load(timeout)
        status = await self.evaluate("(performance.getEntriesByType('navigation')[0] || {}).responseStatus || null")
        return NavigationResult(url=await self.current_url(), status=status)

    async def current_url(self) -> str:
        return await self.evaluate("window.location.href") or ""

    async def title(self) -> str:
        return await self.evaluate("document.title") or ""

    async def visible_text(self) -> str:
        return await self.evaluate("document.body ? document.body.innerText : ''") or ""

    async def is_visible(self, selector: str) -> bool:
        js = f"""
        (function() {{
            const el = document.querySelector({json.dumps(selector)});
            if (!el) return false;
            const rect = el.getBoundingClientRect();
            return rect.width > 0 && rect.height > 0;
        }})()
        """
        try:
            return bool(await self.evaluate(js))
        except BrowserError:
            # Invalid selector for this page
            return False

    async def text_of(self, selector: str) -> str | None:
        js = f"(function() {{ const el = document.querySelector({json.dumps(selector)}); return el ? el.textContent.trim() : null; }})()"
        try:
            return await self.evaluate(js) or None
        except BrowserError:
            return None

    async def attribute_of(self, selector: str, attribute: str) -> str | None:
        js = f"(function() {{ const el = document.querySelector({json.dumps(selector)}); return el ? el.getAttribute({json.dumps(attribute)}) : null; }})()"
        try:
            return await self.evaluate(js)
        except BrowserError:
            return None

    async def click_selector(self, selector: str) -> bool:
        if not await self.is_visible(selector):
            return False
        js = f"(function() {{ const el = document.querySelector({json.dumps(selector)}); if (!el) return false; el.click(); return true; }})()"
        return bool(await self.evaluate(js))

    async def click_button_with_text(self, texts: list[str]) -> bool:
        js = f"""
        (function() {{
            const wanted = {json.dumps([t.lower() for t in texts])};
            for (const el of document.querySelectorAll('button, [role="button"], a')) {{
                const label = el.textContent.trim().toLowerCase();
                const rect = el.getBoundingClientRect();
                if (rect.width > 0 && rect.height > 0 && wanted.some(w => label === w || label.startsWith(w))) {{
                    el.click();
                    return true;
                }}
            }}
            return false;
        }})()
        """
        return bool(await self.evaluate(js))

    async def query_cards(self, container: str, fields: dict[str, str], limit: int) -> list[dict[str, str | None]]:
        raw = await self.evaluate(_CARDS_JS % (json.dumps(container), json.dumps(fields), limit))
        return json.loads(raw) if raw else []

    async def scan_prices(self, limit: int = 10) -> list[dict[str, str | None]]:
        raw = await self.evaluate(_PRICE_SCAN_JS % limit)
        return json.loads(raw) if raw else []

    async def screenshot(self, path: Path | None = None) -> bytes:
        result = await self._send("Page", "captureScreenshot", {"format": "png"})
        data = base64.b64decode(result["data"])
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        return data

    async def _mouse(self, event_type: str, x: int, y: int, **extra: Any) -> None:
        await self._send("Input", "dispatchMouseEvent", {"type": event_type, "x": x, "y": y, **extra})

    async def click(self, x: int, y: int) -> None:
        await self._mouse("mouseMoved", x, y)
        await self._mouse("mousePressed", x, y, button="left", clickCount=1)
        await self._mouse("mouseReleased", x, y, button="left", clickCount=1)

    async def hover(self, x: int, y: int) -> None:
        await self._mouse("mouseMoved", x, y)

    async def type_text(self, text: str) -> None:
        await self._send("Input", "insertText", {"text": text})

    async def press_keys(self, keys: list[str]) -> None:
        """Press a combination such as ["Control", "a"]; modifiers are held while the last key is pressed."""
        modifiers = 0
        for key in keys[:-1]:
            modifiers |= MODIFIERS.get(key.lower(), 0)

        name = keys[-1]
        key, code, vk = SPECIAL_KEYS.get(name.lower(), (name, f"Key{name.upper()}" if len(name) == 1 else name, ord(name.upper()[0])))
        params = {"key": key, "code": code, "windowsVirtualKeyCode": vk, "modifiers": modifiers}
        await self._send("Input", "dispatchKeyEvent", {"type": "keyDown", **params})
        await self._send("Input", "dispatchKeyEvent", {"type": "keyUp", **params})

    async def scroll(self, x: int, y: int, delta_x: int, delta_y: int) -> None:
        await self._mouse("mouseWheel", x, y, deltaX=delta_x, deltaY=delta_y)

    async def drag(self, x: int, y: int, dest_x: int, dest_y: int) -> None:
        await self._mouse("mouseMoved", x, y)
        await self._mouse("mousePressed", x, y, button="left", clickCount=1)
        await self._mouse("mouseMoved", dest_x, dest_y, button="left")
        await self._mouse("mouseReleased", dest_x, dest_y, button="left", clickCount=1)

    async def _history_step(self, offset: int) -> None:
        history = await self._send("Page", "getNavigationHistory")
        index = history.get("currentIndex", 0) + offset
        entries = history.get("entries", [])
        if 0 <= index < len(entries):
            await self._send("Page", "navigateToHistoryEntry", {"entryId": entries[index]["id"]})
            await self._wait_for_load(settings.browser.navigation_timeout)

    async def go_back(self) -> None:
        await self._history_step(-1)

    async def go_forward(self) -> None:
        await self._history_step(1)

    async def wait(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
