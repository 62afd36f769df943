"""
Playwright-based browser session and page driver.

Browser-модуль на Playwright:
- запуск Chromium через выбранный прокси (ru-RU, Europe/Moscow)
- узкий интерфейс PageDriver, которым пользуется остальной код
- человеческие паузы между действиями
"""

from __future__ import annotations

import asyncio
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Locator,
    Page,
    Playwright,
    async_playwright,
)

from .config import BrowserConfig, TargetConfig
from .utils import async_retry

logger = logging.getLogger(__name__)


USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)

# Один проход по всем совпадениям вместо четырёх round-trip на каждый элемент
_DESCRIBE_JS = """
els => els.map(el => {
    const r = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    const visible = r.width > 0 && r.height > 0
        && style.visibility !== 'hidden' && style.display !== 'none';
    const enabled = !el.disabled
        && el.getAttribute('aria-disabled') !== 'true'
        && !/\\bdisabled\\b/i.test(el.className || '');
    return {
        text: (el.innerText || el.textContent || '').trim(),
        x: r.left + window.scrollX,
        visible: visible,
        enabled: enabled,
    };
})
"""

_TEXTS_JS = "els => els.map(el => (el.innerText || el.textContent || '').trim())"

_DESCENDANT_TEXTS_JS = """
els => els.flatMap(el => Array.from(el.querySelectorAll('*'))
    .map(n => (n.textContent || '').trim())
    .filter(t => t.length > 0 && t.length <= 16))
"""


class ClickMode(str, Enum):
    NORMAL = "normal"
    FORCE = "force"
    SCRIPT = "script"


@dataclass(frozen=True)
class Element:
    """Point-in-time description of a matched element plus an opaque handle."""

    text: str
    x: float
    visible: bool = True
    enabled: bool = True
    handle: Any = None


class PageDriver(Protocol):
    """Capabilities the monitor needs from a browser page."""

    @property
    def url(self) -> str: ...

    async def goto(self, url: str) -> None: ...

    async def find(self, selector: str, *, visible_only: bool = True) -> List[Element]: ...

    async def texts(self, selector: str) -> List[str]: ...

    async def descendant_texts(self, selector: str) -> List[str]: ...

    async def body_text(self) -> str: ...

    async def click(self, element: Element, mode: ClickMode = ClickMode.NORMAL) -> None: ...

    async def scroll(self, delta_y: int) -> None: ...

    async def pause(self, seconds: float) -> None: ...

    async def content(self) -> str: ...

    async def screenshot(self, path: Path) -> Path: ...


class PlaywrightDriver:
    """PageDriver backed by a Playwright page."""

    def __init__(self, page: Page, *, navigation_timeout_ms: int = 60000, click_timeout_ms: int = 4000) -> None:
        self.page = page
        self.navigation_timeout_ms = navigation_timeout_ms
        self.click_timeout_ms = click_timeout_ms

    @property
    def url(self) -> str:
        return self.page.url

    @async_retry(attempts=2, base_delay=3, max_delay=10, exceptions=(PlaywrightError,))
    async def goto(self, url: str) -> None:
        resp = await self.page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
        if resp and resp.status >= 400:
            logger.warning("Page %s answered HTTP %s", url, resp.status)

    async def find(self, selector: str, *, visible_only: bool = True) -> List[Element]:
        locator = self.page.locator(selector)
        infos: List[Dict[str, Any]] = await locator.evaluate_all(_DESCRIBE_JS)
        elements = [
            Element(
                text=info["text"],
                x=float(info["x"]),
                visible=bool(info["visible"]),
                enabled=bool(info["enabled"]),
                handle=locator.nth(index),
            )
            for index, info in enumerate(infos)
        ]
        if visible_only:
            elements = [el for el in elements if el.visible]
        return elements

    async def texts(self, selector: str) -> List[str]:
        return await self.page.locator(selector).evaluate_all(_TEXTS_JS)

    async def descendant_texts(self, selector: str) -> List[str]:
        return await self.page.locator(selector).evaluate_all(_DESCENDANT_TEXTS_JS)

    async def body_text(self) -> str:
        # inner_text, а не text_content: без содержимого <script>
        return (await self.page.inner_text("body")) or ""

    async def click(self, element: Element, mode: ClickMode = ClickMode.NORMAL) -> None:
        handle: Locator = element.handle
        if mode is ClickMode.SCRIPT:
            await handle.evaluate("el => el.click()")
            return
        await handle.scroll_into_view_if_needed(timeout=self.click_timeout_ms)
        await handle.click(
            force=mode is ClickMode.FORCE,
            timeout=self.click_timeout_ms,
            delay=random.randint(40, 120),
        )

    async def scroll(self, delta_y: int) -> None:
        await self.page.mouse.wheel(0, delta_y)

    async def pause(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    async def content(self) -> str:
        return await self.page.content()

    async def screenshot(self, path: Path) -> Path:
        """Capture screenshot of current page."""
        await self.page.screenshot(path=str(path), full_page=True)
        return path


class CourtBrowser:
    """
    High-level wrapper around Playwright: one browser, one context, one page per run.
    """

    def __init__(
        self,
        browser_cfg: BrowserConfig,
        target_cfg: TargetConfig,
        proxy: Optional[Dict[str, str]] = None,
    ) -> None:
        self.browser_cfg = browser_cfg
        self.target_cfg = target_cfg
        self.proxy = proxy
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._driver: Optional[PlaywrightDriver] = None

    @property
    def driver(self) -> PlaywrightDriver:
        if not self._driver:
            raise RuntimeError("Browser not initialised")
        return self._driver

    async def start(self) -> None:
        if self._browser:
            return
        logger.info(
            "Starting Chromium (headless=%s, proxy=%s)",
            self.browser_cfg.headless,
            self.proxy["server"] if self.proxy else "direct",
        )
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.browser_cfg.headless,
            args=["--no-sandbox", "--disable-dev-shm-usage", "--disable-blink-features=AutomationControlled"],
            proxy=self.proxy,  # type: ignore[arg-type]
        )
        self._context = await self._browser.new_context(
            viewport={"width": 1280, "height": 900},
            user_agent=USER_AGENT,
            locale=self.browser_cfg.locale,
            timezone_id=self.target_cfg.timezone,
        )
        self._page = await self._context.new_page()
        self._driver = PlaywrightDriver(
            self._page,
            navigation_timeout_ms=self.browser_cfg.navigation_timeout_ms,
        )

    async def close(self) -> None:
        """Close page, context, browser and Playwright; each step best-effort."""
        logger.info("Closing Playwright browser")
        for closer in (
            self._page.close if self._page else None,
            self._context.close if self._context else None,
            self._browser.close if self._browser else None,
            self._playwright.stop if self._playwright else None,
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:  # noqa: BLE001
                logger.warning("Failed to close browser resource: %s", e)

        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self._driver = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[PlaywrightDriver]:
        """
        Async context manager for using browser.

        Пример:
            async with CourtBrowser(cfg.browser, cfg.target).session() as driver:
                await driver.goto(cfg.target.url)
        """
        try:
            await self.start()
            yield self.driver
        finally:
            await self.close()


__all__ = ["ClickMode", "Element", "PageDriver", "PlaywrightDriver", "CourtBrowser"]
