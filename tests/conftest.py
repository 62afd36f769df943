from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from courtwatch.browser import ClickMode, Element
from courtwatch.config import TargetConfig
from courtwatch.locators import DAY_CONTROL, SELECTED_DAY, day_part_markers


class FakeDriver:
    """In-memory PageDriver: selectors map to canned elements / texts."""

    def __init__(self, url: str = "https://tennis.luzhniki.ru/") -> None:
        self.url = url
        self.elements: Dict[str, List[Element]] = {}
        self.text_map: Dict[str, List[str]] = {}
        self.descendants: Dict[str, List[str]] = {}
        self.body = ""
        self.clicks: List[Tuple[str, ClickMode]] = []
        self.visited: List[str] = []
        self.pauses: List[float] = []
        self.scrolls: List[int] = []
        self.on_click: Optional[Callable[[Element, ClickMode], None]] = None
        self.failing: Dict[str, Exception] = {}

    async def goto(self, url: str) -> None:
        self.visited.append(url)
        self.url = url

    async def find(self, selector: str, *, visible_only: bool = True) -> List[Element]:
        if selector in self.failing:
            raise self.failing[selector]
        found = list(self.elements.get(selector, []))
        return [el for el in found if el.visible] if visible_only else found

    async def texts(self, selector: str) -> List[str]:
        if selector in self.failing:
            raise self.failing[selector]
        return list(self.text_map.get(selector, []))

    async def descendant_texts(self, selector: str) -> List[str]:
        if selector in self.failing:
            raise self.failing[selector]
        return list(self.descendants.get(selector, []))

    async def body_text(self) -> str:
        return self.body

    async def click(self, element: Element, mode: ClickMode = ClickMode.NORMAL) -> None:
        self.clicks.append((element.text, mode))
        if self.on_click:
            self.on_click(element, mode)

    async def scroll(self, delta_y: int) -> None:
        self.scrolls.append(delta_y)

    async def pause(self, seconds: float) -> None:
        self.pauses.append(seconds)
        await asyncio.sleep(0)

    async def content(self) -> str:
        return "<html></html>"

    async def screenshot(self, path: Path) -> Path:
        path.write_bytes(b"png")
        return path

    # helpers

    def show_calendar(self, labels: List[str], selected: Optional[str] = None) -> None:
        self.elements[day_part_markers()] = [Element(text="Утро", x=0)]
        self.elements[DAY_CONTROL] = [Element(text=label, x=100 + i * 60) for i, label in enumerate(labels)]
        self.select_day(selected)

    def select_day(self, label: Optional[str]) -> None:
        self.text_map[SELECTED_DAY] = [label] if label else []


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def target() -> TargetConfig:
    return TargetConfig()
