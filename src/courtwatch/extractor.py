"""
Slot extraction for the currently selected day.

Классы виджета хешируются, разметка плавает, поэтому нет одного «лучшего»
селектора: несколько независимых стратегий, результаты объединяются.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, FrozenSet, List, Sequence, Set, Tuple

from .browser import PageDriver
from .locators import LIST_POSITIONS, SLOT_MARKERS, TIME_SHAPED, WIDTH_MARKED, day_part_sections
from .models import parse_slots

logger = logging.getLogger(__name__)


Strategy = Callable[[PageDriver], Awaitable[Set[str]]]


async def slot_markers(driver: PageDriver) -> Set[str]:
    """Dedicated slot/time marker elements."""
    return set(await driver.texts(SLOT_MARKERS))


async def list_positions(driver: PageDriver) -> Set[str]:
    """Fixed list-position containers: list items, grid cells, options."""
    return set(await driver.texts(LIST_POSITIONS))


async def time_shaped(driver: PageDriver) -> Set[str]:
    """Any element whose own text is exactly a time."""
    return set(await driver.texts(TIME_SHAPED))


async def width_marked(driver: PageDriver) -> Set[str]:
    """Tiles sized with inline width / flex-basis, as the slot grid renders them."""
    return set(await driver.texts(WIDTH_MARKED))


async def day_part_subtree(driver: PageDriver) -> Set[str]:
    """Fallback: every short text node under the morning/day/evening sections."""
    return set(await driver.descendant_texts(day_part_sections()))


DEFAULT_STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("slot_markers", slot_markers),
    ("list_positions", list_positions),
    ("time_shaped", time_shaped),
    ("width_marked", width_marked),
    ("day_part_subtree", day_part_subtree),
)


class SlotExtractor:
    """Run the strategy battery, union the results, nudge once if empty."""

    def __init__(
        self,
        driver: PageDriver,
        strategies: Sequence[Tuple[str, Strategy]] = DEFAULT_STRATEGIES,
        *,
        nudge_scroll: int = 400,
        nudge_pause: float = 1.2,
    ) -> None:
        self.driver = driver
        self.strategies = list(strategies)
        self.nudge_scroll = nudge_scroll
        self.nudge_pause = nudge_pause

    async def run_battery(self) -> FrozenSet[str]:
        fragments: List[str] = []
        hits = []
        for name, strategy in self.strategies:
            try:
                found = await strategy(self.driver)
            except Exception as e:  # noqa: BLE001
                logger.debug("Strategy %s failed: %s", name, e)
                continue
            slots = parse_slots(found)
            if slots:
                hits.append(f"{name}={len(slots)}")
            fragments.extend(found)
        result = parse_slots(fragments)
        logger.debug("Extraction battery: %s", ", ".join(hits) or "nothing")
        return result

    async def extract(self) -> FrozenSet[str]:
        """
        Return normalized "HH:MM" values visible for the selected day.

        Пустой результат допустим: после одной прокрутки и повтора
        считаем, что свободного времени нет.
        """
        slots = await self.run_battery()
        if slots:
            return slots
        logger.debug("No slots on first pass, nudging and retrying once")
        try:
            await self.driver.scroll(self.nudge_scroll)
        except Exception as e:  # noqa: BLE001
            logger.debug("Nudge scroll failed: %s", e)
        await self.driver.pause(self.nudge_pause)
        return await self.run_battery()


__all__ = [
    "Strategy",
    "DEFAULT_STRATEGIES",
    "SlotExtractor",
    "slot_markers",
    "list_positions",
    "time_shaped",
    "width_marked",
    "day_part_subtree",
]
