"""
Calendar day enumeration and verified day selection.

Клик по дню считается успешным только когда виджет сам сообщает,
что выбран именно этот день. Иначе повторяем с эскалацией:
обычный клик → force → el.click() из JS.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Set, Tuple

from .browser import ClickMode, Element, PageDriver
from .locators import DAY_CONTROL, SELECTED_DAY
from .models import is_day_label

logger = logging.getLogger(__name__)


_LEADING_DAY_RE = re.compile(r"^\s*(\d{1,2})(?![\d:])")


@dataclass(frozen=True)
class DayCandidate:
    label: str
    horizontal_position: float
    control: Element


@dataclass(frozen=True)
class ClickPolicy:
    """Bounded retry policy for day selection."""

    max_attempts: int = 8
    backoff: float = 0.25
    max_backoff: float = 1.0
    escalation: Tuple[ClickMode, ...] = (
        ClickMode.NORMAL,
        ClickMode.NORMAL,
        ClickMode.NORMAL,
        ClickMode.FORCE,
        ClickMode.FORCE,
        ClickMode.FORCE,
        ClickMode.SCRIPT,
    )

    def mode_for(self, attempt: int) -> ClickMode:
        return self.escalation[min(attempt, len(self.escalation) - 1)]

    def delay_for(self, attempt: int) -> float:
        return min(self.max_backoff, self.backoff * (attempt + 1))


def _leading_day(text: str) -> str | None:
    # подходят "12" и "12\nпн", но не "12:00" и не длинные подписи
    text = text.strip()
    if not text or len(text) > 16:
        return None
    match = _LEADING_DAY_RE.match(text)
    if not match or not is_day_label(match.group(1)):
        return None
    return str(int(match.group(1)))


async def read_day_candidates(driver: PageDriver) -> List[DayCandidate]:
    """Visible, enabled day controls, leftmost first, one per label."""
    elements = await driver.find(DAY_CONTROL)
    usable = [el for el in elements if el.visible and el.enabled and is_day_label(el.text)]
    usable.sort(key=lambda el: el.x)
    days: List[DayCandidate] = []
    seen: Set[str] = set()
    for el in usable:
        label = str(int(el.text.strip()))
        if label in seen:
            continue
        seen.add(label)
        days.append(DayCandidate(label=label, horizontal_position=el.x, control=el))
    return days


class DaySelector:
    def __init__(self, driver: PageDriver, policy: ClickPolicy | None = None) -> None:
        self.driver = driver
        self.policy = policy or ClickPolicy()

    async def enumerate_days(self) -> List[DayCandidate]:
        days = await read_day_candidates(self.driver)
        logger.info("Calendar offers %s days: %s", len(days), ", ".join(d.label for d in days))
        return days

    async def selected_labels(self) -> Set[str]:
        """Day labels the widget currently reports as selected."""
        try:
            texts = await self.driver.texts(SELECTED_DAY)
        except Exception as e:  # noqa: BLE001
            logger.debug("Could not read selected day: %s", e)
            return set()
        labels = set()
        for text in texts:
            label = _leading_day(text)
            if label:
                labels.add(label)
        return labels

    async def select(self, day: DayCandidate) -> bool:
        """
        Focus ``day`` and confirm the widget reports it as selected.

        Returns False (not an error) if confirmation never arrives.
        """
        if day.label in await self.selected_labels():
            logger.debug("Day %s already selected", day.label)
            return True

        policy = self.policy
        for attempt in range(policy.max_attempts):
            mode = policy.mode_for(attempt)
            try:
                await self.driver.click(day.control, mode)
            except Exception as e:  # noqa: BLE001
                logger.debug("Click on day %s (%s) failed: %s", day.label, mode.value, e)
            await self.driver.pause(policy.delay_for(attempt))
            if day.label in await self.selected_labels():
                if attempt:
                    logger.info("Day %s selected after %s attempts (%s)", day.label, attempt + 1, mode.value)
                return True

        logger.warning(
            "Day %s not confirmed as selected after %s attempts, skipping",
            day.label,
            policy.max_attempts,
        )
        return False


__all__ = ["DayCandidate", "ClickPolicy", "DaySelector", "read_day_candidates"]
