"""
ScheduleBuilder: wizard → days → slots → one ScheduleSnapshot.

Дни обрабатываются строго по одному, слева направо: выбранный день является
общее состояние страницы, параллельно его не поделить.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Optional

from .artifacts import ArtifactSink
from .browser import PageDriver
from .config import Settings
from .days import DaySelector
from .extractor import SlotExtractor
from .models import ScheduleSnapshot, utcnow
from .navigator import WizardNavigator

logger = logging.getLogger(__name__)


class ScheduleBuilder:
    def __init__(
        self,
        driver: PageDriver,
        navigator: WizardNavigator,
        days: DaySelector,
        extractor: SlotExtractor,
        artifacts: Optional[ArtifactSink] = None,
    ) -> None:
        self.driver = driver
        self.navigator = navigator
        self.days = days
        self.extractor = extractor
        self.artifacts = artifacts

    @classmethod
    def for_driver(
        cls, driver: PageDriver, settings: Settings, artifacts: Optional[ArtifactSink] = None
    ) -> "ScheduleBuilder":
        return cls(
            driver,
            WizardNavigator(driver, settings.target, budget_seconds=settings.monitor.wizard_budget_seconds),
            DaySelector(driver),
            SlotExtractor(driver),
            artifacts,
        )

    async def build(self) -> ScheduleSnapshot:
        """
        Navigate to the calendar and inspect every offered day.

        NavigationError propagates; per-day failures only drop that day.
        """
        await self.navigator.run()
        if self.artifacts:
            await self.artifacts.capture(self.driver, "calendar")

        days: Dict[str, FrozenSet[str]] = {}
        for day in await self.days.enumerate_days():
            try:
                if not await self.days.select(day):
                    continue
                slots = await self.extractor.extract()
            except Exception as e:  # noqa: BLE001
                logger.warning("Day %s skipped after driver error: %s", day.label, e)
                if self.artifacts:
                    await self.artifacts.capture(self.driver, f"day-{day.label}-error")
                continue
            days[day.label] = slots
            logger.info("Day %s: %s", day.label, ", ".join(sorted(slots)) or "no free slots")

        snapshot = ScheduleSnapshot(captured_at=utcnow(), days=days)
        logger.info("Snapshot: %s days inspected, %s slots", len(snapshot.days), snapshot.slot_count)
        return snapshot


__all__ = ["ScheduleBuilder"]
