"""
Wizard navigation: home page → product picker → confirmation → calendar.

Все ожидания делят один общий бюджет времени. Если календарь уже на экране
(deep link, шаги склеены сайтом), лишние шаги пропускаются.
"""

from __future__ import annotations

import logging
import random
from typing import Dict, NoReturn, Optional, Tuple

from .browser import ClickMode, Element, PageDriver
from .config import TargetConfig
from .days import read_day_candidates
from .errors import CaptchaDetected, NavigationError
from .locators import CAPTCHA_TOKENS, control_with_text, day_part_markers, deepest_with_text
from .models import NavigationState
from .utils import Deadline

logger = logging.getLogger(__name__)


CALENDAR = "calendar"


class WizardNavigator:
    """Drives the booking wizard until the calendar's day controls are queryable."""

    def __init__(
        self,
        driver: PageDriver,
        target: TargetConfig,
        *,
        budget_seconds: float = 20.0,
        poll_interval: float = 0.25,
        pause_range: Tuple[float, float] = (0.4, 1.2),
    ) -> None:
        self.driver = driver
        self.target = target
        self.budget_seconds = budget_seconds
        self.poll_interval = poll_interval
        self.pause_range = pause_range
        self.state = NavigationState.HOME

    async def run(self) -> NavigationState:
        """Return CALENDAR or raise NavigationError."""
        self.state = NavigationState.HOME
        deadline = Deadline(self.budget_seconds)
        logger.info("Opening %s", self.target.url)
        await self.driver.goto(self.target.url)
        await self._check_captcha()

        if await self.calendar_ready():
            return self._arrive("calendar already visible on landing")

        # Home → ProductPicker
        found = await self._wait_any(
            {
                "promo": deepest_with_text(self.target.promo_text),
                "product": deepest_with_text(self.target.product_text),
            },
            deadline,
        )
        if found is None:
            self._fail(f"Control {self.target.promo_text!r} not found")
        name, element = found
        if name == CALENDAR:
            return self._arrive("calendar appeared before promo step")
        if name == "promo":
            logger.info("Clicking promo %r", self.target.promo_text)
            await self._click(element)
        else:
            logger.info("Already past home page, promo step skipped")
        self.state = NavigationState.PRODUCT_PICKER
        await self._human_pause()
        await self._check_captcha()

        # ProductPicker → ConfirmationStep
        found = await self._wait_any({"product": deepest_with_text(self.target.product_text)}, deadline)
        if found is None:
            self._fail(f"Product control {self.target.product_text!r} not found")
        name, element = found
        if name == CALENDAR:
            return self._arrive("calendar appeared before product step")
        logger.info("Clicking product %r", self.target.product_text)
        await self._click(element)
        self.state = NavigationState.CONFIRMATION_STEP
        await self._human_pause()
        await self._check_captcha()

        # ConfirmationStep → Calendar; кнопки может не быть, если сайт склеил шаги
        found = await self._wait_any({"continue": control_with_text(self.target.continue_text)}, deadline)
        if found is None:
            self._fail(f"Neither {self.target.continue_text!r} nor calendar appeared")
        name, element = found
        if name == CALENDAR:
            logger.info("No %r step, calendar already shown", self.target.continue_text)
            return self._arrive("confirmation step merged")
        logger.info("Clicking %r", self.target.continue_text)
        await self._click(element)
        await self._human_pause()
        await self._check_captcha()

        found = await self._wait_any({}, deadline)
        if found is None:
            self._fail("Calendar did not appear")
        return self._arrive("wizard completed")

    async def calendar_ready(self) -> bool:
        """Day-part headings and at least one day control are visible."""
        try:
            markers = await self.driver.find(day_part_markers())
            if not markers:
                return False
            return bool(await read_day_candidates(self.driver))
        except Exception as e:  # noqa: BLE001
            logger.debug("Calendar readiness check failed: %s", e)
            return False

    async def _wait_any(
        self, selectors: Dict[str, str], deadline: Deadline
    ) -> Optional[Tuple[str, Optional[Element]]]:
        """
        Poll until the calendar or any of ``selectors`` is visible.

        Календарь проверяется первым: так каждый шаг идемпотентен.
        """
        while True:
            if await self.calendar_ready():
                return CALENDAR, None
            for name, selector in selectors.items():
                try:
                    elements = await self.driver.find(selector)
                except Exception as e:  # noqa: BLE001
                    # Во время перехода страницы контекст исполнения пересоздаётся
                    logger.debug("Lookup %s failed: %s", name, e)
                    continue
                if elements:
                    return name, elements[0]
            if deadline.expired:
                return None
            await self.driver.pause(min(self.poll_interval, deadline.remaining()))

    async def _click(self, element: Optional[Element]) -> None:
        if element is None:
            return
        for mode in (ClickMode.NORMAL, ClickMode.FORCE):
            try:
                await self.driver.click(element, mode)
                return
            except Exception as e:  # noqa: BLE001
                logger.debug("Click (%s) failed: %s", mode.value, e)
        # Следующее ожидание само покажет, сработал ли переход
        logger.warning("Could not click %r, continuing", element.text[:40])

    async def _check_captcha(self) -> None:
        try:
            body = (await self.driver.body_text()).lower()
        except Exception as e:  # noqa: BLE001
            logger.debug("Could not read body text: %s", e)
            return
        if any(token in body for token in CAPTCHA_TOKENS):
            logger.warning("Captcha / Cloudflare detected on page")
            last = self.state
            self.state = NavigationState.FAILED
            raise CaptchaDetected("Anti-bot page shown", state=last, url=self.driver.url)

    async def _human_pause(self) -> None:
        await self.driver.pause(random.uniform(*self.pause_range))

    def _arrive(self, how: str) -> NavigationState:
        logger.info("Calendar reached (%s)", how)
        self.state = NavigationState.CALENDAR
        return self.state

    def _fail(self, message: str) -> NoReturn:
        last = self.state
        self.state = NavigationState.FAILED
        logger.error("Navigation failed at %s: %s", last.value, message)
        raise NavigationError(message, state=last, url=self.driver.url)


__all__ = ["WizardNavigator"]
