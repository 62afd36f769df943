"""
Monitoring pipeline and background loop.

Один прогон: прокси → браузер → мастер → дни/слоты → дифф → отчёт → сохранение.
Цикл: прогоны со случайной задержкой, увеличение интервала при ошибках,
пауза после капчи.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import AsyncContextManager, Callable, Dict, List, Optional

from .artifacts import ArtifactSink
from .browser import CourtBrowser, PageDriver
from .config import Settings
from .diff import diff as diff_snapshots
from .errors import CaptchaDetected, ProxyExhaustionError
from .models import MonitorState, ProxyProbeResult, ScheduleDiff, ScheduleSnapshot, heartbeat_due, utcnow
from .notifier import TelegramNotifier
from .proxy import ProxyLease, ProxySelector, format_probes
from .report import ReportRenderer
from .schedule import ScheduleBuilder
from .storage import StateStore
from .utils import jitter_delay

logger = logging.getLogger(__name__)


BrowserFactory = Callable[[Optional[Dict[str, str]]], AsyncContextManager[PageDriver]]
BuilderFactory = Callable[[PageDriver], ScheduleBuilder]

CAPTCHA_COOLDOWN = timedelta(minutes=10)


@dataclass
class RunOutcome:
    """What one run produced."""

    snapshot: Optional[ScheduleSnapshot] = None
    diff: Optional[ScheduleDiff] = None
    message: Optional[str] = None
    delivery: Dict[str, bool] = field(default_factory=dict)
    probes: List[ProxyProbeResult] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Monitor:
    """Single-run pipeline; every collaborator is injectable."""

    def __init__(
        self,
        settings: Settings,
        *,
        selector: ProxySelector,
        store: StateStore,
        notifier: TelegramNotifier,
        renderer: ReportRenderer,
        artifacts: ArtifactSink,
        browser_factory: Optional[BrowserFactory] = None,
        builder_factory: Optional[BuilderFactory] = None,
    ) -> None:
        self.settings = settings
        self.selector = selector
        self.store = store
        self.notifier = notifier
        self.renderer = renderer
        self.artifacts = artifacts
        self.browser_factory = browser_factory or self._default_browser
        self.builder_factory = builder_factory or self._default_builder

    @classmethod
    def from_settings(cls, settings: Settings) -> "Monitor":
        return cls(
            settings,
            selector=ProxySelector.from_config(settings.proxy),
            store=StateStore(settings.storage.state_path),
            notifier=TelegramNotifier(settings.bot),
            renderer=ReportRenderer(settings.target, annotate_weekdays=settings.monitor.annotate_weekdays),
            artifacts=ArtifactSink(settings.storage.artifacts_dir, enabled=settings.storage.artifacts_enabled),
        )

    def _default_browser(self, proxy: Optional[Dict[str, str]]) -> AsyncContextManager[PageDriver]:
        return CourtBrowser(self.settings.browser, self.settings.target, proxy).session()

    def _default_builder(self, driver: PageDriver) -> ScheduleBuilder:
        return ScheduleBuilder.for_driver(driver, self.settings, self.artifacts)

    async def capture_schedule(self, outcome: RunOutcome) -> ScheduleSnapshot:
        """Proxy → browser → wizard → snapshot. Fatal errors propagate."""
        selection = await self.selector.select()
        outcome.probes = selection.probes
        if selection.probes:
            logger.info("Proxy probes:\n%s", format_probes(selection.probes))

        async with ProxyLease(selection.chosen) as proxy_settings:
            async with self.browser_factory(proxy_settings) as driver:
                try:
                    return await self.builder_factory(driver).build()
                except Exception:
                    await self.artifacts.capture(driver, "error")
                    raise

    async def run_once(self) -> RunOutcome:
        """
        One full pipeline run. Never raises; the error is on the outcome.

        При фатальной ошибке состояние не трогаем: следующему прогону
        остаётся валидная база для сравнения.
        """
        outcome = RunOutcome()
        previous = self.store.load()
        try:
            snapshot = await self.capture_schedule(outcome)
        except Exception as e:  # noqa: BLE001
            logger.exception("Run failed: %s", e)
            outcome.error = e
            if isinstance(e, ProxyExhaustionError):
                outcome.probes = e.probes
                logger.warning("Proxy probes:\n%s", format_probes(e.probes))
            outcome.message = self.renderer.render_error(e)
            outcome.delivery = await self.notifier.broadcast(outcome.message)
            return outcome

        outcome.snapshot = snapshot
        outcome.diff = diff_snapshots(previous.snapshot if previous else None, snapshot)
        notified_at = previous.notified_at if previous else None
        outcome.message = self._compose(outcome.diff, first_run=previous is None, notified_at=notified_at)

        if outcome.message is None:
            logger.info("No changes, nothing to send")
        else:
            outcome.delivery = await self.notifier.broadcast(outcome.message)
            if any(outcome.delivery.values()):
                notified_at = utcnow()

        try:
            self.store.save(snapshot, notified_at=notified_at)
        except OSError as e:
            # Отчёт уже ушёл; следующий прогон сравнит со старым снимком
            logger.exception("Failed to save snapshot to %s: %s", self.store.path, e)
            outcome.error = e
        return outcome

    def _compose(self, diff: ScheduleDiff, *, first_run: bool, notified_at: Optional[datetime]) -> Optional[str]:
        monitor_cfg = self.settings.monitor
        if first_run or diff.has_change or monitor_cfg.always_notify:
            return self.renderer.render(diff)
        if heartbeat_due(notified_at, monitor_cfg.heartbeat_hours):
            logger.info("Heartbeat due, sending unchanged report")
            return self.renderer.render(diff, subtitle="без изменений")
        return None

    async def close(self) -> None:
        await self.notifier.close()


@dataclass
class MonitorService:
    """High-level monitoring loop."""

    monitor: Monitor
    _state: MonitorState = field(default_factory=MonitorState)
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    _captcha_until: Optional[datetime] = None
    _consecutive_errors: int = 0

    @property
    def state(self) -> MonitorState:
        return self._state

    def stop(self) -> None:
        self._stop_event.set()

    async def run_forever(self, max_runs: Optional[int] = None) -> None:
        cfg = self.monitor.settings.monitor
        self._state.is_running = True
        self._stop_event.clear()
        runs = 0

        while not self._stop_event.is_set():
            # Базовая задержка между попытками; может быть увеличена при ошибках
            delay = jitter_delay(cfg.check_interval, cfg.check_interval_variation)

            # Пауза, если была капча
            if self._captcha_until and utcnow() < self._captcha_until:
                remaining = (self._captcha_until - utcnow()).total_seconds()
                logger.warning("Captcha cooldown active for %.0f seconds", remaining)
                await self._sleep(min(delay, remaining))
                continue

            self._state.checks_count += 1
            self._state.last_check_at = utcnow()
            outcome = await self.monitor.run_once()
            runs += 1

            if outcome.error is not None:
                self._consecutive_errors += 1
                self._state.last_error = str(outcome.error)
                if isinstance(outcome.error, CaptchaDetected):
                    self._captcha_until = utcnow() + CAPTCHA_COOLDOWN
                # Увеличиваем интервал при частых ошибках, чтобы не флудить сайт
                delay *= min(5, 1 + self._consecutive_errors)
            else:
                self._consecutive_errors = 0
                self._state.last_error = None
                if outcome.diff is not None and outcome.diff.has_change:
                    self._state.changes_found_total += 1

            if max_runs is not None and runs >= max_runs:
                break
            logger.info("Next check in %.0f seconds", delay)
            await self._sleep(delay)

        self._state.is_running = False

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass


__all__ = ["RunOutcome", "Monitor", "MonitorService"]
