"""
Telegram (HTML parse mode) report formatting.

Новые слоты выделяются жирным с 🆕, исчезнувшие зачёркиваются.
Последней строкой всегда ссылка на страницу бронирования.
"""

from __future__ import annotations

import html
import logging
from datetime import date, datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from .config import TargetConfig
from .diff import diff as diff_snapshots
from .errors import MonitorError, ProxyExhaustionError
from .models import DayDiff, ProxyProbeResult, ScheduleDiff, ScheduleSnapshot

logger = logging.getLogger(__name__)


WEEKDAYS = ("пн", "вт", "ср", "чт", "пт", "сб", "вс")
NOTHING_FOUND = "(ничего не найдено)"
LEGEND = "🆕 — новые, <s>зачёркнуто</s> — пропали"


def infer_weekday(label: str, captured_at: datetime, tz: str) -> Optional[str]:
    """
    Guess the weekday of a bare day-of-month label.

    Эвристика: число не меньше сегодняшнего относим к текущему месяцу, меньшее к
    следующему. Только для подписи, на данные не влияет.
    """
    try:
        today = captured_at.astimezone(ZoneInfo(tz)).date()
        day = int(label)
    except (ValueError, KeyError) as e:
        logger.debug("Cannot infer weekday for %s: %s", label, e)
        return None
    year, month = today.year, today.month
    if day < today.day:
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    try:
        return WEEKDAYS[date(year, month, day).weekday()]
    except ValueError:
        return None


class ReportRenderer:
    def __init__(self, target: TargetConfig, *, annotate_weekdays: bool = True) -> None:
        self.title = target.report_title
        self.link = target.booking_link
        self.tz = target.timezone
        self.annotate_weekdays = annotate_weekdays

    def render(self, diff: ScheduleDiff, *, subtitle: Optional[str] = None) -> str:
        lines: List[str] = [f"<b>{html.escape(self.title)}</b>"]
        if diff.baseline:
            lines.append("первый снимок")
        elif subtitle:
            lines.append(html.escape(subtitle))
        elif diff.has_change:
            lines.append(LEGEND)

        body: List[str] = []
        for label, day in diff.per_day.items():
            if not day.current and not day.removed:
                continue
            body.append(f"{self._day_header(label, diff.captured_at)}: {self._times(day, diff.baseline)}")

        lines.append("")
        lines.extend(body or [NOTHING_FOUND])
        lines.extend(["", self.link])
        return "\n".join(lines)

    def render_snapshot(self, snapshot: ScheduleSnapshot) -> str:
        """Baseline report for the first run: every slot listed plainly."""
        return self.render(diff_snapshots(None, snapshot))

    def render_error(self, error: BaseException) -> str:
        kind = error.kind if isinstance(error, MonitorError) else "Ошибка мониторинга"
        lines = [
            f"⚠️ <b>{html.escape(self.title)}</b>",
            f"{html.escape(kind)}: <code>{html.escape(str(error) or type(error).__name__)}</code>",
        ]
        if isinstance(error, ProxyExhaustionError):
            lines.extend(self._candidate_line(result) for result in error.probes)
        lines.extend(["", self.link])
        return "\n".join(lines)

    @staticmethod
    def _candidate_line(result: ProxyProbeResult) -> str:
        status = "OK" if result.reachable else html.escape(result.error or "нет ответа")
        return f"• <code>{html.escape(result.candidate.redacted)}</code> ({result.elapsed:.1f} с): {status}"

    def _day_header(self, label: str, captured_at: Optional[datetime]) -> str:
        header = f"<b>{html.escape(label)}</b>"
        if self.annotate_weekdays and captured_at is not None:
            weekday = infer_weekday(label, captured_at, self.tz)
            if weekday:
                header += f" ({weekday})"
        return header

    @staticmethod
    def _times(day: DayDiff, baseline: bool) -> str:
        parts = []
        for slot in sorted(day.current | day.removed):
            if baseline or slot in day.kept:
                parts.append(slot)
            elif slot in day.added:
                parts.append(f"<b>{slot}</b>🆕")
            else:
                parts.append(f"<s>{slot}</s>")
        return ", ".join(parts) if parts else "—"


__all__ = ["ReportRenderer", "infer_weekday", "NOTHING_FOUND", "WEEKDAYS"]
