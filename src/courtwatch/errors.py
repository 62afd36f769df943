"""
Exception hierarchy for the availability monitor.

Фатальные ошибки прерывают прогон до записи состояния; нефатальные
поглощаются на границе компонента (пропуск дня, следующий получатель).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .models import NavigationState, ProxyProbeResult


class MonitorError(Exception):
    """Base class for all monitor errors."""

    kind = "Ошибка мониторинга"


class ProxyExhaustionError(MonitorError):
    """No configured proxy candidate answered the reachability probe."""

    kind = "Нет рабочего прокси"

    def __init__(self, probes: Sequence["ProxyProbeResult"]) -> None:
        self.probes = list(probes)
        super().__init__(f"None of {len(self.probes)} proxy candidates is reachable")


class NavigationError(MonitorError):
    """The wizard could not reach the calendar view."""

    kind = "Не удалось открыть календарь"

    def __init__(self, message: str, *, state: "NavigationState", url: Optional[str] = None) -> None:
        self.state = state
        self.url = url
        super().__init__(f"{message} (state={state.value}, url={url})")


class CaptchaDetected(NavigationError):
    """Raised when Cloudflare / captcha is detected."""

    kind = "Обнаружена капча/Cloudflare"


class NotificationDeliveryError(MonitorError):
    """A single recipient could not be reached."""

    def __init__(self, recipient: str, reason: str) -> None:
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"Delivery to {recipient} failed: {reason}")


__all__ = [
    "MonitorError",
    "ProxyExhaustionError",
    "NavigationError",
    "CaptchaDetected",
    "NotificationDeliveryError",
]
