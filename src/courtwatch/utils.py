"""
Utility helpers: logging setup, retry decorator, jitter and wait budgets.

Вспомогательные функции: логирование с маскировкой прокси-паролей,
ретраи, случайные задержки, общий дедлайн для ожиданий.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
import time
from functools import wraps
from logging.handlers import RotatingFileHandler
from typing import Any, Awaitable, Callable, List, TypeVar

from .config import LoggingConfig, get_settings


T = TypeVar("T")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Библиотеки, которые на INFO пишут каждый запрос
NOISY_LOGGERS = ("httpx", "httpcore", "aiogram.event", "asyncio", "python_socks")

_CREDENTIALS_RE = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^\s/@:]+:[^\s/@]+@", re.IGNORECASE)


def redact_credentials(text: str) -> str:
    """Mask ``user:password@`` inside URLs."""
    return _CREDENTIALS_RE.sub(r"\g<scheme>***:***@", text)


class CredentialsFilter(logging.Filter):
    """Keeps proxy passwords out of log files, whoever logs the URL."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = redact_credentials(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def _build_handlers(cfg: LoggingConfig) -> List[logging.Handler]:
    cfg.logs_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        cfg.logs_dir / "courtwatch.log",
        maxBytes=cfg.max_bytes,
        backupCount=cfg.backup_count,
        encoding="utf-8",
    )
    handlers: List[logging.Handler] = [file_handler, logging.StreamHandler()]
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(CredentialsFilter())
    return handlers


def setup_logging(logging_cfg: LoggingConfig | None = None) -> None:
    """
    Configure root logging: rotating file in ``logs_dir`` plus console.

    Настраивает логирование в файл с ротацией и вывод в консоль.
    """
    cfg = logging_cfg or get_settings().logging

    root = logging.getLogger()
    root.setLevel(cfg.log_level.upper())
    root.handlers.clear()
    for handler in _build_handlers(cfg):
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def jitter_delay(base_seconds: float, variation_seconds: float, *, floor: float = 1.0) -> float:
    """Seconds until the next run: ``base ± variation``, never below ``floor``."""
    if variation_seconds <= 0:
        return max(floor, float(base_seconds))
    return max(floor, base_seconds + random.uniform(-variation_seconds, variation_seconds))


class Deadline:
    """Cumulative time budget shared by several bounded waits."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        self._expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


def async_retry(
    attempts: int = 3,
    base_delay: float = 2.0,
    max_delay: float = 60.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Retry an async callable on ``exceptions`` with doubling delays.

    Последняя ошибка пробрасывается как есть.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        log = logging.getLogger(func.__module__)

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            delay = base_delay
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as exc:  # type: ignore[misc]
                    if attempt >= attempts:
                        raise
                    log.warning(
                        "%s failed (%s), retry %s/%s in %.1fs",
                        func.__qualname__,
                        exc,
                        attempt,
                        attempts - 1,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    delay = min(max_delay, delay * 2)
            raise RuntimeError(f"{func.__qualname__}: attempts must be positive")

        return wrapper

    return decorator


__all__ = [
    "setup_logging",
    "redact_credentials",
    "CredentialsFilter",
    "jitter_delay",
    "async_retry",
    "Deadline",
]
