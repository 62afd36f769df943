"""
Config loading via Pydantic v2 and python-dotenv.

Загрузка конфигурации из .env и базовая валидация.
"""

from __future__ import annotations

from functools import lru_cache
import os
import re
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, computed_field


BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_PATH = BASE_DIR / ".env"

# Явно загружаем переменные окружения из .env, если файл существует
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=False)

# В Docker можно задать DATA_DIR=/app/data и смонтировать volume, тогда снимок и артефакты сохранятся
DATA_DIR = Path(os.environ.get("DATA_DIR", str(BASE_DIR)))


_LIST_SPLIT = re.compile(r"[\n, ]+")
_TRUE_VALUES = ("1", "true", "yes", "on")


def split_list(value: str | None) -> List[str]:
    """Split a newline/comma/space separated env value, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in _LIST_SPLIT.split(value) if item.strip()]


def parse_flag(value: str | None, default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


class BotConfig(BaseModel):
    token: str
    chat_ids: List[str] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def enabled(self) -> bool:
        return bool(self.token and self.chat_ids)


class TargetConfig(BaseModel):
    url: str = "https://tennis.luzhniki.ru/"
    booking_link: str = "https://tennis.luzhniki.ru/#courts"
    promo_text: str = "Аренда теннисных кортов"
    product_text: str = "Аренда крытых кортов"
    continue_text: str = "Продолжить"
    report_title: str = "СЛОТЫ ЛУЖНИКИ"
    timezone: str = "Europe/Moscow"


class ProxyConfig(BaseModel):
    # Сырые строки; разбор в ProxyCandidate делает proxy.parse_candidates
    candidates: List[str] = Field(default_factory=list)
    shuffle: bool = False
    allow_direct: bool = True
    probe_url: str = "https://api.ipify.org"
    probe_timeout: float = Field(default=7.0, gt=0, le=30)


class MonitorConfig(BaseModel):
    check_interval: int = Field(default=600, ge=30)
    check_interval_variation: int = Field(default=60, ge=0)
    always_notify: bool = False
    heartbeat_hours: float = Field(
        default=0,
        ge=0,
        description="Слать отчёт без изменений, если ничего не отправлялось дольше N часов. 0: выключено.",
    )
    wizard_budget_seconds: float = Field(default=20.0, gt=0, le=120)
    annotate_weekdays: bool = True


class BrowserConfig(BaseModel):
    headless: bool = True
    locale: str = "ru-RU"
    navigation_timeout_ms: int = Field(default=60000, ge=1000)


class StorageConfig(BaseModel):
    state_path: Path = Field(default_factory=lambda: DATA_DIR / "last_snapshot.json")
    artifacts_dir: Path = Field(default_factory=lambda: DATA_DIR / "artifacts")
    artifacts_enabled: bool = True


class LoggingConfig(BaseModel):
    logs_dir: Path = Field(default_factory=lambda: BASE_DIR / "logs")
    log_level: str = Field(default="INFO")
    max_bytes: int = Field(default=5 * 1024 * 1024)  # 5 MB
    backup_count: int = Field(default=5)


class Settings(BaseModel):
    bot: BotConfig
    target: TargetConfig = TargetConfig()
    proxy: ProxyConfig = ProxyConfig()
    monitor: MonitorConfig = MonitorConfig()
    browser: BrowserConfig = BrowserConfig()
    storage: StorageConfig = StorageConfig()
    logging: LoggingConfig = LoggingConfig()


@lru_cache
def get_settings() -> Settings:
    """
    Load and cache settings.

    Raises ValidationError if .env is incomplete or invalid.
    """
    # Собираем значения из окружения вручную, чтобы не зависеть от pydantic-settings
    env = os.environ

    try:
        bot = BotConfig(
            token=env.get("BOT_TOKEN", env.get("TG_BOT_TOKEN", "")).strip(),
            chat_ids=split_list(env.get("CHAT_IDS") or env.get("TG_CHAT_ID")),
        )
        target_defaults = TargetConfig()
        target = TargetConfig(
            url=env.get("TARGET_URL", target_defaults.url),
            booking_link=env.get("BOOKING_LINK", target_defaults.booking_link),
            promo_text=env.get("PROMO_TEXT", target_defaults.promo_text),
            product_text=env.get("PRODUCT_TEXT", target_defaults.product_text),
            continue_text=env.get("CONTINUE_TEXT", target_defaults.continue_text),
            report_title=env.get("REPORT_TITLE", target_defaults.report_title),
        )
        # PROXY_URL идёт первым, затем PROXY_LIST, без повторов
        candidates: List[str] = []
        for raw in split_list(env.get("PROXY_URL")) + split_list(env.get("PROXY_LIST")):
            if raw not in candidates:
                candidates.append(raw)
        proxy = ProxyConfig(
            candidates=candidates,
            shuffle=parse_flag(env.get("PROXY_SHUFFLE")),
            # Без прокси ходим напрямую; со списком прокси прямой выход только по явному флагу
            allow_direct=parse_flag(env.get("PROXY_ALLOW_DIRECT"), default=not candidates),
            probe_url=env.get("PROXY_PROBE_URL", "https://api.ipify.org"),
            probe_timeout=float(env.get("PROXY_PROBE_TIMEOUT", "7")),
        )
        monitor = MonitorConfig(
            check_interval=int(env.get("CHECK_INTERVAL", "600")),
            check_interval_variation=int(env.get("CHECK_INTERVAL_VARIATION", "60")),
            always_notify=parse_flag(env.get("ALWAYS_NOTIFY")),
            heartbeat_hours=float(env.get("HEARTBEAT_HOURS", "0") or "0"),
            wizard_budget_seconds=float(env.get("WIZARD_BUDGET_SECONDS", "20")),
            annotate_weekdays=parse_flag(env.get("ANNOTATE_WEEKDAYS"), default=True),
        )
        browser = BrowserConfig(headless=parse_flag(env.get("HEADLESS"), default=True))
        storage = StorageConfig(artifacts_enabled=parse_flag(env.get("ARTIFACTS"), default=True))
        logging_cfg = LoggingConfig(log_level=env.get("LOG_LEVEL", "INFO"))
        return Settings(
            bot=bot,
            target=target,
            proxy=proxy,
            monitor=monitor,
            browser=browser,
            storage=storage,
            logging=logging_cfg,
        )
    except ValidationError:
        # Пробрасываем дальше, чтобы верхний уровень мог вывести аккуратную ошибку
        raise


__all__ = ["Settings", "get_settings", "split_list", "parse_flag", "BASE_DIR", "DATA_DIR"]
