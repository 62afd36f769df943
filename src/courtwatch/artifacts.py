"""Best-effort diagnostic capture: screenshot + HTML under a tag."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from .browser import PageDriver

logger = logging.getLogger(__name__)


_TAG_RE = re.compile(r"[^A-Za-z0-9_.-]+")


class ArtifactSink:
    def __init__(self, directory: Path, *, enabled: bool = True) -> None:
        self.directory = directory
        self.enabled = enabled

    async def capture(self, driver: PageDriver, tag: str) -> List[Path]:
        """Persist the page's screenshot and markup. Never raises."""
        if not self.enabled:
            return []
        written: List[Path] = []
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        base = self.directory / f"{stamp}-{_TAG_RE.sub('_', tag)}"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Cannot create artifacts dir %s: %s", self.directory, e)
            return written
        try:
            written.append(await driver.screenshot(base.with_suffix(".png")))
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to save screenshot %s: %s", tag, e)
        try:
            html_path = base.with_suffix(".html")
            html_path.write_text(await driver.content(), encoding="utf-8")
            written.append(html_path)
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to save HTML %s: %s", tag, e)
        if written:
            logger.info("Artifacts for %r saved under %s", tag, base)
        return written


__all__ = ["ArtifactSink"]
