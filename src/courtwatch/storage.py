"""
Persisted "last snapshot" record.

JSON: {"capturedAt": ..., "days": {"11": ["07:00", ...]}, "notifiedAt": ...}.
Читается один раз в начале прогона, пишется один раз после диффа.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import ScheduleSnapshot

logger = logging.getLogger(__name__)


@dataclass
class StoredState:
    snapshot: ScheduleSnapshot
    notified_at: Optional[datetime] = None


class StateStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> Optional[StoredState]:
        """Return the previous state, or None on first run / unreadable file."""
        if not self.path.exists():
            logger.info("No previous snapshot at %s (first run)", self.path)
            return None
        try:
            record = json.loads(self.path.read_text(encoding="utf-8"))
            snapshot = ScheduleSnapshot.from_record(record)
            notified_raw = record.get("notifiedAt")
            notified_at = datetime.fromisoformat(notified_raw) if notified_raw else None
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            logger.warning("Ignoring unreadable snapshot %s: %s", self.path, e)
            return None
        logger.info("Loaded previous snapshot from %s (%s days)", snapshot.captured_at, len(snapshot.days))
        return StoredState(snapshot=snapshot, notified_at=notified_at)

    def save(self, snapshot: ScheduleSnapshot, notified_at: Optional[datetime] = None) -> None:
        record = snapshot.to_record()
        if notified_at is not None:
            record["notifiedAt"] = notified_at.isoformat()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp.write_text(json.dumps(record, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        logger.info("Snapshot saved to %s", self.path)


__all__ = ["StoredState", "StateStore"]
