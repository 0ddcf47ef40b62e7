"""Structured ledger observability helpers."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from threading import Lock

_LOGGER = logging.getLogger("app.ledger")

COUNTERS = ("submissions", "duplicates", "conflicts", "retries", "failures", "achievements")


class LedgerStats:
    """Process-local counters plus a JSON log line per ledger event."""

    def __init__(self):
        self._lock = Lock()
        self._counts = {name: 0 for name in COUNTERS}
        self._last_error = ""
        self._updated_at = None

    def record(self, event: str, **fields) -> None:
        payload = {"event": event, **fields}
        payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        with self._lock:
            if event == "submission_applied":
                self._counts["submissions"] += 1
                self._counts["achievements"] += len(fields.get("new_badges") or [])
            elif event == "submission_duplicate":
                self._counts["duplicates"] += 1
            elif event == "retry":
                self._counts["retries"] += 1
                if fields.get("reason") == "ConcurrencyConflict":
                    self._counts["conflicts"] += 1
            elif event == "submission_failed":
                self._counts["failures"] += 1
                self._last_error = str(fields.get("error", ""))
            self._updated_at = payload["timestamp"]
        if event == "submission_failed":
            _LOGGER.warning("ledger_event %s", json.dumps(payload, ensure_ascii=True, default=str))
        else:
            _LOGGER.info("ledger_event %s", json.dumps(payload, ensure_ascii=True, default=str))

    def snapshot(self) -> dict:
        """Return the current counters."""
        with self._lock:
            out = dict(self._counts)
            out["last_error"] = self._last_error
            out["updated_at"] = self._updated_at
        return out
