from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

LOG_FILENAME = "activity.log"

_WRITE_LOCK = threading.Lock()


def append_event(logs_dir: Path, event: str, **fields: Any) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event,
    }
    entry.update(fields)
    logs_dir.mkdir(parents=True, exist_ok=True)
    path = logs_dir / LOG_FILENAME
    with _WRITE_LOCK:
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, default=str) + "\n")
    return entry


def read_recent_events(logs_dir: Path, limit: int = 50, event: str | None = None) -> list[dict[str, Any]]:
    path = logs_dir / LOG_FILENAME
    if not path.exists():
        return []
    lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    entries: list[dict[str, Any]] = []
    for line in lines:
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(payload, dict):
            continue
        if event is not None and payload.get("event") != event:
            continue
        entries.append(payload)
    return entries[-limit:] if limit > 0 else entries
