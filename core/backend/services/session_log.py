"""
Session Log
Append-only newline-delimited JSON record of live session events.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from models.session import LiveEvent


class SessionLog:
    """One `<session_id>.jsonl` file per session under `<data_dir>/sessions`."""

    def __init__(self, data_dir: str):
        self.session_dir = Path(data_dir) / "sessions"

    def path_for(self, session_id: str) -> Path:
        return self.session_dir / f"{session_id}.jsonl"

    def append(self, session_id: str, record: dict[str, Any]) -> None:
        """Write failures are reported, never raised."""
        entry = {"sessionId": session_id, **record}
        entry.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        try:
            self.session_dir.mkdir(parents=True, exist_ok=True)
            with open(self.path_for(session_id), "a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as e:
            print(f"⚠️ Failed to log session event for {session_id}: {e}")

    def append_event(self, event: LiveEvent) -> None:
        self.append(event.session_id, {**event.to_message(), "timestamp": event.timestamp})
