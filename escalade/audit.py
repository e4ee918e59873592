"""Structured audit logging for Escalade sessions."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict
import json
import threading
import time
import uuid


@dataclass
class AuditLog:
    path: Path
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def log(self, event: str, data: Dict[str, Any] | None = None) -> None:
        payload = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"),
            "event": event,
            "data": data or {},
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(payload) + "\n")

    def session_hook(self, session_id: str | None = None):
        """Return an event hook tagging each record with one session id."""
        session_id = session_id or uuid.uuid4().hex[:12]

        def _hook(event: str, data: Dict[str, Any]) -> None:
            self.log(event, {"session": session_id, **data})

        return _hook
