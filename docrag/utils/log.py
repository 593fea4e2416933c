from __future__ import annotations

import json
import threading
import time
from pathlib import Path


class Logger:
    """Append-only JSON-lines trace file, safe to share between threads."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def write(self, obj: dict):
        record = {"ts": round(time.time(), 3), **obj}
        line = json.dumps(record, ensure_ascii=False, default=str) + "\n"
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)
