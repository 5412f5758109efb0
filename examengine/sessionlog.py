"""Append-only session log shared by the runner, session, guard and monitors."""

import threading
from datetime import datetime
from pathlib import Path


class SessionLog:
    """Writes `[YYYY-mm-dd HH:MM:SS] - EVENT - details` lines to a file."""

    def __init__(self, log_path):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def log(self, event: str, details: str = ""):
        """Append an entry to the session log."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        log_entry = f"[{timestamp}] - {event}"
        if details:
            log_entry += f" - {details}"
        log_entry += "\n"

        with self._lock:
            with open(self.log_path, 'a', encoding='utf-8') as f:
                f.write(log_entry)

    def __call__(self, event: str, details: str = ""):
        self.log(event, details)
