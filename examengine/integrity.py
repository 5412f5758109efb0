"""
Integrity Monitoring Module

Watches the exam environment while a session is active and reports
violations to it. On a terminal the secure presentation context is the
machine staying offline, and the candidate's focus is lost when an AI
coding assistant is running next to the exam.

Probes are plain callables returning True while the environment is intact.
A violation is reported on the intact -> broken edge only; when a probe
recovers the monitor restores the session's secure context.
"""

import re
import threading
from typing import Callable, Dict, List, Optional, Tuple

import psutil

from .connectivity import check_internet_connectivity
from .session import ProctoredSession, ViolationKind

# Process names of AI coding assistants and local LLM runtimes
ASSISTANT_PROCESSES = [
    "copilot",
    "tabnine",
    "kite",
    "cursor",
    "codium",
    "codeium",
    "codewhisperer",
    "blackbox",
    "refact",
    "codegeex",
    "chatgpt",
    "ollama",
    "gpt4all",
    "lmstudio",
]


def find_assistant_processes(targets: Optional[List[str]] = None) -> List[str]:
    """Return names of running processes that look like AI assistants."""
    targets = targets if targets is not None else ASSISTANT_PROCESSES
    patterns = [re.compile(r'\b' + re.escape(t.lower()) + r'\b') for t in targets]
    running = []

    for proc in psutil.process_iter(['name', 'cmdline']):
        try:
            proc_name = (proc.info.get('name') or "").lower()
            cmdline = ' '.join(proc.info.get('cmdline') or []).lower()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue

        for pattern in patterns:
            if pattern.search(proc_name) or pattern.search(cmdline):
                running.append(proc_name)
                break

    return sorted(set(running))


def network_isolation_probe(timeout: float = 2.0) -> Callable[[], bool]:
    """Probe that is intact while no internet connection is available."""
    def probe() -> bool:
        return not check_internet_connectivity(timeout=timeout)
    return probe


def assistant_free_probe(targets: Optional[List[str]] = None) -> Callable[[], bool]:
    """Probe that is intact while no AI assistant process is running."""
    def probe() -> bool:
        return not find_assistant_processes(targets)
    return probe


def default_probes(network: bool = True, assistants: bool = True) -> Dict[str, Callable[[], bool]]:
    probes = {}
    if network:
        probes[ViolationKind.CONTEXT_LOST] = network_isolation_probe()
    if assistants:
        probes[ViolationKind.FOCUS_LOST] = assistant_free_probe()
    return probes


class IntegrityMonitor:
    """Polls integrity probes in the background and reports to a session."""

    def __init__(
        self,
        session: ProctoredSession,
        probes: Dict[str, Callable[[], bool]],
        check_interval_seconds: float = 5,
        session_logger: Optional[Callable] = None
    ):
        self.session = session
        self.probes = probes
        self.check_interval_seconds = check_interval_seconds
        self.session_logger = session_logger
        self.monitoring_active = False
        self.monitor_thread = None
        self._stop_event = threading.Event()
        self._broken = set()

    def _log(self, event: str, details: str = ""):
        if self.session_logger:
            self.session_logger(event, details)

    def start_monitoring(self):
        """Start background integrity monitoring."""
        if self.monitoring_active:
            return

        self.monitoring_active = True
        self._stop_event.clear()
        self.monitor_thread = threading.Thread(
            target=self._monitor_background,
            name="integrity-monitor",
            daemon=True
        )
        self.monitor_thread.start()
        self._log("INTEGRITY_MONITORING_STARTED", f"Probes: {', '.join(sorted(self.probes))}")

    def stop_monitoring(self):
        """Stop background integrity monitoring."""
        if not self.monitoring_active:
            return
        self.monitoring_active = False
        self._stop_event.set()
        # a violation reported from this thread can end the session
        if (self.monitor_thread and self.monitor_thread.is_alive()
                and self.monitor_thread is not threading.current_thread()):
            self.monitor_thread.join(timeout=2.0)
        self._log("INTEGRITY_MONITORING_STOPPED")

    def _monitor_background(self):
        while self.monitoring_active:
            self.check_once()
            if self._stop_event.wait(self.check_interval_seconds):
                break

    def check_once(self):
        """Run every probe once and report state changes to the session."""
        for kind, probe in self.probes.items():
            if not self.monitoring_active:
                return
            try:
                intact = probe()
            except Exception as e:
                self._log("INTEGRITY_CHECK_ERROR", f"Probe {kind} failed: {e}")
                continue

            if not intact and kind not in self._broken:
                self._broken.add(kind)
                self.session.report_violation(kind)
            elif intact and kind in self._broken:
                self._broken.discard(kind)
                if not self._broken:
                    self.session.restore_secure_context()


def check_environment_at_startup(probes: Optional[Dict[str, Callable[[], bool]]] = None) -> Tuple[bool, List[str]]:
    """
    Run every probe once before the candidate may grant secure mode.

    A probe that raises counts as failed.

    Returns:
        Tuple of (secure, list_of_failed_probe_kinds)
    """
    probes = probes if probes is not None else default_probes()
    failed = []
    for kind, probe in probes.items():
        try:
            intact = probe()
        except Exception:
            intact = False
        if not intact:
            failed.append(kind)
    return len(failed) == 0, failed
