"""
Tests for integrity monitoring.

Probes are replaced with scripted callables so edge-triggered reporting can
be checked without touching the network or the process table.
"""

import pytest
import time
from pathlib import Path
from unittest.mock import Mock, patch

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

import psutil

from examengine.integrity import (
    IntegrityMonitor,
    assistant_free_probe,
    check_environment_at_startup,
    default_probes,
    find_assistant_processes,
    network_isolation_probe,
)
from examengine.session import ViolationKind


class ScriptedProbe:
    """Returns the queued states in order, then repeats the last one."""

    def __init__(self, *states):
        self.states = list(states)

    def __call__(self):
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]


def fake_process(name, cmdline=None):
    proc = Mock()
    proc.info = {"name": name, "cmdline": cmdline or [name]}
    return proc


def make_monitor(probes, logger=None):
    session = Mock()
    monitor = IntegrityMonitor(session, probes, check_interval_seconds=1, session_logger=logger)
    monitor.monitoring_active = True
    return monitor, session


class TestCheckOnce:
    """Test edge-triggered reporting."""

    def test_intact_environment_reports_nothing(self):
        monitor, session = make_monitor({ViolationKind.FOCUS_LOST: ScriptedProbe(True)})

        monitor.check_once()
        monitor.check_once()

        session.report_violation.assert_not_called()
        session.restore_secure_context.assert_not_called()

    def test_reports_once_per_break(self):
        monitor, session = make_monitor({ViolationKind.FOCUS_LOST: ScriptedProbe(False)})

        for _ in range(3):
            monitor.check_once()

        session.report_violation.assert_called_once_with(ViolationKind.FOCUS_LOST)

    def test_recovery_restores_secure_context(self):
        monitor, session = make_monitor({ViolationKind.FOCUS_LOST: ScriptedProbe(False, True, False)})

        monitor.check_once()
        monitor.check_once()
        monitor.check_once()

        assert session.report_violation.call_count == 2
        session.restore_secure_context.assert_called_once()

    def test_restore_waits_for_every_probe(self):
        network = ScriptedProbe(False, False, True)
        assistants = ScriptedProbe(False, True, True)
        monitor, session = make_monitor({
            ViolationKind.CONTEXT_LOST: network,
            ViolationKind.FOCUS_LOST: assistants,
        })

        monitor.check_once()
        monitor.check_once()
        session.restore_secure_context.assert_not_called()

        monitor.check_once()
        session.restore_secure_context.assert_called_once()

    def test_probe_error_is_logged(self):
        logger = Mock()
        monitor, session = make_monitor(
            {ViolationKind.CONTEXT_LOST: Mock(side_effect=OSError("no route"))},
            logger=logger
        )

        monitor.check_once()

        session.report_violation.assert_not_called()
        event, details = logger.call_args[0]
        assert event == "INTEGRITY_CHECK_ERROR"
        assert "no route" in details

    def test_inactive_monitor_does_nothing(self):
        monitor, session = make_monitor({ViolationKind.FOCUS_LOST: ScriptedProbe(False)})
        monitor.monitoring_active = False

        monitor.check_once()

        session.report_violation.assert_not_called()


class TestBackgroundMonitoring:
    """Test the polling thread."""

    def test_start_and_stop(self):
        logger = Mock()
        session = Mock()
        monitor = IntegrityMonitor(session, {ViolationKind.FOCUS_LOST: ScriptedProbe(False)},
                                   check_interval_seconds=0.01, session_logger=logger)

        monitor.start_monitoring()
        deadline = time.time() + 5
        while not session.report_violation.called and time.time() < deadline:
            time.sleep(0.01)
        monitor.stop_monitoring()

        session.report_violation.assert_called_once_with(ViolationKind.FOCUS_LOST)
        assert not monitor.monitoring_active
        assert not monitor.monitor_thread.is_alive()
        events = [call[0][0] for call in logger.call_args_list]
        assert events[0] == "INTEGRITY_MONITORING_STARTED"
        assert events[-1] == "INTEGRITY_MONITORING_STOPPED"

    def test_stop_without_start(self):
        logger = Mock()
        monitor = IntegrityMonitor(Mock(), {}, session_logger=logger)

        monitor.stop_monitoring()

        logger.assert_not_called()


class TestStartupCheck:
    """Test the pre-exam environment check."""

    def test_all_intact(self):
        secure, failed = check_environment_at_startup({
            ViolationKind.CONTEXT_LOST: lambda: True,
            ViolationKind.FOCUS_LOST: lambda: True,
        })

        assert secure is True
        assert failed == []

    def test_failed_kinds_listed(self):
        secure, failed = check_environment_at_startup({
            ViolationKind.CONTEXT_LOST: lambda: False,
            ViolationKind.FOCUS_LOST: lambda: True,
        })

        assert secure is False
        assert failed == [ViolationKind.CONTEXT_LOST]

    def test_raising_probe_counts_as_failed(self):
        secure, failed = check_environment_at_startup({
            ViolationKind.FOCUS_LOST: Mock(side_effect=psutil.AccessDenied()),
        })

        assert secure is False
        assert failed == [ViolationKind.FOCUS_LOST]

    def test_no_probes_is_secure(self):
        assert check_environment_at_startup({}) == (True, [])


class TestProbes:
    """Test the concrete probes."""

    @patch('examengine.integrity.psutil.process_iter')
    def test_finds_assistant_by_name(self, mock_iter):
        mock_iter.return_value = [fake_process("python3"), fake_process("Ollama")]

        assert find_assistant_processes() == ["ollama"]

    @patch('examengine.integrity.psutil.process_iter')
    def test_finds_assistant_by_cmdline(self, mock_iter):
        mock_iter.return_value = [fake_process("node", ["node", "/opt/tabnine/server.js"])]

        assert find_assistant_processes() == ["node"]

    @patch('examengine.integrity.psutil.process_iter')
    def test_matches_whole_words_only(self, mock_iter):
        mock_iter.return_value = [fake_process("skitetool"), fake_process("kite")]

        assert find_assistant_processes(["kite"]) == ["kite"]

    @patch('examengine.integrity.psutil.process_iter')
    def test_assistant_free_probe(self, mock_iter):
        mock_iter.return_value = [fake_process("bash")]
        probe = assistant_free_probe()

        assert probe() is True

        mock_iter.return_value = [fake_process("copilot-agent")]
        assert probe() is False

    @patch('examengine.integrity.check_internet_connectivity')
    def test_network_isolation_probe(self, mock_check):
        mock_check.return_value = False
        probe = network_isolation_probe(timeout=0.5)

        assert probe() is True
        mock_check.assert_called_once_with(timeout=0.5)

        mock_check.return_value = True
        assert probe() is False

    def test_default_probes(self):
        assert set(default_probes()) == {ViolationKind.CONTEXT_LOST, ViolationKind.FOCUS_LOST}
        assert set(default_probes(network=False)) == {ViolationKind.FOCUS_LOST}
        assert default_probes(network=False, assistants=False) == {}


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
