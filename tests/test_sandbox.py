"""
Tests for the sandbox and the code runner.

The SubprocessSandbox tests start real interpreter processes, so they cover
timeouts, runtime faults, stderr handling and temporary directory cleanup
end to end. CodeRunner logic is tested against a scripted backend.
"""

import pytest
import platform
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from examengine.errors import SandboxUnavailable
from examengine.grader import CodeRunner, TIMEOUT_ERROR, normalize_output, outputs_match
from examengine.models import TestCase
from examengine.sandbox import SandboxBackend, SubprocessSandbox, get_python_executable


class ScriptedBackend(SandboxBackend):
    """Backend returning canned (status, stdout, stderr) per input."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def execute(self, source, input_str, timeout_sec, memory_limit_mb):
        self.calls.append((source, input_str, timeout_sec, memory_limit_mb))
        response = self.responses[input_str]
        if isinstance(response, Exception):
            raise response
        return response


class TestSubprocessSandbox:
    """Run real programs through the subprocess sandbox."""

    def setup_method(self):
        self.sandbox = SubprocessSandbox(python_exe=sys.executable)

    def test_echo_success(self):
        status, stdout, stderr = self.sandbox.execute("print(input())", "hello", 5.0, 256)

        assert status == "success"
        assert stdout.strip() == "hello"
        assert stderr == ""

    def test_reads_multiline_stdin(self):
        source = "import sys\nprint(sum(int(x) for x in sys.stdin.read().split()))"
        status, stdout, _ = self.sandbox.execute(source, "1 2\n3\n", 5.0, 256)

        assert status == "success"
        assert stdout.strip() == "6"

    def test_exception_is_runtime_error(self):
        status, _, stderr = self.sandbox.execute("raise ValueError('boom')", "", 5.0, 256)

        assert status == "runtime_error"
        assert "ValueError" in stderr

    def test_stderr_output_is_runtime_error(self):
        source = "import sys\nprint('3')\nsys.stderr.write('warning\\n')"
        status, stdout, stderr = self.sandbox.execute(source, "", 5.0, 256)

        assert status == "runtime_error"
        assert stdout.strip() == "3"
        assert "warning" in stderr

    def test_nonzero_exit_is_runtime_error(self):
        status, _, stderr = self.sandbox.execute("import sys\nsys.exit(3)", "", 5.0, 256)

        assert status == "runtime_error"
        assert "3" in stderr

    def test_infinite_loop_times_out(self):
        status, stdout, stderr = self.sandbox.execute("while True:\n    pass", "", 0.5, 256)

        assert status == "timeout"
        assert stdout == ""
        assert stderr

    def test_blocking_read_times_out(self):
        source = "import time\ntime.sleep(30)"
        status, _, _ = self.sandbox.execute(source, "", 0.5, 256)

        assert status == "timeout"

    @pytest.mark.skipif(platform.system() != "Linux", reason="Address-space limit is Linux-only")
    def test_memory_limit(self):
        source = "x = bytearray(1024 * 1024 * 1024)\nprint(len(x))"
        status, _, stderr = self.sandbox.execute(source, "", 5.0, 256)

        assert status == "memory_error"
        assert "MemoryError" in stderr

    def test_temporary_directory_removed(self):
        source = "import os\nprint(os.getcwd())"
        status, stdout, _ = self.sandbox.execute(source, "", 5.0, 256)

        assert status == "success"
        work_dir = Path(stdout.strip())
        assert work_dir.name.startswith("examengine_")
        assert not work_dir.exists()

    def test_temporary_directory_removed_after_timeout(self):
        created = []
        real_temporary_directory = tempfile.TemporaryDirectory

        def tracking(*args, **kwargs):
            temp_dir = real_temporary_directory(*args, **kwargs)
            created.append(Path(temp_dir.name))
            return temp_dir

        with patch('examengine.sandbox.tempfile.TemporaryDirectory', side_effect=tracking):
            status, _, _ = self.sandbox.execute("while True:\n    pass", "", 0.5, 256)

        assert status == "timeout"
        assert len(created) == 1
        assert not created[0].exists()

    def test_missing_interpreter_is_unavailable(self):
        sandbox = SubprocessSandbox(python_exe="/nonexistent/bin/python3")

        with pytest.raises(SandboxUnavailable):
            sandbox.execute("print(1)", "", 1.0, 256)


class TestPythonExecutable:
    """Test interpreter resolution."""

    def test_uses_current_interpreter(self):
        assert get_python_executable() == sys.executable

    @patch('shutil.which', return_value=None)
    def test_frozen_without_python(self, mock_which):
        with patch.object(sys, 'frozen', True, create=True):
            with pytest.raises(SandboxUnavailable):
                get_python_executable()

    def test_resolution_is_lazy(self):
        with patch('examengine.sandbox.get_python_executable', side_effect=SandboxUnavailable("none")) as mock_get:
            sandbox = SubprocessSandbox()
            mock_get.assert_not_called()
            with pytest.raises(SandboxUnavailable):
                sandbox.execute("print(1)", "", 1.0, 256)


class TestOutputComparison:
    """Test output normalization."""

    def test_trailing_newline_and_spaces(self):
        assert outputs_match("3\n", "3")
        assert outputs_match("  3  ", "3")

    def test_crlf_line_endings(self):
        assert outputs_match("1\r\n2\r\n", "1\n2")
        assert normalize_output("a\rb") == "a\nb"

    def test_inner_whitespace_matters(self):
        assert not outputs_match("1  2", "1 2")

    def test_none_is_empty(self):
        assert normalize_output(None) == ""


class TestCodeRunner:
    """Test CodeRunner verdict logic."""

    def test_all_cases_pass(self):
        backend = ScriptedBackend({"1 2": ("success", "3\n", ""), "2 2": ("success", "4\r\n", "")})
        runner = CodeRunner(backend=backend)

        report = runner.run("src", [TestCase("1 2", "3"), TestCase("2 2", "4")])

        assert report.all_passed is True
        assert report.passed_count == 2

    def test_two_of_three_is_not_a_pass(self):
        backend = ScriptedBackend({
            "a": ("success", "1", ""),
            "b": ("success", "2", ""),
            "c": ("success", "wrong", ""),
        })
        runner = CodeRunner(backend=backend)

        report = runner.run("src", [TestCase("a", "1"), TestCase("b", "2"), TestCase("c", "3")])

        assert report.all_passed is False
        assert report.passed_count == 2
        assert report.results[2].error is None
        assert report.results[2].actual_output == "wrong"

    def test_timeout_annotation(self):
        backend = ScriptedBackend({"x": ("timeout", "", "Process exceeded time limit")})
        runner = CodeRunner(backend=backend)

        report = runner.run("src", [TestCase("x", "1")])

        assert report.results[0].passed is False
        assert report.results[0].error == TIMEOUT_ERROR == "Execution failed / timeout"

    def test_runtime_error_text_is_kept(self):
        backend = ScriptedBackend({"x": ("runtime_error", "", "ZeroDivisionError: division by zero\n")})
        runner = CodeRunner(backend=backend)

        report = runner.run("src", [TestCase("x", "1")])

        assert report.results[0].error == "ZeroDivisionError: division by zero"

    def test_empty_case_list_is_not_a_pass(self):
        runner = CodeRunner(backend=ScriptedBackend({}))

        report = runner.run("src", [])

        assert report.all_passed is False
        assert report.results == []

    def test_backend_exception_becomes_failed_case(self):
        backend = ScriptedBackend({"x": RuntimeError("backend crashed"), "y": ("success", "1", "")})
        runner = CodeRunner(backend=backend)

        report = runner.run("src", [TestCase("x", "1"), TestCase("y", "1")])

        assert report.results[0].passed is False
        assert "backend crashed" in report.results[0].error
        assert report.results[1].passed is True

    def test_sandbox_unavailable_propagates(self):
        backend = ScriptedBackend({"x": SandboxUnavailable("no interpreter")})
        runner = CodeRunner(backend=backend)

        with pytest.raises(SandboxUnavailable):
            runner.run("src", [TestCase("x", "1")])

    def test_timeout_and_memory_limit_passed_to_backend(self):
        backend = ScriptedBackend({"x": ("success", "1", "")})
        runner = CodeRunner(backend=backend, timeout_sec=1.5, memory_limit_mb=128)

        runner.run("src", [TestCase("x", "1")])
        runner.run("src", [TestCase("x", "1")], timeout_sec=0.5)

        assert backend.calls[0][2:] == (1.5, 128)
        assert backend.calls[1][2:] == (0.5, 128)

    def test_format_run_report(self):
        backend = ScriptedBackend({
            "a": ("success", "1", ""),
            "b": ("timeout", "", ""),
            "c": ("success", "nope", ""),
        })
        runner = CodeRunner(backend=backend)
        report = runner.run("src", [TestCase("a", "1"), TestCase("b", "2"), TestCase("c", "3")])

        text = runner.format_run_report(report, show_details=True)

        assert "Test 1 passed" in text
        assert "Test 2 failed: timeout" in text
        assert "Test 3 failed: wrong output" in text
        assert "'nope'" in text
        assert "Passed 1/3" in text

    def test_format_uses_message_fn(self):
        runner = CodeRunner(backend=ScriptedBackend({}))
        runner.set_message_fn(lambda key, **kwargs: f"<{key}>")

        text = runner.format_run_report(runner.run("src", []))

        assert "<runner_summary>" in text


class TestCodeRunnerEndToEnd:
    """Run real programs through CodeRunner."""

    def test_sum_program(self):
        runner = CodeRunner(backend=SubprocessSandbox(sys.executable), timeout_sec=5.0)
        source = "a, b = map(int, input().split())\nprint(a + b)"

        report = runner.run(source, [TestCase("1 2", "3"), TestCase("10 -4", "6")])

        assert report.all_passed is True

    def test_one_failing_case(self):
        runner = CodeRunner(backend=SubprocessSandbox(sys.executable), timeout_sec=5.0)
        source = "a, b = map(int, input().split())\nprint(a * b)"

        report = runner.run(source, [TestCase("2 2", "4"), TestCase("1 2", "3")])

        assert report.all_passed is False
        assert report.passed_count == 1
