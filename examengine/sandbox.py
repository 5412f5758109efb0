"""
Secure sandbox for executing candidate code with resource limits.

Provides cross-platform isolation using subprocess with interpreter flags.
Unix: Uses resource module for CPU time and memory limits.
Windows: Uses the wall-clock timeout only.

Every run gets its own temporary directory holding the candidate's source;
the directory is removed when the run ends, whatever the outcome.
"""

import sys
import signal
import shutil
import platform
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Tuple

import psutil

from .errors import SandboxUnavailable

ISOLATION_FLAGS = ['-I', '-B']
SOURCE_FILENAME = "solution.py"
TIMEOUT_MESSAGE = "Process exceeded time limit"


def get_python_executable() -> str:
    """Get the interpreter used to run candidate programs."""
    if getattr(sys, 'frozen', False) or not sys.executable:
        python_path = shutil.which('python3') or shutil.which('python')
        if not python_path:
            raise SandboxUnavailable(
                "Python executable not found. Please ensure Python is installed on the exam machines."
            )
        return python_path
    return sys.executable


def kill_process_tree(pid: int) -> None:
    """Kill a process and every descendant it spawned."""
    try:
        parent = psutil.Process(pid)
        procs = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return

    for proc in procs:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    psutil.wait_procs(procs, timeout=1.0)


def _resource_limiter(timeout_sec: float, memory_limit_mb: int):
    """Build the preexec hook that applies CPU and address-space limits."""
    def set_limits():
        import resource
        cpu_seconds = int(timeout_sec) + 1
        try:
            resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds))
        except (ValueError, OSError):
            pass

        memory_bytes = memory_limit_mb * 1024 * 1024
        try:
            resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
        except (ValueError, OSError):
            pass
    return set_limits


class SandboxBackend:
    """Isolation mechanism used by the code runner to execute one program run."""

    def execute(
        self,
        source: str,
        input_str: str,
        timeout_sec: float,
        memory_limit_mb: int
    ) -> Tuple[str, str, str]:
        """
        Run source with input_str on stdin.

        Returns:
            Tuple of (status, stdout, stderr)
            status: "success", "timeout", "runtime_error", "memory_error"

        Raises:
            SandboxUnavailable: if no execution environment can be provisioned
        """
        raise NotImplementedError


class SubprocessSandbox(SandboxBackend):
    """Runs each program in a fresh interpreter process and temporary directory."""

    def __init__(self, python_exe: Optional[str] = None):
        self._python_exe = python_exe

    @property
    def python_exe(self) -> str:
        # resolved lazily so MCQ-only exams never need an interpreter
        if self._python_exe is None:
            self._python_exe = get_python_executable()
        return self._python_exe

    def execute(
        self,
        source: str,
        input_str: str,
        timeout_sec: float,
        memory_limit_mb: int
    ) -> Tuple[str, str, str]:
        python_exe = self.python_exe

        try:
            temp_dir = tempfile.TemporaryDirectory(prefix="examengine_")
        except OSError as e:
            raise SandboxUnavailable(f"Cannot create sandbox directory: {e}")

        with temp_dir:
            code_path = Path(temp_dir.name) / SOURCE_FILENAME
            try:
                code_path.write_text(source, encoding='utf-8')
            except OSError as e:
                raise SandboxUnavailable(f"Cannot write candidate source: {e}")
            command = [python_exe, *ISOLATION_FLAGS, str(code_path)]

            popen_kwargs = {
                "stdin": subprocess.PIPE,
                "stdout": subprocess.PIPE,
                "stderr": subprocess.PIPE,
                "cwd": temp_dir.name,
            }
            if platform.system() != "Windows":
                popen_kwargs["preexec_fn"] = _resource_limiter(timeout_sec, memory_limit_mb)

            try:
                proc = subprocess.Popen(command, **popen_kwargs)
            except OSError as e:
                raise SandboxUnavailable(f"Cannot start interpreter '{python_exe}': {e}")

            try:
                stdout_bytes, stderr_bytes = proc.communicate(
                    input=(input_str or "").encode('utf-8'),
                    timeout=timeout_sec
                )
            except subprocess.TimeoutExpired:
                kill_process_tree(proc.pid)
                try:
                    proc.communicate(timeout=1.0)
                except subprocess.TimeoutExpired:
                    pass
                return "timeout", "", TIMEOUT_MESSAGE

            stdout = stdout_bytes.decode('utf-8', errors='replace')
            stderr = stderr_bytes.decode('utf-8', errors='replace')

            sigxcpu = getattr(signal, 'SIGXCPU', None)
            if sigxcpu is not None and proc.returncode == -sigxcpu:
                return "timeout", stdout, TIMEOUT_MESSAGE

            if 'MemoryError' in stderr:
                return "memory_error", stdout, stderr

            if proc.returncode != 0:
                if not stderr.strip():
                    stderr = f"Process exited with code {proc.returncode}"
                return "runtime_error", stdout, stderr

            if stderr.strip():
                return "runtime_error", stdout, stderr

            return "success", stdout, stderr
