"""
Grader module for running test cases and scoring submissions.

Provides the CodeRunner, which executes a candidate program against the
hidden test cases of a CODE question through a sandbox backend, and the
Grader, which turns an answer payload plus the code verdicts into a score
under the exam's marking policy.
"""

import time
from typing import Any, Callable, Dict, List, Optional

from .errors import SandboxUnavailable
from .models import (
    CaseResult,
    GradeResult,
    Question,
    RunReport,
    TestCase,
    compute_percentage,
    normalize_answers,
    normalize_verdicts,
    parse_option,
)
from .sandbox import SandboxBackend, SubprocessSandbox
from .messages import TRANSLATIONS

TIMEOUT_ERROR = "Execution failed / timeout"
GENERIC_ERROR = "Execution failed"
NEGATIVE_MARK_PENALTY = 1


def normalize_output(output: Any) -> str:
    """Trim surrounding whitespace and unify line endings for comparison."""
    text = "" if output is None else str(output)
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


def outputs_match(actual_output: Any, expected_output: Any) -> bool:
    """
    Default checker: string equality after normalization.

    Args:
        actual_output: Output from candidate code
        expected_output: Expected output from test case

    Returns:
        True if outputs match once trimmed and line endings are unified
    """
    return normalize_output(actual_output) == normalize_output(expected_output)


class CodeRunner:
    """Executes one candidate program against a list of test cases."""

    def __init__(
        self,
        backend: Optional[SandboxBackend] = None,
        timeout_sec: float = 2.0,
        memory_limit_mb: int = 256
    ):
        self.backend = backend or SubprocessSandbox()
        self.timeout_sec = timeout_sec
        self.memory_limit_mb = memory_limit_mb
        self._message_fn = None

    # ===== HELPER FUNCTIONS =====

    def set_message_fn(self, message_fn):
        self._message_fn = message_fn

    def _msg(self, key: str, **kwargs) -> str:
        if self._message_fn:
            return self._message_fn(key, **kwargs)
        template = TRANSLATIONS["en"].get(key, key)
        return template.format(**kwargs)

    # ===== TEST EXECUTION =====

    def run(
        self,
        source: str,
        test_cases: List[TestCase],
        timeout_sec: Optional[float] = None
    ) -> RunReport:
        """
        Run every test case as an independent process invocation.

        Per-case faults (timeout, exception, non-zero exit, stderr output)
        are recorded as failed results. Only SandboxUnavailable escapes.

        Returns:
            RunReport with all_passed true iff every case passed
        """
        timeout = timeout_sec if timeout_sec is not None else self.timeout_sec
        results = []

        for test_case in test_cases:
            start_time = time.time()
            try:
                status, stdout, stderr = self.backend.execute(
                    source,
                    test_case.input,
                    timeout,
                    self.memory_limit_mb
                )
            except SandboxUnavailable:
                raise
            except Exception as e:
                status, stdout, stderr = "runtime_error", "", f"Execution error: {e}"

            elapsed_ms = int((time.time() - start_time) * 1000)

            error = None
            if status == "success":
                passed = outputs_match(stdout, test_case.expected_output)
            elif status == "timeout":
                passed = False
                error = TIMEOUT_ERROR
            else:
                passed = False
                error = stderr.strip() or GENERIC_ERROR

            results.append(CaseResult(
                input=test_case.input,
                expected_output=test_case.expected_output,
                actual_output=stdout,
                passed=passed,
                error=error,
                elapsed_ms=elapsed_ms
            ))

        # a question without test cases can never be verified
        all_passed = bool(results) and all(r.passed for r in results)
        return RunReport(all_passed=all_passed, results=results)

    # ===== UTILITY METHODS =====

    def format_run_report(self, report: RunReport, show_details: bool = False) -> str:
        """
        Format a run report for display in the terminal.

        Args:
            report: RunReport from run()
            show_details: If True, show error text and output comparison for failed cases
        """
        lines = [self._msg("runner_running_tests", total=len(report.results))]

        for num, result in enumerate(report.results, start=1):
            if result.passed:
                lines.append(self._msg("runner_case_passed", num=num, ms=result.elapsed_ms))
            elif result.error == TIMEOUT_ERROR:
                lines.append(self._msg("runner_case_timeout", num=num))
            elif result.error:
                lines.append(self._msg("runner_case_error", num=num))
            else:
                lines.append(self._msg("runner_case_wrong", num=num))

            if not result.passed and show_details:
                if result.error:
                    lines.append(self._msg("runner_error_label", text=result.error[:200]))
                else:
                    lines.append(self._msg("runner_actual_output", output=repr(normalize_output(result.actual_output))[:100]))
                    lines.append(self._msg("runner_expected_output", output=repr(normalize_output(result.expected_output))[:100]))

        lines.append("")
        lines.append(self._msg("runner_summary", passed=report.passed_count, total=len(report.results)))
        return "\n".join(lines)


class Grader:
    """Computes scores from answers and code verdicts."""

    def __init__(self, code_runner: Optional[CodeRunner] = None, session_logger: Optional[Callable] = None):
        self.code_runner = code_runner or CodeRunner()
        self.session_logger = session_logger

    def _log(self, event: str, details: str = ""):
        if self.session_logger:
            self.session_logger(event, details)

    def run_code_questions(self, questions: List[Question], answers: Dict[Any, Any]) -> Dict[str, RunReport]:
        """
        Run the submitted source of every answered CODE question.

        Questions are processed sequentially. Blank or non-text answers are
        skipped without touching the sandbox.
        """
        answers = normalize_answers(answers)
        reports = {}

        for question in questions:
            if not question.is_code:
                continue
            source = answers.get(question.key)
            if not isinstance(source, str) or not source.strip():
                continue
            report = self.code_runner.run(source, question.test_cases)
            reports[question.key] = report
            self._log(
                "CODE_VERDICT",
                f"Question: {question.key}, Passed: {report.passed_count}/{len(report.results)}"
            )

        return reports

    def collect_verdicts(self, questions: List[Question], answers: Dict[Any, Any]) -> Dict[str, bool]:
        """Build the verdict map: CODE question id -> all test cases passed."""
        reports = self.run_code_questions(questions, answers)
        return {
            question.key: question.key in reports and reports[question.key].all_passed
            for question in questions
            if question.is_code
        }

    def grade(
        self,
        questions: List[Question],
        answers: Dict[Any, Any],
        code_verdicts: Optional[Dict[Any, bool]] = None,
        negative_marking: bool = False
    ) -> GradeResult:
        """
        Score an answer payload.

        MCQ: full marks when the selection equals the correct option; a fixed
        one-point penalty for a wrong selection under negative marking;
        nothing for a blank answer. CODE: full marks only when every test case
        passed. The total is clamped at zero.

        Same inputs always give the same result; nothing is mutated.
        """
        answers = normalize_answers(answers)
        verdicts = normalize_verdicts(code_verdicts)

        score = 0
        total_score = 0

        for question in questions:
            total_score += question.marks

            if question.is_code:
                if verdicts.get(question.key, False):
                    score += question.marks
                continue

            selected = parse_option(answers.get(question.key))
            if selected is None:
                continue
            if question.correct_option is not None and selected == question.correct_option:
                score += question.marks
            elif negative_marking:
                score -= NEGATIVE_MARK_PENALTY

        score = max(score, 0)
        self._log("GRADE_COMPLETE", f"Score: {score}/{total_score}")
        return GradeResult(
            score=score,
            total_score=total_score,
            percentage=compute_percentage(score, total_score)
        )
