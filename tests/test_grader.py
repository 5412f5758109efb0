"""
Tests for the grading engine.

Covers MCQ scoring, negative marking with the zero clamp, CODE verdicts,
percentage computation and verdict collection through the code runner.
"""

import pytest
from pathlib import Path
from unittest.mock import Mock

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from examengine.grader import TIMEOUT_ERROR, CodeRunner, Grader
from examengine.models import CaseResult, Question, RunReport, TestCase
from examengine.sandbox import SubprocessSandbox


def mcq(qid, correct, marks=1, options=4):
    return Question(id=qid, type="MCQ", marks=marks, options=[f"o{i}" for i in range(options)],
                    correct_option=correct)


def code(qid, marks=1, cases=1):
    return Question(id=qid, type="CODE", marks=marks,
                    test_cases=[TestCase(str(i), str(i)) for i in range(cases)])


class TestMcqScoring:
    """Test multiple-choice scoring."""

    def setup_method(self):
        self.grader = Grader(code_runner=Mock())

    def test_one_of_two_correct(self):
        questions = [mcq(1, 2), mcq(2, 0)]

        result = self.grader.grade(questions, {"1": 2, "2": 3})

        assert result.score == 1
        assert result.total_score == 2
        assert result.percentage == 50.0

    def test_numeric_and_string_keys(self):
        questions = [mcq(1, 2), mcq(2, 0)]

        assert self.grader.grade(questions, {1: 2, 2: 0}).score == 2
        assert self.grader.grade(questions, {"1": "2", "2": "0"}).score == 2

    def test_marks_are_weighted(self):
        questions = [mcq(1, 0, marks=3), mcq(2, 0, marks=2)]

        result = self.grader.grade(questions, {"1": 0, "2": 1})

        assert result.score == 3
        assert result.total_score == 5
        assert result.percentage == 60.0

    def test_blank_answers(self):
        result = self.grader.grade([mcq(1, 0), mcq(2, 0)], {})

        assert result.score == 0
        assert result.percentage == 0.0

    def test_unparseable_answer_is_unanswered(self):
        result = self.grader.grade([mcq(1, 0)], {"1": "abc"}, negative_marking=True)

        assert result.score == 0


class TestNegativeMarking:
    """Test the negative-marking penalty and the zero clamp."""

    def setup_method(self):
        self.grader = Grader(code_runner=Mock())

    def test_all_wrong_clamps_to_zero(self):
        questions = [mcq(1, 0, marks=2), mcq(2, 0, marks=2)]

        result = self.grader.grade(questions, {"1": 1, "2": 1}, negative_marking=True)

        assert result.score == 0
        assert result.total_score == 4
        assert result.percentage == 0.0

    def test_penalty_is_one_mark(self):
        questions = [mcq(1, 0, marks=3), mcq(2, 0, marks=3)]

        result = self.grader.grade(questions, {"1": 0, "2": 1}, negative_marking=True)

        assert result.score == 2

    def test_blank_has_no_penalty(self):
        questions = [mcq(1, 0, marks=3), mcq(2, 0, marks=3)]

        result = self.grader.grade(questions, {"1": 0}, negative_marking=True)

        assert result.score == 3

    def test_no_penalty_without_negative_marking(self):
        questions = [mcq(1, 0, marks=3), mcq(2, 0, marks=3)]

        assert self.grader.grade(questions, {"1": 0, "2": 1}).score == 3


class TestCodeScoring:
    """Test CODE scoring from verdicts."""

    def setup_method(self):
        self.grader = Grader(code_runner=Mock())

    def test_mixed_exam_full_marks(self):
        questions = [mcq(1, 1), mcq(2, 3), code(3)]

        result = self.grader.grade(questions, {"1": 1, "2": 3, "3": "print(1)"}, {"3": True})

        assert result.score == 3
        assert result.total_score == 3
        assert result.percentage == 100.0

    def test_failed_verdict_scores_nothing(self):
        result = self.grader.grade([code(3, marks=5)], {"3": "src"}, {"3": False})

        assert result.score == 0
        assert result.total_score == 5

    def test_missing_verdict_scores_nothing(self):
        result = self.grader.grade([code(3, marks=5)], {"3": "src"}, {})

        assert result.score == 0

    def test_truthy_non_bool_verdict_scores_nothing(self):
        result = self.grader.grade([code(3, marks=5)], {"3": "src"}, {"3": "true"})

        assert result.score == 0

    def test_grade_is_idempotent(self):
        questions = [mcq(1, 1), code(2)]
        answers = {"1": 1, "2": "src"}
        verdicts = {"2": True}

        first = self.grader.grade(questions, answers, verdicts)
        second = self.grader.grade(questions, answers, verdicts)

        assert first == second
        assert answers == {"1": 1, "2": "src"}
        assert verdicts == {"2": True}

    def test_empty_exam(self):
        result = self.grader.grade([], {})

        assert result.score == 0
        assert result.total_score == 0
        assert result.percentage == 0.0


class TestCollectVerdicts:
    """Test running CODE answers through the code runner."""

    def _report(self, passed_flags):
        results = [CaseResult("i", "o", "o" if p else "x", p) for p in passed_flags]
        return RunReport(all_passed=all(passed_flags), results=results)

    def test_runs_only_answered_code_questions(self):
        runner = Mock()
        runner.run.return_value = self._report([True, True])
        grader = Grader(code_runner=runner)
        questions = [mcq(1, 0), code(2, cases=2), code(3), code(4)]

        verdicts = grader.collect_verdicts(questions, {"1": 0, 2: "print(1)", "3": "   ", "4": None})

        assert verdicts == {"2": True, "3": False, "4": False}
        runner.run.assert_called_once()
        assert runner.run.call_args[0][0] == "print(1)"

    def test_two_of_three_cases_fails_question(self):
        runner = Mock()
        runner.run.return_value = self._report([True, True, False])
        grader = Grader(code_runner=runner)
        questions = [code(1, cases=3)]

        verdicts = grader.collect_verdicts(questions, {"1": "src"})
        result = grader.grade(questions, {"1": "src"}, verdicts)

        assert verdicts == {"1": False}
        assert result.score == 0

    def test_logs_code_verdicts(self):
        runner = Mock()
        runner.run.return_value = self._report([True])
        logger = Mock()
        grader = Grader(code_runner=runner, session_logger=logger)

        grader.collect_verdicts([code(1)], {"1": "src"})

        logger.assert_called_once_with("CODE_VERDICT", "Question: 1, Passed: 1/1")

    def test_mcq_only_never_runs_code(self):
        runner = Mock()
        grader = Grader(code_runner=runner)

        assert grader.collect_verdicts([mcq(1, 0)], {"1": 0}) == {}
        runner.run.assert_not_called()


class TestTimeoutContainment:
    """A runaway program fails only its own question."""

    def test_infinite_loop_does_not_block_other_questions(self):
        grader = Grader(code_runner=CodeRunner(backend=SubprocessSandbox(), timeout_sec=0.5))
        looping = Question(id=1, type="CODE", marks=2,
                           test_cases=[TestCase("", "1"), TestCase("", "2")])
        adding = Question(id=2, type="CODE", marks=3,
                          test_cases=[TestCase("1 2", "3"), TestCase("4 5", "9")])
        questions = [looping, adding, mcq(3, 1)]
        answers = {
            "1": "while True:\n    pass",
            "2": "a, b = map(int, input().split())\nprint(a + b)",
            "3": 1,
        }

        reports = grader.run_code_questions(questions, answers)
        verdicts = grader.collect_verdicts(questions, answers)
        result = grader.grade(questions, answers, verdicts)

        assert [r.error for r in reports["1"].results] == [TIMEOUT_ERROR, TIMEOUT_ERROR]
        assert reports["2"].all_passed is True
        assert verdicts == {"1": False, "2": True}
        assert result.score == 4
        assert result.total_score == 6


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
