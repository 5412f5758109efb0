"""
Submission guard.

Enforces the single-attempt rule and the exam window before grading, then
persists the graded Submission. The duplicate check and the insert run
inside one critical section per (exam, candidate) pair, and the store's
insert-if-absent backs it up against writers in other processes.
"""

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from .bank import QuestionBank
from .errors import DuplicateAttempt, ExamNotActive, Unauthorized
from .grader import Grader
from .models import (
    Exam,
    Identity,
    Submission,
    SubmissionRequest,
    align_now,
    normalize_answers,
    normalize_id,
    normalize_verdicts,
)
from .store import SubmissionStore


class SubmissionGuard:
    """Validates, grades and persists submission attempts."""

    def __init__(
        self,
        bank: QuestionBank,
        store: SubmissionStore,
        grader: Optional[Grader] = None,
        clock: Callable[[], datetime] = datetime.now,
        grace_seconds: int = 0,
        session_logger: Optional[Callable] = None
    ):
        self.bank = bank
        self.store = store
        self.grader = grader or Grader()
        self.clock = clock
        self.grace_seconds = grace_seconds
        self.session_logger = session_logger

        self._locks: Dict[tuple, list] = {}
        self._locks_guard = threading.Lock()

    def _log(self, event: str, details: str = ""):
        if self.session_logger:
            self.session_logger(event, details)

    @contextmanager
    def _key_lock(self, key: tuple):
        """Hold the lock for key; the entry is dropped when no caller uses it."""
        with self._locks_guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def _check_window(self, exam: Exam, now: datetime):
        status = exam.window_status(now)
        if status == "ended" and self.grace_seconds > 0:
            deadline = exam.end_time + timedelta(seconds=self.grace_seconds)
            if align_now(now, exam.end_time) <= deadline:
                status = "open"
        if status != "open":
            raise ExamNotActive(status)

    def submit(
        self,
        exam_id: Any,
        identity: Optional[Identity],
        answers: Optional[Dict[Any, Any]],
        tab_switch_count: int = 0,
        time_spent: int = 0,
        code_verdicts: Optional[Dict[Any, bool]] = None
    ) -> Submission:
        """
        Grade and persist one attempt.

        Raises:
            Unauthorized: no verified candidate identity
            ExamNotFound: unknown exam
            DuplicateAttempt: a submission already exists for (exam, candidate)
            ExamNotActive: outside the exam's scheduled window
        """
        if identity is None or identity.candidate_id is None or normalize_id(identity.candidate_id) == "":
            self._log("SUBMISSION_REJECTED", f"Exam: {exam_id}, Reason: unauthorized")
            raise Unauthorized("A verified candidate identity is required")

        exam = self.bank.get_exam(exam_id)
        key = (exam.key, normalize_id(identity.candidate_id))

        with self._key_lock(key):
            if self.store.exists(exam.id, identity.candidate_id):
                self._log("SUBMISSION_REJECTED", f"Exam: {exam.key}, Candidate: {key[1]}, Reason: duplicate")
                raise DuplicateAttempt("You have already taken this exam")

            now = self.clock()
            try:
                self._check_window(exam, now)
            except ExamNotActive as e:
                self._log("SUBMISSION_REJECTED", f"Exam: {exam.key}, Candidate: {key[1]}, Reason: {e.reason}")
                raise

            normalized_answers = normalize_answers(answers)
            verdicts = normalize_verdicts(code_verdicts)
            result = self.grader.grade(
                self.bank.get_questions(exam.id),
                normalized_answers,
                verdicts,
                negative_marking=exam.negative_marking
            )

            submission = Submission(
                exam_id=exam.id,
                candidate_id=identity.candidate_id,
                score=result.score,
                total_score=result.total_score,
                answers=normalized_answers,
                code_verdicts=verdicts,
                tab_switch_count=max(0, int(tab_switch_count or 0)),
                time_spent=max(0, int(time_spent or 0)),
                completed_at=now
            )

            if not self.store.insert_if_absent(submission):
                self._log("SUBMISSION_REJECTED", f"Exam: {exam.key}, Candidate: {key[1]}, Reason: duplicate")
                raise DuplicateAttempt("You have already taken this exam")

        self._log(
            "SUBMISSION_ACCEPTED",
            f"Exam: {exam.key}, Candidate: {key[1]}, Score: {submission.score}/{submission.total_score}, "
            f"Tab switches: {submission.tab_switch_count}"
        )
        return submission

    def submit_request(self, identity: Optional[Identity], request: SubmissionRequest) -> Submission:
        """Submit the payload produced by a proctored session."""
        return self.submit(
            request.exam_id,
            identity,
            request.answers,
            tab_switch_count=request.tab_switch_count,
            time_spent=request.time_spent,
            code_verdicts=request.code_verdicts
        )

    def dispatcher(self, identity: Optional[Identity]) -> Callable[[SubmissionRequest], Submission]:
        """Bind an identity; the result is what a session dispatches to."""
        def dispatch(request: SubmissionRequest) -> Submission:
            return self.submit_request(identity, request)
        return dispatch
