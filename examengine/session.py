"""
Proctored exam session.

The session is the single owner of "time remaining" and "integrity status".
It moves through LOBBY -> ACTIVE -> SUBMITTING -> TERMINATED. The timer
thread, the integrity monitor and the candidate's own commands all go
through one lock, so exactly one terminal transition ever happens and only
the first submission attempt reaches the dispatcher.

Observers (terminal output, logs) subscribe to session events instead of
polling shared globals; every listener is detached once the session ends.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from .bank import QuestionBank
from .errors import ExamNotActive, SessionStateError
from .models import (
    Exam,
    Question,
    SessionConfig,
    SubmissionRequest,
    normalize_id,
    parse_option,
)

# countdown resolution; every tick removes exactly this many seconds
TICK_SECONDS = 1


class SessionState:
    LOBBY = "lobby"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    TERMINATED = "terminated"


class SubmitReason:
    MANUAL = "manual"
    TIME_EXPIRED = "time_expired"
    INTEGRITY_EXCEEDED = "integrity_exceeded"


class ViolationKind:
    CONTEXT_LOST = "context_lost"
    FOCUS_LOST = "focus_lost"


@dataclass
class SessionEvent:
    """Notification delivered to session listeners."""
    kind: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SubmissionOutcome:
    """What happened to the one submission a session dispatched."""
    reason: str
    request: SubmissionRequest
    result: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def format_seconds(total_seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    total_seconds = max(0, int(total_seconds))
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class SessionTimer:
    """Calls on_tick every interval seconds on a daemon thread until stopped."""

    def __init__(self, on_tick: Callable[[], None], interval: float = TICK_SECONDS):
        self.on_tick = on_tick
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()

    def start(self):
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="session-timer", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop_event.set()
        # the final tick may be the one stopping the timer
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)

    def _run(self):
        while not self._stop_event.wait(self.interval):
            self.on_tick()


class ProctoredSession:
    """Manages one candidate's attempt at one exam."""

    def __init__(
        self,
        exam_id: Any,
        bank: QuestionBank,
        dispatch: Callable[[SubmissionRequest], Any],
        config: Optional[SessionConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = datetime.now,
        timer_factory: Callable[..., Any] = SessionTimer,
        monitor_factory: Optional[Callable[['ProctoredSession'], Any]] = None,
        verdict_fn: Optional[Callable[[List[Question], Dict[str, Any]], Dict[str, bool]]] = None,
        session_logger: Optional[Callable] = None
    ):
        self.exam_id = exam_id
        self.bank = bank
        self.dispatch = dispatch
        self.config = config or SessionConfig.default()
        self.verdict_fn = verdict_fn
        self.session_logger = session_logger
        self._clock = clock
        self._wall_clock = wall_clock
        self._timer_factory = timer_factory
        self._monitor_factory = monitor_factory

        self._lock = threading.RLock()
        self._listeners: List[Callable[[SessionEvent], None]] = []

        self.state = SessionState.LOBBY
        self.secure = False
        self.exam: Optional[Exam] = None
        self.questions: List[Question] = []
        self.current_index = 0
        self.answers: Dict[str, Any] = {}
        self.review_flags: Set[str] = set()
        self.violation_count = 0
        self.remaining_seconds = 0
        self.allowed_seconds = 0
        self.confirm_pending = False
        self.outcome: Optional[SubmissionOutcome] = None

        self._started_at: Optional[float] = None
        self._last_violation_at: Optional[float] = None
        self._monitoring = False
        self._timer = None
        self._monitor = None

    # ===== OBSERVERS =====

    def subscribe(self, listener: Callable[[SessionEvent], None]) -> Callable[[], None]:
        """Register a listener; returns a function that detaches it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def _notify(self, event_kind: str, /, **data):
        event = SessionEvent(event_kind, data)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                self._log("LISTENER_ERROR", f"{event_kind}: {e}")

    def _log(self, event: str, details: str = ""):
        if self.session_logger:
            self.session_logger(event, details)

    # ===== LIFECYCLE =====

    def enter(self, secure_granted: bool) -> Exam:
        """
        Leave the lobby and start the timed attempt.

        Raises:
            SessionStateError: secure mode not granted, or session already started
            ExamNotActive: the exam window is closed
            ExamNotFound: unknown exam
        """
        with self._lock:
            if self.state != SessionState.LOBBY:
                raise SessionStateError(f"Cannot start the exam from state '{self.state}'")
            if not secure_granted:
                raise SessionStateError("Secure mode must be granted before the exam starts")

            exam = self.bank.get_exam(self.exam_id)
            now = self._wall_clock()
            status = exam.window_status(now)
            if status != "open":
                raise ExamNotActive(status)

            self.exam = exam
            self.questions = self.bank.get_questions(exam.id)
            self.allowed_seconds = int(exam.effective_duration_minutes(now) * 60)
            self.remaining_seconds = self.allowed_seconds
            self.state = SessionState.ACTIVE
            self.secure = True
            self._monitoring = True
            self._started_at = self._clock()

            self._timer = self._timer_factory(self.tick, TICK_SECONDS)
            if self._monitor_factory is not None:
                self._monitor = self._monitor_factory(self)

            self._log(
                "EXAM_START",
                f"Exam: {exam.key}, Questions: {len(self.questions)}, Duration: {format_seconds(self.allowed_seconds)}"
            )
            self._notify("started", remaining=self.remaining_seconds, questions=len(self.questions))

            request = None
            if self.remaining_seconds <= 0:
                request = self._begin_submission(SubmitReason.TIME_EXPIRED)
            else:
                self._timer.start()
                if self._monitor is not None:
                    self._monitor.start_monitoring()

        if request is not None:
            self._complete_submission(request)
        return exam

    def tick(self):
        """Advance the countdown by one timer period."""
        with self._lock:
            if self.state != SessionState.ACTIVE:
                return
            self.remaining_seconds = max(0, self.remaining_seconds - TICK_SECONDS)
            self._notify("tick", remaining=self.remaining_seconds)
            if self.remaining_seconds > 0:
                return
            self._log("EXAM_TIMEOUT", "Exam time finished - auto-submitting")
            request = self._begin_submission(SubmitReason.TIME_EXPIRED)

        self._complete_submission(request)

    # ===== INTEGRITY =====

    def report_violation(self, kind: str) -> bool:
        """
        Record loss of the secure context or of foreground focus.

        Content is obscured until restore_secure_context() is called. Signals
        within the debounce window of the last counted violation are not
        counted again.

        Returns:
            True if the signal was counted as a violation
        """
        with self._lock:
            if self.state != SessionState.ACTIVE or not self._monitoring:
                return False

            if self.secure:
                self.secure = False
                self._notify("insecure", kind=kind)

            now = self._clock()
            if (self._last_violation_at is not None
                    and now - self._last_violation_at < self.config.violation_debounce_seconds):
                self._log("VIOLATION_DEBOUNCED", f"Type: {kind}")
                return False

            self._last_violation_at = now
            self.violation_count += 1
            self._log(
                "INTEGRITY_VIOLATION",
                f"Type: {kind}, Count: {self.violation_count}/{self.config.max_warnings}"
            )
            self._notify(
                "warning",
                kind=kind,
                count=self.violation_count,
                max_warnings=self.config.max_warnings
            )

            if self.violation_count < self.config.max_warnings:
                return True
            request = self._begin_submission(SubmitReason.INTEGRITY_EXCEEDED)

        self._complete_submission(request)
        return True

    def restore_secure_context(self) -> bool:
        """Mark the secure context as regained; content becomes visible again."""
        with self._lock:
            if self.state != SessionState.ACTIVE or self.secure:
                return False
            self.secure = True
            self._log("SECURE_RESTORED")
            self._notify("secure")
            return True

    # ===== QUESTIONS AND ANSWERS =====

    def _require_interactive(self):
        if self.state != SessionState.ACTIVE:
            raise SessionStateError("The exam session is not active")
        if not self.secure:
            raise SessionStateError("Interaction is blocked until secure mode is restored")

    def _question(self, question_id: Any) -> Question:
        key = normalize_id(question_id)
        for question in self.questions:
            if question.key == key:
                return question
        raise ValueError(f"Unknown question '{question_id}'")

    @property
    def current_question(self) -> Optional[Question]:
        if not self.questions:
            return None
        return self.questions[self.current_index]

    def current_view(self) -> Dict[str, Any]:
        """What the candidate may see now; question content is withheld while insecure."""
        with self._lock:
            if self.state != SessionState.ACTIVE:
                raise SessionStateError("The exam session is not active")
            view = {
                "index": self.current_index,
                "total": len(self.questions),
                "remaining_seconds": self.remaining_seconds,
                "violations": self.violation_count,
            }
            if not self.secure:
                view["blocked"] = True
                return view
            question = self.current_question
            view["blocked"] = False
            if question is not None:
                view["question"] = question.public_dict()
                view["answer"] = self.answers.get(question.key)
                view["flagged"] = question.key in self.review_flags
            return view

    def go_to(self, index: int) -> int:
        with self._lock:
            self._require_interactive()
            if not 0 <= index < len(self.questions):
                raise IndexError(f"Question number must be between 1 and {len(self.questions)}")
            self.current_index = index
            return self.current_index

    def next_question(self) -> int:
        with self._lock:
            return self.go_to(min(self.current_index + 1, len(self.questions) - 1))

    def previous_question(self) -> int:
        with self._lock:
            return self.go_to(max(self.current_index - 1, 0))

    def select_option(self, question_id: Any, option: Any) -> int:
        """Record an MCQ selection (zero-based option index)."""
        with self._lock:
            self._require_interactive()
            question = self._question(question_id)
            if question.is_code:
                raise ValueError(f"Question {question.key} is not a multiple-choice question")
            index = parse_option(option)
            if index is None or index >= len(question.options):
                raise ValueError(f"Option must be between 1 and {len(question.options)}")
            self.answers[question.key] = index
            self._notify("answer", question_id=question.key)
            return index

    def set_code(self, question_id: Any, source: str):
        """Record the current source for a CODE question."""
        with self._lock:
            self._require_interactive()
            question = self._question(question_id)
            if not question.is_code:
                raise ValueError(f"Question {question.key} is not a coding question")
            self.answers[question.key] = str(source)
            self._notify("answer", question_id=question.key)

    def clear_answer(self, question_id: Any):
        with self._lock:
            self._require_interactive()
            question = self._question(question_id)
            self.answers.pop(question.key, None)
            self._notify("answer", question_id=question.key)

    def toggle_review(self, question_id: Any) -> bool:
        """Flag or unflag a question for review. Has no grading effect."""
        with self._lock:
            self._require_interactive()
            question = self._question(question_id)
            if question.key in self.review_flags:
                self.review_flags.discard(question.key)
                return False
            self.review_flags.add(question.key)
            return True

    def flagged_for_review(self) -> List[str]:
        with self._lock:
            return [q.key for q in self.questions if q.key in self.review_flags]

    @property
    def answered_count(self) -> int:
        with self._lock:
            return sum(1 for q in self.questions if q.key in self.answers)

    @property
    def elapsed_seconds(self) -> int:
        if self._started_at is None:
            return 0
        return int(min(self.allowed_seconds, max(0.0, round(self._clock() - self._started_at))))

    # ===== SUBMISSION =====

    def request_submit(self) -> Dict[str, Any]:
        """First step of a manual submission: open the confirmation."""
        with self._lock:
            self._require_interactive()
            self.confirm_pending = True
            summary = {
                "answered": self.answered_count,
                "total": len(self.questions),
                "flagged": len(self.review_flags),
            }
            self._notify("confirm_requested", **summary)
            return summary

    def cancel_submit(self):
        with self._lock:
            self.confirm_pending = False

    def confirm_submit(self) -> Optional[SubmissionOutcome]:
        """
        Second step of a manual submission.

        Returns None when another submission is already in flight or done.
        """
        with self._lock:
            if self.state != SessionState.ACTIVE:
                return None
            if not self.confirm_pending:
                raise SessionStateError("Submission has not been requested")
            self._require_interactive()
            request = self._begin_submission(SubmitReason.MANUAL)

        return self._complete_submission(request)

    def _begin_submission(self, reason: str) -> Optional[SubmissionRequest]:
        # lock held by caller
        if self.state != SessionState.ACTIVE:
            return None
        self.state = SessionState.SUBMITTING
        self.confirm_pending = False
        self._monitoring = False

        request = SubmissionRequest(
            exam_id=self.exam.id,
            answers=dict(self.answers),
            tab_switch_count=self.violation_count,
            time_spent=self.elapsed_seconds,
            reason=reason
        )
        self._log(
            "SUBMIT_START",
            f"Reason: {reason}, Answered: {len(request.answers)}/{len(self.questions)}, "
            f"Violations: {request.tab_switch_count}, Time spent: {request.time_spent}s"
        )
        self._notify("submitting", reason=reason)
        return request

    def _release_resources(self):
        if self._timer is not None:
            self._timer.stop()
        if self._monitor is not None:
            self._monitor.stop_monitoring()
        with self._lock:
            self.secure = False

    def _complete_submission(self, request: Optional[SubmissionRequest]) -> Optional[SubmissionOutcome]:
        if request is None:
            return None

        self._release_resources()
        outcome = SubmissionOutcome(reason=request.reason, request=request)
        try:
            if self.verdict_fn is not None:
                request.code_verdicts = self.verdict_fn(self.questions, request.answers)
            outcome.result = self.dispatch(request)
        except Exception as e:
            outcome.error = e

        with self._lock:
            self.outcome = outcome
            self.state = SessionState.TERMINATED

        if outcome.ok:
            self._log("SUBMIT_DONE", f"Reason: {request.reason}")
            self._notify("submitted", reason=request.reason, result=outcome.result)
        else:
            self._log("SUBMIT_FAILED", f"Reason: {request.reason}, Error: {outcome.error}")
            self._notify("submit_failed", reason=request.reason, error=outcome.error)
        self._notify("terminated", reason=request.reason)

        with self._lock:
            self._listeners.clear()
        return outcome

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self.state,
                "secure": self.secure,
                "answered": self.answered_count,
                "total": len(self.questions),
                "flagged": len(self.review_flags),
                "violations": self.violation_count,
                "max_warnings": self.config.max_warnings,
                "remaining_seconds": self.remaining_seconds,
            }
