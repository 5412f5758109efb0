"""
Data models for the assessment engine.

Provides type-safe structures for Exam, Question, TestCase and Submission
objects, the wire payload a session hands to the submission guard, and the
owner-tunable session configuration.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any


class QuestionType:
    """Supported question kinds."""
    MCQ = "MCQ"
    CODE = "CODE"


QUESTION_TYPES = (QuestionType.MCQ, QuestionType.CODE)


# ===== NORMALIZATION HELPERS =====

def normalize_id(value: Any) -> str:
    """
    Return the canonical key for an exam or question id.

    Answer payloads arrive keyed by numbers from some clients and by the
    string form of the id from others (JSON object keys are always strings).
    Every lookup in the engine goes through this one conversion.
    """
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def normalize_answers(raw: Optional[Dict[Any, Any]]) -> Dict[str, Any]:
    """Re-key an answer payload by canonical question id, dropping blanks."""
    if not raw:
        return {}
    answers = {}
    for key, value in raw.items():
        if value is None:
            continue
        answers[normalize_id(key)] = value
    return answers


def normalize_verdicts(raw: Optional[Dict[Any, Any]]) -> Dict[str, bool]:
    """Re-key a code-verdict map by canonical question id."""
    if not raw:
        return {}
    return {normalize_id(key): value is True for key, value in raw.items()}


def parse_option(value: Any) -> Optional[int]:
    """
    Convert a selected MCQ option into a zero-based index.

    Returns None when the value cannot be read as an option index; such an
    answer is treated as unanswered.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value >= 0 else None
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return int(stripped)
    return None


def compute_percentage(score: float, total_score: float) -> float:
    """Percentage of total_score achieved, rounded to two decimals."""
    if total_score <= 0:
        return 0.0
    return round(100.0 * score / total_score, 2)


def distribute_marks(total: int, count: int) -> List[int]:
    """
    Split a total mark evenly across count questions.

    The remainder of the integer division goes to the last question, so
    distribute_marks(10, 3) == [3, 3, 4].
    """
    if count <= 0:
        raise ValueError("Cannot distribute marks over zero questions")
    if total < count:
        raise ValueError(f"Total marks ({total}) must be at least the number of questions ({count})")
    base = total // count
    marks = [base] * count
    marks[-1] += total - base * count
    return marks


def _pick(data: dict, *keys, default=None):
    """Return the first present key (accepts camelCase and snake_case)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (a trailing 'Z' is accepted)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def align_now(now: datetime, reference: datetime) -> datetime:
    """Make `now` comparable with `reference` (naive values are local time)."""
    if reference.tzinfo is not None and now.tzinfo is None:
        return now.astimezone(reference.tzinfo)
    if reference.tzinfo is None and now.tzinfo is not None:
        return now.astimezone().replace(tzinfo=None)
    return now


# ===== QUESTION BANK =====

@dataclass
class TestCase:
    """A hidden input/expected-output pair for a CODE question."""
    __test__ = False  # not a pytest class

    input: str = ""
    expected_output: str = ""

    @staticmethod
    def from_dict(data: dict) -> 'TestCase':
        return TestCase(
            input=str(_pick(data, 'input', default="")),
            expected_output=str(_pick(data, 'expectedOutput', 'expected_output', 'output', default=""))
        )

    def to_dict(self) -> dict:
        return {"input": self.input, "expectedOutput": self.expected_output}


@dataclass
class Question:
    """Represents one exam question (MCQ or CODE)."""
    id: Any
    type: str
    marks: int = 1
    exam_id: Optional[Any] = None
    text: str = ""
    options: List[str] = field(default_factory=list)
    correct_option: Optional[int] = None
    test_cases: List[TestCase] = field(default_factory=list)
    problem_description: str = ""
    input_format: str = ""
    output_format: str = ""
    sample_input: str = ""
    sample_output: str = ""

    @property
    def key(self) -> str:
        return normalize_id(self.id)

    @property
    def is_code(self) -> bool:
        return self.type == QuestionType.CODE

    @staticmethod
    def from_dict(data: dict, exam_id: Any = None, default_marks: int = 1) -> 'Question':
        """Create a Question from a bank dictionary."""
        qtype = str(_pick(data, 'type', 'questionType', default=QuestionType.MCQ)).strip().upper()
        if qtype not in QUESTION_TYPES:
            raise ValueError(f"Unknown question type: {qtype}")

        marks = int(_pick(data, 'marks', 'maxMarks', default=default_marks))
        if marks <= 0:
            raise ValueError(f"Question {data.get('id')}: marks must be a positive integer")

        return Question(
            id=data['id'],
            type=qtype,
            marks=marks,
            exam_id=_pick(data, 'examId', 'exam_id', default=exam_id),
            text=str(_pick(data, 'text', default="")),
            options=[str(o) for o in _pick(data, 'options', default=[])],
            correct_option=parse_option(_pick(data, 'correctOption', 'correct_option')),
            test_cases=[TestCase.from_dict(t) for t in _pick(data, 'testCases', 'test_cases', default=[])],
            problem_description=str(_pick(data, 'problemDescription', 'problem_description', default="")),
            input_format=str(_pick(data, 'inputFormat', 'input_format', default="")),
            output_format=str(_pick(data, 'outputFormat', 'output_format', default="")),
            sample_input=str(_pick(data, 'sampleInput', 'sample_input', default="")),
            sample_output=str(_pick(data, 'sampleOutput', 'sample_output', default=""))
        )

    def public_dict(self) -> dict:
        """Fields a candidate may see while taking the exam."""
        data = {"id": self.id, "type": self.type, "marks": self.marks}
        if self.is_code:
            data.update({
                "problemDescription": self.problem_description,
                "inputFormat": self.input_format,
                "outputFormat": self.output_format,
                "sampleInput": self.sample_input,
                "sampleOutput": self.sample_output,
            })
        else:
            data.update({"text": self.text, "options": list(self.options)})
        return data


@dataclass
class Exam:
    """A timed exam with an optional scheduled window."""
    id: Any
    title: str
    duration_minutes: int
    total_marks: int = 0
    negative_marking: bool = False
    owner_id: Optional[Any] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    description: str = ""

    @property
    def key(self) -> str:
        return normalize_id(self.id)

    @staticmethod
    def from_dict(data: dict) -> 'Exam':
        """Create an Exam from a bank dictionary."""
        duration = int(_pick(data, 'duration', 'duration_minutes', default=0))
        if duration <= 0:
            raise ValueError(f"Exam {data.get('id')}: duration must be a positive number of minutes")
        return Exam(
            id=data['id'],
            title=str(_pick(data, 'title', default="")),
            duration_minutes=duration,
            total_marks=int(_pick(data, 'totalMarks', 'total_marks', default=0)),
            negative_marking=bool(_pick(data, 'negativeMarking', 'negative_marking', default=False)),
            owner_id=_pick(data, 'ownerId', 'owner_id', 'teacherId'),
            start_time=parse_datetime(_pick(data, 'startTime', 'start_time')),
            end_time=parse_datetime(_pick(data, 'endTime', 'end_time')),
            description=str(_pick(data, 'description', default=""))
        )

    def window_status(self, now: datetime) -> str:
        """Return "not_started", "open" or "ended" for the given moment."""
        if self.start_time is not None and align_now(now, self.start_time) < self.start_time:
            return "not_started"
        if self.end_time is not None and align_now(now, self.end_time) > self.end_time:
            return "ended"
        return "open"

    def is_open(self, now: datetime) -> bool:
        return self.window_status(now) == "open"

    def effective_duration_minutes(self, now: datetime) -> float:
        """Allowed duration: min(duration, end_time - now)."""
        duration = float(self.duration_minutes)
        if self.end_time is None:
            return duration
        left = (self.end_time - align_now(now, self.end_time)).total_seconds() / 60.0
        return max(0.0, min(duration, left))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "duration": self.duration_minutes,
            "totalMarks": self.total_marks,
            "negativeMarking": self.negative_marking,
            "ownerId": self.owner_id,
            "startTime": self.start_time.isoformat() if self.start_time else None,
            "endTime": self.end_time.isoformat() if self.end_time else None,
        }


# ===== SUBMISSION FLOW =====

@dataclass
class Identity:
    """Verified (candidate, role) pair supplied by the identity collaborator."""
    candidate_id: Any
    role: str = "STUDENT"


@dataclass
class SubmissionRequest:
    """Payload a finished session hands to the submission guard."""
    exam_id: Any
    answers: Dict[str, Any]
    tab_switch_count: int
    time_spent: int
    code_verdicts: Dict[str, bool] = field(default_factory=dict)
    reason: str = "manual"

    def to_dict(self) -> dict:
        return {
            "examId": self.exam_id,
            "answers": dict(self.answers),
            "tabSwitchCount": self.tab_switch_count,
            "timeSpent": self.time_spent,
            "codeVerdicts": dict(self.code_verdicts),
        }


@dataclass
class GradeResult:
    """Outcome of grading one answer payload."""
    score: int
    total_score: int
    percentage: float


@dataclass
class Submission:
    """A persisted, graded attempt. At most one exists per (exam, candidate)."""
    exam_id: Any
    candidate_id: Any
    score: int
    total_score: int
    answers: Dict[str, Any] = field(default_factory=dict)
    code_verdicts: Dict[str, bool] = field(default_factory=dict)
    tab_switch_count: int = 0
    time_spent: int = 0
    completed_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def percentage(self) -> float:
        return compute_percentage(self.score, self.total_score)

    @property
    def key(self) -> tuple:
        return normalize_id(self.exam_id), normalize_id(self.candidate_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "examId": self.exam_id,
            "candidateId": self.candidate_id,
            "score": self.score,
            "totalScore": self.total_score,
            "answers": dict(self.answers),
            "codeVerdicts": dict(self.code_verdicts),
            "tabSwitchCount": self.tab_switch_count,
            "timeSpent": self.time_spent,
            "completedAt": self.completed_at.isoformat(),
        }

    @staticmethod
    def from_dict(data: dict) -> 'Submission':
        return Submission(
            id=data['id'],
            exam_id=data['examId'],
            candidate_id=data['candidateId'],
            score=data['score'],
            total_score=data['totalScore'],
            answers=data.get('answers') or {},
            code_verdicts=data.get('codeVerdicts') or {},
            tab_switch_count=data.get('tabSwitchCount', 0),
            time_spent=data.get('timeSpent', 0),
            completed_at=parse_datetime(data['completedAt'])
        )

    def to_response(self) -> dict:
        """Response returned to the caller after a successful submit."""
        return {
            "submissionId": self.id,
            "score": self.score,
            "totalScore": self.total_score,
            "percentage": self.percentage,
        }


# ===== CODE EXECUTION RESULTS =====

@dataclass
class CaseResult:
    """Result of running candidate code against one test case."""
    input: str
    expected_output: str
    actual_output: str
    passed: bool
    error: Optional[str] = None
    elapsed_ms: int = 0

    def to_dict(self) -> dict:
        data = {
            "input": self.input,
            "expected_output": self.expected_output,
            "actual_output": self.actual_output,
            "passed": self.passed,
            "elapsed_ms": self.elapsed_ms,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class RunReport:
    """All test-case results for one program."""
    all_passed: bool
    results: List[CaseResult] = field(default_factory=list)

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.results if r.passed)


# ===== CONFIGURATION =====

@dataclass
class SessionConfig:
    """
    Configuration for proctoring and grading parameters set by the exam owner.

    Attributes:
        max_warnings: Counted violations that trigger automatic submission
        violation_debounce_seconds: Window in which repeated signals count once
        per_case_timeout_seconds: Wall-clock limit for one test-case run
        memory_limit_mb: Address-space limit for candidate programs (Unix only)
        submission_grace_seconds: Accepted lateness after an exam's end time
        integrity_check_interval_seconds: Polling interval of the integrity monitor
        network_monitoring: Treat network connectivity as loss of the secure context
        assistant_monitoring: Treat running AI assistant processes as loss of focus
        pass_threshold: Fraction of total score needed to pass (statistics only)
        store_dir: Directory where submissions are persisted
    """
    max_warnings: int = 3
    violation_debounce_seconds: float = 2.0
    per_case_timeout_seconds: float = 2.0
    memory_limit_mb: int = 256
    submission_grace_seconds: int = 0
    integrity_check_interval_seconds: int = 5
    network_monitoring: bool = True
    assistant_monitoring: bool = True
    pass_threshold: float = 0.35
    store_dir: str = "submissions"

    @staticmethod
    def from_dict(data: dict) -> 'SessionConfig':
        """Create SessionConfig from dictionary."""
        return SessionConfig(
            max_warnings=int(data.get('max_warnings', 3)),
            violation_debounce_seconds=float(data.get('violation_debounce_seconds', 2.0)),
            per_case_timeout_seconds=float(data.get('per_case_timeout_seconds', 2.0)),
            memory_limit_mb=int(data.get('memory_limit_mb', 256)),
            submission_grace_seconds=int(data.get('submission_grace_seconds', 0)),
            integrity_check_interval_seconds=int(data.get('integrity_check_interval_seconds', 5)),
            network_monitoring=bool(data.get('network_monitoring', True)),
            assistant_monitoring=bool(data.get('assistant_monitoring', True)),
            pass_threshold=float(data.get('pass_threshold', 0.35)),
            store_dir=str(data.get('store_dir', 'submissions'))
        )

    def validate(self) -> tuple[bool, str]:
        """
        Validate configuration consistency.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if self.max_warnings < 1:
            return False, "max_warnings must be at least 1"

        if any(x < 0 for x in [self.violation_debounce_seconds, self.submission_grace_seconds]):
            return False, "Debounce window and grace period must be non-negative"

        if self.per_case_timeout_seconds <= 0:
            return False, "per_case_timeout_seconds must be positive"

        if self.memory_limit_mb < 16:
            return False, "memory_limit_mb must be at least 16"

        if self.integrity_check_interval_seconds < 1:
            return False, "integrity_check_interval_seconds must be at least 1"

        if not 0.0 <= self.pass_threshold <= 1.0:
            return False, "pass_threshold must be between 0 and 1"

        return True, ""

    @staticmethod
    def default() -> 'SessionConfig':
        """Return the default configuration."""
        return SessionConfig()
