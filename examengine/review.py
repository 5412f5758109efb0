"""
Read paths over persisted submissions: the candidate's per-question review,
per-exam statistics for the exam owner, and the candidate's exam listing.
"""

import hashlib
from typing import Any, Dict, List, Optional

from .bank import QuestionBank
from .models import Exam, Question, Submission, normalize_answers, normalize_verdicts, parse_option
from .store import SubmissionStore


def build_review(submission: Submission, questions: List[Question]) -> List[Dict[str, Any]]:
    """
    Pair every question with what the candidate submitted.

    MCQ entries carry the selected and the correct option; CODE entries carry
    the submitted source and the recorded verdict.
    """
    answers = normalize_answers(submission.answers)
    verdicts = normalize_verdicts(submission.code_verdicts)
    review = []

    for question in questions:
        entry = {
            "question_id": question.id,
            "type": question.type,
            "marks": question.marks,
        }
        if question.is_code:
            source = answers.get(question.key)
            entry.update({
                "text": question.problem_description,
                "submitted_code": source if isinstance(source, str) else None,
                "test_cases": len(question.test_cases),
                "is_correct": verdicts.get(question.key, False),
            })
        else:
            selected = parse_option(answers.get(question.key))
            entry.update({
                "text": question.text,
                "options": list(question.options),
                "selected_option": selected,
                "correct_option": question.correct_option,
                "is_correct": selected is not None and selected == question.correct_option,
            })
        review.append(entry)

    return review


def exam_statistics(submissions: List[Submission], pass_threshold: float = 0.35) -> Dict[str, Any]:
    """
    Aggregate the submissions of one exam.

    A submission passes when score / total_score reaches pass_threshold.
    """
    attempts = len(submissions)
    if attempts == 0:
        return {
            "attempts": 0,
            "avg_score": 0,
            "pass_rate": 0,
            "pass_count": 0,
            "fail_count": 0,
            "highest": 0,
            "lowest": 0,
        }

    scores = [s.score for s in submissions]
    pass_count = sum(
        1 for s in submissions
        if s.total_score > 0 and s.score / s.total_score >= pass_threshold
    )

    return {
        "attempts": attempts,
        "avg_score": round(sum(scores) / attempts, 2),
        "pass_rate": round(100 * pass_count / attempts),
        "pass_count": pass_count,
        "fail_count": attempts - pass_count,
        "highest": max(scores),
        "lowest": min(scores),
    }


def exam_listing(bank: QuestionBank, store: SubmissionStore, candidate_id: Any) -> List[Dict[str, Any]]:
    """Every exam in the bank with the candidate's attempt status."""
    listing = []
    for exam in bank.exams():
        submission = store.get(exam.id, candidate_id)
        entry = exam.to_dict()
        entry.update({
            "is_attempted": submission is not None,
            "score": submission.score if submission else None,
            "total_score": submission.total_score if submission else None,
        })
        listing.append(entry)
    return listing


def _short_hash(text: str) -> str:
    digest = hashlib.sha256(text.encode('utf-8')).hexdigest()
    return f"{digest[:8]}...{digest[-4:]}"


def format_results(exam: Exam, submission: Submission, review: Optional[List[Dict[str, Any]]] = None) -> str:
    """Human-readable results text for one submission."""
    lines = []
    lines.append(
        f"Candidate: {submission.candidate_id} | Exam: {exam.title} ({exam.id}) | "
        f"Date: {submission.completed_at.strftime('%Y-%m-%d %H:%M:%S')}"
    )
    lines.append(
        f"Submission: {submission.id} | Time spent: {submission.time_spent}s | "
        f"Integrity warnings: {submission.tab_switch_count}\n"
    )

    for num, entry in enumerate(review or [], start=1):
        status = "CORRECT" if entry["is_correct"] else "INCORRECT"
        lines.append(f"[Q{num}: {entry['question_id']}] {entry['type']} - {status} ({entry['marks']} marks)")

        if entry["type"] == "CODE":
            source = entry.get("submitted_code")
            if source:
                lines.append(f"  - SHA256(source): {_short_hash(source)}")
            else:
                lines.append("  NOT ANSWERED")
        else:
            selected = entry.get("selected_option")
            if selected is None:
                lines.append("  NOT ANSWERED")
            else:
                lines.append(f"  - Selected: option {selected + 1}")
            if entry.get("correct_option") is not None:
                lines.append(f"  - Correct: option {entry['correct_option'] + 1}")
        lines.append("")

    lines.append(f"TOTAL SCORE: {submission.score} / {submission.total_score} ({submission.percentage:.2f}%)")
    return "\n".join(lines)
