"""Shared builders for the test suites."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from examengine.bank import QuestionBank


def make_bank_data(negative_marking=False, start_time=None, end_time=None, duration=30):
    """Bank with one mixed exam: two MCQ questions and one CODE question."""
    return {
        "version": "1",
        "exams": [
            {
                "id": 1,
                "title": "Python Basics",
                "duration": duration,
                "negativeMarking": negative_marking,
                "startTime": start_time,
                "endTime": end_time,
                "questions": [
                    {
                        "id": 11,
                        "type": "MCQ",
                        "marks": 1,
                        "text": "What does len([1, 2]) return?",
                        "options": ["1", "2", "3"],
                        "correctOption": 1
                    },
                    {
                        "id": 12,
                        "type": "MCQ",
                        "marks": 1,
                        "text": "Which keyword defines a function?",
                        "options": ["func", "def", "lambda", "fn"],
                        "correctOption": 1
                    },
                    {
                        "id": 13,
                        "type": "CODE",
                        "marks": 1,
                        "problemDescription": "Print the sum of two integers.",
                        "inputFormat": "Two integers on one line",
                        "outputFormat": "Their sum",
                        "sampleInput": "1 2",
                        "sampleOutput": "3",
                        "testCases": [
                            {"input": "1 2", "expectedOutput": "3"},
                            {"input": "10 -4", "expectedOutput": "6"}
                        ]
                    }
                ]
            },
            {
                "id": 2,
                "title": "Quiz",
                "duration": 10,
                "totalMarks": 10,
                "questions": [
                    {"id": 21, "type": "MCQ", "options": ["a", "b"], "correctOption": 0},
                    {"id": 22, "type": "MCQ", "options": ["a", "b"], "correctOption": 1},
                    {"id": 23, "type": "MCQ", "options": ["a", "b"], "correctOption": 0}
                ]
            }
        ]
    }


@pytest.fixture
def bank_data():
    return make_bank_data()


@pytest.fixture
def bank(bank_data):
    return QuestionBank.from_dict(bank_data)
