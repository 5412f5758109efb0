"""
Timed Assessment Engine - Core Package

This package contains the core components for running and grading proctored exams:
- models: Data structures for exams, questions and submissions
- sandbox: Isolated execution of candidate code
- grader: Test case execution and score calculation
- guard: Single-attempt and exam-window enforcement
- session: The proctored session state machine
"""

__version__ = "1.0.0"
