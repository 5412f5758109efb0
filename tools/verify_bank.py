#!/usr/bin/env python3
"""
verify_bank.py - Validate question bank schema and decrypt for inspection.

Usage with key file:
    python tools/verify_bank.py --bank banks/bank.enc --key-file exams.key

Usage with password:
    python tools/verify_bank.py --bank banks/bank.enc --password

Usage with plaintext, running reference solutions against the test cases:
    python tools/verify_bank.py --bank bank.json --check-solutions
"""

import argparse
import getpass
import json
import sys
from pathlib import Path
from typing import List, Optional, Tuple

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from examengine.bank import SALT_PREFIX, QuestionBank, decrypt_bank_bytes  # noqa: E402
from examengine.errors import SandboxUnavailable  # noqa: E402
from examengine.grader import CodeRunner  # noqa: E402
from examengine.models import QUESTION_TYPES, QuestionType, TestCase, normalize_id, parse_datetime  # noqa: E402


def validate_bank_data(bank_data: dict) -> Tuple[List[str], List[str]]:
    """
    Check a bank dictionary against the layout the runner expects.

    Returns:
        Tuple of (errors, warnings)
    """
    errors = []
    warnings = []

    exams = bank_data.get('exams')
    if not isinstance(exams, list) or not exams:
        return ["Bank must contain a non-empty 'exams' list"], warnings

    seen_exams = set()
    for exam_idx, exam in enumerate(exams):
        label = f"exam[{exam_idx + 1}] ({exam.get('id', '?')})"

        if 'id' not in exam:
            errors.append(f"{label}: Missing id")
        elif normalize_id(exam['id']) in seen_exams:
            errors.append(f"{label}: Duplicate exam id")
        else:
            seen_exams.add(normalize_id(exam['id']))

        if not exam.get('title'):
            warnings.append(f"{label}: Missing title")

        duration = exam.get('duration')
        if not isinstance(duration, int) or isinstance(duration, bool) or duration <= 0:
            errors.append(f"{label}: duration must be a positive integer (minutes)")

        try:
            start = parse_datetime(exam.get('startTime'))
            end = parse_datetime(exam.get('endTime'))
            if start and end and start >= end:
                errors.append(f"{label}: startTime must be before endTime")
        except (TypeError, ValueError) as e:
            errors.append(f"{label}: Invalid window timestamp: {e}")

        questions = exam.get('questions', [])
        if not isinstance(questions, list) or not questions:
            errors.append(f"{label}: No questions defined")
            continue

        total_marks = exam.get('totalMarks')
        has_marks = any('marks' in q for q in questions)
        if total_marks is not None and not has_marks and total_marks < len(questions):
            errors.append(f"{label}: totalMarks ({total_marks}) is less than the number of questions")
        if total_marks is not None and has_marks:
            marks_sum = sum(q.get('marks', 1) for q in questions)
            if marks_sum != total_marks:
                warnings.append(f"{label}: totalMarks ({total_marks}) differs from the sum of question marks ({marks_sum})")

        seen_questions = set()
        for q_idx, question in enumerate(questions):
            q_label = f"{label} question[{q_idx + 1}] ({question.get('id', '?')})"

            if 'id' not in question:
                errors.append(f"{q_label}: Missing id")
            elif normalize_id(question['id']) in seen_questions:
                errors.append(f"{q_label}: Duplicate question id")
            else:
                seen_questions.add(normalize_id(question['id']))

            qtype = str(question.get('type', QuestionType.MCQ)).upper()
            if qtype not in QUESTION_TYPES:
                errors.append(f"{q_label}: Unknown type '{qtype}'")
                continue

            if 'marks' in question and (not isinstance(question['marks'], int) or question['marks'] <= 0):
                errors.append(f"{q_label}: marks must be a positive integer")

            if qtype == QuestionType.MCQ:
                options = question.get('options', [])
                if not isinstance(options, list) or len(options) < 2:
                    errors.append(f"{q_label}: MCQ needs at least 2 options")
                    continue
                correct = question.get('correctOption')
                if not isinstance(correct, int) or isinstance(correct, bool) or not 0 <= correct < len(options):
                    errors.append(f"{q_label}: correctOption must be an option index (0-{len(options) - 1})")
                if not question.get('text'):
                    warnings.append(f"{q_label}: Missing question text")
            else:
                test_cases = question.get('testCases', [])
                if not isinstance(test_cases, list) or not test_cases:
                    errors.append(f"{q_label}: No test cases defined")
                else:
                    for t_idx, test in enumerate(test_cases):
                        if 'input' not in test or 'expectedOutput' not in test:
                            errors.append(f"{q_label} test {t_idx + 1}: Missing input/expectedOutput")
                if not question.get('problemDescription'):
                    warnings.append(f"{q_label}: Missing problemDescription")
                if not question.get('referenceSolution'):
                    warnings.append(f"{q_label}: No referenceSolution (cannot be checked with --check-solutions)")

    return errors, warnings


def check_solutions(bank_data: dict, runner: CodeRunner, verbose: bool = False) -> List[str]:
    """Run every referenceSolution against its question's test cases."""
    errors = []
    for exam in bank_data.get('exams', []):
        for question in exam.get('questions', []):
            if str(question.get('type', '')).upper() != QuestionType.CODE:
                continue
            solution = question.get('referenceSolution')
            if not solution:
                continue

            test_cases = [TestCase.from_dict(t) for t in question.get('testCases', [])]
            report = runner.run(solution, test_cases)
            label = f"exam {exam.get('id', '?')} question {question.get('id', '?')}"
            if report.all_passed:
                print(f"  [OK] {label}: {report.passed_count}/{len(report.results)} tests passed")
                continue

            errors.append(f"{label}: reference solution passed {report.passed_count}/{len(report.results)} tests")
            if verbose:
                print(runner.format_run_report(report, show_details=True))
    return errors


def read_bank_data(bank_file: str, key_file: Optional[str] = None, use_password: bool = False) -> dict:
    """
    Read a plaintext or encrypted bank into a dictionary.

    Raises:
        ValueError: on a missing key, failed decryption or invalid JSON
    """
    path = Path(bank_file)
    with open(path, 'rb') as f:
        data = f.read()

    if path.suffix.lower() != '.json':
        if data.startswith(SALT_PREFIX):
            if not use_password:
                raise ValueError("This bank was encrypted with a password. Use --password flag.")
            key_input = getpass.getpass("Enter decryption password: ")
            print("[OK] Using password-based decryption")
        else:
            if not key_file:
                raise ValueError("This bank was encrypted with a key file. Use --key-file.")
            with open(key_file, 'r', encoding='utf-8') as f:
                key_input = f.read().strip()
            print("[OK] Using key file decryption")
        data = decrypt_bank_bytes(data, key_input)
        print("[OK] Bank decrypted successfully")

    try:
        return json.loads(data)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}")


def verify_bank(bank_file: str, key_file: str = None, use_password: bool = False,
                check: bool = False, verbose: bool = False) -> bool:
    """
    Verify a question bank (encrypted or plaintext).
    Returns True if valid, False otherwise.
    """
    try:
        bank_data = read_bank_data(bank_file, key_file, use_password)
    except FileNotFoundError as e:
        print(f"[ERROR] File not found: {e}", file=sys.stderr)
        return False
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return False

    print("\n[SCHEMA] Bank Schema Validation")
    print(f"{'=' * 60}")

    errors, warnings = validate_bank_data(bank_data)

    if not errors:
        try:
            bank = QuestionBank.from_dict(bank_data)
        except (KeyError, TypeError, ValueError) as e:
            errors.append(f"Bank does not load: {e}")
        else:
            for exam in bank.exams():
                questions = bank.get_questions(exam.id)
                print(f"[OK] Exam {exam.id}: {exam.title} ({len(questions)} questions, {exam.total_marks} marks)")
                if verbose:
                    for question in questions:
                        print(f"  - {question.id} {question.type} ({question.marks} marks)")

    if not errors and check:
        print("\n[SOLUTIONS] Running reference solutions")
        try:
            errors.extend(check_solutions(bank_data, CodeRunner(), verbose=verbose))
        except SandboxUnavailable as e:
            errors.append(f"Cannot run reference solutions: {e.message}")

    print(f"\n{'=' * 60}")
    print("[SUMMARY]")
    print(f"  Exams: {len(bank_data.get('exams') or [])}")

    if warnings:
        print(f"\n[WARNING] ({len(warnings)}):")
        for warn in warnings[:10]:
            print(f"  - {warn}")
        if len(warnings) > 10:
            print(f"  ... and {len(warnings) - 10} more")

    if errors:
        print(f"\n[ERROR] ({len(errors)}):")
        for err in errors[:20]:
            print(f"  - {err}")
        if len(errors) > 20:
            print(f"  ... and {len(errors) - 20} more")
        return False

    print("\n[OK] Bank validation PASSED")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Validate question bank schema and content.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Verify encrypted bank
  python tools/verify_bank.py --bank banks/bank.enc --key-file exams.key

  # Verify plaintext bank and run reference solutions (during authoring)
  python tools/verify_bank.py --bank bank.json --check-solutions --verbose
        """
    )
    parser.add_argument(
        "--bank",
        required=True,
        help="Path to bank file (.enc or .json)"
    )
    parser.add_argument(
        "--key-file",
        help="Encryption key file (for key-file encrypted banks)"
    )
    parser.add_argument(
        "--password",
        action="store_true",
        help="Use password to decrypt (for password-encrypted banks)"
    )
    parser.add_argument(
        "--check-solutions",
        action="store_true",
        help="Run each CODE question's referenceSolution against its test cases"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show question details and failing test output"
    )

    args = parser.parse_args()

    success = verify_bank(args.bank, args.key_file, args.password, args.check_solutions, args.verbose)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
