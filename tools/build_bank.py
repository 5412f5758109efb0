#!/usr/bin/env python3
"""
build_bank.py - Encrypt a plaintext JSON question bank.

The bank is parsed with the same loader the exam runner uses before it is
encrypted, so a bank that builds is a bank that loads.

Usage with key file:
    python tools/build_bank.py --in bank.json --out banks/bank.enc --key-file exams.key

Usage with password:
    python tools/build_bank.py --in bank.json --out banks/bank.enc --password
"""

import argparse
import getpass
import hashlib
import json
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from examengine.bank import SALT_LENGTH, QuestionBank, encrypt_bank_bytes  # noqa: E402

MIN_PASSWORD_LENGTH = 8


def summarize_bank(bank: QuestionBank) -> list:
    """One summary line per exam."""
    lines = []
    for exam in bank.exams():
        questions = bank.get_questions(exam.id)
        code_count = sum(1 for q in questions if q.is_code)
        lines.append(
            f"  Exam {exam.id}: {exam.title} - {len(questions)} questions "
            f"({len(questions) - code_count} MCQ, {code_count} CODE), "
            f"{exam.total_marks} marks, {exam.duration_minutes} min"
        )
    return lines


def build_bank(in_file: str, out_file: str, key: bytes = None, password: str = None) -> str:
    """
    Validate and encrypt a plaintext JSON question bank.

    Returns:
        SHA256 of the written file

    Raises:
        ValueError: if the bank is invalid or no key/password is given
    """
    with open(in_file, 'rb') as f:
        plaintext = f.read()

    try:
        bank_data = json.loads(plaintext)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in input file: {e}")

    try:
        bank = QuestionBank.from_dict(bank_data)
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid bank content: {e}")

    print("[OK] Input bank validated")
    print(f"  Version: {bank.version}")
    for line in summarize_bank(bank):
        print(line)

    if password is not None:
        final_data = encrypt_bank_bytes(plaintext, password=password, salt=os.urandom(SALT_LENGTH))
    else:
        final_data = encrypt_bank_bytes(plaintext, key=key)

    Path(out_file).parent.mkdir(parents=True, exist_ok=True)
    with open(out_file, 'wb') as f:
        f.write(final_data)

    return hashlib.sha256(final_data).hexdigest()


def main():
    parser = argparse.ArgumentParser(
        description="Encrypt a plaintext JSON question bank.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python tools/build_bank.py --in bank.json --out banks/bank.enc --key-file exams.key
  python tools/build_bank.py --in bank.json --out banks/bank.enc --password

Notes:
  - The bank is validated with the runner's loader before encryption
  - Output directory will be created if it doesn't exist
  - Produces SHA256 checksum for verification
        """
    )
    parser.add_argument(
        "--in",
        dest="in_file",
        required=True,
        help="Input plaintext JSON file"
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Output encrypted bank file (.enc)"
    )
    method = parser.add_mutually_exclusive_group(required=True)
    method.add_argument(
        "--key-file",
        help="File containing the encryption key"
    )
    method.add_argument(
        "--password",
        action="store_true",
        help="Use password-based encryption instead of key file"
    )

    args = parser.parse_args()

    key = None
    password = None
    try:
        if args.password:
            password = getpass.getpass("Enter encryption password: ")
            if password != getpass.getpass("Confirm password: "):
                print("[ERROR] Passwords do not match", file=sys.stderr)
                sys.exit(1)
            if len(password) < MIN_PASSWORD_LENGTH:
                print(f"[ERROR] Password must be at least {MIN_PASSWORD_LENGTH} characters", file=sys.stderr)
                sys.exit(1)
            print("[OK] Using password-based encryption")
        else:
            with open(args.key_file, 'rb') as f:
                key = f.read().strip()
            print("[OK] Using key file encryption")

        sha256_hash = build_bank(args.in_file, args.out, key=key, password=password)
    except FileNotFoundError as e:
        print(f"[ERROR] File not found: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"[ERROR] Error encrypting bank: {e}", file=sys.stderr)
        sys.exit(1)

    print("\n[OK] Success: Bank encrypted")
    print(f"  Output: {args.out}")
    print(f"  Method: {'Password-based' if password is not None else 'Key file'}")
    print(f"  SHA256: {sha256_hash}")


if __name__ == "__main__":
    main()
