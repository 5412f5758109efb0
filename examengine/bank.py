"""
Question bank loading.

A bank holds the exams and their ordered question lists. It is stored as
plain JSON while authoring and as a Fernet-encrypted file on exam machines,
either with a key file or with a password (PBKDF2-derived key, salt stored
in front of the token).

Bank layout:
    {
      "version": "1",
      "exams": [
        {"id": 1, "title": "...", "duration": 30, "totalMarks": 10,
         "negativeMarking": false, "startTime": null, "endTime": null,
         "questions": [{"id": 11, "type": "MCQ", ...}, ...]}
      ]
    }
"""

import base64
import json
from pathlib import Path
from typing import Dict, List, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import ExamNotFound
from .models import Exam, Question, distribute_marks, normalize_id

SALT_PREFIX = b'SALT'
SALT_LENGTH = 16
KDF_ITERATIONS = 480000


def derive_key_from_password(password: str, salt: bytes) -> bytes:
    """Derive a Fernet key from a password using PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    key_material = kdf.derive(password.encode('utf-8'))
    return base64.urlsafe_b64encode(key_material)


def encrypt_bank_bytes(plaintext: bytes, key: Optional[bytes] = None, password: Optional[str] = None,
                       salt: Optional[bytes] = None) -> bytes:
    """Encrypt a plaintext bank with a key or a password (salt is prepended)."""
    if password is not None:
        if salt is None or len(salt) != SALT_LENGTH:
            raise ValueError(f"Password encryption needs a {SALT_LENGTH}-byte salt")
        fernet = Fernet(derive_key_from_password(password, salt))
        return SALT_PREFIX + salt + fernet.encrypt(plaintext)
    if key is None:
        raise ValueError("Either a key or a password is required")
    return Fernet(key).encrypt(plaintext)


def decrypt_bank_bytes(data: bytes, key_input: str) -> bytes:
    """
    Decrypt an encrypted bank.

    Args:
        data: File contents
        key_input: Password (for salted banks) or base64 Fernet key

    Raises:
        ValueError: if the key or password is wrong or the file is corrupted
    """
    if data.startswith(SALT_PREFIX):
        salt = data[len(SALT_PREFIX):len(SALT_PREFIX) + SALT_LENGTH]
        token = data[len(SALT_PREFIX) + SALT_LENGTH:]
        key = derive_key_from_password(key_input, salt)
    else:
        token = data
        key = key_input.strip().encode('utf-8')

    try:
        return Fernet(key).decrypt(token)
    except (InvalidToken, ValueError) as e:
        raise ValueError("Invalid key/password or corrupted bank file") from e


class QuestionBank:
    """Exams and their ordered question lists."""

    def __init__(self, exams: List[Exam], questions: Dict[str, List[Question]], version: str = "1"):
        self.version = version
        self._exams = {exam.key: exam for exam in exams}
        self._order = [exam.key for exam in exams]
        self._questions = questions

    @staticmethod
    def from_dict(data: dict) -> 'QuestionBank':
        """Create a QuestionBank from a dictionary."""
        exams = []
        questions = {}

        for exam_data in data.get('exams', []):
            exam = Exam.from_dict(exam_data)
            raw_questions = exam_data.get('questions', [])

            # a total without per-question marks is spread evenly
            shares = None
            if exam.total_marks and raw_questions and not any('marks' in q for q in raw_questions):
                shares = distribute_marks(exam.total_marks, len(raw_questions))

            exam_questions = []
            for i, q_data in enumerate(raw_questions):
                default_marks = shares[i] if shares else 1
                exam_questions.append(Question.from_dict(q_data, exam_id=exam.id, default_marks=default_marks))

            exam.total_marks = sum(q.marks for q in exam_questions)
            exams.append(exam)
            questions[exam.key] = exam_questions

        return QuestionBank(exams, questions, version=str(data.get('version', '1')))

    def exams(self) -> List[Exam]:
        return [self._exams[key] for key in self._order]

    def get_exam(self, exam_id) -> Exam:
        exam = self._exams.get(normalize_id(exam_id))
        if exam is None:
            raise ExamNotFound(f"Exam '{exam_id}' not found in question bank")
        return exam

    def get_questions(self, exam_id) -> List[Question]:
        self.get_exam(exam_id)
        return list(self._questions.get(normalize_id(exam_id), []))


def load_bank(bank_path: Path, key_input: Optional[str] = None) -> QuestionBank:
    """
    Load a question bank.

    Plain JSON files (.json) are read directly; anything else is treated as
    encrypted and needs key_input.

    Raises:
        ValueError: on decryption failure, invalid JSON or invalid content
    """
    bank_path = Path(bank_path)

    if bank_path.suffix.lower() == '.json':
        with open(bank_path, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in bank file: {e}")
    else:
        if not key_input:
            raise ValueError("Encrypted bank requires a key or password")
        with open(bank_path, 'rb') as f:
            encrypted_data = f.read()
        try:
            data = json.loads(decrypt_bank_bytes(encrypted_data, key_input))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in decrypted bank: {e}")

    try:
        return QuestionBank.from_dict(data)
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid bank content: {e}")
