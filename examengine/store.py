"""
Submission persistence.

The guard requires an atomic "insert if not exists" keyed by
(exam_id, candidate_id). MemoryStore provides it with a lock, JsonFileStore
with an atomic hard link so it also holds across processes.
"""

import os
import json
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

from .models import Submission, normalize_id


class SubmissionStore:
    """Durable store for Submission records."""

    def get(self, exam_id, candidate_id) -> Optional[Submission]:
        raise NotImplementedError

    def exists(self, exam_id, candidate_id) -> bool:
        return self.get(exam_id, candidate_id) is not None

    def insert_if_absent(self, submission: Submission) -> bool:
        """Persist submission unless one exists for its key. Returns True if inserted."""
        raise NotImplementedError

    def all(self) -> List[Submission]:
        raise NotImplementedError

    def list_for_exam(self, exam_id) -> List[Submission]:
        key = normalize_id(exam_id)
        return [s for s in self.all() if normalize_id(s.exam_id) == key]

    def list_for_candidate(self, candidate_id) -> List[Submission]:
        key = normalize_id(candidate_id)
        return [s for s in self.all() if normalize_id(s.candidate_id) == key]


class MemoryStore(SubmissionStore):
    """In-process store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[Tuple[str, str], Submission] = {}

    def get(self, exam_id, candidate_id) -> Optional[Submission]:
        with self._lock:
            return self._records.get((normalize_id(exam_id), normalize_id(candidate_id)))

    def insert_if_absent(self, submission: Submission) -> bool:
        with self._lock:
            if submission.key in self._records:
                return False
            self._records[submission.key] = submission
            return True

    def all(self) -> List[Submission]:
        with self._lock:
            return sorted(self._records.values(), key=lambda s: s.completed_at)


def safe_component(value: str) -> str:
    """Percent-encode an id for use in a file name.

    Only alphanumerics and '-.~' pass through; '_' is encoded too so the
    '__candidate_' separator cannot occur inside a component.
    """
    return quote(value, safe="").replace("_", "%5F")


def record_stem(exam_id, candidate_id) -> str:
    exam = safe_component(normalize_id(exam_id))
    candidate = safe_component(normalize_id(candidate_id))
    return f"exam_{exam}__candidate_{candidate}"


class JsonFileStore(SubmissionStore):
    """One JSON file per (exam, candidate) under a root directory."""

    def __init__(self, root_dir):
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, exam_id, candidate_id) -> Path:
        return self.root_dir / f"{record_stem(exam_id, candidate_id)}.json"

    def get(self, exam_id, candidate_id) -> Optional[Submission]:
        path = self._path_for(exam_id, candidate_id)
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return Submission.from_dict(json.load(f))

    def exists(self, exam_id, candidate_id) -> bool:
        return self._path_for(exam_id, candidate_id).exists()

    def insert_if_absent(self, submission: Submission) -> bool:
        path = self._path_for(submission.exam_id, submission.candidate_id)
        if path.exists():
            return False

        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                'w', encoding='utf-8', dir=self.root_dir, suffix=".tmp", delete=False
            ) as f:
                temp_path = Path(f.name)
                json.dump(submission.to_dict(), f, indent=2)
            # link() fails if the target exists, so concurrent writers cannot both win
            os.link(temp_path, path)
        except FileExistsError:
            return False
        finally:
            if temp_path is not None:
                temp_path.unlink()
        return True

    def all(self) -> List[Submission]:
        submissions = []
        for path in sorted(self.root_dir.glob("exam_*__candidate_*.json")):
            with open(path, 'r', encoding='utf-8') as f:
                submissions.append(Submission.from_dict(json.load(f)))
        return sorted(submissions, key=lambda s: s.completed_at)
