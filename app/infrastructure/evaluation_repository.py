"""
Infrastructure layer: Flat JSON record store for evaluations.

All evaluations live in one JSON array, keyed by their id. Writes replace the
whole file through a temporary file so a reader never sees half a record.
"""
import os
import logging
import tempfile
import threading
from pathlib import Path
from typing import List, Optional
from pydantic import TypeAdapter, ValidationError

from app.config import settings
from app.domain.exceptions import StorageError
from app.domain.models import Evaluation

logger = logging.getLogger(__name__)

_evaluation_list = TypeAdapter(List[Evaluation])


class JsonEvaluationRepository:
    """
    Evaluation store backed by a single JSON file.
    """

    def __init__(self, path: str | Path):
        """
        Initialize the repository.

        Args:
            path: JSON file to read and write; created on first save
        """
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> List[Evaluation]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_bytes()
            if not raw.strip():
                return []
            return _evaluation_list.validate_json(raw)
        except (OSError, ValidationError) as e:
            raise StorageError(f"Cannot load evaluations from {self.path}: {e}") from e

    def _write(self, evaluations: List[Evaluation]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        except OSError as e:
            raise StorageError(f"Cannot save evaluations to {self.path}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(_evaluation_list.dump_json(evaluations, indent=2))
            os.replace(tmp_name, self.path)
        except OSError as e:
            # Never leave a stray temp file next to the store
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise StorageError(f"Cannot save evaluations to {self.path}: {e}") from e

    def list(self) -> List[Evaluation]:
        """Return every stored evaluation, in insertion order."""
        with self._lock:
            return self._read()

    def get(self, evaluation_id: str) -> Optional[Evaluation]:
        """Return the evaluation with the given id, or None."""
        with self._lock:
            for evaluation in self._read():
                if evaluation.id == evaluation_id:
                    return evaluation
        return None

    def save(self, evaluation: Evaluation) -> Evaluation:
        """Insert or replace an evaluation as one write."""
        with self._lock:
            evaluations = self._read()
            for index, existing in enumerate(evaluations):
                if existing.id == evaluation.id:
                    evaluations[index] = evaluation
                    break
            else:
                evaluations.append(evaluation)
            self._write(evaluations)
        logger.debug(f"Saved evaluation {evaluation.id}")
        return evaluation

    def delete(self, evaluation_id: str) -> bool:
        """Remove an evaluation; returns False if it was not stored."""
        with self._lock:
            evaluations = self._read()
            remaining = [e for e in evaluations if e.id != evaluation_id]
            if len(remaining) == len(evaluations):
                return False
            self._write(remaining)
        logger.info(f"Deleted evaluation {evaluation_id}")
        return True


# Singleton instance
_repository: Optional[JsonEvaluationRepository] = None


def get_repository() -> JsonEvaluationRepository:
    """
    Get or create the singleton repository instance.

    Returns:
        JsonEvaluationRepository instance
    """
    global _repository
    if _repository is None:
        _repository = JsonEvaluationRepository(settings.storage_path)
    return _repository
