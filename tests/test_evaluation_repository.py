"""
Unit tests for the JSON evaluation store.
"""
import pytest

from app.domain.exceptions import StorageError
from app.domain.models import new_evaluation
from app.infrastructure.evaluation_repository import (
    JsonEvaluationRepository,
    get_repository,
)


class TestJsonEvaluationRepository:
    """Tests for save, get, list and delete."""

    def test_missing_file_reads_as_empty(self, repository):
        assert repository.list() == []
        assert repository.get("nope") is None

    def test_save_and_get(self, repository):
        evaluation = new_evaluation(5, plot_name="LoteA")

        repository.save(evaluation)

        assert repository.get(evaluation.id) == evaluation
        assert repository.path.exists()

    def test_save_replaces_existing_record(self, repository):
        evaluation = new_evaluation(5, plot_name="LoteA")
        repository.save(evaluation)

        renamed = evaluation.model_copy(update={"plot_name": "LoteB"})
        repository.save(renamed)

        stored = repository.list()
        assert len(stored) == 1
        assert stored[0].plot_name == "LoteB"

    def test_list_keeps_insertion_order(self, repository):
        first = repository.save(new_evaluation(2, plot_name="one"))
        second = repository.save(new_evaluation(2, plot_name="two"))

        assert [e.id for e in repository.list()] == [first.id, second.id]

    def test_delete(self, repository):
        evaluation = repository.save(new_evaluation(2))

        assert repository.delete(evaluation.id) is True
        assert repository.delete(evaluation.id) is False
        assert repository.list() == []

    def test_survives_new_instance(self, repository):
        evaluation = repository.save(new_evaluation(3, plot_name="LoteA"))

        reopened = JsonEvaluationRepository(repository.path)

        assert reopened.get(evaluation.id) == evaluation

    def test_corrupt_file_raises_storage_error(self, tmp_path):
        path = tmp_path / "evaluations.json"
        path.write_text("{not json")

        with pytest.raises(StorageError):
            JsonEvaluationRepository(path).list()

    def test_failed_write_keeps_store_and_leaves_no_temp_file(self, repository, monkeypatch):
        import app.infrastructure.evaluation_repository as module
        kept = repository.save(new_evaluation(2, plot_name="LoteA"))

        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(module.os, "replace", failing_replace)

        with pytest.raises(StorageError):
            repository.save(new_evaluation(2, plot_name="LoteB"))

        monkeypatch.undo()
        assert list(repository.path.parent.glob("*.tmp")) == []
        assert [e.id for e in repository.list()] == [kept.id]

    def test_singleton_pattern(self):
        """get_repository should return the same instance."""
        import app.infrastructure.evaluation_repository as module
        module._repository = None

        assert get_repository() is get_repository()
        module._repository = None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
