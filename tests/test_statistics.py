"""Tests for StatisticsService."""
import pytest

from notesmart.exceptions import ValidationError
from notesmart.models.schema import Note, Notebook
from notesmart.observability import metrics

U1 = "user-one"
U2 = "user-two"


class TestUserStatistics:
    """Tests for StatisticsService.get_user_statistics()."""

    def test_fresh_user_gets_zeros(self, statistics_service):
        stats = statistics_service.get_user_statistics(U1)

        assert stats.total_notes == 0
        assert stats.total_notebooks == 0
        assert stats.total_tags == 0
        assert stats.notes_per_notebook == {}
        assert stats.tag_usage_frequency == {}

    def test_unknown_user_gets_zeros(self, statistics_service):
        assert statistics_service.get_user_statistics("nobody").total_notes == 0

    def test_work_plan_urgent_scenario(self, statistics_service, notebook_repository,
                                       note_repository, tag_repository):
        work = notebook_repository.create(Notebook(title="Work"), U1)
        plan = note_repository.create(Note(title="Plan", notebook_id=work.id), U1)
        urgent = tag_repository.get_or_create("urgent", U1)
        tag_repository.associate(plan.id, urgent.id, U1)

        stats = statistics_service.get_user_statistics(U1)
        assert stats.total_notebooks == 1
        assert stats.total_notes == 1
        assert stats.total_tags == 1
        assert stats.notes_per_notebook == {"Work": 1}
        assert stats.tag_usage_frequency == {"urgent": 1}

        other = statistics_service.get_user_statistics(U2)
        assert other.total_notes == 0
        assert other.tag_usage_frequency == {}

    def test_empty_notebooks_are_listed(self, statistics_service, notebook_repository):
        notebook_repository.create(Notebook(title="Empty"), U1)

        stats = statistics_service.get_user_statistics(U1)
        assert stats.total_notebooks == 1
        assert stats.notes_per_notebook == {"Empty": 0}

    def test_duplicate_titles_are_summed(self, statistics_service, notebook_repository,
                                         note_repository):
        for _ in range(2):
            nb = notebook_repository.create(Notebook(title="Inbox"), U1)
            note_repository.create(Note(title="N", notebook_id=nb.id), U1)

        stats = statistics_service.get_user_statistics(U1)
        assert stats.total_notebooks == 2
        assert stats.notes_per_notebook == {"Inbox": 2}

    def test_totals_match_maps(self, statistics_service, notebook_repository,
                               note_repository, tag_repository):
        work = notebook_repository.create(Notebook(title="Work"), U1)
        home = notebook_repository.create(Notebook(title="Home"), U1)
        tags = [tag_repository.get_or_create(name, U1) for name in ("a", "b", "c")]
        tag_repository.get_or_create("unused", U1)
        for i in range(5):
            nb = work if i % 2 else home
            note = note_repository.create(Note(title=f"N{i}", notebook_id=nb.id), U1)
            for tag in tags[: i % 3 + 1]:
                tag_repository.associate(note.id, tag.id, U1)

        stats = statistics_service.get_user_statistics(U1)
        assert stats.total_notes == sum(stats.notes_per_notebook.values()) == 5
        assert stats.total_tags == len(stats.tag_usage_frequency) == 3
        assert stats.notes_per_notebook == {"Home": 3, "Work": 2}
        assert stats.tag_usage_frequency == {"a": 5, "b": 3, "c": 1}

    def test_records_metrics(self, statistics_service):
        statistics_service.get_user_statistics(U1)
        assert metrics.get_metrics()["get_user_statistics"]["success_count"] == 1

    def test_blank_user(self, statistics_service):
        with pytest.raises(ValidationError):
            statistics_service.get_user_statistics("  ")
