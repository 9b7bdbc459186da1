"""Tests for InMemoryTemplateRepository."""

import pytest

from mvpflow.domain.templates import (
    RegisteredTemplate,
    StepTemplate,
    TemplateMetadata,
    TemplateStatistics,
    WorkflowTemplate,
)
from mvpflow.infrastructure.persistence import InMemoryTemplateRepository


def make_registered(name: str = "hotfix") -> RegisteredTemplate:
    return RegisteredTemplate(
        template=WorkflowTemplate(
            name=name,
            type="bug_fix",
            description="Ship a fix fast",
            steps=(StepTemplate("patch", "Patch"),),
        ),
        metadata=TemplateMetadata(category="custom"),
    )


class TestInMemoryTemplateRepository:
    """Tests for template storage and statistics snapshots."""

    def test_save_and_get(self) -> None:
        repo = InMemoryTemplateRepository()
        registered = make_registered()

        repo.save(registered)

        assert repo.exists("hotfix")
        assert repo.get("hotfix") is registered
        assert repo.list_all() == [registered]

    def test_get_unknown_raises_keyerror(self) -> None:
        repo = InMemoryTemplateRepository()

        with pytest.raises(KeyError):
            repo.get("ghost")
        with pytest.raises(KeyError):
            repo.get_statistics("ghost")

    def test_statistics_are_snapshots(self) -> None:
        """Mutating a returned snapshot does not change stored statistics."""
        repo = InMemoryTemplateRepository()
        repo.save(make_registered())

        snapshot = repo.get_statistics("hotfix")
        snapshot.instantiations = 99

        assert repo.get_statistics("hotfix").instantiations == 0

    def test_update_statistics(self) -> None:
        repo = InMemoryTemplateRepository()
        repo.save(make_registered())

        def bump(stats: TemplateStatistics) -> None:
            stats.instantiations += 1

        updated = repo.update_statistics("hotfix", bump)

        assert updated.instantiations == 1
        assert repo.get_statistics("hotfix").instantiations == 1

    def test_resave_keeps_usage(self) -> None:
        repo = InMemoryTemplateRepository()
        repo.save(make_registered())
        repo.update_statistics("hotfix", lambda s: setattr(s, "failures", 2))

        repo.save(make_registered())

        assert repo.get_statistics("hotfix").failures == 2
