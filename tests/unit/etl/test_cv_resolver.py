import pytest

from database.uow import extraction_uow
from etl.cv.resolver import (
    ReferenceResolver,
    KIND_SKILL,
    KIND_LANGUAGE,
    KIND_ROLE,
    KIND_CERTIFICATION,
)
from tests.unit.db_helpers import seed_all


@pytest.fixture
def seeded(session_factory):
    seed_all(session_factory)
    return session_factory


@pytest.fixture
def resolver(seeded):
    with extraction_uow(seeded) as repo:
        yield ReferenceResolver(repo.reference)


class TestReferenceResolver:

    def test_skill_by_id_and_by_name(self, resolver):
        assert resolver.resolve_skill(276) == 276
        assert resolver.resolve_skill(None, "postgresql") == 821
        assert resolver.unresolved_counts() == {}

    def test_unknown_skill_id_falls_back_to_name(self, resolver):
        assert resolver.resolve_skill(99999, "Docker") == 284

    def test_skill_miss_is_counted(self, resolver):
        assert resolver.resolve_skill(99999, "Cobol") is None
        assert resolver.unresolved_counts() == {KIND_SKILL: 1}

    def test_nothing_to_resolve_is_not_a_miss(self, resolver):
        assert resolver.resolve_skill(None, None) is None
        assert resolver.unresolved_counts() == {}

    def test_existing_skill_ids(self, resolver):
        assert resolver.existing_skill_ids([276, 821, 5]) == {276, 821}

    @pytest.mark.parametrize("name,expected", [
        ("Italian", 1), ("italiano", 1), ("EN", 2), ("Klingon", None),
    ])
    def test_language_by_name_native_name_or_iso(self, resolver, name, expected):
        assert resolver.resolve_language(name) == expected

    def test_language_miss_is_counted_each_time(self, resolver):
        resolver.resolve_language("Klingon")
        resolver.resolve_language("klingon")
        assert resolver.unresolved_counts() == {KIND_LANGUAGE: 2}

    def test_soft_skill_and_certification(self, resolver):
        assert resolver.resolve_soft_skill(None, "leadership") == 1
        assert resolver.resolve_certification(None, "AWS Certified Developer") == 1
        assert resolver.resolve_certification(None, "Scrum Master") is None
        assert resolver.unresolved_counts() == {KIND_CERTIFICATION: 1}

    def test_degree_by_name(self, resolver):
        assert resolver.resolve_degree(None, "Master of Science") == 1

    def test_sub_role_decides_role(self, resolver):
        assert resolver.resolve_role(role_id=None, sub_role_id=31) == (3, 31)

    def test_role_id_alone(self, resolver):
        assert resolver.resolve_role(role_id=4) == (4, None)

    def test_conflicting_sub_role_is_dropped(self, resolver):
        assert resolver.resolve_role(role_id=4, sub_role_id=31) == (4, None)

    def test_role_by_names(self, resolver):
        assert resolver.resolve_role(sub_role_name="Backend Developer") == (3, 31)
        assert resolver.resolve_role(role_name="data engineer") == (4, None)

    def test_role_miss_is_counted(self, resolver):
        assert resolver.resolve_role(role_id=999, role_name="Astronaut") is None
        assert resolver.unresolved_counts() == {KIND_ROLE: 1}
