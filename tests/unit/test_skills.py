"""Unit tests for skill normalisation, categories and autocomplete."""
import pytest

from quest.repo import skills


@pytest.mark.parametrize("raw,expected", [
    ("js", "JavaScript"),
    ("  ReactJS ", "React"),
    ("k8s", "Kubernetes"),
    ("golang", "Go"),
    ("postgres", "PostgreSQL"),
    ("event sourcing", "Event Sourcing"),
    ("", ""),
])
def test_normalize(raw, expected):
    assert skills.normalize(raw) == expected


def test_get_category_from_database():
    assert skills.get_category("py") == "Programming Languages"
    assert skills.get_category("docker") == "DevOps"


def test_get_category_falls_back_to_patterns():
    assert skills.get_category("Spanish") == "Languages"
    assert skills.get_category("UX research") == "Design"
    assert skills.get_category("Basket weaving") == "General"


def test_deduplicate_keeps_first_occurrence():
    result = skills.deduplicate(["js", "JavaScript", {"name": "typescript"}, "", "ts"])
    assert [s["name"] for s in result] == ["JavaScript", "TypeScript"]
    assert all(s["category"] == "Programming Languages" for s in result)


def test_autocomplete_prefix_then_alias():
    result = skills.autocomplete("py")
    assert result[:2] == ["Python", "PyTorch"]


def test_autocomplete_alias_match():
    assert "Kubernetes" in skills.autocomplete("k8")


def test_autocomplete_empty_prefix():
    assert skills.autocomplete("  ") == []


def test_autocomplete_respects_limit():
    assert len(skills.autocomplete("a", limit=2)) == 2


def test_is_known():
    assert skills.is_known("nodejs")
    assert not skills.is_known("cobol")


def test_skills_by_category_covers_database():
    grouped = skills.skills_by_category()
    assert sum(len(v) for v in grouped.values()) == len(skills.SKILL_DATABASE)
    assert "React" in grouped["Frontend"]


@pytest.mark.parametrize("name,bucket", [
    ("Python", "Technical"),
    ("Public Speaking", "Leadership"),
    ("copywriting", "Creative"),
    ("sales", "Business"),
    ("communications", "Leadership"),
    ("Quantum Basket Weaving", "Technical"),
])
def test_categorize_skill(name, bucket):
    assert skills.categorize_skill(name) == bucket
