from __future__ import annotations

import pytest
from db.client import session_scope

from cashflow.categories import (
    DEFAULT_CATEGORIES,
    DEFAULT_COLOR,
    CategoryExistsError,
    create_category,
    list_categories,
    validate_category_name,
)


def test_defaults_listed_first(sqlite_url):
    with session_scope(database_url=sqlite_url) as s:
        cats = list_categories(s)
    assert tuple(c.name for c in cats) == DEFAULT_CATEGORIES
    assert all(c.is_default for c in cats)


def test_create_and_list_custom_sorted(sqlite_url):
    with session_scope(database_url=sqlite_url) as s:
        created = create_category(s, "  Pet   Care ", "#12ab34")
        create_category(s, "Gifts")
    assert created.name == "Pet Care"
    assert created.color == "#12ab34"

    with session_scope(database_url=sqlite_url) as s:
        cats = list_categories(s)
    custom = [c for c in cats if not c.is_default]
    assert [c.name for c in custom] == ["Gifts", "Pet Care"]
    assert custom[0].color == DEFAULT_COLOR


@pytest.mark.parametrize("name", ["food", "SALARY", "Other"])
def test_default_names_conflict_ignoring_case(sqlite_url, name):
    with session_scope(database_url=sqlite_url) as s, pytest.raises(CategoryExistsError):
        create_category(s, name)


def test_custom_names_conflict_ignoring_case(sqlite_url):
    with session_scope(database_url=sqlite_url) as s:
        create_category(s, "Gifts")
    with session_scope(database_url=sqlite_url) as s, pytest.raises(CategoryExistsError):
        create_category(s, "gIFTS")


def test_conflict_is_a_value_error():
    assert issubclass(CategoryExistsError, ValueError)


@pytest.mark.parametrize(("name", "color"), [("", None), ("   ", None), ("Ok", "red"), ("x" * 65, None)])
def test_invalid_input_rejected(sqlite_url, name, color):
    with session_scope(database_url=sqlite_url) as s, pytest.raises(ValueError):
        create_category(s, name, color)


def test_validate_category_name_normalizes_whitespace():
    assert validate_category_name("  Eating   Out ") == "Eating Out"
