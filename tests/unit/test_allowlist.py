"""
Unit tests -- allow-list loader.
"""
import dataclasses

import pytest

from askguard.governance.allowlist import JoinShape, load_allowlist, parse_allowlist


@pytest.fixture(scope="module")
def allowlist():
    return load_allowlist()


def test_loads_nine_tables(allowlist):
    assert allowlist.get_table_names() == sorted([
        "temperature", "core_temperature", "daily_core_temp", "daily_hot_hold",
        "hot_holding", "daily_check", "check", "template", "wm_check",
    ])


def test_tenant_column_and_limit(allowlist):
    assert allowlist.tenant_column == "restaurant_id"
    assert allowlist.max_limit == 1000


def test_every_table_has_tenant_column_except_template(allowlist):
    for name, cols in allowlist.tables.items():
        if name != "template":
            assert "restaurant_id" in cols, name


def test_columns_for_is_case_insensitive(allowlist):
    assert "temp_calc" in allowlist.columns_for("TEMPERATURE")
    assert allowlist.columns_for("users") == frozenset()


def test_join_lookup_either_order(allowlist):
    assert allowlist.find_join("daily_check", "qid", "template", "id") is not None
    assert allowlist.find_join("template", "id", "daily_check", "qid") is not None
    assert allowlist.find_join("daily_check", "id", "template", "id") is None


def test_forbidden_keywords_are_upper(allowlist):
    assert "DROP" in allowlist.forbidden_keywords
    assert "INTO" in allowlist.forbidden_keywords
    assert all(k == k.upper() for k in allowlist.forbidden_keywords)


def test_time_functions(allowlist):
    assert "FROM_UNIXTIME" in allowlist.time_functions


def test_allowlist_is_immutable(allowlist):
    with pytest.raises(dataclasses.FrozenInstanceError):
        allowlist.max_limit = 5000
    with pytest.raises(TypeError):
        allowlist.tables["users"] = frozenset({"id"})


def test_load_is_cached():
    assert load_allowlist() is load_allowlist()


def test_join_shape_str():
    assert str(JoinShape("a", "x", "b", "y")) == "a.x = b.y"


def test_parse_minimal():
    model = parse_allowlist(
        "tenant_column: Tenant_ID\n"
        "tables:\n  Orders: [ID, Tenant_ID]\n"
        "joins:\n  - {left: orders.id, right: orders.id}\n"
    )
    assert model.tenant_column == "tenant_id"
    assert model.tables["orders"] == frozenset({"id", "tenant_id"})
    assert model.max_limit == 1000
    assert model.forbidden_keywords == ()


@pytest.mark.parametrize("text, message", [
    ("tenant_column: x\n", "no tables"),
    ("tables:\n  t: [a]\n", "tenant_column"),
    ("tenant_column: x\ntables:\n  t: [a]\njoins:\n  - {left: t, right: t.a}\n", "table.column"),
])
def test_parse_errors(text, message):
    with pytest.raises(ValueError, match=message):
        parse_allowlist(text)
