"""
Unit tests -- tenant resolution: question text, caller value, configured default.
"""
import logging

import pytest

from askguard.copilot.tenant import (
    TenantResolution,
    TenantResolutionError,
    detect_tenant_id,
    resolve_tenant_id,
)
from askguard.core.config import Settings


@pytest.fixture
def no_default():
    return Settings(default_tenant_id=None)


@pytest.mark.parametrize("question, expected", [
    ("opening checks for restaurant 74", 74),
    ("Restaurant 61 fridge temps", 61),
    ("restaurant id: 58 checks today", 58),
    ("restaurant_id=69 outstanding", 69),
    ("restaurant #62 closing checks", 62),
    ("for resturant 67, what's pending", 67),
    ("restuarant id 68", 68),
    ("opening checks", None),
    ("restaurants are busy", None),
    ("", None),
    (None, None),
])
def test_detect(question, expected):
    assert detect_tenant_id(question) == expected


def test_question_wins_over_caller(no_default):
    res = resolve_tenant_id("restaurant 74 checks", caller_tenant_id=61, settings=no_default)
    assert res == TenantResolution(74, "question")


@pytest.mark.parametrize("caller", [61, "61", " 61 "])
def test_caller_value_used(no_default, caller):
    res = resolve_tenant_id("opening checks", caller_tenant_id=caller, settings=no_default)
    assert res == TenantResolution(61, "caller")


@pytest.mark.parametrize("caller", [True, -3, "abc", 6.1])
def test_malformed_caller_value_ignored(no_default, caller):
    with pytest.raises(TenantResolutionError):
        resolve_tenant_id("opening checks", caller_tenant_id=caller, settings=no_default)


def test_no_source_raises(no_default):
    with pytest.raises(TenantResolutionError, match="restaurant"):
        resolve_tenant_id("opening checks", settings=no_default)


def test_resolution_error_is_value_error():
    assert issubclass(TenantResolutionError, ValueError)


def test_default_used_only_when_configured(caplog):
    settings = Settings(default_tenant_id=74)
    with caplog.at_level(logging.WARNING):
        res = resolve_tenant_id("opening checks", settings=settings)
    assert res == TenantResolution(74, "default")
    assert "DEFAULT_TENANT_ID=74" in caplog.text
    assert "default_tenant_used tenant_id=74" in caplog.text


@pytest.mark.parametrize("question", [
    "restaurant " + "9" * 5000,
    "restaurant id: " + "7" * 19,
    "restaurant ٧٤ opening checks",
])
def test_unusable_ids_in_question_are_ignored(question):
    assert detect_tenant_id(question) is None


@pytest.mark.parametrize("caller", ["²", "٧٤", "9" * 5000])
def test_non_ascii_or_huge_caller_value_ignored(no_default, caller):
    with pytest.raises(TenantResolutionError):
        resolve_tenant_id("opening checks", caller_tenant_id=caller, settings=no_default)
