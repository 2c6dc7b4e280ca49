"""
Unit tests -- answer summarizer (mock mode and LLM fallback).
"""
from datetime import date

from askguard.copilot import llm_client
from askguard.copilot.models import DateRange
from askguard.copilot.summarizer import NO_DATA, summarize, summarize_mock

DAY = DateRange(start=date(2025, 9, 10), end=date(2025, 9, 11))
WEEK = DateRange(start=date(2025, 9, 1), end=date(2025, 9, 8))


def test_no_rows():
    assert summarize("q", "SELECT 1", [], 74) == NO_DATA
    assert NO_DATA == "No data found."


def test_no_rows_llm_mode_skips_call(monkeypatch):
    def boom(*a, **kw):
        raise AssertionError("LLM should not be called")

    monkeypatch.setattr(llm_client, "call_llm", boom)
    assert summarize("q", "SELECT 1", [], 74, mode="openai") == NO_DATA


def test_count_answer_restates_period():
    answer = summarize_mock(
        "Have the opening checks been completed?",
        "SELECT COUNT(*) AS completed_opening_checks FROM daily_check",
        [{"completed_opening_checks": 3}],
        74,
        DAY,
    )
    assert answer == "Yes, 3 completed opening checks for restaurant 74 on 2025-09-10."


def test_zero_count():
    answer = summarize_mock(
        "q", "SELECT COUNT(*) AS outstanding_checks FROM daily_check",
        [{"outstanding_checks": 0}], 74, WEEK,
    )
    assert answer == "No outstanding checks for restaurant 74 for 2025-09-01 to 2025-09-07."


def test_decimal_string_count():
    answer = summarize_mock("q", "SELECT 1", [{"n": "12"}], 61)
    assert answer == "Yes, 12 n for restaurant 61."


def test_rows_tallied_by_completion_policy():
    rows = [
        {"id": 1, "status": 1, "recorded_at": "2025-09-02 08:00:00"},
        {"id": 2, "status": 0, "recorded_at": "2025-09-03 09:30:00"},
        {"id": 3, "status": None, "recorded_at": "2025-09-01 07:00:00"},
    ]
    answer = summarize_mock(
        "failed hot holding", "SELECT id, status FROM hot_holding h WHERE h.restaurant_id = 74",
        rows, 74, WEEK,
    )
    assert answer.startswith("Found 3 rows from hot_holding for restaurant 74 "
                             "for 2025-09-01 to 2025-09-07.")
    assert "1 completed, 1 failed, 1 with unknown status." in answer
    assert answer.endswith("Most recent: 2025-09-03 09:30:00.")


def test_daily_check_either_column_completes():
    rows = [
        {"id": 1, "is_completed": 1, "status": 0},
        {"id": 2, "is_completed": 0, "status": 1},
        {"id": 3, "is_completed": 0, "status": 0},
    ]
    answer = summarize_mock("q", "SELECT id FROM daily_check", rows, 74)
    assert "2 completed, 1 not completed." in answer


def test_missing_status_is_never_a_failure():
    rows = [{"id": 1}, {"id": 2}]
    answer = summarize_mock("q", "SELECT id FROM hot_holding", rows, 74)
    assert "failed" not in answer
    assert answer == "Found 2 rows from hot_holding for restaurant 74."


def test_llm_mode_uses_provider(monkeypatch):
    seen = {}

    def fake_call_llm(prompt, system=None, provider=None):
        seen["prompt"] = prompt
        seen["provider"] = provider
        return "All good."

    monkeypatch.setattr(llm_client, "call_llm", fake_call_llm)
    answer = summarize("q", "SELECT id FROM daily_check", [{"id": 1}], 74, WEEK, mode="openai")
    assert answer == "All good."
    assert seen["provider"] == "openai"
    assert "Restaurant: 74" in seen["prompt"]
    assert "2025-09-01 to 2025-09-07" in seen["prompt"]
    assert "completed when" in seen["prompt"]


def test_llm_failure_falls_back_to_mock(monkeypatch):
    def failing(*a, **kw):
        raise RuntimeError("openai_api_key is not set")

    monkeypatch.setattr(llm_client, "call_llm", failing)
    answer = summarize("q", "SELECT 1", [{"total": 5}], 74, mode="openai")
    assert answer == "Yes, 5 total for restaurant 74."


def test_fridge_sensor_rows_use_temperature_rule():
    rows = [
        {"id": 1, "temp_calc": 3.5, "status": 1},
        {"id": 2, "temp_calc": 9.1, "status": 0},
    ]
    answer = summarize_mock(
        "fridge temperatures",
        "SELECT t.id, t.temp_calc, t.status FROM temperature t WHERE t.restaurant_id = 74 LIMIT 1000",
        rows, 74,
    )
    assert "1 completed, 1 failed." in answer
    assert "unknown" not in answer
