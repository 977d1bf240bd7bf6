import pytest

from src.core.allocation.diff import (
    current_weights,
    diff,
    diff_against_prior,
    extract_prior_weights,
    extract_target_weights,
    weight_delta_l1,
)
from tests.factories import portfolio


def test_diff_rows_are_sorted_union_with_one_way_turnover():
    result = diff({"ETH": 0.4, "BTC": 0.6}, {"BTC": 0.5, "SOL": 0.1, "ETH": 0.4})

    assert [row.id for row in result.rows] == ["BTC", "ETH", "SOL"]
    by_id = {row.id: row for row in result.rows}
    assert by_id["BTC"].delta == pytest.approx(-0.1)
    assert by_id["SOL"].cur == 0.0
    assert by_id["SOL"].tgt == 0.1
    assert result.turnover == pytest.approx(0.1)


def test_diff_without_target_equals_diff_with_empty_target():
    current = {"BTC": 0.6, "ETH": 0.4}

    assert diff(current, None) == diff(current, {})
    assert diff(current, None).turnover == pytest.approx(0.5)


def test_diff_of_empty_inputs_has_no_rows():
    result = diff({}, None)

    assert result.rows == []
    assert result.turnover == 0.0


def test_target_extraction_prefers_top_level_then_plan_paths():
    assert extract_target_weights({"target_weights": {"BTC": 1}}) == {"BTC": 1.0}
    assert extract_target_weights(
        {"target_weights": ["not", "a", "mapping"], "next_allocation_weights": {"ETH": 0.3}}
    ) == {"ETH": 0.3}
    assert extract_target_weights(
        {"next_allocation_plan": {"next_allocation_weights": {"SOL": 0.2}}}
    ) == {"SOL": 0.2}
    assert extract_target_weights({"next_allocation_plan": {"target_weights": {"ADA": 0.1}}}) == {
        "ADA": 0.1
    }


def test_plan_next_allocation_weights_win_over_plan_target_weights():
    tick = {
        "next_allocation_plan": {
            "target_weights": {"ADA": 0.1},
            "next_allocation_weights": {"SOL": 0.2},
        }
    }

    assert extract_target_weights(tick) == {"SOL": 0.2}


def test_target_extraction_coerces_numeric_strings_and_drops_junk():
    tick = {"target_weights": {"BTC": "0.25", "ETH": "abc", "SOL": None, "ADA": True, "DOT": 0.75}}

    assert extract_target_weights(tick) == {"BTC": 0.25, "DOT": 0.75}


def test_target_extraction_is_none_when_nothing_usable():
    assert extract_target_weights(None) is None
    assert extract_target_weights({}) is None
    assert extract_target_weights({"target_weights": {"BTC": "n/a"}}) is None


def test_prior_extraction_paths():
    assert extract_prior_weights({"prior_portfolio_weights": {"BTC": 0.5}}) == {"BTC": 0.5}
    assert extract_prior_weights({"prior_target_weights": {"ETH": 0.5}}) == {"ETH": 0.5}
    assert extract_prior_weights({"target_weights": {"ETH": 0.5}}) is None


def test_current_weights_skips_blank_ids():
    value = portfolio(("BTC", 0.6), ("ETH", 0.4))
    value.assets[1].id = "  "

    assert current_weights(value) == {"BTC": 0.6}
    assert current_weights(None) == {}


def test_diff_against_prior_without_baseline_has_null_columns():
    result = diff_against_prior(None, {"ETH": 0.3, "BTC": 0.7})

    assert [row.id for row in result.rows] == ["BTC", "ETH"]
    assert all(row.cur is None and row.delta is None for row in result.rows)
    assert result.turnover == 0.0


def test_diff_against_prior_with_baseline_matches_diff():
    prior = {"BTC": 0.5, "ETH": 0.5}
    target = {"BTC": 0.7, "ETH": 0.3}

    assert diff_against_prior(prior, target) == diff(prior, target)


def test_weight_delta_l1_snaps_tiny_values_to_zero():
    assert weight_delta_l1({"BTC": 0.5}, {"BTC": 0.5000001}) == 0.0
    assert weight_delta_l1({"BTC": 1.0}, {"ETH": 1.0}) == pytest.approx(1.0)
    assert weight_delta_l1(None, {"BTC": 1.0}) is None
