import pytest

from src.core.allocation.regime import (
    apply_defaults_preserve_existing,
    outgoing_regime_keys,
    parse_regime_input,
    pick_outgoing_regime,
    regime_defaults,
    regime_fields,
    schema_version,
)
from src.core.common.errors import DraftValidationError


def test_default_version_uses_v1_schema():
    assert schema_version(None) == "v1"
    assert schema_version("default") == "v1"
    assert [field.key for field in regime_fields("default")] == [
        "mission",
        "risk_posture",
        "confidence_level",
        "correlation_state",
        "liquidity_state",
    ]


def test_unknown_version_is_rejected():
    with pytest.raises(ValueError):
        schema_version("v9")


def test_v2_declares_local_only_candidates():
    fields = {field.key: field for field in regime_fields("v2")}

    assert fields["max_risk_scale"].local_only is True
    assert regime_defaults("v2")["corr_tighten"] == 0.85
    assert "max_risk_scale" not in outgoing_regime_keys("v2")


def test_versions_without_fields_send_nothing():
    assert regime_defaults("v4") == {}
    assert pick_outgoing_regime("v5", {"mission": "capital_preservation"}) == {}


def test_apply_defaults_keeps_existing_values():
    regime = apply_defaults_preserve_existing("v1", {"mission": "capital_preservation", "extra": 1})

    assert regime["mission"] == "capital_preservation"
    assert regime["liquidity_state"] == "normal"
    assert regime["extra"] == 1


def test_outgoing_regime_drops_local_and_unknown_keys():
    draft = {
        **regime_defaults("v2"),
        "mission": "capital_preservation",
        "free_form": "x",
    }

    outgoing = pick_outgoing_regime("v2", draft)

    assert set(outgoing) == {
        "mission",
        "risk_posture",
        "confidence_level",
        "correlation_state",
        "liquidity_state",
    }
    assert outgoing["mission"] == "capital_preservation"


def test_outgoing_regime_maps_legacy_elevated_correlation():
    assert pick_outgoing_regime("v1", {"correlation_state": "Elevated"}) == {
        "correlation_state": "high"
    }


def test_outgoing_regime_of_missing_draft_is_empty():
    assert pick_outgoing_regime("v1", None) == {}


def test_parse_select_accepts_only_listed_options():
    assert parse_regime_input("v1", "liquidity_state", "tight") == "tight"
    with pytest.raises(DraftValidationError) as exc:
        parse_regime_input("v1", "liquidity_state", "frozen")
    assert exc.value.field == "liquidity_state"


def test_parse_number_clamps_to_declared_range():
    assert parse_regime_input("v2", "max_risk_scale", "3") == 1.5
    assert parse_regime_input("v2", "corr_tighten", 0.1) == 0.5
    with pytest.raises(DraftValidationError):
        parse_regime_input("v2", "corr_tighten", "not-a-number")


def test_parse_rejects_field_not_declared_for_version():
    with pytest.raises(DraftValidationError, match="not defined for allocator version v1"):
        parse_regime_input("v1", "max_risk_scale", 1.0)
