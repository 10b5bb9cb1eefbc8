"""Tests for classify.py – period aggregation, rule chain, confidence, eligibility."""

import json
import math
import sys
from pathlib import Path

import pandas as pd
import pytest
from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from classify import (  # noqa: E402
    ELIGIBLE_CATEGORIES,
    Classification,
    ClassificationConfig,
    Confidence,
    aggregate_periods,
    classification_summary,
    classify,
    classify_all,
    explain_classification,
    filter_eligible,
    get_classification,
    is_eligible,
    load_overrides,
    normalize_name,
    verify_classification,
)
from conftest import make_national  # noqa: E402


def _row(classified: pd.DataFrame, name: str, sex: str) -> pd.Series:
    rows = classified[(classified["name"] == name) & (classified["sex"] == sex)]
    assert len(rows) == 1
    return rows.iloc[0]


# ---------------------------------------------------------------------------
# Period aggregation
# ---------------------------------------------------------------------------


class TestAggregatePeriods:
    def test_one_row_per_key_sorted(self, national_records):
        stats = aggregate_periods(national_records)
        assert not stats.duplicated(["name", "sex"]).any()
        assert list(stats["sex"]) == sorted(stats["sex"])
        assert list(stats[stats["sex"] == "F"]["name"]) == ["Hundred", "Khaleesi", "Nevaeh", "Rareone", "Zelda"]

    def test_years_outside_both_windows_dropped(self, national_records):
        stats = aggregate_periods(national_records)
        assert "Ancient" not in set(stats["name"])

    def test_baseline_window_stats(self, national_records):
        stats = aggregate_periods(national_records)
        aiden = _row(stats, "Aiden", "M")
        assert aiden["baseline_total_births"] == 76
        assert aiden["baseline_years_present"] == 2
        assert aiden["baseline_avg_annual"] == pytest.approx(38.0)
        assert aiden["baseline_first_year"] == 1985
        assert aiden["baseline_last_year"] == 1987
        assert aiden["baseline_peak_year"] == 1985

    def test_modern_only_key(self, national_records):
        stats = aggregate_periods(national_records)
        khaleesi = _row(stats, "Khaleesi", "F")
        assert not khaleesi["baseline_present"]
        assert khaleesi["modern_present"]
        assert khaleesi["baseline_total_births"] == 0
        assert khaleesi["baseline_years_present"] == 0
        assert pd.isna(khaleesi["baseline_first_year"])
        assert khaleesi["modern_total_births"] == 2500
        assert khaleesi["modern_peak_year"] == 2015
        assert khaleesi["modern_peak_births"] == 1200
        assert khaleesi["modern_first_year"] == 2011
        assert math.isinf(khaleesi["growth_ratio"])
        assert khaleesi["total_historical"] == 2500

    def test_baseline_only_key(self, national_records):
        stats = aggregate_periods(national_records)
        old = _row(stats, "Oldname", "M")
        assert old["baseline_present"]
        assert not old["modern_present"]
        assert old["modern_total_births"] == 0
        assert pd.isna(old["modern_peak_year"])
        assert old["growth_ratio"] == 0.0

    def test_growth_ratio(self, national_records):
        stats = aggregate_periods(national_records)
        assert _row(stats, "Zelda", "F")["growth_ratio"] == pytest.approx(2000 / 600)
        assert _row(stats, "Michael", "M")["growth_ratio"] == pytest.approx(0.8)

    def test_peak_year_tie_takes_earliest(self, national_records):
        stats = aggregate_periods(national_records)
        assert _row(stats, "Gary", "M")["baseline_peak_year"] == 1980

    def test_peak_year_tie_ignores_row_order(self):
        records = make_national({("Gary", "M"): {1989: 100, 1980: 100, 1985: 50, 1995: 7, 1991: 7}})
        gary = _row(aggregate_periods(records), "Gary", "M")
        assert gary["baseline_peak_year"] == 1980
        assert gary["modern_peak_year"] == 1991

    def test_duplicate_rows_keep_one_row_per_key(self, national_records):
        doubled = pd.concat([national_records, national_records], ignore_index=True)
        stats = aggregate_periods(doubled)
        assert not stats.duplicated(["name", "sex"]).any()
        assert len(stats) == len(aggregate_periods(national_records))
        assert _row(classify_all(doubled), "Khaleesi", "F")["classification"] == "TRULY_NEW"

    def test_custom_cutoff_and_window(self, national_records):
        stats = aggregate_periods(national_records, cutoff_year=2000, baseline_years=5)
        nevaeh = _row(stats, "Nevaeh", "F")
        assert nevaeh["modern_total_births"] == 5000
        zelda = _row(stats, "Zelda", "F")
        assert zelda["baseline_total_births"] == 5 * 2000
        assert zelda["modern_total_births"] == 0

    def test_non_positive_window_rejected(self, national_records):
        with pytest.raises(ValueError):
            aggregate_periods(national_records, baseline_years=0)

    def test_missing_columns_rejected(self, national_records):
        with pytest.raises(ValueError, match="births"):
            aggregate_periods(national_records.drop(columns=["births"]))

    def test_empty_input(self):
        stats = aggregate_periods(make_national({}))
        assert stats.empty

    def test_empty_input_through_classifier(self):
        classified = classify_all(make_national({}))
        assert classified.empty
        assert {"classification", "classification_confidence"} <= set(classified.columns)
        assert filter_eligible(classified).empty


# ---------------------------------------------------------------------------
# Rule chain
# ---------------------------------------------------------------------------


class TestClassify:
    def test_established_high_volume(self, national_records):
        gary = _row(classify_all(national_records), "Gary", "M")
        assert gary["classification"] == "ESTABLISHED"
        assert gary["classification_confidence"] == "HIGH"

    def test_established_low_volume(self, national_records):
        dwight = _row(classify_all(national_records), "Dwight", "M")
        assert dwight["classification"] == "ESTABLISHED"
        assert dwight["classification_confidence"] == "LOW"

    def test_truly_new_threshold_boundary(self, national_records):
        classified = classify_all(national_records)
        assert _row(classified, "Hundred", "F")["classification"] == "TRULY_NEW"
        assert _row(classified, "Hundred", "F")["classification_confidence"] == "HIGH"
        assert _row(classified, "Rareone", "F")["classification"] == "OTHER"
        assert _row(classified, "Rareone", "F")["classification_confidence"] == "LOW"

    def test_truly_new_without_override(self, national_records):
        khaleesi = _row(classify_all(national_records), "Khaleesi", "F")
        assert khaleesi["classification"] == "TRULY_NEW"
        assert khaleesi["classification_confidence"] == "HIGH"

    def test_emerging(self, national_records):
        aiden = _row(classify_all(national_records), "Aiden", "M")
        assert aiden["classification"] == "EMERGING"
        assert aiden["classification_confidence"] == "MEDIUM"

    def test_rising(self, national_records):
        zelda = _row(classify_all(national_records), "Zelda", "F")
        assert zelda["classification"] == "RISING"
        assert zelda["classification_confidence"] == "MEDIUM"

    def test_baseline_only_is_other(self, national_records):
        assert _row(classify_all(national_records), "Oldname", "M")["classification"] == "OTHER"

    def test_rising_factor_is_configurable(self, national_records):
        config = ClassificationConfig(thresholds={"rising_growth_factor": 4.0})
        zelda = _row(classify_all(national_records, config=config), "Zelda", "F")
        assert zelda["classification"] == "ESTABLISHED"

    def test_cutoff_argument_wins_over_config(self, national_records):
        config = ClassificationConfig(cutoff_year=1960)
        classified = classify_all(national_records, cutoff_year=1990, config=config)
        assert _row(classified, "Aiden", "M")["classification"] == "EMERGING"

    def test_input_not_mutated_and_repeatable(self, national_records):
        stats = aggregate_periods(national_records)
        before = stats.copy()
        first = classify(stats)
        second = classify(stats)
        pd.testing.assert_frame_equal(stats, before)
        pd.testing.assert_frame_equal(first, second)

    def test_every_row_has_label_and_confidence(self, national_records):
        classified = classify_all(national_records)
        assert set(classified["classification"]) <= {c.value for c in Classification}
        assert set(classified["classification_confidence"]) <= {c.value for c in Confidence}


# ---------------------------------------------------------------------------
# Static overrides
# ---------------------------------------------------------------------------


class TestOverrides:
    def test_default_override_sets_high_confidence(self, national_records):
        michael = _row(classify_all(national_records), "Michael", "M")
        assert michael["classification"] == "ESTABLISHED"
        assert michael["classification_confidence"] == "HIGH"

    def test_override_beats_rule_chain(self, national_records):
        config = ClassificationConfig(overrides={"Gary": Classification.EMERGING})
        gary = _row(classify_all(national_records, config=config), "Gary", "M")
        assert gary["classification"] == "EMERGING"
        assert gary["classification_confidence"] == "HIGH"

    def test_empty_override_table(self, national_records):
        config = ClassificationConfig(overrides={})
        nevaeh = _row(classify_all(national_records, config=config), "Nevaeh", "F")
        assert nevaeh["classification"] == "TRULY_NEW"

    def test_load_overrides_merges(self, tmp_path):
        path = tmp_path / "overrides.json"
        path.write_text(json.dumps({"gary": "EMERGING"}))
        merged = load_overrides(path)
        assert merged["Gary"] == Classification.EMERGING
        assert merged["Michael"] == Classification.ESTABLISHED

    def test_load_overrides_unknown_category(self, tmp_path):
        path = tmp_path / "overrides.json"
        path.write_text(json.dumps({"Gary": "POPULAR"}))
        with pytest.raises(ValueError, match="POPULAR"):
            load_overrides(path)


# ---------------------------------------------------------------------------
# Configuration validation
# ---------------------------------------------------------------------------


class TestConfig:
    def test_non_positive_baseline_years(self):
        with pytest.raises(ValidationError):
            ClassificationConfig(baseline_years=0)

    def test_non_positive_growth_factor(self):
        with pytest.raises(ValidationError):
            ClassificationConfig(thresholds={"rising_growth_factor": 0})

    def test_negative_threshold(self):
        with pytest.raises(ValidationError):
            ClassificationConfig(thresholds={"established_min_births": -1})


# ---------------------------------------------------------------------------
# Eligibility filter
# ---------------------------------------------------------------------------


class TestEligibility:
    def test_only_truly_new_and_emerging(self, national_records):
        eligible = filter_eligible(classify_all(national_records))
        assert set(eligible["classification"]) <= {c.value for c in ELIGIBLE_CATEGORIES}
        assert sorted(eligible["name"]) == ["Aiden", "Hundred", "Khaleesi", "Nevaeh"]

    def test_subset_of_input(self, national_records):
        classified = classify_all(national_records)
        eligible = filter_eligible(classified)
        merged = eligible.merge(classified, on=["name", "sex"], how="left", indicator=True)
        assert (merged["_merge"] == "both").all()

    def test_is_eligible(self):
        assert is_eligible(Classification.TRULY_NEW)
        assert is_eligible("EMERGING")
        assert not is_eligible(Classification.RISING)
        assert not is_eligible("ESTABLISHED")


# ---------------------------------------------------------------------------
# Lookup, summary, explanation
# ---------------------------------------------------------------------------


class TestLookupAndExplain:
    def test_normalize_name(self):
        assert normalize_name("  kHALEESI ") == "Khaleesi"

    def test_get_classification_normalizes(self, national_records):
        row = get_classification(classify_all(national_records), " khaleesi ", "f")
        assert row is not None
        assert row.classification == Classification.TRULY_NEW
        assert row.modern_total_births == 2500
        assert row.baseline_first_year is None

    def test_get_classification_missing(self, national_records):
        assert get_classification(classify_all(national_records), "Zzyzx", "F") is None

    def test_summary_shares(self, national_records):
        summary = classification_summary(classify_all(national_records))
        assert summary["n"].sum() == 10
        assert summary["share"].sum() == pytest.approx(1.0)

    def test_explanations_cover_every_category(self, national_records):
        classified = classify_all(national_records)
        khaleesi = get_classification(classified, "Khaleesi", "F")
        assert "2,500" in explain_classification(khaleesi)
        aiden = get_classification(classified, "Aiden", "M")
        assert "Low baseline (76)" in explain_classification(aiden)
        other = get_classification(classified, "Oldname", "M")
        assert explain_classification(other) == "Doesn't fit standard patterns"

    def test_verify_walks_the_chain(self, national_records):
        aiden = get_classification(classify_all(national_records), "Aiden", "M")
        checks = {c.rule: c.passed for c in verify_classification(aiden)}
        assert checks == {
            "ESTABLISHED": False,
            "TRULY_NEW": False,
            "EMERGING": True,
            "RISING": False,
            "OVERRIDE": False,
        }

    def test_verify_reports_override(self, national_records):
        michael = get_classification(classify_all(national_records), "Michael", "M")
        checks = verify_classification(michael)
        assert checks[-1].rule == "OVERRIDE"
        assert checks[-1].passed
