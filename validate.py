"""Step 1 – Data-quality checks on the raw SSA tables, plus classification accuracy.

Standalone: python validate.py [--cache-dir data] [--national-only] [--run-id YYYYMMDD_HHMMSS]
Module:     from validate import run_validation, validate_records, validate_classification_accuracy
"""

from __future__ import annotations

import json
import logging
import sys
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Literal

import pandas as pd
from pydantic import BaseModel

import states as states_module
from classify import Classification, normalize_name

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants (adjust as needed)
# ---------------------------------------------------------------------------

REQUIRED_COLUMNS: dict[str, list[str]] = {
    "national": ["year", "sex", "name", "births"],
    "state": ["year", "sex", "state", "name", "births"],
}
VALID_SEX_CODES: frozenset[str] = frozenset({"M", "F"})
SMALL_STATE_QUANTILE: float = 0.10          # states below this share of totals are flagged

# Names whose category is well known; "unisex" entries are checked under both sexes.
VALIDATION_CASES: dict[Classification, dict[str, tuple[str, ...]]] = {
    Classification.ESTABLISHED: {
        "male": ("Michael", "Christopher", "Matthew", "Joshua", "David", "Daniel", "James", "John"),
        "female": ("Ashley", "Jessica", "Amanda", "Jennifer", "Sarah", "Melissa", "Amy", "Lisa"),
    },
    Classification.TRULY_NEW: {
        "unisex": ("Nevaeh",),
        "male": ("Jayceon", "Braxton", "Jaxon", "Kyler"),
        "female": ("Ximena", "Aaliyah", "Zoe"),
    },
    Classification.EMERGING: {
        "male": ("Aiden", "Jayden", "Austin", "Trevor"),
        "female": ("Brittany", "Kayla", "Kaitlyn", "Madison"),
    },
}

_SEX_GROUPS: dict[str, tuple[str, ...]] = {"male": ("M",), "female": ("F",), "unisex": ("M", "F")}

# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class DataQualityReport(BaseModel):
    """Anomalies found in one table.  Nothing is corrected, only reported."""
    kind: Literal["national", "state"]
    total_rows: int
    missing_columns: list[str]
    year_min: int | None = None
    year_max: int | None = None
    missing_years: list[int] = []
    unique_names: int = 0
    total_births: int = 0
    duplicate_keys: int = 0
    non_positive_births: int = 0
    invalid_sex_codes: list[str] = []
    missing_states: list[str] = []               # state table only
    unexpected_states: list[str] = []
    small_states: list[str] = []
    qa_flags: list[str]
    passes_gate: bool


class GroupAccuracy(BaseModel):
    expected: Classification
    sex: str
    results: dict[str, str]                      # name → CORRECT | NOT_FOUND | WRONG:<category>
    correct: int
    total: int
    accuracy: float


class AccuracyReport(BaseModel):
    groups: list[GroupAccuracy]
    total_correct: int
    total_tested: int
    overall_accuracy: float


# ---------------------------------------------------------------------------
# Data-quality checks
# ---------------------------------------------------------------------------


def find_year_gaps(years) -> list[int]:
    """Years missing from the contiguous span min..max of ``years``."""
    present = {int(y) for y in years}
    if not present:
        return []
    return [y for y in range(min(present), max(present) + 1) if y not in present]


def _state_coverage(frame: pd.DataFrame) -> tuple[list[str], list[str], list[str]]:
    present = set(frame["state"].astype(str).unique())
    missing = sorted(states_module.STATE_CODES - present)
    unexpected = sorted(present - states_module.STATE_CODES)

    totals = frame.groupby("state")["births"].sum()
    cutoff = totals.quantile(SMALL_STATE_QUANTILE)
    small = sorted(str(s) for s in totals[totals < cutoff].index)
    return missing, unexpected, small


def validate_records(frame: pd.DataFrame, kind: Literal["national", "state"] = "national") -> DataQualityReport:
    """Run every structural and content check against one table."""
    required = REQUIRED_COLUMNS[kind]
    missing_columns = [c for c in required if c not in frame.columns]
    if missing_columns:
        logger.error("validate: %s table missing columns %s", kind, missing_columns)
        return DataQualityReport(
            kind=kind, total_rows=len(frame), missing_columns=missing_columns,
            qa_flags=["missing_columns"], passes_gate=False,
        )
    if frame.empty:
        logger.error("validate: %s table is empty", kind)
        return DataQualityReport(
            kind=kind, total_rows=0, missing_columns=[],
            qa_flags=["empty_table"], passes_gate=False,
        )

    flags: list[str] = []

    missing_years = find_year_gaps(frame["year"].unique())
    if missing_years:
        flags.append("year_gaps")

    key = ["year", "sex", "state", "name"] if kind == "state" else ["year", "sex", "name"]
    duplicate_keys = int(frame.duplicated(subset=key).sum())
    if duplicate_keys:
        flags.append("duplicate_keys")

    non_positive = int((frame["births"] <= 0).sum())
    if non_positive:
        flags.append("non_positive_births")

    invalid_sex = sorted({str(s) for s in frame["sex"].unique()} - VALID_SEX_CODES)
    if invalid_sex:
        flags.append("invalid_sex_codes")

    missing_states: list[str] = []
    unexpected_states: list[str] = []
    small_states: list[str] = []
    if kind == "state":
        missing_states, unexpected_states, small_states = _state_coverage(frame)
        if missing_states:
            flags.append("missing_states")
        if unexpected_states:
            flags.append("unexpected_states")
        if small_states:
            flags.append("small_states")

    report = DataQualityReport(
        kind=kind,
        total_rows=len(frame),
        missing_columns=[],
        year_min=int(frame["year"].min()),
        year_max=int(frame["year"].max()),
        missing_years=missing_years,
        unique_names=int(frame["name"].nunique()),
        total_births=int(frame["births"].sum()),
        duplicate_keys=duplicate_keys,
        non_positive_births=non_positive,
        invalid_sex_codes=invalid_sex,
        missing_states=missing_states,
        unexpected_states=unexpected_states,
        small_states=small_states,
        qa_flags=flags,
        passes_gate=True,
    )
    logger.info(
        "validate: %s table %d rows, years %d-%d, %d unique names, %s births",
        kind, report.total_rows, report.year_min, report.year_max,
        report.unique_names, f"{report.total_births:,}",
    )
    for flag in flags:
        logger.warning("validate: %s table flagged %s", kind, flag)
    return report


# ---------------------------------------------------------------------------
# Classification accuracy
# ---------------------------------------------------------------------------


def _check_group(
    classified: pd.DataFrame, names: tuple[str, ...], sex: str, expected: Classification,
) -> GroupAccuracy:
    lookup = classified[classified["sex"] == sex].set_index("name")["classification"]
    results: dict[str, str] = {}
    for raw_name in names:
        name = normalize_name(raw_name)
        if name not in lookup.index:
            results[name] = "NOT_FOUND"
            continue
        actual = Classification(lookup.loc[[name]].iloc[0])
        results[name] = "CORRECT" if actual == expected else f"WRONG:{actual.value}"

    correct = sum(1 for r in results.values() if r == "CORRECT")
    total = len(results)
    return GroupAccuracy(
        expected=expected, sex=sex, results=results,
        correct=correct, total=total, accuracy=correct / total if total else 0.0,
    )


def validate_classification_accuracy(
    classified: pd.DataFrame,
    cases: dict[Classification, dict[str, tuple[str, ...]]] | None = None,
) -> AccuracyReport:
    """Compare the classification of well-known names against their expected category."""
    cases = cases or VALIDATION_CASES
    groups: list[GroupAccuracy] = []
    for expected, by_sex in cases.items():
        for sex_group, names in by_sex.items():
            for sex in _SEX_GROUPS[sex_group]:
                groups.append(_check_group(classified, names, sex, expected))

    total_correct = sum(g.correct for g in groups)
    total_tested = sum(g.total for g in groups)
    report = AccuracyReport(
        groups=groups,
        total_correct=total_correct,
        total_tested=total_tested,
        overall_accuracy=total_correct / total_tested if total_tested else 0.0,
    )
    logger.info(
        "validate: classification accuracy %d/%d (%.1f%%)",
        total_correct, total_tested, report.overall_accuracy * 100,
    )
    for g in groups:
        wrong = {n: r for n, r in g.results.items() if r != "CORRECT"}
        if wrong:
            logger.warning("validate: %s/%s mismatches %s", g.expected.value, g.sex, wrong)
    return report


def _qa_summary(reports: list[DataQualityReport]) -> dict[str, int]:
    """Tally qa_flags across reports."""
    counts: Counter[str] = Counter()
    for report in reports:
        counts.update(report.qa_flags)
    return dict(counts)


# ---------------------------------------------------------------------------
# Public entry-point
# ---------------------------------------------------------------------------


def run_validation(
    national: pd.DataFrame,
    state: pd.DataFrame | None = None,
    run_id: str | None = None,
    pipeline_state_dir: str = ".pipeline_state",
) -> tuple[DataQualityReport, DataQualityReport | None, bool]:
    """Validate the national (and optionally state) table.

    Returns:
        (national_report, state_report, gate_passed)

    Writes validate_output.json to pipeline_state_dir.
    """
    if run_id is None:
        run_id = datetime.now().strftime("%Y%m%d_%H%M%S")

    national_report = validate_records(national, "national")
    state_report = validate_records(state, "state") if state is not None else None
    reports = [r for r in (national_report, state_report) if r is not None]

    gate_passed = all(r.passes_gate for r in reports)
    if gate_passed:
        logger.info("validate: gate passed")
    else:
        logger.error("VALIDATION GATE TRIPPED: %s", [r.kind for r in reports if not r.passes_gate])

    Path(pipeline_state_dir).mkdir(parents=True, exist_ok=True)
    manifest_payload = {
        "run_id": run_id,
        "produced_at": datetime.now().isoformat(),
        "gate_passed": gate_passed,
        "reports": {r.kind: r.model_dump() for r in reports},
        "qa_summary": _qa_summary(reports),
    }
    output_path = Path(pipeline_state_dir) / "validate_output.json"
    output_path.write_text(json.dumps(manifest_payload, indent=2))
    logger.info("validate: wrote %s", output_path)

    return national_report, state_report, gate_passed


# ---------------------------------------------------------------------------
# Standalone entry-point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    import acquire

    cache_dir = acquire.DEFAULT_CACHE_DIR
    run_id = None
    if "--cache-dir" in sys.argv:
        idx = sys.argv.index("--cache-dir")
        if idx + 1 < len(sys.argv):
            cache_dir = sys.argv[idx + 1]
    if "--run-id" in sys.argv:
        idx = sys.argv.index("--run-id")
        if idx + 1 < len(sys.argv):
            run_id = sys.argv[idx + 1]

    names = acquire.load_records(cache_dir=cache_dir, include_state="--national-only" not in sys.argv)
    _, _, gate_passed = run_validation(names.national, names.state, run_id=run_id)

    if not gate_passed:
        logger.error("validate: gate failed, exiting with status 1")
        sys.exit(1)
    logger.info("validate: done.")
