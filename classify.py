"""Period aggregation, name classification, and origin-eligibility filtering.

Standalone: python classify.py [--cutoff-year 1990] [--cache-dir data] [--run-id ID]
Module:     from classify import classify_all, filter_eligible
"""

from __future__ import annotations

import json
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import assert_never

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants (adjust as needed)
# ---------------------------------------------------------------------------

DEFAULT_CUTOFF_YEAR: int = 1990
DEFAULT_BASELINE_YEARS: int = 10            # 1980-1989 for a 1990 cutoff

KEY: list[str] = ["name", "sex"]
NATIONAL_COLUMNS: list[str] = ["year", "sex", "name", "births"]

KNOWN_MODERN_NAMES: tuple[str, ...] = (
    "Nevaeh", "Neveah", "Nevaya",
    "Jayceon", "Jaxon", "Braxton",
    "Maddox", "Zayden", "Kyler",
)

KNOWN_ESTABLISHED_NAMES: tuple[str, ...] = (
    # male
    "Michael", "Christopher", "Matthew", "Joshua", "David", "Daniel", "James",
    "Robert", "John", "William", "Richard", "Thomas", "Charles", "Mark",
    "Steven", "Paul", "Andrew", "Kenneth", "Brian", "Kevin", "Edward",
    "Oliver", "Henry", "Alexander", "Benjamin", "Samuel", "Nicholas",
    # female
    "Ashley", "Jessica", "Amanda", "Jennifer", "Sarah", "Melissa", "Amy",
    "Lisa", "Michelle", "Kimberly", "Angela", "Tiffany", "Crystal",
    "Stephanie", "Nicole", "Heather", "Elizabeth", "Emily", "Rebecca",
    "Rachel", "Catherine", "Katherine", "Laura", "Susan", "Linda",
)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class Classification(str, Enum):
    ESTABLISHED = "ESTABLISHED"
    TRULY_NEW = "TRULY_NEW"
    EMERGING = "EMERGING"
    RISING = "RISING"
    OTHER = "OTHER"


class Confidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# Names without a reliable historical footprint; only these get origin analysis.
ELIGIBLE_CATEGORIES: frozenset[Classification] = frozenset(
    {Classification.TRULY_NEW, Classification.EMERGING}
)


def _default_overrides() -> dict[str, Classification]:
    overrides = {name: Classification.ESTABLISHED for name in KNOWN_ESTABLISHED_NAMES}
    overrides.update({name: Classification.TRULY_NEW for name in KNOWN_MODERN_NAMES})
    return overrides


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class Thresholds(BaseModel):
    """Decision thresholds for the rule chain."""
    model_config = ConfigDict(frozen=True)

    established_min_births: int = Field(default=5000, ge=0)
    established_min_years: int = Field(default=5, ge=0)
    emerging_min_births: int = Field(default=50, ge=0)
    truly_new_min_births: int = Field(default=100, ge=0)
    rising_growth_factor: float = Field(default=3.0, gt=0)
    high_confidence_births: int = Field(default=10000, ge=0)   # ESTABLISHED → HIGH


class ClassificationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    cutoff_year: int = DEFAULT_CUTOFF_YEAR
    baseline_years: int = Field(default=DEFAULT_BASELINE_YEARS, gt=0)
    thresholds: Thresholds = Field(default_factory=Thresholds)
    overrides: dict[str, Classification] = Field(default_factory=_default_overrides)


class ClassifiedName(BaseModel):
    """One row of the classification table."""
    name: str
    sex: str
    baseline_present: bool
    baseline_total_births: int
    baseline_years_present: int
    baseline_avg_annual: float
    baseline_peak_year: int | None
    baseline_peak_births: int
    baseline_first_year: int | None
    baseline_last_year: int | None
    modern_present: bool
    modern_total_births: int
    modern_years_present: int
    modern_avg_annual: float
    modern_peak_year: int | None
    modern_peak_births: int
    modern_first_year: int | None
    growth_ratio: float
    total_historical: int
    classification: Classification
    classification_confidence: Confidence


class RuleCheck(BaseModel):
    rule: str
    detail: str
    passed: bool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_name(name: str) -> str:
    """'  kHALEESI ' → 'Khaleesi' (the casing used throughout SSA files)."""
    return name.strip().capitalize()


def load_overrides(path: str | Path, base: dict[str, Classification] | None = None) -> dict[str, Classification]:
    """Merge a JSON {name: category} file over the default override table."""
    raw = json.loads(Path(path).read_text())
    merged = dict(_default_overrides() if base is None else base)
    for name, category in raw.items():
        try:
            merged[normalize_name(name)] = Classification(category)
        except ValueError:
            raise ValueError(f"Unknown classification {category!r} for override {name!r}") from None
    logger.info("classify: loaded %d overrides from %s", len(raw), path)
    return merged


def _require_columns(frame: pd.DataFrame, columns: list[str]) -> None:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise ValueError(f"Input is missing required columns: {missing}")


def to_python(value):
    """numpy scalar / pandas NA → plain Python value for pydantic."""
    if value is None or value is pd.NA:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


def _period_stats(frame: pd.DataFrame, prefix: str, with_last_year: bool) -> pd.DataFrame:
    """Per-(name, sex) totals, year counts, averages and peaks for one window."""
    columns = ["total_births", "years_present", "avg_annual", "peak_year", "peak_births", "first_year"]
    if with_last_year:
        columns.append("last_year")
    if frame.empty:
        empty = pd.DataFrame(columns=KEY + [f"{prefix}_{c}" for c in columns])
        return empty.set_index(KEY)

    frame = frame.sort_values(KEY + ["year"], kind="mergesort").reset_index(drop=True)
    grouped = frame.groupby(KEY, sort=True)
    stats = grouped.agg(
        total_births=("births", "sum"),
        years_present=("year", "nunique"),
        avg_annual=("births", "mean"),
        peak_births=("births", "max"),
        first_year=("year", "min"),
        last_year=("year", "max"),
    )
    # Rows are year-ordered within each key, so idxmax resolves ties to the earliest year
    peak_rows = grouped["births"].idxmax()
    stats["peak_year"] = frame.loc[peak_rows.to_numpy(), "year"].to_numpy()
    return stats[columns].add_prefix(f"{prefix}_")


# ---------------------------------------------------------------------------
# Period Aggregator
# ---------------------------------------------------------------------------


def aggregate_periods(
    records: pd.DataFrame,
    cutoff_year: int = DEFAULT_CUTOFF_YEAR,
    baseline_years: int = DEFAULT_BASELINE_YEARS,
) -> pd.DataFrame:
    """Collapse per-year national records into baseline and modern statistics.

    The baseline window is the ``baseline_years`` years ending just before
    ``cutoff_year``; the modern window is every year from ``cutoff_year`` on.
    Keys seen in only one window get zero counts for the other, with
    ``*_present`` recording which windows actually had rows.

    Returns one row per (name, sex), sorted by sex then name.
    """
    if baseline_years <= 0:
        raise ValueError(f"baseline_years must be positive, got {baseline_years}")
    _require_columns(records, NATIONAL_COLUMNS)

    baseline_start = cutoff_year - baseline_years
    logger.info(
        "classify: baseline period %d-%d, modern period %d+",
        baseline_start, cutoff_year - 1, cutoff_year,
    )

    baseline_rows = records[(records["year"] >= baseline_start) & (records["year"] < cutoff_year)]
    modern_rows = records[records["year"] >= cutoff_year]

    baseline = _period_stats(baseline_rows, "baseline", with_last_year=True)
    modern = _period_stats(modern_rows, "modern", with_last_year=False)

    stats = baseline.join(modern, how="outer")
    stats["baseline_present"] = stats["baseline_years_present"].notna()
    stats["modern_present"] = stats["modern_years_present"].notna()
    stats = stats.reset_index()

    for prefix in ("baseline", "modern"):
        for col in ("total_births", "years_present", "peak_births"):
            stats[f"{prefix}_{col}"] = stats[f"{prefix}_{col}"].fillna(0).astype("int64")
        stats[f"{prefix}_avg_annual"] = stats[f"{prefix}_avg_annual"].fillna(0.0).astype("float64")
    year_cols = ["baseline_peak_year", "baseline_first_year", "baseline_last_year", "modern_peak_year", "modern_first_year"]
    for col in year_cols:
        stats[col] = stats[col].astype("Int64")

    baseline_avg = stats["baseline_avg_annual"].to_numpy()
    modern_avg = stats["modern_avg_annual"].to_numpy()
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(baseline_avg > 0, modern_avg / np.where(baseline_avg > 0, baseline_avg, 1.0), np.inf)
    # Zero in both windows is no growth, not infinite growth
    ratio = np.where((baseline_avg == 0) & (modern_avg == 0), 0.0, ratio)
    stats["growth_ratio"] = ratio
    stats["total_historical"] = stats["baseline_total_births"] + stats["modern_total_births"]

    ordered = [
        "name", "sex",
        "baseline_present", "baseline_total_births", "baseline_years_present", "baseline_avg_annual",
        "baseline_peak_year", "baseline_peak_births", "baseline_first_year", "baseline_last_year",
        "modern_present", "modern_total_births", "modern_years_present", "modern_avg_annual",
        "modern_peak_year", "modern_peak_births", "modern_first_year",
        "growth_ratio", "total_historical",
    ]
    stats = stats[ordered].sort_values(["sex", "name"], kind="mergesort").reset_index(drop=True)
    logger.info("classify: %d name-sex combinations aggregated", len(stats))
    _log_duplicate_keys(stats)
    return stats


def _log_duplicate_keys(frame: pd.DataFrame) -> int:
    dupes = int(frame.duplicated(KEY).sum())
    if dupes:
        examples = frame.loc[frame.duplicated(KEY, keep=False), KEY].head(5).to_records(index=False).tolist()
        logger.error("classify: CRITICAL %d duplicate name-sex rows (e.g. %s)", dupes, examples)
    return dupes


# ---------------------------------------------------------------------------
# Name Classifier
# ---------------------------------------------------------------------------


def classify(stats: pd.DataFrame, config: ClassificationConfig | None = None) -> pd.DataFrame:
    """Apply the ordered rule chain and attach a confidence label.

    Rules run in order and later rules overwrite earlier ones:
    OTHER → ESTABLISHED → TRULY_NEW → EMERGING → RISING → static overrides.
    Returns a new table; ``stats`` is not modified.
    """
    config = config or ClassificationConfig()
    th = config.thresholds
    dt = stats.copy()

    baseline_total = dt["baseline_total_births"]
    baseline_years = dt["baseline_years_present"]
    modern_total = dt["modern_total_births"]

    label = pd.Series(Classification.OTHER.value, index=dt.index, dtype=object)

    established = (baseline_total >= th.established_min_births) & (baseline_years >= th.established_min_years)
    label[established] = Classification.ESTABLISHED.value

    truly_new = (baseline_total == 0) & (modern_total >= th.truly_new_min_births)
    label[truly_new] = Classification.TRULY_NEW.value

    emerging = (
        (baseline_total > 0)
        & (baseline_total < th.established_min_births)
        & (modern_total >= th.emerging_min_births)
    )
    label[emerging] = Classification.EMERGING.value

    rising = (label == Classification.ESTABLISHED.value) & (dt["growth_ratio"] >= th.rising_growth_factor)
    label[rising] = Classification.RISING.value

    overridden = dt["name"].isin(list(config.overrides))
    if overridden.any():
        forced = dt.loc[overridden, "name"].map(lambda n: config.overrides[n].value)
        label[overridden] = forced

    dt["classification"] = label
    dt["classification_confidence"] = np.select(
        [
            overridden,
            (label == Classification.TRULY_NEW.value) & (baseline_total == 0),
            (label == Classification.ESTABLISHED.value) & (baseline_total >= th.high_confidence_births),
            label.isin([Classification.EMERGING.value, Classification.RISING.value]),
        ],
        [Confidence.HIGH.value, Confidence.HIGH.value, Confidence.HIGH.value, Confidence.MEDIUM.value],
        default=Confidence.LOW.value,
    )

    for row in classification_summary(dt).itertuples(index=False):
        logger.info("classify: %-11s %8d names (%.1f%%)", row.classification, row.n, row.share * 100)
    _log_duplicate_keys(dt)
    return dt


def classification_summary(classified: pd.DataFrame) -> pd.DataFrame:
    """Counts and shares per category, largest first."""
    if classified.empty:
        return pd.DataFrame({"classification": [], "n": [], "share": []})
    counts = classified["classification"].value_counts()
    summary = counts.rename_axis("classification").reset_index(name="n")
    summary["share"] = summary["n"] / len(classified)
    return summary


# ---------------------------------------------------------------------------
# Eligibility Filter
# ---------------------------------------------------------------------------


def is_eligible(category: Classification | str) -> bool:
    return Classification(category) in ELIGIBLE_CATEGORIES


def filter_eligible(classified: pd.DataFrame) -> pd.DataFrame:
    """Rows whose classification signals no reliable historical precedent."""
    eligible_values = [c.value for c in ELIGIBLE_CATEGORIES]
    eligible = classified[classified["classification"].isin(eligible_values)].reset_index(drop=True)
    breakdown = eligible["classification"].value_counts().to_dict()
    logger.info("classify: %d names eligible for origin analysis %s", len(eligible), breakdown)
    return eligible


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


def classify_all(
    records: pd.DataFrame,
    cutoff_year: int = DEFAULT_CUTOFF_YEAR,
    config: ClassificationConfig | None = None,
) -> pd.DataFrame:
    """Aggregate then classify the full national table.

    ``cutoff_year`` takes precedence over ``config.cutoff_year``.
    """
    config = config or ClassificationConfig()
    if config.cutoff_year != cutoff_year:
        config = config.model_copy(update={"cutoff_year": cutoff_year})

    if len(records):
        logger.info(
            "classify: %d rows, years %d-%d",
            len(records), int(records["year"].min()), int(records["year"].max()),
        )
    stats = aggregate_periods(records, config.cutoff_year, config.baseline_years)
    return classify(stats, config)


# ---------------------------------------------------------------------------
# Single-name lookup and explanation
# ---------------------------------------------------------------------------


def get_classification(classified: pd.DataFrame, name: str, sex: str) -> ClassifiedName | None:
    """Classification row for one (name, sex), or None when the key is absent."""
    rows = classified[(classified["name"] == normalize_name(name)) & (classified["sex"] == sex.upper())]
    if rows.empty:
        return None
    record = {k: to_python(v) for k, v in rows.iloc[0].to_dict().items()}
    return ClassifiedName.model_validate(record)


def explain_classification(row: ClassifiedName) -> str:
    category = row.classification
    match category:
        case Classification.ESTABLISHED:
            return f"High baseline popularity ({row.baseline_total_births:,} births before the cutoff)"
        case Classification.TRULY_NEW:
            return f"No historical presence, modern popularity ({row.modern_total_births:,} births since the cutoff)"
        case Classification.EMERGING:
            return f"Low baseline ({row.baseline_total_births:,}) with modern growth ({_format_growth(row.growth_ratio)})"
        case Classification.RISING:
            return f"Established name with accelerating growth ({_format_growth(row.growth_ratio)})"
        case Classification.OTHER:
            return "Doesn't fit standard patterns"
        case _:
            assert_never(category)


def _format_growth(ratio: float) -> str:
    if np.isinf(ratio):
        return "new"
    return f"{ratio:.1f}x"


def verify_classification(row: ClassifiedName, config: ClassificationConfig | None = None) -> list[RuleCheck]:
    """Re-run each rule of the chain for one row, in order, for display."""
    config = config or ClassificationConfig()
    th = config.thresholds
    bt, by, mt = row.baseline_total_births, row.baseline_years_present, row.modern_total_births

    established = bt >= th.established_min_births and by >= th.established_min_years
    checks = [
        RuleCheck(
            rule="ESTABLISHED",
            detail=f"baseline {bt:,} >= {th.established_min_births:,} and years {by} >= {th.established_min_years}",
            passed=established,
        ),
        RuleCheck(
            rule="TRULY_NEW",
            detail=f"baseline {bt:,} == 0 and modern {mt:,} >= {th.truly_new_min_births:,}",
            passed=bt == 0 and mt >= th.truly_new_min_births,
        ),
        RuleCheck(
            rule="EMERGING",
            detail=f"0 < baseline {bt:,} < {th.established_min_births:,} and modern {mt:,} >= {th.emerging_min_births:,}",
            passed=0 < bt < th.established_min_births and mt >= th.emerging_min_births,
        ),
        RuleCheck(
            rule="RISING",
            detail=f"established and growth {_format_growth(row.growth_ratio)} >= {th.rising_growth_factor}",
            passed=established and row.growth_ratio >= th.rising_growth_factor,
        ),
    ]
    forced = config.overrides.get(row.name)
    checks.append(RuleCheck(
        rule="OVERRIDE",
        detail=f"forced to {forced.value}" if forced else "not in override table",
        passed=forced is not None,
    ))
    return checks


# ---------------------------------------------------------------------------
# Standalone entry-point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    import acquire
    import output as output_module

    cutoff = DEFAULT_CUTOFF_YEAR
    cache_dir = "data"
    run_id = None
    if "--cutoff-year" in sys.argv:
        idx = sys.argv.index("--cutoff-year")
        if idx + 1 < len(sys.argv):
            cutoff = int(sys.argv[idx + 1])
    if "--cache-dir" in sys.argv:
        idx = sys.argv.index("--cache-dir")
        if idx + 1 < len(sys.argv):
            cache_dir = sys.argv[idx + 1]
    if "--run-id" in sys.argv:
        idx = sys.argv.index("--run-id")
        if idx + 1 < len(sys.argv):
            run_id = sys.argv[idx + 1]

    national = acquire.get_national_records(cache_dir=cache_dir)
    classified = classify_all(national, cutoff_year=cutoff)
    output_module.run_output(classified=classified, run_id=run_id)
    logger.info("classify: done. %d names classified.", len(classified))
