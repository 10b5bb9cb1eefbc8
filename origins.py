"""Geographic origin detection for names without historical precedent.

For every eligible (name, sex) the state records are cut down to a five-year
window starting at the name's first appearance anywhere. Each state in that
window is scored on raw volume, population-adjusted share, how early it
adopted the name, and how consistently it kept it. The top-scoring state is
the origin; a separate blend of four sub-scores gives the confidence.

Standalone: python origins.py [--cache-dir data] [--run-id ID]
Module:     from origins import find_origins_bulk, find_origin_for
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from pydantic import BaseModel

import states as states_module
from classify import (
    KEY,
    Classification,
    filter_eligible,
    get_classification,
    is_eligible,
    normalize_name,
    to_python,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

STATE_COLUMNS: list[str] = ["year", "sex", "state", "name", "births"]

DEFAULT_MIN_TOTAL_BIRTHS: int = 100
DEFAULT_MIN_STATES: int = 5
DEFAULT_CONFIDENCE_THRESHOLD: float = 0.5

# Single-name lookups run on one name's rows, so the gates are looser
LOOKUP_MIN_TOTAL_BIRTHS: int = 10
LOOKUP_MIN_STATES: int = 3

EARLY_WINDOW_YEARS: int = 5                 # first_year .. first_year + 4

# Origin score weights
LOG_BIRTHS_WEIGHT: float = 2.0
POP_SHARE_WEIGHT: float = 1000.0            # raw shares are << 1
EARLY_BONUS_WEIGHT: float = 3.0
CONSISTENCY_WEIGHT: float = 4.0

# Confidence blend
SEPARATION_WEIGHT: float = 0.3
EARLY_EMERGENCE_WEIGHT: float = 0.3
CONSISTENCY_CONF_WEIGHT: float = 0.2
VOLUME_CONF_WEIGHT: float = 0.2
FIRST_YEAR_CONF: float = 0.8
LATER_YEAR_CONF: float = 0.4
CONSISTENCY_IDEAL_YEARS: int = 3
VOLUME_LOG_SCALE: float = 10.0

HIGH_CONFIDENCE: float = 0.7
MODERATE_CONFIDENCE: float = 0.5

RESULT_COLUMNS: list[str] = [
    "name", "sex", "origin_state", "origin_year", "confidence_score",
    "total_early_births", "n_early_states", "origin_score", "pop_adjusted_prop",
    "score_separation", "early_emergence_conf", "consistency_conf", "birth_volume_conf",
    "classification",
]

# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class OriginResult(BaseModel):
    """Origin for one (name, sex).  origin_state is None when undetermined."""
    name: str
    sex: str
    origin_state: str | None
    origin_year: int | None
    confidence_score: float
    total_early_births: int
    n_early_states: int
    origin_score: float | None = None
    pop_adjusted_prop: float | None = None
    score_separation: float | None = None
    early_emergence_conf: float | None = None
    consistency_conf: float | None = None
    birth_volume_conf: float | None = None
    classification: Classification | None = None

    @property
    def determined(self) -> bool:
        return self.origin_state is not None


@dataclass(frozen=True)
class OriginRun:
    """All scored names plus the subset at or above the confidence threshold."""
    all_origins: pd.DataFrame
    confident_origins: pd.DataFrame
    confidence_threshold: float
    summary: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_columns(frame: pd.DataFrame, columns: list[str]) -> None:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise ValueError(f"State records are missing required columns: {missing}")


def _check_params(min_total_births: int, min_states: int, confidence_threshold: float) -> None:
    if min_total_births < 0:
        raise ValueError(f"min_total_births must be >= 0, got {min_total_births}")
    if min_states <= 0:
        raise ValueError(f"min_states must be >= 1, got {min_states}")
    if not 0.0 <= confidence_threshold <= 1.0:
        raise ValueError(f"confidence_threshold must be within [0, 1], got {confidence_threshold}")


def _eligible_keys(eligible: pd.DataFrame | Iterable[tuple[str, str]]) -> pd.DataFrame:
    """Normalize the eligible set to a (name, sex[, classification]) frame."""
    if isinstance(eligible, pd.DataFrame):
        cols = KEY + (["classification"] if "classification" in eligible.columns else [])
        return eligible[cols].drop_duplicates(KEY)
    return pd.DataFrame(sorted(set(eligible)), columns=KEY)


def _empty_results() -> pd.DataFrame:
    return pd.DataFrame({c: pd.Series(dtype=object) for c in RESULT_COLUMNS})


def confidence_label(score: float) -> str:
    if score >= HIGH_CONFIDENCE:
        return "high"
    if score >= MODERATE_CONFIDENCE:
        return "moderate"
    return "low"


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def compute_state_sizes(state_records: pd.DataFrame) -> pd.DataFrame:
    """Births per (state, year) over every name and both sexes."""
    _require_columns(state_records, STATE_COLUMNS)
    return (
        state_records.groupby(["state", "year"], sort=True)["births"]
        .sum()
        .rename("state_size")
        .reset_index()
    )


def score_candidates(early: pd.DataFrame) -> pd.DataFrame:
    """Per-(name, sex, state) origin candidates from early-window rows.

    ``early`` must carry first_year (the key's global first year) and
    state_size for each row.
    """
    # Collapse duplicate rows first so averages are per year present
    per_year = early.groupby(KEY + ["state", "year"], sort=False).agg(
        births=("births", "sum"),
        state_size=("state_size", "first"),
        first_year=("first_year", "first"),
    ).reset_index()

    candidates = per_year.groupby(KEY + ["state"], sort=True).agg(
        total_births=("births", "sum"),
        years_present=("year", "nunique"),
        first_year_in_state=("year", "min"),
        avg_state_size=("state_size", "mean"),
        first_year=("first_year", "first"),
    ).reset_index()

    size = candidates["avg_state_size"].to_numpy(dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        prop = np.where(size > 0, candidates["total_births"].to_numpy(dtype=float) / np.where(size > 0, size, 1.0), 0.0)
    candidates["pop_adjusted_prop"] = prop
    lag = candidates["first_year_in_state"] - candidates["first_year"]
    candidates["early_bonus"] = (EARLY_WINDOW_YEARS - lag).clip(lower=0)
    candidates["consistency"] = candidates["years_present"] / EARLY_WINDOW_YEARS
    candidates["origin_score"] = (
        np.log1p(candidates["total_births"]) * LOG_BIRTHS_WEIGHT
        + candidates["pop_adjusted_prop"] * POP_SHARE_WEIGHT
        + candidates["early_bonus"] * EARLY_BONUS_WEIGHT
        + candidates["consistency"] * CONSISTENCY_WEIGHT
    )
    return candidates


def _select_origins(candidates: pd.DataFrame, min_states: int) -> pd.DataFrame:
    """Arg-max state per key plus the confidence blend.

    Ties on origin_score go to the alphabetically first state.
    """
    ranked = candidates.sort_values(
        KEY + ["origin_score", "state"], ascending=[True, True, False, True], kind="mergesort"
    )
    ranked["rank"] = ranked.groupby(KEY, sort=False).cumcount()

    per_key = candidates.groupby(KEY, sort=True).agg(
        n_early_states=("state", "size"),
        total_early_births=("total_births", "sum"),
    )
    best = ranked[ranked["rank"] == 0].set_index(KEY)
    second = ranked[ranked["rank"] == 1].set_index(KEY)["origin_score"].rename("second_score")

    picked = per_key.join(best, how="left").join(second, how="left")
    enough = picked["n_early_states"] >= min_states

    best_score = picked["origin_score"].to_numpy(dtype=float)
    second_score = picked["second_score"].to_numpy(dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        separation = np.where(
            np.isnan(second_score),
            1.0,
            np.where(best_score > 0, (best_score - second_score) / np.where(best_score > 0, best_score, 1.0), 0.0),
        )
    early_conf = np.where(picked["first_year_in_state"] == picked["first_year"], FIRST_YEAR_CONF, LATER_YEAR_CONF)
    consistency_conf = np.minimum(1.0, picked["years_present"].to_numpy(dtype=float) / CONSISTENCY_IDEAL_YEARS)
    volume_conf = np.minimum(1.0, np.log1p(picked["total_births"].to_numpy(dtype=float)) / VOLUME_LOG_SCALE)
    confidence = (
        separation * SEPARATION_WEIGHT
        + early_conf * EARLY_EMERGENCE_WEIGHT
        + consistency_conf * CONSISTENCY_CONF_WEIGHT
        + volume_conf * VOLUME_CONF_WEIGHT
    )

    out = pd.DataFrame(index=picked.index)
    out["origin_state"] = picked["state"].where(enough, None)
    out["origin_year"] = picked["first_year_in_state"].where(enough).astype("Int64")
    out["confidence_score"] = np.where(enough, confidence, 0.0)
    out["total_early_births"] = picked["total_early_births"].astype("int64")
    out["n_early_states"] = picked["n_early_states"].astype("int64")
    out["origin_score"] = picked["origin_score"].where(enough)
    out["pop_adjusted_prop"] = picked["pop_adjusted_prop"].where(enough)
    out["score_separation"] = pd.Series(separation, index=picked.index).where(enough)
    out["early_emergence_conf"] = pd.Series(early_conf, index=picked.index).where(enough)
    out["consistency_conf"] = pd.Series(consistency_conf, index=picked.index).where(enough)
    out["birth_volume_conf"] = pd.Series(volume_conf, index=picked.index).where(enough)
    return out.reset_index()


# ---------------------------------------------------------------------------
# Public entry-points
# ---------------------------------------------------------------------------


def find_origins(
    state_records: pd.DataFrame,
    eligible: pd.DataFrame | Iterable[tuple[str, str]],
    min_total_births: int = DEFAULT_MIN_TOTAL_BIRTHS,
    min_states: int = DEFAULT_MIN_STATES,
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    state_sizes: pd.DataFrame | None = None,
) -> OriginRun:
    """Score every state's early adoption of each eligible name.

    Args:
        state_records: Full state table (all names), used both for the
            eligible rows and for the state-size proxy.
        eligible:      (name, sex) pairs, or a frame with name/sex columns and
            optionally classification (copied onto the results).
        state_sizes:   Precomputed compute_state_sizes() output.

    Names with fewer than ``min_total_births`` births across all states are
    dropped without a row.  Names that pass but appear in fewer than
    ``min_states`` states during the early window get a row with no origin
    and zero confidence.
    """
    _check_params(min_total_births, min_states, confidence_threshold)
    _require_columns(state_records, STATE_COLUMNS)
    keys = _eligible_keys(eligible)

    rows = state_records.merge(keys[KEY], on=KEY, how="inner")
    logger.info(
        "origins: filtered %s → %s state records for %d eligible names",
        f"{len(state_records):,}", f"{len(rows):,}", len(keys),
    )

    totals = rows.groupby(KEY, sort=True)["births"].sum()
    qualified = totals[totals >= min_total_births].reset_index()[KEY]
    logger.info("origins: %d names with enough births (>= %d)", len(qualified), min_total_births)

    if len(qualified) == 0:
        return _finish(_empty_results(), confidence_threshold)

    rows = rows.merge(qualified, on=KEY, how="inner")
    rows["first_year"] = rows.groupby(KEY)["year"].transform("min")
    early = rows[rows["year"] < rows["first_year"] + EARLY_WINDOW_YEARS]

    if state_sizes is None:
        state_sizes = compute_state_sizes(state_records)
    early = early.merge(state_sizes, on=["state", "year"], how="left")
    early["state_size"] = early["state_size"].fillna(0)

    candidates = score_candidates(early)
    results = _select_origins(candidates, min_states)

    # Qualified names with nothing in the window still get a (null) row
    results = qualified.merge(results, on=KEY, how="left")
    results["confidence_score"] = results["confidence_score"].fillna(0.0)
    results["total_early_births"] = results["total_early_births"].fillna(0).astype("int64")
    results["n_early_states"] = results["n_early_states"].fillna(0).astype("int64")

    if "classification" in keys.columns:
        results = results.merge(keys, on=KEY, how="left")
    else:
        results["classification"] = None

    return _finish(results[RESULT_COLUMNS], confidence_threshold)


def _finish(results: pd.DataFrame, confidence_threshold: float) -> OriginRun:
    confident = results[
        results["origin_state"].notna() & (results["confidence_score"] >= confidence_threshold)
    ].reset_index(drop=True)
    total = len(results)
    summary = {
        "total_analyzed": total,
        "high_confidence": len(confident),
        "confidence_rate": len(confident) / total if total else 0.0,
    }
    logger.info(
        "origins: %d of %d origins at or above confidence %.2f",
        len(confident), total, confidence_threshold,
    )
    return OriginRun(
        all_origins=results.reset_index(drop=True),
        confident_origins=confident,
        confidence_threshold=confidence_threshold,
        summary=summary,
    )


def find_origins_bulk(
    state_records: pd.DataFrame,
    classified: pd.DataFrame,
    min_total_births: int = DEFAULT_MIN_TOTAL_BIRTHS,
    min_states: int = DEFAULT_MIN_STATES,
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    state_sizes: pd.DataFrame | None = None,
) -> OriginRun:
    """find_origins over every eligible name of a classification table."""
    eligible = filter_eligible(classified)
    return find_origins(
        state_records, eligible,
        min_total_births=min_total_births,
        min_states=min_states,
        confidence_threshold=confidence_threshold,
        state_sizes=state_sizes,
    )


def find_origin_for(
    name: str,
    sex: str,
    state_records: pd.DataFrame,
    classified: pd.DataFrame | None = None,
    min_total_births: int = LOOKUP_MIN_TOTAL_BIRTHS,
    min_states: int = LOOKUP_MIN_STATES,
    state_sizes: pd.DataFrame | None = None,
) -> OriginResult | None:
    """Origin of a single name, or None when it was not analyzed.

    With ``classified`` given, names outside the eligible categories (or
    absent from it) are not analyzed.
    """
    name = normalize_name(name)
    sex = sex.upper()

    classification = None
    if classified is not None:
        row = get_classification(classified, name, sex)
        if row is None or not is_eligible(row.classification):
            logger.info(
                "origins: %s (%s) is %s, not eligible for origin analysis",
                name, sex, row.classification.value if row else "not classified",
            )
            return None
        classification = row.classification

    eligible = pd.DataFrame({"name": [name], "sex": [sex]})
    if classification is not None:
        eligible["classification"] = classification.value

    run = find_origins(
        state_records, eligible,
        min_total_births=min_total_births,
        min_states=min_states,
        confidence_threshold=0.0,
        state_sizes=state_sizes,
    )
    if run.all_origins.empty:
        return None
    record = run.all_origins.iloc[0].to_dict()
    return OriginResult.model_validate({k: to_python(v) for k, v in record.items()})


def origin_results(run: OriginRun, confident_only: bool = False) -> list[OriginResult]:
    frame = run.confident_origins if confident_only else run.all_origins
    return [
        OriginResult.model_validate({k: to_python(v) for k, v in record.items()})
        for record in frame.to_dict(orient="records")
    ]


# ---------------------------------------------------------------------------
# Adoption timeline
# ---------------------------------------------------------------------------


def state_adoption_timeline(state_records: pd.DataFrame, name: str, sex: str) -> pd.DataFrame:
    """First appearance year and first-year births per state, earliest first."""
    _require_columns(state_records, STATE_COLUMNS)
    rows = state_records[
        (state_records["name"] == normalize_name(name)) & (state_records["sex"] == sex.upper())
    ]
    if rows.empty:
        return pd.DataFrame(columns=["state", "first_year", "first_births", "region"])

    per_year = rows.groupby(["state", "year"], sort=True)["births"].sum().reset_index()
    first = per_year.sort_values(["state", "year"]).groupby("state", sort=True).head(1)
    timeline = first.rename(columns={"year": "first_year", "births": "first_births"})
    timeline = timeline.sort_values(
        ["first_year", "first_births", "state"], ascending=[True, False, True]
    ).reset_index(drop=True)
    timeline["region"] = timeline["state"].map(states_module.region_for)
    return timeline[["state", "first_year", "first_births", "region"]]


def regional_emergence(timeline: pd.DataFrame) -> pd.DataFrame:
    """Per Census region: first year seen and how many of its states adopted."""
    known = timeline[timeline["region"].notna()]
    if known.empty:
        return pd.DataFrame(columns=["region", "first_year", "n_states", "share_of_region"])
    regional = known.groupby("region", sort=True).agg(
        first_year=("first_year", "min"),
        n_states=("state", "nunique"),
    ).reset_index()
    regional["share_of_region"] = regional["n_states"] / regional["region"].map(states_module.REGION_STATE_COUNTS)
    return regional.sort_values(["first_year", "region"]).reset_index(drop=True)


# ---------------------------------------------------------------------------
# Standalone entry-point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    import acquire
    import classify as classify_module
    import output as output_module

    cache_dir = "data"
    run_id = None
    if "--cache-dir" in sys.argv:
        idx = sys.argv.index("--cache-dir")
        if idx + 1 < len(sys.argv):
            cache_dir = sys.argv[idx + 1]
    if "--run-id" in sys.argv:
        idx = sys.argv.index("--run-id")
        if idx + 1 < len(sys.argv):
            run_id = sys.argv[idx + 1]

    records = acquire.load_records(cache_dir=cache_dir, include_state=True)
    classified = classify_module.classify_all(records.national)
    run = find_origins_bulk(records.state, classified)
    output_module.run_output(classified=classified, origins=run, run_id=run_id)
    logger.info("origins: done. %s", run.summary)
