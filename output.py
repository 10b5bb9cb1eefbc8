"""Step 4 – Persist classifications and origins, render plain-text summaries.

Standalone: python output.py [--run-id YYYYMMDD_HHMMSS] [--cache-dir data] [--cutoff-year 1990]
Module:     from output import run_output, render_classification_summary, render_origin_summary
"""

from __future__ import annotations

import csv
import json
import logging
import math
import sys
from datetime import datetime
from pathlib import Path

import pandas as pd

import states as states_module
from classify import ClassifiedName, explain_classification, to_python
from origins import RESULT_COLUMNS, OriginResult, OriginRun, confidence_label, origin_results

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR: str = "analysis_output"

CLASSIFICATION_FIELDS: list[str] = list(ClassifiedName.model_fields)
ORIGIN_FIELDS: list[str] = RESULT_COLUMNS + ["confidence_label"]

# ---------------------------------------------------------------------------
# Text rendering
# ---------------------------------------------------------------------------


def _format_confidence(score: float) -> str:
    """0.7505 → 'high (0.75)'."""
    return f"{confidence_label(score)} ({score:.2f})"


def render_classification_summary(row: ClassifiedName) -> str:
    return (
        f"{row.name} ({row.sex}) is {row.classification.value} "
        f"with {row.classification_confidence.value} confidence: {explain_classification(row)}."
    )


def render_origin_summary(result: OriginResult | None, name: str, sex: str) -> str:
    if result is None or not result.determined:
        return f"{name} ({sex}): origin could not be determined."

    state = states_module.state_name(result.origin_state)
    return (
        f"{name} ({sex}) most likely originated in {state} ({result.origin_state}) in {result.origin_year}, "
        f"with {_format_confidence(result.confidence_score)} confidence "
        f"across {result.n_early_states} early-adopting states "
        f"and {result.total_early_births:,} early births."
    )


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


def _records(frame: pd.DataFrame | None, fields: list[str]) -> list[dict]:
    """DataFrame → list of plain-Python dicts restricted to ``fields``."""
    if frame is None or frame.empty:
        return []
    present = [f for f in fields if f in frame.columns]
    return [
        {k: to_python(v) for k, v in record.items()}
        for record in frame[present].to_dict(orient="records")
    ]


def _with_labels(rows: list[dict]) -> list[dict]:
    for row in rows:
        row["confidence_label"] = confidence_label(row["confidence_score"])
    return rows


def _cell(value):
    # xlsx has no representation for inf/nan
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


# ---------------------------------------------------------------------------
# CSV / JSON / xlsx writers
# ---------------------------------------------------------------------------


def _write_csv(filepath: str, rows: list[dict], fieldnames: list[str]) -> None:
    Path(filepath).parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)
    logger.info("output: wrote %s (%d rows)", filepath, len(rows))


def _write_json(filepath: str, data: list[dict]) -> None:
    Path(filepath).parent.mkdir(parents=True, exist_ok=True)
    Path(filepath).write_text(json.dumps(data, indent=2))
    logger.info("output: wrote %s (%d entries)", filepath, len(data))


def _write_xlsx(filepath: str, sheets: dict[str, tuple[list[str], list[dict]]]) -> None:
    """One worksheet per entry: {title: (header, rows)}."""
    import openpyxl

    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for title, (header, rows) in sheets.items():
        ws = wb.create_sheet(title=title)
        ws.append(header)
        for row in rows:
            ws.append([_cell(row.get(col)) for col in header])
        ws.freeze_panes = "A2"
    Path(filepath).parent.mkdir(parents=True, exist_ok=True)
    wb.save(filepath)
    wb.close()
    logger.info("output: wrote %s (%s)", filepath, ", ".join(sheets))


# ---------------------------------------------------------------------------
# Core logic
# ---------------------------------------------------------------------------


def _resolve_run_id(run_id: str | None, pipeline_state_dir: str) -> str:
    if run_id is None:
        manifest_path = Path(pipeline_state_dir) / "run_manifest.json"
        if manifest_path.exists():
            run_id = json.loads(manifest_path.read_text()).get("run_id")
    return run_id or datetime.now().strftime("%Y%m%d_%H%M%S")


def run_output(
    classified: pd.DataFrame | None = None,
    origins: OriginRun | None = None,
    run_id: str | None = None,
    output_dir: str = DEFAULT_OUTPUT_DIR,
    pipeline_state_dir: str = ".pipeline_state",
) -> dict[str, str]:
    """Write all output files and the output manifest.

    Returns {artifact: path} for every file written.
    """
    run_id = _resolve_run_id(run_id, pipeline_state_dir)
    out = Path(output_dir)
    written: dict[str, str] = {}

    classification_rows = _records(classified, CLASSIFICATION_FIELDS)
    all_origin_rows = _with_labels(_records(origins.all_origins if origins else None, ORIGIN_FIELDS))
    confident_rows = _with_labels(_records(origins.confident_origins if origins else None, ORIGIN_FIELDS))

    if classified is not None:
        path = str(out / f"classifications_{run_id}.csv")
        _write_csv(path, classification_rows, CLASSIFICATION_FIELDS)
        written["classifications_csv"] = path

    if origins is not None:
        path = str(out / f"origins_{run_id}.csv")
        _write_csv(path, all_origin_rows, ORIGIN_FIELDS)
        written["origins_csv"] = path

        summaries = [
            {
                "name": result.name,
                "sex": result.sex,
                "origin_state": result.origin_state,
                "origin_year": result.origin_year,
                "confidence_score": result.confidence_score,
                "confidence_label": confidence_label(result.confidence_score),
                "classification": result.classification.value if result.classification else None,
                "summary_sentence": render_origin_summary(result, result.name, result.sex),
                "updated_at": datetime.now().isoformat(),
            }
            for result in origin_results(origins)
        ]
        path = str(out / f"origin_summaries_{run_id}.json")
        _write_json(path, summaries)
        written["origin_summaries_json"] = path

    path = str(out / f"analysis_{run_id}.xlsx")
    _write_xlsx(path, {
        "Classifications": (CLASSIFICATION_FIELDS, classification_rows),
        "Origins": (ORIGIN_FIELDS, all_origin_rows),
        "Confident": (ORIGIN_FIELDS, confident_rows),
    })
    written["workbook_xlsx"] = path

    # --- manifest (metadata only, no row data) ---
    Path(pipeline_state_dir).mkdir(parents=True, exist_ok=True)
    manifest_payload = {
        "run_id": run_id,
        "produced_at": datetime.now().isoformat(),
        "files": written,
        "classified_names": len(classification_rows),
        "origins_analyzed": len(all_origin_rows),
        "confident_origins": len(confident_rows),
        "origin_summary": origins.summary if origins else None,
    }
    manifest_path = Path(pipeline_state_dir) / "output_manifest.json"
    manifest_path.write_text(json.dumps(manifest_payload, indent=2))
    logger.info("output: wrote %s", manifest_path)
    return written


# ---------------------------------------------------------------------------
# Standalone entry-point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    import acquire
    import classify as classify_module
    import origins as origins_module

    run_id = None
    cache_dir = acquire.DEFAULT_CACHE_DIR
    cutoff_year = classify_module.DEFAULT_CUTOFF_YEAR
    if "--run-id" in sys.argv:
        idx = sys.argv.index("--run-id")
        if idx + 1 < len(sys.argv):
            run_id = sys.argv[idx + 1]
    if "--cache-dir" in sys.argv:
        idx = sys.argv.index("--cache-dir")
        if idx + 1 < len(sys.argv):
            cache_dir = sys.argv[idx + 1]
    if "--cutoff-year" in sys.argv:
        idx = sys.argv.index("--cutoff-year")
        if idx + 1 < len(sys.argv):
            cutoff_year = int(sys.argv[idx + 1])

    names = acquire.load_records(cache_dir=cache_dir, include_state="--national-only" not in sys.argv)
    classified = classify_module.classify_all(names.national, cutoff_year=cutoff_year)
    run = origins_module.find_origins_bulk(names.state, classified) if names.state is not None else None
    run_output(classified=classified, origins=run, run_id=run_id)
    logger.info("output: done.")
