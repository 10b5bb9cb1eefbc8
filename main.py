"""Pipeline orchestrator – runs acquire → validate → classify → origins → output end-to-end.

Usage: python main.py [--run-id ID] [--cutoff-year 1990] [--cache-dir data] [--force-refresh] [--national-only]
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from pathlib import Path

import acquire as acquire_module
import classify as classify_module
import origins as origins_module
import output as output_module
import validate as validate_module

logger = logging.getLogger(__name__)

PIPELINE_STATE_DIR = ".pipeline_state"


def _write_manifest(run_id: str, data: dict, pipeline_state_dir: str = PIPELINE_STATE_DIR) -> None:
    Path(pipeline_state_dir).mkdir(parents=True, exist_ok=True)
    path = Path(pipeline_state_dir) / "run_manifest.json"
    path.write_text(json.dumps(data, indent=2))


def _flag_value(argv: list[str], flag: str) -> str | None:
    if flag in argv:
        idx = argv.index(flag)
        if idx + 1 < len(argv):
            return argv[idx + 1]
    return None


def run_pipeline(
    run_id: str | None = None,
    cutoff_year: int = classify_module.DEFAULT_CUTOFF_YEAR,
    cache_dir: str = acquire_module.DEFAULT_CACHE_DIR,
    force_refresh: bool = False,
    national_only: bool = False,
    output_dir: str = output_module.DEFAULT_OUTPUT_DIR,
    pipeline_state_dir: str = PIPELINE_STATE_DIR,
) -> dict:
    """Run every step and return the final run manifest.

    A failed validation gate leaves the manifest at status ABORTED and stops
    before classification.
    """
    run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S")
    logger.info("=== pipeline start  run_id=%s ===", run_id)

    # --- initial manifest ---
    manifest: dict = {
        "run_id": run_id,
        "started_at": datetime.now().isoformat(),
        "status": "started",
        "steps_completed": [],
        "cutoff_year": cutoff_year,
        "national_rows": None,
        "state_rows": None,
        "gate_passed": None,
        "names_classified": None,
        "classification_counts": None,
        "classification_accuracy": None,
        "names_eligible": None,
        "origins_analyzed": None,
        "confident_origins": None,
        "abort_reason": None,
    }
    _write_manifest(run_id, manifest, pipeline_state_dir)

    # -----------------------------------------------------------------------
    # Step 1 – acquire
    # -----------------------------------------------------------------------
    manifest["status"] = "acquiring"
    _write_manifest(run_id, manifest, pipeline_state_dir)

    names = acquire_module.load_records(
        cache_dir=cache_dir, include_state=not national_only, force_refresh=force_refresh,
    )
    manifest["steps_completed"].append("acquire")
    manifest["national_rows"] = len(names.national)
    manifest["state_rows"] = len(names.state) if names.state is not None else None

    # -----------------------------------------------------------------------
    # Step 2 – validate
    # -----------------------------------------------------------------------
    manifest["status"] = "validating"
    _write_manifest(run_id, manifest, pipeline_state_dir)

    _, _, gate_passed = validate_module.run_validation(
        names.national, names.state, run_id=run_id, pipeline_state_dir=pipeline_state_dir,
    )
    manifest["steps_completed"].append("validate")
    manifest["gate_passed"] = gate_passed

    if not gate_passed:
        manifest["status"] = "ABORTED"
        manifest["abort_reason"] = "Validation gate tripped: required columns missing or table empty."
        _write_manifest(run_id, manifest, pipeline_state_dir)
        logger.error("=== pipeline ABORTED ===")
        return manifest

    # -----------------------------------------------------------------------
    # Step 3 – classify
    # -----------------------------------------------------------------------
    manifest["status"] = "classifying"
    _write_manifest(run_id, manifest, pipeline_state_dir)

    classified = classify_module.classify_all(names.national, cutoff_year=cutoff_year)
    accuracy = validate_module.validate_classification_accuracy(classified)
    summary = classify_module.classification_summary(classified)

    manifest["steps_completed"].append("classify")
    manifest["names_classified"] = len(classified)
    manifest["classification_counts"] = {row.classification: int(row.n) for row in summary.itertuples()}
    manifest["classification_accuracy"] = round(accuracy.overall_accuracy, 4)

    # -----------------------------------------------------------------------
    # Step 4 – origins
    # -----------------------------------------------------------------------
    run = None
    if names.state is not None:
        manifest["status"] = "detecting_origins"
        _write_manifest(run_id, manifest, pipeline_state_dir)

        run = origins_module.find_origins_bulk(names.state, classified)
        manifest["steps_completed"].append("origins")
        manifest["names_eligible"] = int(classified["classification"].isin(
            [c.value for c in classify_module.ELIGIBLE_CATEGORIES]
        ).sum())
        manifest["origins_analyzed"] = run.summary["total_analyzed"]
        manifest["confident_origins"] = run.summary["high_confidence"]
    else:
        logger.info("origins: skipped (national-only run)")

    # -----------------------------------------------------------------------
    # Step 5 – output
    # -----------------------------------------------------------------------
    manifest["status"] = "outputting"
    _write_manifest(run_id, manifest, pipeline_state_dir)

    output_module.run_output(
        classified=classified, origins=run, run_id=run_id,
        output_dir=output_dir, pipeline_state_dir=pipeline_state_dir,
    )

    manifest["steps_completed"].append("output")
    manifest["status"] = "completed"
    _write_manifest(run_id, manifest, pipeline_state_dir)

    logger.info("=== pipeline complete  run_id=%s ===", run_id)
    return manifest


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    argv = sys.argv[1:]
    cutoff = _flag_value(argv, "--cutoff-year")
    manifest = run_pipeline(
        run_id=_flag_value(argv, "--run-id"),
        cutoff_year=int(cutoff) if cutoff else classify_module.DEFAULT_CUTOFF_YEAR,
        cache_dir=_flag_value(argv, "--cache-dir") or acquire_module.DEFAULT_CACHE_DIR,
        force_refresh="--force-refresh" in argv,
        national_only="--national-only" in argv,
    )
    if manifest["status"] == "ABORTED":
        sys.exit(1)


if __name__ == "__main__":
    main()
