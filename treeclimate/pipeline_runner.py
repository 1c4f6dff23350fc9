#!/usr/bin/env python3
"""
Pipeline runner: species climate means and Red List categories.

Runs every stage in order:
  load inputs → geocode → fetch/sample WorldClim → annual means →
  per-species aggregation → Red List join → summary CSV

with Pandera validation gates between stages, NaN tracking, and a
PipelineRunResult saved as JSON for provenance. The first failed step
aborts the run (exit status 1); there are no retries.

Usage:
    # Run with the default paths from treeclimate.config
    python3 -m treeclimate.pipeline_runner

    # Other input/output locations, coarser climate layers
    python3 -m treeclimate.pipeline_runner --data-dir ./datos/originales \\
        --output-dir ./salidas --resolution 2.5

    # Abort on schema violations instead of warning
    python3 -m treeclimate.pipeline_runner --strict-validation
"""

import argparse
import json
import os
import sys
import tempfile
import time

from treeclimate import config
from treeclimate.logging_config import get_pipeline_logger, set_run_id, setup_logging
from treeclimate.pipeline_types import PipelineRunResult, StepResult, StepStatus
from treeclimate.schemas import (
    ClimateRecordSchema,
    OccurrenceSchema,
    PlotSpeciesSchema,
    RedListSchema,
    SpeciesSummarySchema,
    validate_schema,
)

log = get_pipeline_logger(__name__)


# ── NaN tracking helper ──────────────────────────────────────────────────


def track_nan_counts(df, step_name, prev_nan_counts=None):
    """Track NaN counts per column and warn when they grow.

    Parameters
    ----------
    df : pd.DataFrame or None
    step_name : str
    prev_nan_counts : dict or None
        Counts from the previous step for delta comparison.

    Returns
    -------
    dict
        Column → NaN count (only columns with NaN).
    """
    if df is None:
        return {}

    nan_counts = {k: int(v) for k, v in df.isna().sum().items() if v > 0}

    if nan_counts:
        log.debug(
            "[%s] NaN counts: %s", step_name, nan_counts,
            extra={"step_name": step_name, "nan_summary": nan_counts},
        )

    if prev_nan_counts:
        for col, count in nan_counts.items():
            prev = prev_nan_counts.get(col, 0)
            if col in prev_nan_counts and count > prev:
                log.warning(
                    "[%s] NaN count increased for '%s': %d → %d (+%d)",
                    step_name, col, prev, count, count - prev,
                )

    return nan_counts


# ── Gate helpers ─────────────────────────────────────────────────────────


def _record(pipeline_result, step_result):
    """Append a step result; False (and an error log) if it failed."""
    pipeline_result.step_results.append(step_result)
    if not step_result.ok:
        log.error("Pipeline aborted at %s", step_result.step_name)
    return step_result.ok


def _gate(df, schema, step_result, pipeline_result, strict):
    """Run a validation gate after *step_result*; False aborts the run."""
    try:
        warnings_list = validate_schema(df, schema, step_result.step_name, strict=strict)
    except ValueError as exc:
        log.error("Validation failed after %s: %s", step_result.step_name, exc)
        pipeline_result.step_results.append(StepResult(
            step_name=f"validate_{step_result.step_name}",
            status=StepStatus.ERROR.value,
            error=str(exc),
        ))
        return False

    for w in warnings_list:
        log.warning(w)
    step_result.warnings.extend(warnings_list)
    return True


# ── Pipeline ─────────────────────────────────────────────────────────────


def _run_steps(paths, resolution, strict, session, scratch_dir, pipeline_result):
    from treeclimate.pipeline_steps import (
        step_aggregate_species,
        step_fetch_climate,
        step_geocode,
        step_join_red_list,
        step_load_occurrences,
        step_load_plot_species,
        step_load_red_list,
        step_sample_climate,
        step_write_summary,
    )

    # Stage 1: inputs
    log.info("Loading data ...")
    result, plot_species = step_load_plot_species(paths["plot_species_xlsx"])
    if not _record(pipeline_result, result):
        return None
    if not _gate(plot_species, PlotSpeciesSchema, result, pipeline_result, strict):
        return None

    result, red_list = step_load_red_list(paths["red_list_xlsx"])
    if not _record(pipeline_result, result):
        return None
    if not _gate(red_list, RedListSchema, result, pipeline_result, strict):
        return None

    result, occurrences = step_load_occurrences(paths["occurrences_zip"], scratch_dir)
    if not _record(pipeline_result, result):
        return None
    pipeline_result.occurrences_loaded = len(occurrences)

    # Stage 2: geometry
    result, points = step_geocode(occurrences)
    if not _record(pipeline_result, result):
        return None
    if not _gate(points, OccurrenceSchema, result, pipeline_result, strict):
        return None
    prev_nan_counts = track_nan_counts(points, "geocode")

    # Stages 3-4: climate sampling and annual means
    climate_vars = [
        (config.TEMPERATURE_VAR, config.TEMPERATURE_PREFIX, config.ANNUAL_TEMPERATURE_COL),
        (config.PRECIPITATION_VAR, config.PRECIPITATION_PREFIX, config.ANNUAL_PRECIPITATION_COL),
    ]
    for variable, prefix, out_col in climate_vars:
        log.info("Computing annual %s of occurrence records ...", variable)
        result, layers = step_fetch_climate(
            variable, resolution, paths["worldclim_dir"], session=session
        )
        if not _record(pipeline_result, result):
            return None

        result, points = step_sample_climate(points, layers, prefix, out_col)
        if not _record(pipeline_result, result):
            return None
        result.nan_summary = track_nan_counts(points, result.step_name, prev_nan_counts)
        prev_nan_counts = result.nan_summary

    if not _gate(points, ClimateRecordSchema, result, pipeline_result, strict):
        return None

    # Stage 5: per-species means and records files
    log.info("Computing annual means per species ...")
    result, aggregated = step_aggregate_species(
        plot_species, points, paths["species_records_dir"]
    )
    if not _record(pipeline_result, result):
        return None
    summary, written = aggregated
    pipeline_result.species_processed = len(summary)
    pipeline_result.output_files.extend(written)

    # Stage 6: Red List categories
    log.info("Attaching Red List categories ...")
    result, final_df = step_join_red_list(summary, red_list)
    if not _record(pipeline_result, result):
        return None
    if not _gate(final_df, SpeciesSummarySchema, result, pipeline_result, strict):
        return None
    result.nan_summary = track_nan_counts(final_df, "join_red_list")

    # Stage 7: summary output
    log.info("Writing species summary ...")
    result, summary_path = step_write_summary(final_df, paths["summary_csv"])
    if not _record(pipeline_result, result):
        return None
    pipeline_result.output_files.append(summary_path)

    return final_df


def run_pipeline(paths, resolution=config.RESOLUTION, strict=False, session=None):
    """Run the full pipeline.

    Parameters
    ----------
    paths : dict
        Output of ``config.get_run_paths()``.
    resolution : float
        WorldClim resolution in arc-minutes.
    strict : bool
        Abort on schema violations instead of warning.
    session : requests.Session, optional
        Session for WorldClim downloads.

    Returns
    -------
    tuple[PipelineRunResult, pd.DataFrame | None]
        Provenance and the final summary (None if the run aborted).
    """
    pipeline_result = PipelineRunResult(
        output_dir=paths["output_dir"],
        resolution=resolution,
    )
    start_time = time.time()
    os.makedirs(paths["output_dir"], exist_ok=True)

    with tempfile.TemporaryDirectory(prefix="treeclimate_") as scratch_dir:
        final_df = _run_steps(
            paths, resolution, strict, session, scratch_dir, pipeline_result
        )

    pipeline_result.total_time_seconds = time.time() - start_time
    return pipeline_result, final_df


def save_pipeline_result(pipeline_result, result_path):
    """Save PipelineRunResult as JSON for provenance."""
    os.makedirs(os.path.dirname(result_path) or ".", exist_ok=True)
    with open(result_path, "w", encoding="utf-8") as f:
        json.dump(pipeline_result.to_dict(), f, indent=2, default=str)
    log.info("Pipeline result saved: %s", result_path)
    return result_path


# ── Main entry point ─────────────────────────────────────────────────────


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Annual temperature/precipitation means and IUCN Red List "
                    "categories for tree species in sampling plots"
    )
    parser.add_argument(
        "--data-dir",
        default=config.DEFAULT_DATA_DIR,
        help="Directory holding the plot list, Red List and occurrence archive",
    )
    parser.add_argument(
        "--output-dir",
        default=config.DEFAULT_OUTPUT_DIR,
        help="Output directory",
    )
    parser.add_argument(
        "--worldclim-dir",
        default=None,
        dest="worldclim_dir",
        help="WorldClim download/cache directory (default: <data-dir>/worldclim)",
    )
    parser.add_argument(
        "--resolution",
        type=float,
        default=config.RESOLUTION,
        choices=sorted(config.WORLDCLIM_RESOLUTIONS),
        help="WorldClim resolution in arc-minutes",
    )
    parser.add_argument(
        "--strict-validation",
        action="store_true",
        default=False,
        dest="strict_validation",
        help="Abort on schema validation failures (default: warn only)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    run_id = set_run_id()
    setup_logging(run_dir=args.output_dir)

    paths = config.get_run_paths(
        data_dir=args.data_dir,
        output_dir=args.output_dir,
        worldclim_dir=args.worldclim_dir,
    )
    log.info("Species climate pipeline (run_id=%s)", run_id)

    result, _ = run_pipeline(
        paths,
        resolution=args.resolution,
        strict=args.strict_validation,
    )
    save_pipeline_result(result, paths["pipeline_run_json"])

    log.info("Pipeline complete in %.1fs", result.total_time_seconds)
    if result.failed_steps:
        log.error("Failed steps: %s", [s.step_name for s in result.failed_steps])
        return 1

    log.info(
        "All steps succeeded: %d species, %d files written",
        result.species_processed, len(result.output_files),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
