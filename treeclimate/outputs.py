"""
CSV writers for the pipeline outputs.

The summary table writes missing values as empty fields; per-species
occurrence tables write them as ``NA``.
"""

import os

from treeclimate import config
from treeclimate.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def _write_csv(df, path, na_rep):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    df.to_csv(path, index=False, na_rep=na_rep, encoding="utf-8")
    return path


def write_species_records(records, path):
    """Write one species' occurrence records (header-only when empty)."""
    records = records.reindex(columns=config.SPECIES_RECORD_COLUMNS)
    _write_csv(records, path, config.SPECIES_RECORDS_NA_REP)
    log.debug("Wrote %d records to %s", len(records), path)
    return path


def write_summary(summary, path):
    """Write the per-species climate means and Red List categories."""
    summary = summary.reindex(columns=config.SUMMARY_COLUMNS)
    _write_csv(summary, path, config.SUMMARY_NA_REP)
    log.info("Saved species summary (%d species): %s", len(summary), path)
    return path
