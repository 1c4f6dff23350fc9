"""
Per-species aggregation of occurrence climate values.

Species are processed one at a time, in plot-list order. A species with
no matching occurrence records still yields a summary row, with NaN
temperature and precipitation, and a header-only records file.
"""

import os

import numpy as np
import pandas as pd

from treeclimate import config
from treeclimate.logging_config import get_pipeline_logger
from treeclimate.outputs import write_species_records

log = get_pipeline_logger(__name__)

T_COL = config.ANNUAL_TEMPERATURE_COL
P_COL = config.ANNUAL_PRECIPITATION_COL


def species_file_name(species):
    """'Quercus costaricensis' → 'Quercus_costaricensis.csv'.

    Path separators are replaced too, so every name stays a single file
    inside the records directory.
    """
    name = species.replace(" ", "_").replace("/", "_").replace("\\", "_")
    return name + ".csv"


def species_records(occurrences, family, species):
    """Occurrence records of one species, by exact name match.

    Returns
    -------
    pd.DataFrame
        Columns: familia, especie, x, y, annual temperature, annual
        precipitation. No geometry.
    """
    subset = occurrences.loc[
        occurrences["species"] == species, ["species", "x", "y", T_COL, P_COL]
    ]
    records = pd.DataFrame(subset).rename(columns={"species": "especie"})
    records.insert(0, "familia", family)
    return records.reset_index(drop=True)


def species_means(records):
    """NaN-skipping means of the annual values; (NaN, NaN) without records."""
    if len(records) == 0:
        return np.nan, np.nan
    return records[T_COL].mean(), records[P_COL].mean()


def aggregate_species(plot_species, occurrences, records_dir=None):
    """Build the species summary table.

    Parameters
    ----------
    plot_species : pd.DataFrame
        ``family`` and ``species``, already sorted.
    occurrences : pd.DataFrame
        Enriched occurrence records.
    records_dir : str, optional
        If given, each species' records are written there as
        ``Genus_species.csv``.

    Returns
    -------
    tuple[pd.DataFrame, list[str]]
        Summary (familia, especie, annual temperature, annual
        precipitation) in input order, and the files written.
    """
    rows = []
    written = []

    for family, species in plot_species[["family", "species"]].itertuples(index=False):
        log.info("Processing %s ...", species, extra={"species": species})
        records = species_records(occurrences, family, species)
        temperature, precipitation = species_means(records)

        if records_dir is not None:
            path = os.path.join(records_dir, species_file_name(species))
            if path in written:
                log.warning("Records file %s already written; skipping %s", path, species)
            else:
                written.append(write_species_records(records, path))

        if len(records) == 0:
            log.debug("No occurrence records for %s", species)

        rows.append({
            "familia": family,
            "especie": species,
            T_COL: temperature,
            P_COL: precipitation,
        })

    summary = pd.DataFrame(rows, columns=["familia", "especie", T_COL, P_COL])
    summary = summary.astype({T_COL: "float64", P_COL: "float64"})

    without = int(summary[T_COL].isna().sum())
    log.info(
        "Aggregated %d species (%d without temperature values)",
        len(summary), without,
    )
    return summary, written
