"""
Input loaders: plot species list, Red List lookup, occurrence archive.

Every loader fails loudly. A missing file raises FileNotFoundError, a
missing column raises KeyError; the pipeline treats both as fatal.
"""

import os
import zipfile

import numpy as np
import pandas as pd

from treeclimate import config
from treeclimate.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def _require_file(path):
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Input file not found: {path}")


def _select_renamed(df, column_map, source):
    missing = [c for c in column_map if c not in df.columns]
    if missing:
        raise KeyError(f"{source} is missing required columns: {missing}")
    return df[list(column_map)].rename(columns=column_map)


def load_plot_species(path):
    """Load the species identified in the sampling plots.

    Columns ``Familia`` and ``Accepted_name`` become ``family`` and
    ``species``; rows are sorted by species name (code-point order).
    Rows without a species name are dropped.

    Parameters
    ----------
    path : str
        Path to the plots spreadsheet.

    Returns
    -------
    pd.DataFrame
        Columns: family, species.
    """
    _require_file(path)
    raw = pd.read_excel(path, engine="openpyxl")
    df = _select_renamed(raw, config.PLOT_SPECIES_COLUMNS, os.path.basename(path))

    blank = df["species"].isna()
    if blank.any():
        log.warning("Dropping %d plot rows without a species name", int(blank.sum()))
        df = df[~blank]

    df = df.astype({"species": str})
    dupes = df["species"][df["species"].duplicated()].unique().tolist()
    if dupes:
        log.warning("Duplicated species in plot list: %s", dupes)

    df = df.sort_values("species", kind="stable").reset_index(drop=True)
    log.info("Loaded %d plot species from %s", len(df), path)
    return df


def load_red_list(path):
    """Load the IUCN Red List lookup (species → category).

    Empty category cells stay null.

    Returns
    -------
    pd.DataFrame
        Columns: species, category_iucn_redlist.
    """
    _require_file(path)
    raw = pd.read_excel(path, engine="openpyxl")
    df = _select_renamed(raw, config.RED_LIST_COLUMNS, os.path.basename(path))
    df = df.astype(object).where(df.notna(), None)
    blank = df["category_iucn_redlist"].map(
        lambda v: isinstance(v, str) and not v.strip()
    ).astype(bool)
    df.loc[blank, "category_iucn_redlist"] = None
    log.info("Loaded %d Red List entries from %s", len(df), path)
    return df


def extract_archive_member(zip_path, member, dest_dir):
    """Extract one file from a zip archive into *dest_dir*.

    Returns
    -------
    str
        Path of the extracted file.

    Raises
    ------
    FileNotFoundError
        If the archive does not exist.
    KeyError
        If the archive has no entry named *member*.
    zipfile.BadZipFile
        If the archive is corrupt.
    """
    _require_file(zip_path)
    os.makedirs(dest_dir, exist_ok=True)
    with zipfile.ZipFile(zip_path) as zf:
        extracted = zf.extract(member, path=dest_dir)
    log.info("Extracted %s from %s", member, os.path.basename(zip_path))
    return extracted


def load_occurrences(csv_path):
    """Load geocoded occurrence records.

    Each record gets a sequential ``ID`` (1-based, file order) that keys
    the later climate joins. Empty coordinates are kept as NaN; a
    coordinate that is present but not a number raises ValueError.

    Returns
    -------
    pd.DataFrame
        Columns: ID, species, longitude, latitude.
    """
    _require_file(csv_path)
    raw = pd.read_csv(csv_path, dtype={config.OCCURRENCE_SPECIES_COL: str})
    column_map = {
        config.OCCURRENCE_SPECIES_COL: "species",
        config.OCCURRENCE_LON_COL: "longitude",
        config.OCCURRENCE_LAT_COL: "latitude",
    }
    df = _select_renamed(raw, column_map, os.path.basename(csv_path))
    for col in ("longitude", "latitude"):
        parsed = pd.to_numeric(df[col], errors="coerce")
        unparsable = parsed.isna() & df[col].notna()
        if unparsable.any():
            raise ValueError(
                f"{os.path.basename(csv_path)}: {int(unparsable.sum())} {col} values "
                f"are not numbers, e.g. {df.loc[unparsable, col].iloc[0]!r}"
            )
        df[col] = parsed.astype(float)
    df.insert(0, "ID", np.arange(1, len(df) + 1, dtype="int64"))

    no_coords = int((df["longitude"].isna() | df["latitude"].isna()).sum())
    if no_coords:
        log.warning("%d occurrence records have no coordinates", no_coords)
    log.info(
        "Loaded %d occurrence records (%d species)",
        len(df), df["species"].nunique(),
    )
    return df
