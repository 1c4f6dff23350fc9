"""
Centralized configuration for the tree species climate pipeline.

All input locations, column mappings, WorldClim parameters, output
paths and validation ranges are defined here. Paths are relative to
the working directory the pipeline is launched from.
"""

import os

# ─── INPUT DATA ──────────────────────────────────────────────────────────
DEFAULT_DATA_DIR = os.path.join("datos", "originales")

# Species identified in the sampling plots
PLOT_SPECIES_XLSX = "Lista Spp Únicas.xlsx"
PLOT_SPECIES_COLUMNS = {"Familia": "family", "Accepted_name": "species"}

# Costa Rica tree species and their IUCN Red List categories
RED_LIST_XLSX = "Costa Rica Analysis 2024.xlsx"
RED_LIST_COLUMNS = {
    "Check_TaxonName": "species",
    "IUCN_Red_List": "category_iucn_redlist",
}

# Occurrence records: a zip archive holding a single CSV
OCCURRENCES_ZIP = "points_data.zip"
OCCURRENCES_CSV = "points_data.csv"
OCCURRENCE_LON_COL = "longitude"
OCCURRENCE_LAT_COL = "latitude"
OCCURRENCE_SPECIES_COL = "sci_name"

# Occurrence coordinates are assumed (not verified) to be WGS84.
OCCURRENCE_CRS = "EPSG:4326"

# ─── WORLDCLIM ───────────────────────────────────────────────────────────
# WorldClim 2.1 historical monthly climate (1970-2000).
# Citation: Fick, S.E. & Hijmans, R.J. (2017). WorldClim 2: new 1-km
#           spatial resolution climate surfaces for global land areas.
#           Int. J. Climatology, 37(12), 4302-4315.
WORLDCLIM_BASE_URL = "https://geodata.ucdavis.edu/climate/worldclim/2_1/base"
WORLDCLIM_VERSION = "wc2.1"

# Resolution in arc-minutes → WorldClim file code
WORLDCLIM_RESOLUTIONS = {
    10: "10m",
    5: "5m",
    2.5: "2.5m",
    0.5: "30s",
}
RESOLUTION = 0.5

TEMPERATURE_VAR = "tavg"   # monthly mean temperature (°C)
PRECIPITATION_VAR = "prec"  # monthly total precipitation (mm)
MONTHS = range(1, 13)

DEFAULT_WORLDCLIM_DIR = os.path.join(DEFAULT_DATA_DIR, "worldclim")

DOWNLOAD_TIMEOUT_SECONDS = 120
DOWNLOAD_CHUNK_BYTES = 1024 * 1024
# Batch job: a failed download aborts the run instead of being retried.
DOWNLOAD_MAX_RETRIES = 0
USER_AGENT = "treeclimate/1.0"

# Column prefixes for the sampled monthly values
TEMPERATURE_PREFIX = "temp"
PRECIPITATION_PREFIX = "prec"

# ─── OUTPUTS ─────────────────────────────────────────────────────────────
DEFAULT_OUTPUT_DIR = "salidas"
SUMMARY_CSV = "especies-promedios-temperatura-precipitacion-categorias-listaroja.csv"
SPECIES_RECORDS_DIR = "registros-presencia"
PIPELINE_RUN_JSON = "pipeline_run.json"

ANNUAL_TEMPERATURE_COL = "temperatura_promedio_anual"
ANNUAL_PRECIPITATION_COL = "precipitacion_promedio_anual"

SPECIES_RECORD_COLUMNS = [
    "familia",
    "especie",
    "x",
    "y",
    ANNUAL_TEMPERATURE_COL,
    ANNUAL_PRECIPITATION_COL,
]

SUMMARY_COLUMNS = [
    "familia",
    "especie",
    "categoria_listaroja",
    ANNUAL_TEMPERATURE_COL,
    ANNUAL_PRECIPITATION_COL,
]

# Missing-value markers in the written CSVs
SUMMARY_NA_REP = ""
SPECIES_RECORDS_NA_REP = "NA"

# ─── VALIDATION RANGES ───────────────────────────────────────────────────
# Physical bounds for WorldClim surfaces, used by the pandera gates.
TEMPERATURE_RANGE_C = (-60.0, 50.0)
PRECIPITATION_RANGE_MM = (0.0, 12000.0)
LONGITUDE_RANGE = (-180.0, 180.0)
LATITUDE_RANGE = (-90.0, 90.0)


def get_run_paths(data_dir=None, output_dir=None, worldclim_dir=None):
    """Resolve every input and output path for one pipeline run.

    Parameters
    ----------
    data_dir : str, optional
        Directory holding the input spreadsheets and archive.
    output_dir : str, optional
        Directory receiving the summary and per-species tables.
    worldclim_dir : str, optional
        WorldClim download/cache directory. Defaults to
        ``{data_dir}/worldclim``.

    Returns
    -------
    dict
        Mapping of path role → path.
    """
    data_dir = data_dir or DEFAULT_DATA_DIR
    output_dir = output_dir or DEFAULT_OUTPUT_DIR
    worldclim_dir = worldclim_dir or os.path.join(data_dir, "worldclim")

    return {
        "data_dir": data_dir,
        "plot_species_xlsx": os.path.join(data_dir, PLOT_SPECIES_XLSX),
        "red_list_xlsx": os.path.join(data_dir, RED_LIST_XLSX),
        "occurrences_zip": os.path.join(data_dir, OCCURRENCES_ZIP),
        "worldclim_dir": worldclim_dir,
        "output_dir": output_dir,
        "summary_csv": os.path.join(output_dir, SUMMARY_CSV),
        "species_records_dir": os.path.join(output_dir, SPECIES_RECORDS_DIR),
        "pipeline_run_json": os.path.join(output_dir, PIPELINE_RUN_JSON),
    }
