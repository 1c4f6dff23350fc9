"""
Shared fixtures for the species climate pipeline tests.

Provides synthetic WorldClim-style monthly rasters, input spreadsheets
and a zipped occurrence file, so each test module can check pipeline
logic against known values without network access.
"""

import os
import zipfile

import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.transform import from_bounds


# ---------------------------------------------------------------------------
# Synthetic raster geometry: 8x8 cells of 0.5° over Costa Rica
# ---------------------------------------------------------------------------
WEST, SOUTH, EAST, NORTH = -86.0, 8.0, -82.0, 12.0
RES = 0.5
WIDTH = int((EAST - WEST) / RES)
HEIGHT = int((NORTH - SOUTH) / RES)
TRANSFORM = from_bounds(WEST, SOUTH, EAST, NORTH, WIDTH, HEIGHT)

# Resolution used for the synthetic cache (WorldClim code "10m")
TEST_RESOLUTION = 10

TEMP_NODATA = -9999.0
PREC_NODATA = -32768

# Known points (lon, lat)
INTERIOR_A = (-83.9, 9.9)
INTERIOR_B = (-83.4, 9.4)
NODATA_CELL = (-85.75, 11.75)    # row 0, col 0: nodata in every month
PARTIAL_CELL = (-85.25, 11.75)   # row 0, col 1: temperature nodata in January
OUTSIDE = (-90.0, 10.0)


def _write_layer(path, data, nodata, dtype):
    meta = {
        "driver": "GTiff",
        "height": data.shape[0],
        "width": data.shape[1],
        "count": 1,
        "dtype": dtype,
        "crs": "EPSG:4326",
        "transform": TRANSFORM,
        "nodata": nodata,
    }
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with rasterio.open(path, "w", **meta) as dst:
        dst.write(data.astype(dtype), 1)
    return path


def monthly_temperature(month):
    """Temperature layer for *month*: the month number everywhere."""
    data = np.full((HEIGHT, WIDTH), float(month), dtype="float32")
    data[0, 0] = TEMP_NODATA
    if month == 1:
        data[0, 1] = TEMP_NODATA
    return data


def monthly_precipitation(month):
    """Precipitation layer for *month*: 100 mm × month number."""
    data = np.full((HEIGHT, WIDTH), 100 * month, dtype="int16")
    data[0, 0] = PREC_NODATA
    return data


def write_worldclim_cache(cache_dir, resolution=TEST_RESOLUTION):
    """Write tavg and prec monthly layers where fetch_worldclim expects them."""
    from treeclimate.worldclim import layer_paths

    paths = {}
    for var, builder, nodata, dtype in (
        ("tavg", monthly_temperature, TEMP_NODATA, "float32"),
        ("prec", monthly_precipitation, PREC_NODATA, "int16"),
    ):
        var_paths = layer_paths(var, resolution, cache_dir)
        for month, path in enumerate(var_paths, start=1):
            _write_layer(path, builder(month), nodata, dtype)
        paths[var] = var_paths
    return paths


@pytest.fixture
def worldclim_cache(tmp_path):
    """Populated WorldClim cache directory; returns (cache_dir, paths)."""
    cache_dir = str(tmp_path / "worldclim")
    return cache_dir, write_worldclim_cache(cache_dir)


# ---------------------------------------------------------------------------
# Input tables
# ---------------------------------------------------------------------------

PLOT_SPECIES_ROWS = [
    {"Familia": "Fagaceae", "Accepted_name": "Quercus costaricensis", "Parcelas": 4},
    {"Familia": "Lauraceae", "Accepted_name": "Ocotea nueva", "Parcelas": 1},
    {"Familia": "Fagaceae", "Accepted_name": "Quercus bumelioides", "Parcelas": 2},
]

RED_LIST_ROWS = [
    {"Check_TaxonName": "Quercus costaricensis", "IUCN_Red_List": "Vulnerable", "Notes": ""},
    {"Check_TaxonName": "quercus bumelioides", "IUCN_Red_List": "Least Concern", "Notes": ""},
    {"Check_TaxonName": "Ocotea nueva", "IUCN_Red_List": None, "Notes": "pending"},
]

OCCURRENCE_ROWS = [
    {"gbifID": 101, "sci_name": "Quercus costaricensis",
     "longitude": INTERIOR_A[0], "latitude": INTERIOR_A[1]},
    {"gbifID": 102, "sci_name": "Quercus costaricensis",
     "longitude": INTERIOR_B[0], "latitude": INTERIOR_B[1]},
    {"gbifID": 103, "sci_name": "Quercus costaricensis",
     "longitude": None, "latitude": None},
    {"gbifID": 104, "sci_name": "Quercus bumelioides",
     "longitude": NODATA_CELL[0], "latitude": NODATA_CELL[1]},
    {"gbifID": 105, "sci_name": "Quercus bumelioides",
     "longitude": OUTSIDE[0], "latitude": OUTSIDE[1]},
    {"gbifID": 106, "sci_name": "Quercus bumelioides",
     "longitude": PARTIAL_CELL[0], "latitude": PARTIAL_CELL[1]},
    {"gbifID": 107, "sci_name": "Pinus caribaea",
     "longitude": INTERIOR_A[0], "latitude": INTERIOR_A[1]},
]


def write_inputs(data_dir, plot_rows=PLOT_SPECIES_ROWS, red_list_rows=RED_LIST_ROWS,
                 occurrence_rows=OCCURRENCE_ROWS):
    """Write the three pipeline inputs into *data_dir*; returns their paths."""
    from treeclimate import config

    os.makedirs(data_dir, exist_ok=True)
    plots_path = os.path.join(data_dir, config.PLOT_SPECIES_XLSX)
    red_list_path = os.path.join(data_dir, config.RED_LIST_XLSX)
    zip_path = os.path.join(data_dir, config.OCCURRENCES_ZIP)

    pd.DataFrame(plot_rows).to_excel(plots_path, index=False, engine="openpyxl")
    pd.DataFrame(red_list_rows).to_excel(red_list_path, index=False, engine="openpyxl")

    csv_text = pd.DataFrame(occurrence_rows).to_csv(index=False)
    with zipfile.ZipFile(zip_path, "w") as zf:
        zf.writestr(config.OCCURRENCES_CSV, csv_text)

    return {
        "plot_species_xlsx": plots_path,
        "red_list_xlsx": red_list_path,
        "occurrences_zip": zip_path,
    }


@pytest.fixture
def input_files(tmp_path):
    """Pipeline inputs under tmp_path/datos; returns dict of paths."""
    return write_inputs(str(tmp_path / "datos"))


@pytest.fixture
def run_paths(tmp_path, input_files, worldclim_cache):
    """Complete path set for a pipeline run with a pre-populated cache."""
    from treeclimate import config

    cache_dir, _ = worldclim_cache
    return config.get_run_paths(
        data_dir=str(tmp_path / "datos"),
        output_dir=str(tmp_path / "salidas"),
        worldclim_dir=cache_dir,
    )


@pytest.fixture
def enriched_occurrences():
    """Occurrence records as they look after climate enrichment."""
    return pd.DataFrame({
        "ID": [1, 2, 3, 4],
        "species": [
            "Quercus costaricensis",
            "Quercus costaricensis",
            "Ocotea insularis",
            "Quercus costaricensis ",
        ],
        "x": [-83.9, -83.4, -84.1, -84.0],
        "y": [9.9, 9.4, 10.2, 10.0],
        "temperatura_promedio_anual": [18.2, 19.0, 22.5, 5.0],
        "precipitacion_promedio_anual": [2100.0, np.nan, 3000.0, 100.0],
    })
