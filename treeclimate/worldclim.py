"""
WorldClim monthly climate layers: download, cache and point sampling.

WorldClim 2.1 distributes each variable as a zip of twelve single-band
GeoTIFFs, one per calendar month, named
``wc2.1_{res}_{var}_{MM}.tif``. Layers are cached under
``{cache_dir}/wc2.1_{res}/`` and reused by later runs.

Sampling uses nearest-cell semantics: a point takes the value of the
cell that contains it. Points outside the raster, on nodata cells, or
without geometry yield NaN.
"""

import os
import shutil
import zipfile

import numpy as np
import pandas as pd
import rasterio
from rasterio.crs import CRS

from treeclimate import config
from treeclimate.api_utils import download_file
from treeclimate.logging_config import get_pipeline_logger
from treeclimate.pipeline_types import ClimateLayerSet

log = get_pipeline_logger(__name__)


def resolution_code(resolution):
    """Map a resolution in arc-minutes to the WorldClim file code."""
    code = config.WORLDCLIM_RESOLUTIONS.get(resolution)
    if code is None:
        raise ValueError(
            f"Unsupported WorldClim resolution {resolution!r}; "
            f"expected one of {sorted(config.WORLDCLIM_RESOLUTIONS)}"
        )
    return code


def layer_dir(resolution, cache_dir):
    return os.path.join(
        cache_dir, f"{config.WORLDCLIM_VERSION}_{resolution_code(resolution)}"
    )


def layer_paths(variable, resolution, cache_dir):
    """Expected paths of the twelve monthly layers, January first."""
    code = resolution_code(resolution)
    base = layer_dir(resolution, cache_dir)
    return [
        os.path.join(base, f"{config.WORLDCLIM_VERSION}_{code}_{variable}_{m:02d}.tif")
        for m in config.MONTHS
    ]


def archive_url(variable, resolution, base_url=config.WORLDCLIM_BASE_URL):
    code = resolution_code(resolution)
    return f"{base_url}/{config.WORLDCLIM_VERSION}_{code}_{variable}.zip"


def _extract_layers(zip_path, paths):
    """Pull the monthly GeoTIFFs out of a WorldClim archive.

    Members are matched on file name so archives with or without an
    inner folder both work.
    """
    with zipfile.ZipFile(zip_path) as zf:
        by_name = {os.path.basename(n): n for n in zf.namelist() if not n.endswith("/")}
        missing = [os.path.basename(p) for p in paths if os.path.basename(p) not in by_name]
        if missing:
            raise FileNotFoundError(
                f"{os.path.basename(zip_path)} lacks monthly layers: {missing}"
            )
        for path in paths:
            with zf.open(by_name[os.path.basename(path)]) as src, open(path, "wb") as dst:
                shutil.copyfileobj(src, dst)


def fetch_worldclim(variable, resolution=config.RESOLUTION,
                    cache_dir=config.DEFAULT_WORLDCLIM_DIR, session=None,
                    base_url=config.WORLDCLIM_BASE_URL):
    """Return the twelve monthly layers of *variable*, downloading if needed.

    Parameters
    ----------
    variable : str
        WorldClim variable name ("tavg", "prec", ...).
    resolution : float
        Resolution in arc-minutes (10, 5, 2.5 or 0.5).
    cache_dir : str
        Download/cache directory.
    session : requests.Session, optional
        Session used for the download.
    base_url : str
        WorldClim archive base URL.

    Returns
    -------
    ClimateLayerSet
    """
    paths = layer_paths(variable, resolution, cache_dir)

    if all(os.path.isfile(p) for p in paths):
        log.info(
            "Using cached WorldClim %s layers (%s) in %s",
            variable, resolution_code(resolution), os.path.dirname(paths[0]),
        )
        return ClimateLayerSet(variable=variable, resolution=resolution, paths=paths)

    target_dir = layer_dir(resolution, cache_dir)
    os.makedirs(target_dir, exist_ok=True)
    url = archive_url(variable, resolution, base_url)
    zip_path = os.path.join(target_dir, url.rsplit("/", 1)[-1])

    download_file(url, zip_path, session=session)
    try:
        _extract_layers(zip_path, paths)
    finally:
        os.remove(zip_path)

    log.info("Cached %d WorldClim %s layers in %s", len(paths), variable, target_dir)
    return ClimateLayerSet(
        variable=variable, resolution=resolution, paths=paths, downloaded=True
    )


def describe_layers(paths):
    """Read georeferencing metadata of each layer.

    Raises
    ------
    ValueError
        If a layer has more than one band.
    """
    info = []
    for path in paths:
        with rasterio.open(path) as src:
            if src.count != 1:
                raise ValueError(f"{path} has {src.count} bands, expected 1")
            info.append({
                "path": path,
                "crs": src.crs.to_string() if src.crs else None,
                "res": src.res,
                "width": src.width,
                "height": src.height,
                "nodata": src.nodata,
            })
    return info


def sample_raster(path, xs, ys):
    """Sample band 1 of *path* at the cells containing (xs, ys).

    Uses ``DatasetReader.sample``, which reads one cell per point, so
    widely scattered points never pull in more than they touch.

    Returns
    -------
    np.ndarray
        float64 values; NaN outside the raster or on nodata.
    """
    xs = np.asarray(xs, dtype="float64")
    ys = np.asarray(ys, dtype="float64")
    if len(xs) == 0:
        return np.full(0, np.nan)

    with rasterio.open(path) as src:
        samples = [
            np.ma.asarray(v)
            for v in src.sample(zip(xs, ys), indexes=1, masked=True)
        ]
        nodata = src.nodata
        dtype = src.dtypes[0]

    stacked = np.ma.concatenate(samples)
    missing = np.ma.getmaskarray(stacked).copy()
    raw = np.ma.getdata(stacked)
    if nodata is not None:
        # out-of-bounds points come back as the nodata value
        missing |= raw == np.asarray(nodata, dtype=dtype)

    values = raw.astype("float64")
    values[missing] = np.nan
    return values


def sample_layers(points, paths, prefix):
    """Sample monthly layers at every occurrence point.

    Parameters
    ----------
    points : gpd.GeoDataFrame
        Occurrence records with ``ID``, ``x`` and ``y``.
    paths : list[str]
        Monthly layer paths, January first.
    prefix : str
        Column prefix, e.g. "temp" → temp_01 .. temp_12.

    Returns
    -------
    pd.DataFrame
        ``ID`` plus one column per month.
    """
    valid = (points["x"].notna() & points["y"].notna()).to_numpy()
    xs = points["x"].to_numpy()[valid]
    ys = points["y"].to_numpy()[valid]

    sampled = pd.DataFrame({"ID": points["ID"].to_numpy()})
    for month, path in enumerate(paths, start=1):
        column = np.full(len(points), np.nan)
        column[valid] = sample_raster(path, xs, ys)
        sampled[f"{prefix}_{month:02d}"] = column

    missing = int(sampled.drop(columns="ID").isna().all(axis=1).sum())
    if missing:
        log.warning(
            "%d of %d records have no %s value in any month",
            missing, len(sampled), prefix,
        )
    return sampled


def check_crs(layer_info, points_crs):
    """Warn when layers and points disagree on CRS; nothing is reprojected."""
    for info in layer_info:
        if not info["crs"] or not points_crs:
            continue
        if CRS.from_user_input(info["crs"]) != CRS.from_user_input(points_crs):
            log.warning(
                "Layer %s is in %s but points are in %s",
                os.path.basename(info["path"]), info["crs"], points_crs,
            )
