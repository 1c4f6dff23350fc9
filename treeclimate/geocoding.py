"""
Point geometry for occurrence records.

Occurrence coordinates are declared WGS84 (EPSG:4326) without
reprojection; WorldClim surfaces share that CRS, so no transform is
needed before sampling.
"""

import geopandas as gpd

from treeclimate import config
from treeclimate.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def to_wgs84_points(occurrences, crs=config.OCCURRENCE_CRS):
    """Attach point geometries and derived x/y columns.

    Records lacking a longitude or latitude get a null geometry and NaN
    x/y; they stay in the table so that their climate values surface as
    missing rather than disappearing.

    Parameters
    ----------
    occurrences : pd.DataFrame
        Must contain ``longitude`` and ``latitude``.
    crs : str
        CRS assigned to the points.

    Returns
    -------
    gpd.GeoDataFrame
        Input columns plus ``geometry``, ``x`` and ``y``.
    """
    has_coords = occurrences["longitude"].notna() & occurrences["latitude"].notna()
    points = gpd.points_from_xy(
        occurrences["longitude"].fillna(0.0), occurrences["latitude"].fillna(0.0)
    )
    geometry = gpd.GeoSeries(points, index=occurrences.index, crs=crs)
    geometry[~has_coords] = None

    gdf = gpd.GeoDataFrame(occurrences.copy(), geometry=geometry, crs=crs)
    gdf["x"] = gdf.geometry.x
    gdf["y"] = gdf.geometry.y

    log.info(
        "Geocoded %d records in %s (%d without coordinates)",
        len(gdf), crs, int((~has_coords).sum()),
    )
    return gdf
