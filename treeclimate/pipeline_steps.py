"""
Pipeline step functions.

Each function is one discrete, testable stage with explicit inputs and
outputs. Timing, error capture and logging are handled by
``run_step()``; every step returns ``(StepResult, data)``.
"""

import os

from treeclimate import config
from treeclimate.logging_config import get_pipeline_logger
from treeclimate.step_runner import run_step

log = get_pipeline_logger(__name__)


def step_load_plot_species(xlsx_path: str) -> tuple:
    """Load the sorted list of species found in the plots."""
    from treeclimate.loaders import load_plot_species

    return run_step(
        "load_plot_species", load_plot_species, xlsx_path,
        input_summary={"xlsx_path": xlsx_path},
        output_summary_fn=lambda df: {"species": len(df)},
    )


def step_load_red_list(xlsx_path: str) -> tuple:
    """Load the Red List lookup table."""
    from treeclimate.loaders import load_red_list

    return run_step(
        "load_red_list", load_red_list, xlsx_path,
        input_summary={"xlsx_path": xlsx_path},
        output_summary_fn=lambda df: {
            "entries": len(df),
            "with_category": int(df["category_iucn_redlist"].notna().sum()),
        },
    )


def step_load_occurrences(zip_path: str, scratch_dir: str,
                          member: str = config.OCCURRENCES_CSV) -> tuple:
    """Extract the occurrence CSV to scratch space and load it."""
    from treeclimate.loaders import extract_archive_member, load_occurrences

    def _work():
        csv_path = extract_archive_member(zip_path, member, scratch_dir)
        return load_occurrences(csv_path)

    return run_step(
        "load_occurrences", _work,
        input_summary={"zip_path": zip_path, "member": member},
        output_summary_fn=lambda df: {
            "records": len(df),
            "species": int(df["species"].nunique()),
        },
    )


def step_geocode(occurrences) -> tuple:
    """Assign WGS84 point geometry and x/y columns."""
    from treeclimate.geocoding import to_wgs84_points

    return run_step(
        "geocode", to_wgs84_points, occurrences,
        input_summary={"records": len(occurrences)},
        output_summary_fn=lambda gdf: {
            "records": len(gdf),
            "crs": str(gdf.crs),
            "without_coordinates": int(gdf["x"].isna().sum()),
        },
    )


def step_fetch_climate(variable: str, resolution: float, cache_dir: str,
                       session=None, points_crs=config.OCCURRENCE_CRS) -> tuple:
    """Obtain the twelve monthly WorldClim layers of *variable*."""
    from treeclimate.worldclim import check_crs, describe_layers, fetch_worldclim

    def _work():
        layers = fetch_worldclim(variable, resolution, cache_dir, session=session)
        info = describe_layers(layers.paths)
        check_crs(info, points_crs)
        log.info(
            "WorldClim %s: %d layers, %dx%d cells, res=%s, crs=%s",
            variable, len(info), info[0]["width"], info[0]["height"],
            info[0]["res"], info[0]["crs"],
        )
        return layers

    return run_step(
        f"fetch_{variable}", _work,
        input_summary={
            "variable": variable,
            "resolution": resolution,
            "cache_dir": cache_dir,
        },
        output_summary_fn=lambda layers: {
            "layers": len(layers.paths),
            "downloaded": layers.downloaded,
        },
    )


def step_sample_climate(points, layers, prefix: str, out_col: str) -> tuple:
    """Sample monthly layers at each record and add the annual mean."""
    from treeclimate.formulas.annual import add_annual_mean
    from treeclimate.worldclim import sample_layers

    def _work():
        sampled = sample_layers(points, layers.paths, prefix)
        return add_annual_mean(points, sampled, prefix, out_col)

    return run_step(
        f"sample_{layers.variable}", _work,
        input_summary={"records": len(points), "variable": layers.variable},
        output_summary_fn=lambda df: {
            "records": len(df),
            "with_value": int(df[out_col].notna().sum()),
            "mean": round(float(df[out_col].mean()), 3) if df[out_col].notna().any() else None,
        },
    )


def step_aggregate_species(plot_species, occurrences, records_dir: str) -> tuple:
    """Average annual climate per species and write per-species records."""
    from treeclimate.aggregation import aggregate_species

    def _work():
        os.makedirs(records_dir, exist_ok=True)
        return aggregate_species(plot_species, occurrences, records_dir=records_dir)

    return run_step(
        "aggregate_species", _work,
        input_summary={
            "species": len(plot_species),
            "records": len(occurrences),
            "records_dir": records_dir,
        },
        output_summary_fn=lambda res: {
            "species": len(res[0]),
            "files_written": len(res[1]),
            "without_records": int(res[0][config.ANNUAL_TEMPERATURE_COL].isna().sum()),
        },
    )


def step_join_red_list(summary, red_list) -> tuple:
    """Attach Red List categories by exact species name."""
    from treeclimate.red_list import join_red_list

    return run_step(
        "join_red_list", join_red_list, summary, red_list,
        input_summary={"species": len(summary), "red_list_entries": len(red_list)},
        output_summary_fn=lambda df: {
            "species": len(df),
            "with_category": int(df["categoria_listaroja"].notna().sum()),
        },
    )


def step_write_summary(final_df, csv_path: str) -> tuple:
    """Save the final species summary table."""
    from treeclimate.outputs import write_summary

    return run_step(
        "write_summary", write_summary, final_df, csv_path,
        input_summary={"species": len(final_df)},
        output_summary_fn=lambda p: {"csv_path": p},
    )
