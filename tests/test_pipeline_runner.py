"""
End-to-end tests for treeclimate/pipeline_runner.py.

Runs the whole pipeline on the synthetic inputs and WorldClim cache from
conftest.py and checks the summary table, the per-species files, the
provenance JSON and the abort behaviour.
"""

import json
import os

import numpy as np
import pandas as pd
import pytest

from conftest import OCCURRENCE_ROWS, TEST_RESOLUTION, write_inputs
from treeclimate.logging_config import reset_logging
from treeclimate.pipeline_runner import (
    main,
    parse_args,
    run_pipeline,
    save_pipeline_result,
    track_nan_counts,
)

T_COL = "temperatura_promedio_anual"
P_COL = "precipitacion_promedio_anual"

EXPECTED_STEPS = [
    "load_plot_species",
    "load_red_list",
    "load_occurrences",
    "geocode",
    "fetch_tavg",
    "sample_tavg",
    "fetch_prec",
    "sample_prec",
    "aggregate_species",
    "join_red_list",
    "write_summary",
]


@pytest.fixture
def isolated_logging(tmp_path, monkeypatch):
    """Keep main()'s log files inside tmp_path and reset handlers afterwards."""
    monkeypatch.chdir(tmp_path)
    reset_logging()
    yield
    reset_logging()


# ── Full run ────────────────────────────────────────────────────────────


class TestRunPipeline:

    def test_all_steps_succeed(self, run_paths):
        result, final_df = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        assert result.all_ok, [s.error for s in result.failed_steps]
        assert [s.step_name for s in result.step_results] == EXPECTED_STEPS
        assert final_df is not None

    def test_summary_values(self, run_paths):
        _, final_df = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        df = final_df.set_index("especie")

        assert list(final_df["especie"]) == [
            "Ocotea nueva", "Quercus bumelioides", "Quercus costaricensis",
        ]
        # two interior records, one without coordinates
        assert df.loc["Quercus costaricensis", T_COL] == pytest.approx(6.5)
        assert df.loc["Quercus costaricensis", P_COL] == pytest.approx(650.0)
        # nodata cell and outside point contribute nothing; January missing
        assert df.loc["Quercus bumelioides", T_COL] == pytest.approx(7.0)
        assert df.loc["Quercus bumelioides", P_COL] == pytest.approx(650.0)
        # no occurrence records at all
        assert np.isnan(df.loc["Ocotea nueva", T_COL])
        assert np.isnan(df.loc["Ocotea nueva", P_COL])

    def test_red_list_categories(self, run_paths):
        _, final_df = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        df = final_df.set_index("especie")
        assert df.loc["Quercus costaricensis", "categoria_listaroja"] == "Vulnerable"
        # listed only in lowercase
        assert pd.isna(df.loc["Quercus bumelioides", "categoria_listaroja"])
        # listed without a category
        assert pd.isna(df.loc["Ocotea nueva", "categoria_listaroja"])

    def test_summary_csv_written(self, run_paths):
        run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        lines = open(run_paths["summary_csv"], encoding="utf-8").read().splitlines()
        assert lines[0] == f"familia,especie,categoria_listaroja,{T_COL},{P_COL}"
        assert lines[1] == "Lauraceae,Ocotea nueva,,,"
        assert len(lines) == 4

    def test_species_files_written(self, run_paths):
        result, _ = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        records_dir = run_paths["species_records_dir"]
        assert sorted(os.listdir(records_dir)) == [
            "Ocotea_nueva.csv",
            "Quercus_bumelioides.csv",
            "Quercus_costaricensis.csv",
        ]
        assert len(result.output_files) == 4

    def test_species_file_keeps_unsampled_records(self, run_paths):
        run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        path = os.path.join(run_paths["species_records_dir"], "Quercus_costaricensis.csv")
        lines = open(path, encoding="utf-8").read().splitlines()
        assert len(lines) == 4
        assert lines[3] == "Fagaceae,Quercus costaricensis,NA,NA,NA,NA"

    def test_unlisted_occurrence_species_ignored(self, run_paths):
        _, final_df = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        assert "Pinus caribaea" not in final_df["especie"].tolist()
        assert not os.path.exists(
            os.path.join(run_paths["species_records_dir"], "Pinus_caribaea.csv")
        )

    def test_counts_recorded(self, run_paths):
        result, _ = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        assert result.occurrences_loaded == len(OCCURRENCE_ROWS)
        assert result.species_processed == 3
        assert result.resolution == TEST_RESOLUTION

    def test_nan_summary_tracked(self, run_paths):
        result, _ = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        sample_prec = next(s for s in result.step_results if s.step_name == "sample_prec")
        # missing geometry, nodata cell, outside point
        assert sample_prec.nan_summary[P_COL] == 3

    def test_scratch_directory_cleaned(self, run_paths, tmp_path):
        run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        assert not os.path.exists(os.path.join(run_paths["data_dir"], "points_data.csv"))
        assert not os.path.exists(os.path.join(run_paths["output_dir"], "points_data.csv"))


# ── Aborts ──────────────────────────────────────────────────────────────


class TestPipelineAborts:

    def test_missing_input_aborts(self, run_paths):
        os.remove(run_paths["red_list_xlsx"])
        result, final_df = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        assert final_df is None
        assert [s.step_name for s in result.failed_steps] == ["load_red_list"]
        assert result.step_results[-1].step_name == "load_red_list"
        assert not os.path.exists(run_paths["summary_csv"])

    def test_missing_archive_member_aborts(self, run_paths):
        import zipfile

        with zipfile.ZipFile(run_paths["occurrences_zip"], "w") as zf:
            zf.writestr("other.csv", "x\n1\n")
        result, final_df = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        assert final_df is None
        assert result.failed_steps[0].step_name == "load_occurrences"

    def test_download_failure_aborts(self, run_paths, tmp_path):
        """An empty cache with an unreachable source stops before sampling."""
        import requests

        class FailingSession:
            def get(self, url, **kwargs):
                raise requests.ConnectionError("unreachable")

        run_paths["worldclim_dir"] = str(tmp_path / "empty_cache")
        result, final_df = run_pipeline(
            run_paths, resolution=TEST_RESOLUTION, session=FailingSession()
        )
        assert final_df is None
        assert result.failed_steps[0].step_name == "fetch_tavg"
        assert "sample_tavg" not in [s.step_name for s in result.step_results]

    def test_unparsable_coordinate_aborts(self, run_paths):
        rows = OCCURRENCE_ROWS + [
            {"gbifID": 108, "sci_name": "Quercus costaricensis",
             "longitude": "84 W", "latitude": 10.0},
        ]
        write_inputs(run_paths["data_dir"], occurrence_rows=rows)
        result, final_df = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        assert final_df is None
        assert result.failed_steps[0].step_name == "load_occurrences"
        assert "not numbers" in result.failed_steps[0].error

    def test_unsupported_resolution_aborts(self, run_paths):
        result, final_df = run_pipeline(run_paths, resolution=3)
        assert final_df is None
        assert result.failed_steps[0].step_name == "fetch_tavg"


# ── Validation gates ────────────────────────────────────────────────────


class TestValidationModes:

    def _bad_coordinates(self, run_paths):
        rows = OCCURRENCE_ROWS + [
            {"gbifID": 108, "sci_name": "Quercus costaricensis",
             "longitude": -84.0, "latitude": 95.0},
        ]
        write_inputs(run_paths["data_dir"], occurrence_rows=rows)

    def test_lenient_records_warnings(self, run_paths):
        self._bad_coordinates(run_paths)
        result, final_df = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        assert final_df is not None
        geocode = next(s for s in result.step_results if s.step_name == "geocode")
        assert any("Schema violation" in w for w in geocode.warnings)

    def test_strict_aborts(self, run_paths):
        self._bad_coordinates(run_paths)
        result, final_df = run_pipeline(run_paths, resolution=TEST_RESOLUTION, strict=True)
        assert final_df is None
        assert result.step_results[-1].step_name == "validate_geocode"
        assert result.step_results[-1].status == "error"
        assert not os.path.exists(run_paths["summary_csv"])


# ── NaN tracking ────────────────────────────────────────────────────────


class TestTrackNanCounts:

    def test_counts_only_columns_with_nan(self):
        df = pd.DataFrame({"a": [1.0, np.nan], "b": [1.0, 2.0]})
        assert track_nan_counts(df, "step") == {"a": 1}

    def test_none_is_empty(self):
        assert track_nan_counts(None, "step") == {}

    def test_increase_warns(self, caplog):
        df = pd.DataFrame({"a": [np.nan, np.nan]})
        with caplog.at_level("WARNING"):
            track_nan_counts(df, "sample_prec", prev_nan_counts={"a": 1})
        assert "NaN count increased for 'a'" in caplog.text

    def test_new_column_does_not_warn(self, caplog):
        df = pd.DataFrame({"a": [np.nan], "b": [np.nan]})
        with caplog.at_level("WARNING"):
            track_nan_counts(df, "sample_tavg", prev_nan_counts={"a": 1})
        assert "increased" not in caplog.text


# ── Provenance and CLI ──────────────────────────────────────────────────


class TestProvenance:

    def test_saved_json(self, run_paths):
        result, _ = run_pipeline(run_paths, resolution=TEST_RESOLUTION)
        path = save_pipeline_result(result, run_paths["pipeline_run_json"])
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        assert data["all_ok"] is True
        assert len(data["steps"]) == len(EXPECTED_STEPS)

        assert data["species_processed"] == 3
        assert data["occurrences_loaded"] == len(OCCURRENCE_ROWS)
        assert [s["step_name"] for s in data["steps"]] == EXPECTED_STEPS
        assert all(s["status"] == "success" for s in data["steps"])


class TestCli:

    def test_defaults(self):
        args = parse_args([])
        assert args.data_dir == os.path.join("datos", "originales")
        assert args.output_dir == "salidas"
        assert args.worldclim_dir is None
        assert args.resolution == 0.5
        assert args.strict_validation is False

    def test_rejects_unknown_resolution(self):
        with pytest.raises(SystemExit):
            parse_args(["--resolution", "3"])

    def test_main_success(self, run_paths, isolated_logging):
        status = main([
            "--data-dir", run_paths["data_dir"],
            "--output-dir", run_paths["output_dir"],
            "--worldclim-dir", run_paths["worldclim_dir"],
            "--resolution", str(TEST_RESOLUTION),
        ])
        assert status == 0
        assert os.path.isfile(run_paths["summary_csv"])
        assert os.path.isfile(run_paths["pipeline_run_json"])
        assert os.path.isfile(os.path.join(run_paths["output_dir"], "pipeline.jsonl"))

    def test_main_failure_exit_status(self, tmp_path, isolated_logging):
        out = str(tmp_path / "salidas")
        status = main(["--data-dir", str(tmp_path / "missing"), "--output-dir", out])
        assert status == 1
        with open(os.path.join(out, "pipeline_run.json"), encoding="utf-8") as f:
            data = json.load(f)
        assert data["all_ok"] is False
        assert data["steps"][0]["step_name"] == "load_plot_species"
