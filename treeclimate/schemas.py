"""
Pandera DataFrame schemas for the pipeline validation gates.

Each gate checks structure and physical plausibility of one
intermediate table. Nullable climate columns are expected: records
outside the WorldClim land mask and species without occurrences carry
NaN by design.

Usage:
    from treeclimate.schemas import SpeciesSummarySchema
    SpeciesSummarySchema.validate(df)  # raises pa.errors.SchemaError
"""

import pandera as pa
from pandera import Check, Column, DataFrameSchema

from treeclimate import config

_T_MIN, _T_MAX = config.TEMPERATURE_RANGE_C
_P_MIN, _P_MAX = config.PRECIPITATION_RANGE_MM


# ── Inputs ──────────────────────────────────────────────────────────────

PlotSpeciesSchema = DataFrameSchema(
    columns={
        "family": Column(nullable=True),
        "species": Column(str, nullable=False),
    },
    strict=False,
    coerce=False,
    name="PlotSpeciesSchema",
)

RedListSchema = DataFrameSchema(
    columns={
        "species": Column(nullable=True),
        "category_iucn_redlist": Column(nullable=True),
    },
    strict=False,
    coerce=False,
    name="RedListSchema",
)

OccurrenceSchema = DataFrameSchema(
    columns={
        "ID": Column(int, Check.greater_than(0), unique=True, nullable=False),
        "species": Column(nullable=True),
        "x": Column(float, Check.in_range(*config.LONGITUDE_RANGE), nullable=True),
        "y": Column(float, Check.in_range(*config.LATITUDE_RANGE), nullable=True),
    },
    strict=False,
    coerce=False,
    name="OccurrenceSchema",
)


# ── Enriched occurrences ────────────────────────────────────────────────

ClimateRecordSchema = DataFrameSchema(
    columns={
        "ID": Column(int, unique=True, nullable=False),
        config.ANNUAL_TEMPERATURE_COL: Column(
            float, Check.in_range(_T_MIN, _T_MAX), nullable=True
        ),
        config.ANNUAL_PRECIPITATION_COL: Column(
            float, Check.in_range(_P_MIN, _P_MAX), nullable=True
        ),
    },
    strict=False,
    coerce=False,
    name="ClimateRecordSchema",
)


# ── Final summary ───────────────────────────────────────────────────────

SpeciesSummarySchema = DataFrameSchema(
    columns={
        "familia": Column(nullable=True),
        "especie": Column(str, nullable=False),
        "categoria_listaroja": Column(nullable=True),
        config.ANNUAL_TEMPERATURE_COL: Column(
            float, Check.in_range(_T_MIN, _T_MAX), nullable=True
        ),
        config.ANNUAL_PRECIPITATION_COL: Column(
            float, Check.in_range(_P_MIN, _P_MAX), nullable=True
        ),
    },
    strict=False,
    coerce=False,
    name="SpeciesSummarySchema",
)


def validate_schema(df, schema, step_name, strict=False):
    """Validate a DataFrame against a Pandera schema.

    Parameters
    ----------
    df : pd.DataFrame
    schema : pa.DataFrameSchema
    step_name : str
        Pipeline step name for messages.
    strict : bool
        If True, raise on failure. If False, return warnings.

    Returns
    -------
    list[str]
        Validation warning messages (empty if all pass).

    Raises
    ------
    ValueError
        Only if strict=True and validation fails.
    """
    warnings_list = []

    if df is None:
        msg = f"[{step_name}] DataFrame is None"
        if strict:
            raise ValueError(msg)
        return [msg]

    if len(df) == 0:
        msg = f"[{step_name}] DataFrame is empty (0 rows)"
        if strict:
            raise ValueError(msg)
        return [msg]

    try:
        schema.validate(df, lazy=True)
    except pa.errors.SchemaErrors as exc:
        for failure in exc.failure_cases.itertuples():
            warnings_list.append(
                f"[{step_name}] Schema violation: "
                f"column='{failure.column}' check='{failure.check}' "
                f"failure_case={failure.failure_case}"
            )

        if strict:
            raise ValueError(
                f"[{step_name}] Schema validation failed with "
                f"{len(warnings_list)} errors"
            ) from exc

    return warnings_list
