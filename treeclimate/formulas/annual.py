"""
Reduction of twelve monthly climate samples to an annual mean.

The mean skips missing months. A record with no valid month at all
gets NaN, never 0, so it is excluded from the species means downstream.
"""

from treeclimate import config


def monthly_columns(prefix):
    """Column names of the twelve monthly samples, e.g. temp_01 .. temp_12."""
    return [f"{prefix}_{m:02d}" for m in config.MONTHS]


def annual_mean(monthly):
    """Row-wise NaN-skipping mean of monthly values.

    Parameters
    ----------
    monthly : pd.DataFrame
        One column per month.

    Returns
    -------
    pd.Series
        float64; NaN where every month is missing.
    """
    return monthly.astype("float64").mean(axis=1, skipna=True)


def add_annual_mean(records, sampled, prefix, out_col):
    """Join monthly samples and their annual mean onto the records by ID.

    Parameters
    ----------
    records : pd.DataFrame
        Occurrence records with an ``ID`` column.
    sampled : pd.DataFrame
        ``ID`` plus ``{prefix}_01`` .. ``{prefix}_12``.
    prefix : str
        Monthly column prefix.
    out_col : str
        Name of the annual mean column.

    Returns
    -------
    pd.DataFrame
        *records* with the monthly columns and *out_col* appended. Row
        order and count are unchanged.
    """
    cols = monthly_columns(prefix)
    climate = sampled[["ID"] + cols].copy()
    climate[out_col] = annual_mean(climate[cols])

    return records.merge(climate, on="ID", how="left", validate="one_to_one")
