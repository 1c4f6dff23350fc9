"""
IUCN Red List category join.

Names match by exact string equality only. Species absent from the
lookup, or listed without a category, keep a null category.
"""

from treeclimate import config
from treeclimate.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def join_red_list(summary, red_list):
    """Left-join Red List categories onto the species summary.

    Parameters
    ----------
    summary : pd.DataFrame
        Output of aggregate_species().
    red_list : pd.DataFrame
        ``species`` and ``category_iucn_redlist``.

    Returns
    -------
    pd.DataFrame
        One row per summary row, columns in output order.
    """
    lookup = red_list[["species", "category_iucn_redlist"]].dropna(subset=["species"])

    dupes = lookup["species"].duplicated(keep="first")
    if dupes.any():
        log.warning(
            "Red List has repeated names, keeping the first entry: %s",
            lookup.loc[dupes, "species"].unique().tolist(),
        )
        lookup = lookup[~dupes]

    merged = summary.merge(
        lookup,
        how="left",
        left_on="especie",
        right_on="species",
        validate="many_to_one",
    )
    merged = merged.rename(columns={"category_iucn_redlist": "categoria_listaroja"})

    unmatched = int(merged["categoria_listaroja"].isna().sum())
    log.info(
        "Red List categories: %d matched, %d missing",
        len(merged) - unmatched, unmatched,
    )
    return merged[config.SUMMARY_COLUMNS]
