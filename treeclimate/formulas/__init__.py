"""
Pure computational functions of the pipeline.

Kept free of I/O so each reduction can be tested against hand-built
tables.
"""

from treeclimate.formulas.annual import add_annual_mean, annual_mean, monthly_columns

__all__ = [
    "add_annual_mean",
    "annual_mean",
    "monthly_columns",
]
