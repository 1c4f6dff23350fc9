"""Annual climate means and IUCN Red List categories for tree species in sampling plots."""

__version__ = "1.0.0"
