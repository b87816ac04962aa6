"""Data ingestion for TerraBuild.

Handles importing cost matrix spreadsheets.
"""

from terrabuild.ingestion.matrix_import import import_cost_matrix_file

__all__ = ["import_cost_matrix_file"]
