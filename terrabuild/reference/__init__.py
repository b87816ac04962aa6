"""Benton County reference matrix tables and cell lookup."""

from terrabuild.reference.benton import get_matrix, import_benton_rows, list_matrices
from terrabuild.reference.lookup import lookup_cell, register_strategy

__all__ = ["import_benton_rows", "get_matrix", "list_matrices", "lookup_cell", "register_strategy"]
