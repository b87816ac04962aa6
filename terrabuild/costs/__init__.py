"""Cost data model: matrices, factors, materials and saved estimates."""

from terrabuild.costs.building_costs import material_total_mismatch, save_building_cost
from terrabuild.costs.factors import create_cost_factor, get_cost_factor
from terrabuild.costs.materials import create_material_cost, resolve_material_cost
from terrabuild.costs.matrices import create_cost_matrix, list_cost_matrices, upsert_cost_matrix

__all__ = [
    "create_cost_matrix",
    "upsert_cost_matrix",
    "list_cost_matrices",
    "create_cost_factor",
    "get_cost_factor",
    "create_material_cost",
    "resolve_material_cost",
    "save_building_cost",
    "material_total_mismatch",
]
