"""TerraBuild: building cost data layer for county assessors."""

__version__ = "0.1.0"
