"""Calculation history (append-only estimate snapshots)."""
