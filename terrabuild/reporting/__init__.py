"""Reporting over the cost data."""

from terrabuild.reporting.dashboard import DashboardStats, compute_dashboard_stats

__all__ = ["DashboardStats", "compute_dashboard_stats"]
