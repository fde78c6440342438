"""PDF report generation."""

from .compositor import compose_report, legend_entries, report_entries, select_cell_images

__all__ = [
    "compose_report",
    "legend_entries",
    "report_entries",
    "select_cell_images",
]
