"""Report execution package."""

from fintrack.queries.executor import QueryExecutionError, ReportExecutor

__all__ = ["QueryExecutionError", "ReportExecutor"]
