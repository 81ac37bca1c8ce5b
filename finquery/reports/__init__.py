"""Financial reports: storage and LLM generation."""

from finquery.reports.service import ReportGenerationError, ReportService
from finquery.reports.store import ReportStore

__all__ = ["ReportGenerationError", "ReportService", "ReportStore"]
