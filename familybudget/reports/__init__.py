"""Reporting package."""

from familybudget.reports.builder import ReportBuilder

__all__ = ["ReportBuilder"]
