"""Batch-wide resource budget tracking."""

from analytics_refresh.budget.tracker import ResourceBudgetTracker, ResourceLedger

__all__ = [
    "ResourceBudgetTracker",
    "ResourceLedger",
]
