# overtime_backend/services/__init__.py
"""
Service Layer for the Overtime Counter backend

Contains business logic services for:
- ImporterService: workbook ingestion and per-period storage
- AnalyticsService: analytics, dashboard and driver views
"""

from .importer import ImporterService
from .analytics import AnalyticsService

__all__ = [
    "ImporterService",
    "AnalyticsService",
]
