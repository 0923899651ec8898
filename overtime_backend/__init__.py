# overtime_backend/__init__.py
"""
Overtime Counter Backend Package

Driver overtime counter ingestion and analytics
- Heuristic detection of headers, month columns and periods in Excel exports
- Locale-aware parsing of hours and clock-time values
- Idempotent per-period storage of monthly driver records
- Dashboard analytics (distribution, critical drivers, period comparison)
"""

__version__ = "1.0.0"
__author__ = "Overtime Counter Team"
