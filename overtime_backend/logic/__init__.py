# overtime_backend/logic/__init__.py
"""
Core logic: workbook ingestion heuristics and the aggregation engine.
No I/O beyond reading the workbook bytes handed to ingest().
"""
