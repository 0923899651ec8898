import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from overtime_backend import __version__
from overtime_backend.config_manager import get_config
from overtime_backend.database_manager import StorageError
from overtime_backend.logging_utils import setup_logging
from overtime_backend.logic.constants import AGGREGATION_MODES, VEHICLE_TYPES
from overtime_backend.services.analytics import AnalyticsService
from overtime_backend.services.importer import ImporterService

logger = logging.getLogger(__name__)


# ==============================================================================
# APPLICATION LIFECYCLE
# ==============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    config = get_config()
    setup_logging(level=config["log_level"], log_to_file=bool(config["log_to_file"]))
    logger.info(f"Starting Overtime Counter API (database: {config['database_path']})...")
    yield
    logger.info("Shutting down Overtime Counter API...")


app = FastAPI(
    title="Overtime Counter API",
    description="Driver overtime counter import and analytics API",
    version=__version__,
    lifespan=lifespan,
)


# ==============================================================================
# CORS CONFIGURATION
# ==============================================================================
# Configure allowed origins via CORS_ALLOWED_ORIGINS (comma-separated).
# Leave unset in development to use localhost defaults.

def get_cors_origins():
    """Get CORS allowed origins from environment or use development defaults."""
    env_origins = os.environ.get("CORS_ALLOWED_ORIGINS", "")
    if env_origins:
        return [origin.strip() for origin in env_origins.split(",") if origin.strip()]
    return [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==============================================================================
# STANDARDIZED API ERROR RESPONSES
# ==============================================================================
# All errors follow this schema for consistent frontend parsing:
# {
#   "error": "ERROR_CODE",           # Machine-readable error code
#   "message": "Human readable...",   # User-friendly message
#   "details": {...}                  # Optional additional context
# }

class APIError(BaseModel):
    """Standardized API error response schema."""
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None


def api_error(status_code: int, error_code: str, message: str, details: Dict = None) -> HTTPException:
    """
    Create a standardized API error response.

    Usage:
        raise api_error(404, "DRIVER_NOT_FOUND", "Driver with ID 123 not found")
        raise api_error(400, "VALIDATION_ERROR", "Cannot import", {"errors": 5})
    """
    detail = {"error": error_code, "message": message}
    if details:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage failure on {request.url.path}: {exc}")
    error = APIError(error="STORAGE_ERROR", message="The database operation failed", details={"reason": str(exc)})
    return JSONResponse(status_code=500, content={"detail": error.model_dump(exclude_none=True)})


# ==============================================================================
# DEPENDENCIES
# ==============================================================================

def get_importer() -> ImporterService:
    return ImporterService()


def get_analytics() -> AnalyticsService:
    return AnalyticsService()


def parse_period_ids(period: Optional[str]) -> Optional[List[int]]:
    """Comma-separated period ids ("3,4") -> [3, 4]"""
    if not period:
        return None
    try:
        return [int(p) for p in period.split(",") if p.strip()]
    except ValueError:
        raise api_error(400, "INVALID_PERIOD", f"Invalid period list: {period}")


def validate_vehicle(vehicle: Optional[str]) -> Optional[str]:
    if vehicle is None or vehicle == "":
        return None
    vehicle = vehicle.upper()
    if vehicle not in VEHICLE_TYPES:
        raise api_error(400, "INVALID_VEHICLE_TYPE", f"Vehicle type must be one of {list(VEHICLE_TYPES)}")
    return vehicle


async def read_workbook(file: UploadFile) -> bytes:
    content = await file.read()
    if not content:
        raise api_error(400, "EMPTY_FILE", "Uploaded file is empty")
    return content


# ==============================================================================
# ENDPOINTS
# ==============================================================================

@app.get("/")
def read_root():
    return {"status": "Backend Online", "version": __version__}


@app.post("/import/preview")
async def preview_import(
    file: UploadFile = File(...),
    importer: ImporterService = Depends(get_importer),
):
    """
    Parse a workbook without writing anything: per-sheet rows, detected
    periods, warnings and errors.
    """
    result = importer.preview(await read_workbook(file))
    return result.to_dict()


@app.post("/import")
async def import_workbook(
    file: UploadFile = File(...),
    sheets: Optional[str] = Form(None),
    overrides: Optional[str] = Form(None),
    importer: ImporterService = Depends(get_importer),
):
    """
    Import a workbook's enabled sheets.

    Form fields:
        sheets: optional comma-separated sheet names to import
        overrides: optional JSON {"sheet name": [period_number, year]}
    """
    content = await read_workbook(file)

    sheet_names = [s.strip() for s in sheets.split(",") if s.strip()] if sheets else None
    period_overrides = None
    if overrides:
        try:
            period_overrides = {
                name: (int(value[0]), int(value[1])) for name, value in json.loads(overrides).items()
            }
        except (ValueError, TypeError, IndexError, AttributeError) as e:
            raise api_error(400, "INVALID_OVERRIDES", f"Invalid period overrides: {e}")

    try:
        report = importer.import_workbook(content, file.filename, period_overrides, sheet_names)
    except ValueError as e:
        raise api_error(400, "IMPORT_REJECTED", str(e))
    return report.to_dict()


@app.get("/periods")
def list_periods(analytics: AnalyticsService = Depends(get_analytics)):
    return [p.model_dump() for p in analytics.list_periods()]


@app.get("/analytics")
def get_analytics_view(
    period: Optional[str] = Query(None, description="Comma-separated period ids"),
    vehicle: Optional[str] = Query(None),
    mode: str = Query("sum"),
    analytics: AnalyticsService = Depends(get_analytics),
):
    if mode not in AGGREGATION_MODES:
        raise api_error(400, "INVALID_MODE", f"Mode must be one of {list(AGGREGATION_MODES)}")
    result = analytics.analytics(parse_period_ids(period), validate_vehicle(vehicle), mode)
    return result.model_dump()


@app.get("/analytics/buckets/{label}")
def get_bucket_drivers(
    label: str,
    period: Optional[str] = Query(None),
    vehicle: Optional[str] = Query(None),
    dir: str = Query("asc"),
    analytics: AnalyticsService = Depends(get_analytics),
):
    """Drivers in one counter-distribution bucket, sorted by counter."""
    try:
        drivers = analytics.bucket_drivers(
            label,
            parse_period_ids(period),
            validate_vehicle(vehicle),
            descending=dir == "desc",
        )
    except ValueError as e:
        raise api_error(400, "INVALID_BUCKET", str(e))
    return [d.model_dump() for d in drivers]


@app.get("/dashboard")
def get_dashboard(
    period: Optional[str] = Query(None),
    vehicle: Optional[str] = Query(None),
    analytics: AnalyticsService = Depends(get_analytics),
):
    view = analytics.dashboard(parse_period_ids(period), validate_vehicle(vehicle))
    return {
        "period_ids": view["period_ids"],
        "stats": view["stats"].model_dump(),
        "distribution": [b.model_dump() for b in view["distribution"]],
        "status_breakdown": [s.model_dump() for s in view["status_breakdown"]],
        "overtime_ranking": [s.model_dump() for s in view["overtime_ranking"]],
    }


@app.get("/drivers")
def list_drivers(
    period: Optional[str] = Query(None),
    vehicle: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    sort: str = Query("identifier"),
    dir: str = Query("asc"),
    analytics: AnalyticsService = Depends(get_analytics),
):
    try:
        drivers = analytics.drivers(
            parse_period_ids(period),
            validate_vehicle(vehicle),
            search=search,
            sort=sort,
            descending=dir == "desc",
        )
    except ValueError as e:
        raise api_error(400, "INVALID_SORT", str(e))
    return [d.model_dump() for d in drivers]


@app.get("/drivers/{driver_id}/history")
def driver_history(
    driver_id: int,
    period: Optional[int] = Query(None, description="Restrict the history to one period id"),
    analytics: AnalyticsService = Depends(get_analytics),
):
    view = analytics.driver_history(driver_id, period)
    if view is None:
        raise api_error(404, "DRIVER_NOT_FOUND", f"Driver with ID {driver_id} not found")
    return {
        "driver": view["driver"],
        "period_id": view["period_id"],
        "summary": view["summary"].model_dump(),
        "history": [r.model_dump() for r in view["history"]],
        "period_totals": [t.model_dump() for t in view["period_totals"]],
    }


@app.get("/comparison")
def compare_drivers(
    drivers: str = Query(..., description="Comma-separated driver ids (2 to 5)"),
    analytics: AnalyticsService = Depends(get_analytics),
):
    try:
        driver_ids = [int(d) for d in drivers.split(",") if d.strip()]
        points = analytics.compare_drivers(driver_ids)
    except ValueError as e:
        raise api_error(400, "INVALID_COMPARISON", str(e))
    return [p.model_dump() for p in points]


def main():
    config = get_config()
    uvicorn.run(app, host="127.0.0.1", port=int(config["server_port"]))


if __name__ == "__main__":
    main()
