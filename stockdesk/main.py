from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from stockdesk.core.observability import (
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    stockdesk_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from stockdesk.core.config import settings
from stockdesk.db.session import engine
from stockdesk.routers import bills, categories, customers, imports, parts, reports, serials, suppliers
from stockdesk.services.errors import StockDeskError

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Serial-number tracking for a repair center.\n\n"
        "Quick test flow:\n"
        "1. `POST /bills` to receive a goods bill (or `POST /import/parse` + `POST /import/excel`).\n"
        "2. `POST /serials` or `POST /serials/bulk` to register units on it.\n"
        "3. `PUT /categories/categorize/{serial_id}` to move a unit; "
        "`GET /categories/history/{serial_id}` shows every move.\n\n"
        "Send `X-Actor-Id` / `X-Actor-Name` headers to attribute changes."
    ),
    swagger_ui_parameters={
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "bills", "description": "Goods-receipt bills and their per-category rollup."},
        {"name": "serials", "description": "Serial registration, bulk entry, auto-generation and search."},
        {"name": "categories", "description": "Category schema, categorization, payments and movement history."},
        {"name": "import", "description": "Spreadsheet parse, dry-run validation and import."},
        {"name": "parts", "description": "Part catalog with derived average unit price."},
        {"name": "suppliers", "description": "Supplier master data."},
        {"name": "customers", "description": "Customer master data and name lookup."},
        {"name": "reports", "description": "Category, stock, SPU and alert rollups."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(StockDeskError, stockdesk_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if (
    not allow_origin_regex
    and env_value in {"dev", "development", "staging", "stage"}
):
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(bills.router)
app.include_router(serials.router)
app.include_router(categories.router)
app.include_router(imports.router)
app.include_router(parts.router)
app.include_router(suppliers.router)
app.include_router(customers.router)
app.include_router(reports.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return {"ok": False}
    return {"ok": True}
