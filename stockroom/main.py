from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from stockroom.core.config import settings
from stockroom.core.observability import install_observability
from stockroom.db.session import engine
from stockroom.routers import adjustments, audit, day_end, items, purchases

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Stock ledger and costing API for a retail store.\n\n"
        "Purchases add units and drive the weighted-average cost; day-end reports remove "
        "units and record revenue and profit. Send `X-Actor-Id` to attribute changes in the audit log."
    ),
    swagger_ui_parameters={
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "items", "description": "Item catalog, low-stock list and purchase price history."},
        {"name": "purchases", "description": "Stock-in records and spreadsheet imports."},
        {"name": "day-end", "description": "Daily sales reports, dry-run previews and spreadsheet parsing."},
        {"name": "adjustments", "description": "Manual stock corrections."},
        {"name": "audit", "description": "Who changed what in the ledger."},
    ],
)

install_observability(app)

cors_origins = settings.cors_origins or ["http://localhost:5173"]
allow_all_origins = "*" in cors_origins
allow_origin_regex = settings.cors_origin_regex

if not allow_origin_regex and settings.env.lower().strip() in {"dev", "development"}:
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(items.router)
app.include_router(purchases.router)
app.include_router(day_end.router)
app.include_router(adjustments.router)
app.include_router(audit.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready(response: Response):
    """Database reachability; 503 while the database cannot be reached."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"ok": False, "database": engine.dialect.name}
    return {"ok": True, "database": engine.dialect.name}
