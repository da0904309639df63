import logging
import time
from datetime import datetime, timezone
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, HTMLResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.templating import Jinja2Templates

from app.api import inventory, products, retail, tasks, upload
from app.config import settings
from app.database import async_engine, get_db
from app.errors import ApiError

BASE_DIR = Path(__file__).resolve().parent.parent

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger("app")

app = FastAPI(
    title=settings.api_title,
    description="API for the Online Retail II dataset: products, retail lines and inventory",
    version=settings.api_version,
    docs_url="/api-docs",
)

# Mount static files
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")

# Templates
templates = Jinja2Templates(directory=BASE_DIR / "templates")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    duration = round((time.time() - start_time) * 1000, 2)
    logger.info(f"{request.method} {request.url.path} Status: {response.status_code} Time: {duration}ms")

    return response


# Include routers (import and performance routes before the /{record_id} ones)
app.include_router(products.router)
app.include_router(upload.router)
app.include_router(inventory.router)
app.include_router(retail.router)
app.include_router(tasks.router)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down, closing database pool")
    await async_engine.dispose()


ENDPOINTS = {
    "GET /api/products": "Get all products with pagination, search, and filters",
    "GET /api/products/{id}": "Get specific product by product_id or stock_code",
    "POST /api/products": "Create new product",
    "PUT /api/products/{id}": "Replace existing product",
    "PATCH /api/products/{id}": "Update fields of an existing product",
    "DELETE /api/products/{id}": "Delete product",
    "GET /api/products/analytics/summary": "Get products analytics summary",
    "GET /api/products/low-stock": "Get products with low stock levels",
    "GET /api/retail": "List retail transaction lines",
    "GET /api/retail/monthly-sales": "Total sales for a year and month",
    "POST /api/retail/import": "Import an Online Retail CSV export",
    "GET /api/retail/performance/inventory-status": "Inventory levels and stock status",
    "GET /api/health": "API health check",
}


@app.get("/")
async def root():
    return {
        "message": "Online Retail Products API",
        "version": settings.api_version,
        "endpoints": ENDPOINTS,
        "documentation": "/api-docs",
        "dashboard": "/dashboard",
    }


@app.get("/dashboard", response_class=HTMLResponse)
async def dashboard(request: Request):
    return templates.TemplateResponse(request, "dashboard.html", {"title": settings.api_title})


@app.get("/api/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Health check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "status": "unhealthy",
                "timestamp": timestamp,
                "database": "disconnected",
                "error": str(exc) if settings.is_development else "Database unreachable",
            },
        )

    return {"success": True, "status": "healthy", "timestamp": timestamp, "database": "connected"}


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Validation failed",
            "details": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    error = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
    content = {"success": False, "error": error}
    if exc.status_code == 404:
        content["available_endpoints"] = list(ENDPOINTS)
    return JSONResponse(status_code=exc.status_code, content=content)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "message": str(exc) if settings.is_development else "Something went wrong",
        },
    )
