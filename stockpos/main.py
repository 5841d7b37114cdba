from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from stockpos.core.config import settings
from stockpos.core.errors import StockPosError
from stockpos.core.observability import (
    http_exception_handler,
    logger,
    request_logging_middleware,
    setup_observability,
    stockpos_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from stockpos.db.session import Database
from stockpos.routers import auth, entries, mermas, products, sales, stats, suppliers, users


@asynccontextmanager
async def lifespan(app: FastAPI):
    database = Database(settings)
    database.connect()
    app.state.database = database
    try:
        yield
    finally:
        database.dispose()


app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    lifespan=lifespan,
    description=(
        "Inventory and point-of-sale backend: products, stock entries, sales, mermas and suppliers.\n\n"
        "Swagger quick test flow:\n"
        "1. Run `python -m stockpos.db.seed` to create the bootstrap admin.\n"
        "2. Click **Authorize** and use username + password "
        "(OAuth token URL: `/auth/token`).\n"
        "3. Test protected endpoints (`/products`, `/entries`, `/sales`, `/mermas`, `/stats`)."
    ),
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "auth", "description": "Login, token validation and password changes."},
        {"name": "users", "description": "User and role management."},
        {"name": "products", "description": "Product catalog, stock counts and movement history."},
        {"name": "entries", "description": "Stock received from suppliers."},
        {"name": "sales", "description": "Sales capture, voids and history."},
        {"name": "mermas", "description": "Recorded inventory losses."},
        {"name": "suppliers", "description": "Supplier directory."},
        {"name": "stats", "description": "Dashboard and read-only statistics."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(StockPosError, stockpos_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if not allow_origin_regex and env_value in {"dev", "development", "staging", "stage"}:
    # Local frontends run on dynamic localhost ports.
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(products.router)
app.include_router(entries.router)
app.include_router(sales.router)
app.include_router(mermas.router)
app.include_router(suppliers.router)
app.include_router(stats.router)


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
def ready(request: Request):
    database: Database | None = getattr(request.app.state, "database", None)
    if database is None:
        return {"ok": False}
    try:
        database.ping()
    except SQLAlchemyError as exc:
        logger.warning("readiness check failed: %s", exc)
        return {"ok": False}
    return {"ok": True}
