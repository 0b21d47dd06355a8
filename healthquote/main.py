from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import logging
import os

from .config import settings
from .database import engine, Base
from .errors import LedgerError
from .routers import quotes, quote_items, line_items

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("healthquote")

# Create tables (handles new tables but won't add columns to existing ones)
Base.metadata.create_all(bind=engine)

BASE_REVISION = "0001_ledger_tables"


def _run_migrations():
    """Run pending Alembic migrations on startup.

    A database created by Base.metadata.create_all() has the tables but no
    alembic_version row; stamp the base revision first so upgrade does not
    try to recreate them.
    """
    try:
        from alembic.config import Config
        from alembic import command
        from sqlalchemy import inspect

        alembic_ini = os.path.join(os.path.dirname(__file__), "..", "alembic.ini")
        if not os.path.exists(alembic_ini):
            logger.info("alembic.ini not found, skipping migrations")
            return

        alembic_cfg = Config(alembic_ini)
        alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

        insp = inspect(engine)
        has_alembic = "alembic_version" in insp.get_table_names()
        has_quotes = "quotes" in insp.get_table_names()

        if not has_alembic and has_quotes:
            logger.info(f"Stamping base migration {BASE_REVISION} (tables already exist)")
            command.stamp(alembic_cfg, BASE_REVISION)

        logger.info("Running pending Alembic migrations...")
        command.upgrade(alembic_cfg, "head")
        logger.info("Migrations complete")

    except Exception as e:
        # Never let migration errors prevent app startup
        logger.warning(f"Alembic migration warning: {e}")


app = FastAPI(
    title="Health Quote Ledger",
    description="Quotes and line items for occupational-health services",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "code": exc.code})


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": errors, "code": "VALIDATION_ERROR"})


@app.exception_handler(SQLAlchemyError)
def persistence_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Persistence failure on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "code": "INTERNAL"})


# API routes
app.include_router(quotes.router, prefix="/api")
app.include_router(quote_items.router, prefix="/api")
app.include_router(line_items.router, prefix="/api")


@app.get("/health")
def health():
    return {"status": "ok", "app": "healthquote", "vat_policy": settings.VAT_POLICY}


@app.on_event("startup")
def auto_migrate():
    """Run pending Alembic migrations on startup."""
    _run_migrations()


@app.on_event("startup")
def auto_seed():
    """Seed the health test catalog on first run."""
    if not settings.SEED_HEALTH_TESTS:
        return
    from .database import SessionLocal
    from .catalog import seed_health_tests
    db = SessionLocal()
    try:
        seed_health_tests(db)
    finally:
        db.close()
