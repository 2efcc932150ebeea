"""
Cashback backend — FastAPI application entry-point.
"""
import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cashback.config import settings
from cashback.database import Base, engine
from cashback.errors import CashbackError, cashback_error_handler
from cashback.pipeline.fiscal import FiscalClient

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure data dir + tables exist
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    # Import models so Base.metadata knows about them
    import cashback.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready (%s)", settings.DATABASE_URL)

    http = httpx.Client(verify=settings.FISCAL_API_VERIFY_SSL, timeout=settings.FISCAL_API_TIMEOUT)
    app.state.fiscal_client = FiscalClient(
        http, settings.FISCAL_API_URL, timeout=settings.FISCAL_API_TIMEOUT
    )
    yield
    http.close()
    logger.info("Shutting down")


app = FastAPI(
    title="Cashback",
    description="Fiscal receipt verification → product matching → cashback balance",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(CashbackError, cashback_error_handler)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# ── Register API routers ─────────────────────────────────────────────────
from cashback.routers.accounts import router as accounts_router  # noqa: E402
from cashback.routers.products import router as products_router  # noqa: E402
from cashback.routers.receipts import router as receipts_router  # noqa: E402

app.include_router(receipts_router, prefix="/api", tags=["Receipts"])
app.include_router(products_router, prefix="/api", tags=["Products"])
app.include_router(accounts_router, prefix="/api", tags=["Accounts"])
