# app/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routers.inventory import router as inventory_router
from app.api.routers.orders import router as orders_router
from app.core.config import get_settings
from app.core.logging import setup_logging
from app.db.base import Base, init_models
from app.db.session import close_engines, get_engine
from app.http_problem_handlers import register_exception_handlers

settings = get_settings()
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger("stockcore")

init_models()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info("stockcore starting (env=%s)", settings.ENV)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_engines()
    logger.info("stockcore stopped")


app = FastAPI(
    title="StockCore",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://127.0.0.1:8000",
        "http://localhost:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# ===========================
#     stock / orders
# ===========================
app.include_router(inventory_router)
app.include_router(orders_router)


@app.get("/ping")
async def ping():
    return {"pong": True}
