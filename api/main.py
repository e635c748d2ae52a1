import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import asyncpg
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from auth import router as auth_router
from auth import service as auth_service
from auth.repository import UserRepository
from categories import router as categories_router
from core import db
from prompts import router as prompts_router
from transfer import router as transfer_router

API_VERSION = "1.0.0"
DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:5173"

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


def cors_origins() -> list[str]:
    raw = os.environ.get("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Initialize the DB pool once per process.
    await db.init_pool()
    try:
        await auth_service.ensure_bootstrap_admin(UserRepository(db.pool()))
        yield
    finally:
        await db.close_pool()


app = FastAPI(title="Prompt Library API", version=API_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(asyncpg.PostgresError)
async def database_error_handler(request: Request, exc: asyncpg.PostgresError) -> JSONResponse:
    logger.error("database_error path=%s error=%s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "message": "Database error"})


app.include_router(auth_router.router, prefix="/api", tags=["auth"])
app.include_router(categories_router.router, prefix="/api", tags=["categories"])
app.include_router(prompts_router.router, prefix="/api", tags=["prompts"])
app.include_router(transfer_router.router, prefix="/api", tags=["import-export"])


@app.get("/api/health")
def health() -> dict:
    return {
        "success": True,
        "message": "Prompt Library API is running",
        "version": API_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/version")
def version() -> dict:
    return {
        "success": True,
        "data": {
            "version": API_VERSION,
            "apiVersion": "v1",
            "compatibility": {"minMobileVersion": "1.0.0", "minCmsVersion": "1.0.0"},
        },
    }


@app.get("/")
def root() -> dict:
    return {"message": "prompt library api", "documentation": "/api/health"}
