"""Profit Leak Audit API.

Thin HTTP layer over the audit pipeline: it records intakes, queues jobs
and serves status and finished reports. Audits themselves run in the
worker process (``python -m app.worker``).
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import AuditConfig, is_debug
from .database import init_db
from .routes.audit import router as audit_router


# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(
        "Profit Leak Audit API up (model=%s, OpenAI key %s)",
        AuditConfig.from_env().model,
        "configured" if os.getenv("OPENAI_API_KEY") else "missing; the worker cannot run audits",
    )

    yield

    logger.info("Profit Leak Audit API shutting down")


app = FastAPI(
    title="Profit Leak Audit",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(audit_router)


@app.get("/", summary="API Root", tags=["General"])
async def root():
    return {
        "name": "Profit Leak Audit",
        "version": API_VERSION,
        "docs": "/docs",
        "endpoints": {
            "intake": "POST /cases",
            "run": "POST /cases/{case_id}/run",
            "status": "GET /jobs/{job_id}",
            "report": "GET /reports/{share_id}",
        },
    }


@app.get("/health", summary="Health Check", tags=["General"])
async def health():
    return {"status": "healthy", "service": "profit-leak-audit", "version": API_VERSION}


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Unhandled errors become a 500 without leaking internals (unless DEBUG)."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "detail": str(exc) if is_debug() else "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=is_debug(),
    )
