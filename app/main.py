from __future__ import annotations

import time
import logging

from fastapi import FastAPI, Request, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.errors import DomainError
from app.auth.deps import get_current_user

# Import models to populate SQLAlchemy metadata
import app.db.models  # noqa: F401

from app.modules.actions.router import router as actions_router
from app.modules.approvals.router import router as approvals_router
from app.modules.site_records.router import router as site_records_router
from app.modules.notifications.router import router as notifications_router
from app.modules.vendor_overrides.router import router as vendor_overrides_router
from app.modules.effects.router import router as effects_router


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("fault_routing")


app = FastAPI(title=settings.APP_NAME)

# CORS (Access-Control-Allow-*) - configurable
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
)

# Compression for JSON (helps under load)
app.add_middleware(GZipMiddleware, minimum_size=800)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start = time.perf_counter()
    resp = await call_next(request)
    resp.headers["X-Process-Time-ms"] = f"{(time.perf_counter() - start) * 1000:.2f}"
    return resp


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    resp = await call_next(request)
    resp.headers["X-Content-Type-Options"] = "nosniff"
    resp.headers["X-Frame-Options"] = "SAMEORIGIN"
    resp.headers["Referrer-Policy"] = "same-origin"
    return resp


@app.exception_handler(DomainError)
async def domain_exc_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    else:
        logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.detail)
    resp = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    if exc.status_code == 401:
        resp.delete_cookie("sid")
    return resp


@app.exception_handler(Exception)
async def unhandled_exc_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# Routers
app.include_router(actions_router)
app.include_router(approvals_router)
app.include_router(site_records_router)
app.include_router(notifications_router)
app.include_router(vendor_overrides_router)
app.include_router(effects_router)


@app.get("/health", response_class=JSONResponse)
def health():
    return {"status": "ok", "app": settings.APP_NAME, "env": settings.ENV}


@app.get("/health/auth", response_class=JSONResponse)
def health_auth(user=Depends(get_current_user)):
    return {"status": "ok", "authenticated": True, "user_id": user.id, "role": user.role}
