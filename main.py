from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import os

from core.config import logger  # type: ignore
from core.errors import PortalError, RateLimited

# Routers
from routers import splash, analytics, compliance  # type: ignore

app = FastAPI(title="WiFi Splash Portal")

# ---- CORS setup ----
# Splash pages are served from the portal domains and from venue captive-portal hosts
_default_origins = ",".join([
    "https://linkbeet.in",
    "https://www.linkbeet.in",
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
])
_origins_env = os.getenv("ALLOWED_ORIGINS") or os.getenv("CORS_ORIGINS") or _default_origins
ALLOWED_ORIGINS = [o.strip() for o in _origins_env.split(",") if o.strip()]
# Optional regex to match specific domains - SECURITY: Never use .* in production!
_origin_regex_raw = os.getenv("ALLOWED_ORIGINS_REGEX") or ""
_origin_regex_env = _origin_regex_raw if (_origin_regex_raw and _origin_regex_raw.strip() not in (".*", "^.*$", ".+")) else None
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_origin_regex=_origin_regex_env,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Security headers ---
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    # Verification responses must never be cached by captive-portal proxies
    if request.url.path.startswith("/api/"):
        response.headers.setdefault("Cache-Control", "no-store")
    return response


# --- Errors ---
@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after_seconds:
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(exc.to_payload(), status_code=exc.status_code, headers=headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse({"error": "Something went wrong. Please try again."}, status_code=500)


app.include_router(splash.router)
app.include_router(analytics.router)
app.include_router(compliance.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.on_event("startup")
async def _init_schema():
    try:
        from core.database import init_db
        init_db()
    except Exception as _ex:
        logger.warning(f"init_db failed: {_ex}")


@app.on_event("startup")
async def _purge_compliance_logs():
    try:
        from core.database import SessionLocal
        from utils.compliance import purge_expired
        db = SessionLocal()
        try:
            purge_expired(db)
        finally:
            db.close()
    except Exception as _ex:
        logger.warning(f"compliance purge failed: {_ex}")


@app.on_event("shutdown")
async def _stop_background_jobs():
    from utils.background import shutdown_dispatcher
    shutdown_dispatcher(wait=True)
