from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import time

from routers import scan, splits, currencies

APP_VERSION = "0.1.0"

# ── Logging setup ─────────────────────────────────────────────────────────────
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
# Quiet noisy libraries unless we're in DEBUG
if LOG_LEVEL != "DEBUG":
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger("dinesplit")

app = FastAPI(
    title="Dine Split",
    description="Split a restaurant bill from a photographed receipt",
    version=APP_VERSION,
)

_cors_origins = os.environ.get("CORS_ORIGINS", "").strip()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins.split(",") if _cors_origins else ["*"],
    allow_credentials=bool(_cors_origins),  # only send credentials when origins are explicit
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(scan.router,       prefix="/api",            tags=["scan"])
app.include_router(splits.router,     prefix="/api/splits",     tags=["splits"])
app.include_router(currencies.router, prefix="/api/currencies", tags=["currencies"])


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    elapsed = (time.time() - start) * 1000
    if LOG_LEVEL == "DEBUG" or response.status_code >= 400:
        logger.log(
            logging.WARNING if response.status_code >= 400 else logging.DEBUG,
            "%s %s → %s (%.0fms)",
            request.method, request.url.path, response.status_code, elapsed,
        )
    return response

@app.on_event("startup")
async def on_startup():
    logger.info("Starting Dine Split v%s  LOG_LEVEL=%s  scanner=%s",
                APP_VERSION, LOG_LEVEL,
                "tabscanner" if os.environ.get("TABSCANNER_API_KEY") else "mock")

@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/api/diagnose")
async def diagnose():
    """Check that the scanner is configured and image handling is available."""
    results = {}

    # Pillow
    try:
        import PIL
        results["pillow"] = {"ok": True, "version": PIL.__version__}
    except ImportError as e:
        results["pillow"] = {"ok": False, "error": str(e)}

    # Scanner key (never expose key material, only report presence)
    key = os.environ.get("TABSCANNER_API_KEY", "")
    results["scanner"] = {
        "ok": True,
        "mode": "tabscanner" if key else "mock",
        "key_set": bool(key),
    }

    return {"all_ok": all(v.get("ok") for v in results.values()), "checks": results}
