import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from interest_finder.api import interests
from interest_finder.core.config import settings
from interest_finder.core.database import close_pool, ensure_schema
from interest_finder.core.exceptions import InterestFinderError
from interest_finder.core.logging_utils import setup_logging
from interest_finder.core.security import get_identity_verifier
from interest_finder.services.activity_monitor import get_activity_monitor
from interest_finder.services.interest_search.graph_client import get_graph_client
from interest_finder.services.token_manager import get_token_manager

# Structured logging
setup_logging()
logger = logging.getLogger(__name__)

SERVICE_NAME = "Facebook Interest Finder"

CORS_ALLOWED_HEADERS = [
    "X-CSRF-Token", "X-Requested-With", "Accept", "Accept-Version", "Content-Length",
    "Content-MD5", "Content-Type", "Date", "X-Api-Version", "Authorization",
]

app = FastAPI(title=SERVICE_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=CORS_ALLOWED_HEADERS,
)

app.include_router(interests.router, tags=["interests"])


@app.on_event("startup")
async def startup_event():
    """Runs when the application starts."""
    monitor = get_activity_monitor()
    monitor.set_contact_resolver(get_identity_verifier().directory.resolve_contact)
    monitor.start()

    if settings.DATABASE_URL:
        try:
            await ensure_schema()
        except Exception as e:
            logger.error(f"❌ Database unavailable at startup: {e}")
        await get_token_manager().load()
    else:
        logger.warning("⚠️ DATABASE_URL not set: token and alerts will not be persisted")

    logger.info("🚀 Application started")


@app.on_event("shutdown")
async def shutdown_event():
    await get_activity_monitor().stop()
    await get_graph_client().close()
    await close_pool()
    logger.info("👋 Application stopped")


# --- Exception Handlers ---

def _error_body(message: str, exc: Exception = None) -> dict:
    body = {"error": message}
    if exc is not None and not settings.is_production:
        body["detail"] = f"{type(exc).__name__}: {exc}"
    return body


@app.exception_handler(InterestFinderError)
async def interest_finder_exception_handler(request: Request, exc: InterestFinderError):
    if exc.status_code >= 500:
        logger.error(f"[API] {request.url.path} failed: {type(exc).__name__}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.public_message, exc))
    logger.warning(f"[API] {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.public_message))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request parameters"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global Error: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content=_error_body("Internal Server Error", exc))


@app.get("/")
async def root():
    return {"status": "ok", "service": SERVICE_NAME}
