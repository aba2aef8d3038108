import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from country_gdp import __version__
from country_gdp.config import settings
from country_gdp.database import engine, init_db
from country_gdp.exceptions import CountryNotFound, StoreFailure, UpstreamFetchFailure
from country_gdp.limiter import close_rate_limiter, init_rate_limiter
from country_gdp.logging import RequestLoggingMiddleware, init_logging, setup_query_logging
from country_gdp.routes import countries, status
from country_gdp.services.refresh import get_orchestrator

logger = logging.getLogger("country_gdp")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    settings.cache_dir.mkdir(parents=True, exist_ok=True)
    try:
        app.state.rate_limiting_enabled = await init_rate_limiter(settings)
    except Exception:
        app.state.rate_limiting_enabled = False
        logger.warning("Failed to initialize Redis rate limiter; continuing without limits", exc_info=True)
    try:
        yield
    finally:
        get_orchestrator().shutdown()
        if app.state.rate_limiting_enabled:
            await close_rate_limiter()
        engine.dispose()
        logger.info("Shutdown complete")


app = FastAPI(
    title="Country Currency & Exchange API",
    version=__version__,
    description=(
        "REST API to explore countries, currencies, population, and simple GDP estimates.\n\n"
        "Features:\n"
        "- Refresh from Rest Countries and open.er-api.com (USD base)\n"
        "- Filter by region and currency\n"
        "- Sort by name, population, or estimated GDP\n"
        "- Lightweight status and a generated summary image\n\n"
        "Rate limiting can be enabled via Redis (set REDIS_URL)."
    ),
    lifespan=lifespan,
)

init_logging(settings)
app.add_middleware(RequestLoggingMiddleware)
setup_query_logging(engine)

app.include_router(countries.router, prefix="/countries", tags=["Countries"])
app.include_router(status.router, prefix="/status", tags=["Status"])


@app.get("/")
def root():
    return {"message": "Country Currency & Exchange API running. Visit /docs for API documentation."}


# -------------------------------
# Unified error response handlers
# -------------------------------
@app.exception_handler(CountryNotFound)
async def not_found_handler(request: Request, exc: CountryNotFound):
    logger.info("Not found: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=404, content={"error": "Country not found"})


@app.exception_handler(UpstreamFetchFailure)
async def upstream_failure_handler(request: Request, exc: UpstreamFetchFailure):
    logger.error("Upstream failure during %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={
            "error": "External data source unavailable",
            "details": f"Could not fetch data from {exc.source}",
        },
    )


@app.exception_handler(StoreFailure)
async def store_failure_handler(request: Request, exc: StoreFailure):
    logger.error("Store failure during %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger.warning(
        "HTTPException: %s %s -> %s | detail=%s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.detail,
    )
    body = {"error": exc.detail if isinstance(exc.detail, str) else "Error"}
    if isinstance(exc.detail, dict):
        body = {
            "error": exc.detail.get("error") or "Error",
            "details": exc.detail.get("details"),
        }
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(
        "ValidationError: %s %s | errors=%s",
        request.method,
        request.url.path,
        exc.errors(),
    )
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError):
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")} for err in exc.errors()]


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled exception: %s %s",
        request.method,
        request.url.path,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def run() -> None:
    uvicorn.run("country_gdp.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
