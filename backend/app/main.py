import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.config import settings
from backend.app.core.logging_config import configure_logging
from backend.app.core.redis_client import close_redis, init_redis
import backend.app.routers.availability as availability
import backend.app.routers.clients as clients
import backend.app.routers.health as health
import backend.app.routers.products as products
import backend.app.routers.reservations as reservations
import backend.app.routers.schedules as schedules


API_VERSION = "1.0.0"

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_redis()
    try:
        yield
    finally:
        await close_redis()


app = FastAPI(
    title="Bar Reservations API",
    version=API_VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s -> %d (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/")
async def index() -> dict:
    prefix = settings.API_PREFIX
    return {
        "name": app.title,
        "version": API_VERSION,
        "endpoints": {
            "products": f"{prefix}/products",
            "clients": f"{prefix}/clients",
            "reservations": f"{prefix}/reservations",
            "schedules": f"{prefix}/schedules",
            "availability": f"{prefix}/availability/check",
            "health": f"{prefix}/healthz",
        },
    }


app.include_router(health.router, prefix=settings.API_PREFIX)
app.include_router(availability.router, prefix=settings.API_PREFIX)
app.include_router(reservations.router, prefix=settings.API_PREFIX)
app.include_router(clients.router, prefix=settings.API_PREFIX)
app.include_router(products.router, prefix=settings.API_PREFIX)
app.include_router(schedules.router, prefix=settings.API_PREFIX)
