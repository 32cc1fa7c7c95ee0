# booking/main.py

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from booking.config import get_settings
from booking.db import create_db_and_tables, get_engine
from booking.errors import BookingError, Unauthenticated
from booking.routers import (
    admin_routes,
    appointments_routes,
    auth_routes,
    clients_routes,
    notifications_routes,
    services_routes,
    users_routes,
)

logging.basicConfig(
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables(get_engine())
    logger.info("Booking API started")
    yield
    get_engine().dispose()


app = FastAPI(title="Booking API", lifespan=lifespan)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    headers = None
    if isinstance(exc, Unauthenticated):
        headers = {"WWW-Authenticate": "Bearer"}
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.get("/health")
def health_check():
    return {"status": "ok"}


app.include_router(auth_routes.router)
app.include_router(users_routes.router)
app.include_router(clients_routes.router)
app.include_router(services_routes.router)
app.include_router(appointments_routes.router)
app.include_router(notifications_routes.router)
app.include_router(admin_routes.router)
