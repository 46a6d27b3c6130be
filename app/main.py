import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import init_db, make_engine, make_session_factory
from .errors import BookingError
from .routers import admin as admin_router
from .routers import appointments as appointments_router
from .routers import barbers as barbers_router
from .routers import customers as customers_router
from .routers import payments as payments_router
from .routers import schedules as schedules_router
from .routers import services as services_router

logger = logging.getLogger(__name__)


def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "code": exc.code})


def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(
        f"Storage failure on {request.method} {request.url.path}?{request.url.query}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=503,
        content={"detail": "Storage temporarily unavailable, retry later", "code": "storage_unavailable"},
    )


def create_app(engine: Optional[Engine] = None) -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = engine or make_engine(settings.DATABASE_URL)
    init_db(engine)

    app = FastAPI(title="Barbershop Booking API")
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)

    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)

    app.include_router(services_router.router)
    app.include_router(barbers_router.router)
    app.include_router(customers_router.router)
    app.include_router(schedules_router.router)
    app.include_router(appointments_router.router)
    app.include_router(payments_router.router)
    app.include_router(admin_router.router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
