from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ordering.api.health import router as health_router
from ordering.api.routes_cart import router as cart_router
from ordering.api.routes_checkout import router as checkout_router
from ordering.api.routes_order import router as order_router
from ordering.config import settings
from ordering.db import SessionLocal, init_db
from ordering.services.exceptions import ServiceException
from ordering.services.maintenance import sweep_expired
from ordering.services.session_store import get_session_store
from ordering.utils.logging import configure_logging, get_logger

configure_logging(settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    init_db()

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = BackgroundScheduler()

        def sweep_job():
            db = SessionLocal()
            try:
                sweep_expired(db, get_session_store())
            except Exception:
                logger.exception("Expiry sweep failed")
            finally:
                db.close()

        scheduler.add_job(
            sweep_job,
            "interval",
            seconds=settings.SWEEP_INTERVAL_SECONDS,
            id="sweep_expired",
        )
        scheduler.start()
        logger.info("Expiry sweep scheduled every %ss", settings.SWEEP_INTERVAL_SECONDS)

    try:
        yield
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)


app = FastAPI(title="Pickup Ordering - Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceException)
async def service_exception_handler(request: Request, exc: ServiceException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(health_router, prefix="/api")

app.include_router(cart_router)

app.include_router(checkout_router)

app.include_router(order_router)
