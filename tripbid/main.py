from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from .routes import router as api_router, trip_service, bid_service
from .logging_setup import configure_logging
from .config import settings
from .errors import TripBidError
from .notifier import RealtimeNotifier
from . import cache, db
import logging

# configure file logging for the service
configure_logging(settings.LOG_FILE, settings.LOG_LEVEL)
logger = logging.getLogger("tripbid.main")

app = FastAPI(title="Tripbid - Trip Bidding API")

app.include_router(api_router, prefix="/v1")


@app.exception_handler(TripBidError)
async def trip_bid_error_handler(request: Request, exc: TripBidError):
    logger.info("request_rejected: %s %s status=%s detail=%s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
async def _startup():
    logger.info("Starting Tripbid API application")
    await db.init_db()
    if settings.REALTIME_ENABLED:
        notifier = RealtimeNotifier(cache.redis_client)
        trip_service.set_notifier(notifier)
        bid_service.set_notifier(notifier)
        logger.info("Realtime notifier attached (redis reachable=%s)", await cache.ping())


@app.get("/")
async def read_root():
    return {"message": "Tripbid API"}


@app.get("/health")
async def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
