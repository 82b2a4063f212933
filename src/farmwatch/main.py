import asyncio
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from livesync.errors import AuthorizationError, ConflictError, NotFoundError, TransportError, ValidationError
from livesync.records import Collection
from livesync.synchronizer import FeedStatus, LiveStateSynchronizer, ReconnectPolicy

from .changes import change_hub
from .config import settings
from .db import init_db
from .deps import gateway
from .routes.auth import router as auth_router
from .routes.fire_zones import router as fire_zones_router
from .routes.live import router as live_router, ws_router as live_ws_router
from .routes.live_feeds import router as live_feeds_router
from .routes.map_configs import router as map_configs_router
from .routes.notifications import router as notifications_router
from .routes.security_points import router as security_points_router
from .routes.team_members import router as team_members_router
from .routes.users import router as users_router

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _log_status(collection: Collection, feed_status: FeedStatus) -> None:
    if feed_status.connected:
        logger.info("Live state for %s is in sync", collection.value)
    else:
        logger.warning(
            "Live state for %s is disconnected (attempt %d): %s",
            collection.value, feed_status.retry_count, feed_status.error,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, start the change hub and load every watched collection."""
    if not settings.debug and not settings.secret_key:
        logger.warning(
            "SECRET_KEY is not set while DEBUG is False. This is insecure - "
            "set SECRET_KEY in environment or .env before production."
        )

    logger.info("Initializing database...")
    init_db()
    logger.info("Database initialized successfully")

    change_hub.queue_size = settings.change_feed_queue_size
    change_hub.bind(asyncio.get_running_loop())

    synchronizer = LiveStateSynchronizer(
        gateway,
        change_hub,
        reconnect=ReconnectPolicy(
            initial_delay=settings.reconnect_initial_delay_sec,
            max_delay=settings.reconnect_max_delay_sec,
        ),
        on_status=_log_status,
    )
    for collection in Collection:
        rows = await synchronizer.load(collection)
        logger.info("Loaded %d %s", len(rows), collection.value)
        # Keeps the collection's change feed running for the life of the app.
        synchronizer.subscribe(collection, lambda rows: None)
    app.state.synchronizer = synchronizer

    yield

    logger.info("Shutting down application")
    app.state.synchronizer = None
    await synchronizer.close()
    await change_hub.close()


app = FastAPI(
    title="FarmWatch Server",
    description="Farm safety dashboard API with live fire, security and team updates",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for web clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(AuthorizationError)
async def authorization_handler(request: Request, exc: AuthorizationError):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(TransportError)
async def transport_handler(request: Request, exc: TransportError):
    logger.error("Backend unavailable while serving %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


app.include_router(auth_router)
app.include_router(fire_zones_router)
app.include_router(security_points_router)
app.include_router(team_members_router)
app.include_router(map_configs_router)
app.include_router(live_feeds_router)
app.include_router(notifications_router)
app.include_router(users_router)
app.include_router(live_router)
app.include_router(live_ws_router)


@app.get("/")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "FarmWatch Server"}


def run() -> None:
    import uvicorn

    uvicorn.run("farmwatch.main:app", host=settings.host, port=settings.port, reload=settings.debug)


if __name__ == "__main__":
    run()
