from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from bidcraft.auction import AuctionEngine
from bidcraft.clock import utcnow
from bidcraft.config import Settings, settings as default_settings
from bidcraft.database import MongoStore
from bidcraft.errors import BidCraftError
from bidcraft.notifications import Notifier, build_mailer
from bidcraft.routers import admin, auth, dashboards, health, projects

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await app.state.store.connect()
    logger.info("BidCraft started")
    yield
    app.state.store.close()
    logger.info("BidCraft stopped")


def create_app(settings: Settings = None, store: MongoStore = None, mailer=None, clock=utcnow) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="BidCraft",
        description="Reverse-auction marketplace: buyers post projects, providers underbid each other.",
        version="1.0.0",
        lifespan=lifespan,
    )

    # One store per process, shared by every request
    store = store or MongoStore(settings.MONGO_URI, settings.MONGO_DB)
    engine = AuctionEngine(store.db, clock=clock)
    notifier = Notifier(store.db, mailer or build_mailer(settings), clock=clock)
    engine.on_bid_accepted(notifier.bid_accepted)

    app.state.settings = settings
    app.state.store = store
    app.state.engine = engine
    app.state.notifier = notifier

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BidCraftError)
    async def bidcraft_error_handler(request: Request, exc: BidCraftError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Invalid payload", "errors": errors},
        )

    @app.exception_handler(PyMongoError)
    async def store_error_handler(request: Request, exc: PyMongoError):
        logger.error("%s %s store error: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Server error"},
        )

    # Include routers
    app.include_router(auth.router)
    app.include_router(projects.router)
    app.include_router(dashboards.router)
    app.include_router(admin.router)
    app.include_router(health.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
