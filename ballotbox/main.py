# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from ballotbox.config import CORS_ORIGINS, LOG_LEVEL, STORAGE_BACKEND
from ballotbox.errors import BallotError
from ballotbox.routes.candidate_routes import router as candidate_router
from ballotbox.routes.vote_routes import vote_router
from ballotbox.routes.voter_routes import voter_router
from ballotbox.storage import open_storage

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


def create_app(store=None) -> FastAPI:
    """
    Build the API around a storage handle.
    Without one, the backend named by BALLOTBOX_STORAGE is opened on
    start-up and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = store is None
        app.state.store = open_storage(STORAGE_BACKEND) if owned else store
        logger.info(f"Storage ready: {type(app.state.store).__name__}")
        try:
            yield
        finally:
            if owned:
                app.state.store.close()

    app = FastAPI(title="ballotbox - vote casting and tally API", lifespan=lifespan)
    if store is not None:
        app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BallotError)
    async def ballot_error_handler(request: Request, exc: BallotError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        headers = {"Retry-After": "1"} if exc.retryable else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    app.include_router(vote_router)
    app.include_router(voter_router)
    app.include_router(candidate_router)

    @app.get("/health", tags=["General"])
    def health_check(request: Request):
        store = request.app.state.store
        healthy = store.ping()
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={"status": "healthy" if healthy else "unhealthy", "storage": type(store).__name__},
        )

    @app.get("/", tags=["General"])
    def read_root():
        return {"message": "Welcome to the ballotbox API"}

    @app.get("/favicon.ico", include_in_schema=False)
    async def favicon():
        return Response(status_code=204)

    return app


app = create_app()
