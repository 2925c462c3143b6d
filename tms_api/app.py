from contextlib import asynccontextmanager
import logging

from fastapi import APIRouter, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tms_api import (
    __version__,
    carriers,
    config,
    customers,
    dashboard,
    documents,
    equipment,
    load_board,
    loads,
    orders,
    quotes,
    roles,
    tracking,
    workflows,
)
from tms_api.db import init_db
from tms_api.deps import require_token
from tms_api.logging_setup import setup_logging

logger = logging.getLogger(__name__)

ROUTERS = [
    customers.router,
    carriers.router,
    orders.router,
    loads.router,
    tracking.router,
    load_board.router,
    quotes.router,
    equipment.router,
    documents.router,
    roles.router,
    workflows.router,
    dashboard.router,
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.LOG_LEVEL, config.LOG_FILE)
    init_db()
    logger.info("tms api %s ready", __version__)
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="TMS API", version=__version__, lifespan=lifespan)

    # allow for calls from browser or other servers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS, allow_methods=["*"], allow_headers=["*"]
    )

    v1 = APIRouter(prefix="/v1", dependencies=[Depends(require_token)])
    for r in ROUTERS:
        v1.include_router(r)
    app.include_router(v1)
    app.include_router(dashboard.page_router)

    @app.get("/health")
    def health():
        return {"ok": True, "version": __version__}

    return app


app = create_app()
