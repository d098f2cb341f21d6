import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .adapters.entry.http.admin_router import router as admin_router
from .config import get_settings
from .workers.supervisor import CopyTradeSupervisor

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _setup_logging(level: str):
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # web3 request logs are per RPC call
    logging.getLogger("web3").setLevel(logging.WARNING)


supervisor = CopyTradeSupervisor()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Wire Mongo, gateways and workers on startup; stop monitors and close
    Mongo on shutdown.
    """
    settings = get_settings()
    _setup_logging(settings.LOG_LEVEL)
    log = logging.getLogger(__name__)
    log.info("copytrade starting (env=%s)", settings.ENV)
    await supervisor.start()

    app.state.db = supervisor.db
    app.state.supervisor = supervisor

    try:
        yield
    finally:
        log.info("copytrade shutting down")
        await supervisor.stop()


app = FastAPI(title="copytrade", version="0.1.0", lifespan=lifespan)
app.include_router(admin_router)


@app.get("/healthz")
async def healthz():
    scheduler = supervisor.scheduler
    return {
        "status": "ok",
        "env": get_settings().ENV,
        "active_monitors": len(scheduler.registry) if scheduler is not None else 0,
    }
