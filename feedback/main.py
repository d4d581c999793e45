import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from feedback.core.config import settings
from feedback.core.settings_store import JsonFileSettings
from feedback.routers import health, issues, tags, awards, store, sync
from feedback.services.award_service import load_awards
from feedback.services.store import DataStore
from feedback.services.sync_service import EntitlementMonitor, QueueTransport, SyncReconciler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # awards.json illisible = installation cassée : on ne démarre pas
    app.state.awards = load_awards(settings.AWARDS_PATH)

    data_store = DataStore(settings.DATABASE_URL, JsonFileSettings(settings.SETTINGS_PATH))
    app.state.store = data_store
    app.state.reconciler = SyncReconciler(data_store)
    app.state.entitlements = EntitlementMonitor(data_store)
    app.state.transport = QueueTransport()

    listener = asyncio.create_task(app.state.reconciler.listen(app.state.transport.changes()))
    logger.info(f"Store ready on {settings.DATABASE_URL}")

    yield

    await app.state.transport.close()
    listener.cancel()
    try:
        await listener
    except asyncio.CancelledError:
        pass
    # les éditions encore dans la fenêtre de debounce sont écrites maintenant
    data_store.close()
    logger.info("Store closed")


app = FastAPI(
    title="Feedback API",
    version="1.0.0",
    lifespan=lifespan
)

# Routes
app.include_router(health.router, prefix="/health")
app.include_router(issues.router)
app.include_router(tags.router)
app.include_router(awards.router)
app.include_router(store.router)
app.include_router(sync.router)
