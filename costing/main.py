import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from .config import settings
from .db import close_pool, initialize_database, open_pool, pool
from .repos.billing_api import HttpBillingStore
from .repos.memory_store import MemoryBillingStore
from .routers import costing, invoices
from .routers.deps import registry


logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    database_available = False
    if settings.billing_store == "postgres":
        open_pool()  # open DB pool at startup
        try:
            initialize_database()
            database_available = True
        except Exception as exc:  # pragma: no cover - local dev without Postgres
            logger.warning("Database initialization failed; continuing with fixture data: %s", exc)
            registry.reset(MemoryBillingStore.from_fixtures())
    app.state.database_available = database_available
    try:
        yield
    finally:
        store = registry.store
        if isinstance(store, HttpBillingStore):
            await store.aclose()
        registry.reset()
        close_pool()  # close pool at shutdown

app = FastAPI(
    title="Costing Backend",
    version="0.1.0",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(costing.router)
app.include_router(invoices.router)

@app.get("/api/health")
def health():
    return {"ok": True, "store": settings.billing_store}

# DB connectivity quick-check
@app.get("/api/db/ping")
def db_ping():
    if pool.closed:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database pool is closed")
    with pool.connection() as conn:
        with conn.cursor() as cur:
            cur.execute("select 'ok'::text")
            (db_status,) = cur.fetchone()
            return {"db": db_status}
