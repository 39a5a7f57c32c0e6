"""
FastAPI Application — entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tradetrack.config import settings
from tradetrack.errors import (
    ConflictError,
    NotFoundError,
    StoreError,
    TradeTrackError,
    ValidationError,
)
from tradetrack.routes import router
from tradetrack.routes.activity import activity_router, aggregated_router
from tradetrack.routes.contracts import router as contract_router
from tradetrack.routes.documents import router as document_router
from tradetrack.routes.kyc import router as kyc_router
from tradetrack.routes.notifications import router as notification_router
from tradetrack.services.chain import ChainVerifier
from tradetrack.services.container import build_services
from tradetrack.services.store import MemoryRecordStore, RecordStore

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

ERROR_STATUS: list[tuple[type[TradeTrackError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StoreError, 503),
]


async def create_store(backend: str) -> RecordStore:
    """Build the configured record store, preparing its backend."""
    if backend == "memory":
        logger.info("ℹ️ Using in-memory record store (data is lost on restart)")
        return MemoryRecordStore()

    if backend == "firestore":
        from tradetrack.services.firebase import FirestoreRecordStore, init_firebase

        if not init_firebase(settings.firebase_cred_path, settings.firebase_project_id):
            raise RuntimeError("STORE_BACKEND=firestore but Firebase could not be initialized")
        logger.info("✅ Firestore record store ready")
        return FirestoreRecordStore()

    if backend == "sql":
        from tradetrack.database import async_session, init_db
        from tradetrack.services.sql_store import SqlRecordStore

        await init_db()
        logger.info("✅ Database ready")
        return SqlRecordStore(async_session)

    raise RuntimeError(f"Unknown STORE_BACKEND: {backend}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hook."""
    logger.info(f"🚀 Starting TradeTrack API v{VERSION}")
    store = await create_store(settings.store_backend)

    chain = ChainVerifier(settings.chain_rpc_url, timeout=settings.chain_rpc_timeout)
    if not chain.enabled:
        logger.info("ℹ️ On-chain verification disabled (no CHAIN_RPC_URL)")

    app.state.services = build_services(store, settings.admin_list, chain_verifier=chain)
    logger.info(f"✅ Services ready ({len(settings.admin_list)} admin recipient(s))")

    yield

    await store.close()
    if settings.store_backend == "sql":
        from tradetrack.database import close_db

        await close_db()
    logger.info("👋 Shutdown complete")


app = FastAPI(
    title="TradeTrack API",
    description=(
        "Append-only audit trail for trade-finance contracts, KYC and "
        "trade documents, with activity feeds and notifications."
    ),
    version=VERSION,
    lifespan=lifespan,
)

# CORS: allow the dApp frontend and local dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TradeTrackError)
async def domain_error_handler(request: Request, exc: TradeTrackError):
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    body = {"success": False, "message": str(exc)}
    if isinstance(exc, ValidationError):
        body["field"] = exc.field
    if status >= 500:
        logger.error(f"❌ {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status, content=body)


app.include_router(router, prefix="/api/v1")
app.include_router(activity_router, prefix="/api/v1")
app.include_router(aggregated_router, prefix="/api/v1")
app.include_router(contract_router, prefix="/api/v1")
app.include_router(kyc_router, prefix="/api/v1")
app.include_router(document_router, prefix="/api/v1")
app.include_router(notification_router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "TradeTrack API",
        "version": VERSION,
        "docs": "/docs",
    }
