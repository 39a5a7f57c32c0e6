"""
Shared test fixtures — record stores, service container, FastAPI test client.
"""

from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import tradetrack.models  # noqa: F401
from tradetrack.database import Base, serialize_sqlite_writes
from tradetrack.main import app
from tradetrack.routes import get_services
from tradetrack.services.container import build_services
from tradetrack.services.sql_store import SqlRecordStore
from tradetrack.services.store import MemoryRecordStore


# ── Wallets (Hardhat default accounts) ──────────────────

ADMIN = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
IMPORTER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
EXPORTER = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
OUTSIDER = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"
CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
OTHER_CONTRACT = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"

TX_HASH = "0x" + "ab" * 32


def deploy_payload(contract: str = CONTRACT, account: str = IMPORTER, **overrides) -> dict:
    payload = {
        "contractAddress": contract,
        "action": "deploy",
        "txHash": TX_HASH,
        "account": account,
        "extra": {
            "importer": IMPORTER,
            "exporter": EXPORTER,
            "requiredAmount": "1000",
            "token": "USDC",
        },
    }
    payload.update(overrides)
    return payload


def activity_payload(account: str = IMPORTER, timestamp: int = 1_700_000_000_000, **overrides) -> dict:
    payload = {
        "account": account,
        "type": "onChain",
        "action": "deposit",
        "txHash": TX_HASH,
        "contractAddress": CONTRACT,
        "timestamp": timestamp,
    }
    payload.update(overrides)
    return payload


# ── Record stores ───────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@asynccontextmanager
async def _sql_store():
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    serialize_sqlite_writes(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield SqlRecordStore(async_sessionmaker(engine, expire_on_commit=False))
    finally:
        await engine.dispose()


@pytest.fixture()
def memory_store():
    return MemoryRecordStore()


@pytest_asyncio.fixture()
async def sql_store():
    async with _sql_store() as store:
        yield store


@pytest_asyncio.fixture(params=["memory", "sql"])
async def record_store(request):
    """Runs a test once per backend that can run in-process."""
    if request.param == "memory":
        yield MemoryRecordStore()
    else:
        async with _sql_store() as store:
            yield store


# ── Services & client ───────────────────────────────────

@pytest.fixture()
def services(memory_store):
    return build_services(memory_store, [ADMIN])


@pytest_asyncio.fixture()
async def client(services):
    """FastAPI test client wired to an in-memory service container."""
    app.dependency_overrides[get_services] = lambda: services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
