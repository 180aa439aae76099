# tests/conftest.py
import os

# The engine in marketsync.database is built at import time; keep it off Postgres
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_marketsync.db")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from marketsync.core.config import Settings
from marketsync.core.enums import Marketplace
from marketsync.database import Base
from marketsync.services.catalog_store import CatalogStore
from marketsync.services.import_service import ImportMergeResolver
from marketsync.services.locks import GroupLockRegistry
from marketsync.services.product_sync import ProductSyncService
from marketsync.services.webhook_reconciler import WebhookReconciler
from tests.mocks import MemoryCatalogStore, MockAdapterFactory


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        BASIC_AUTH_USERNAME="admin",
        BASIC_AUTH_PASSWORD="secret",
        SYNC_SCHEDULE_ENABLED=False,
        TOKEN_REFRESH_ENABLED=False,
        WOOCOMMERCE_WEBHOOK_SECRET="",
    )


@pytest.fixture
async def test_engine(tmp_path):
    """Create and configure a throwaway SQLite database (function-scoped)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_store(session_factory):
    """CatalogStore over a real (SQLite) session"""
    async with session_factory() as session:
        yield CatalogStore(session)


@pytest.fixture
def memory_store():
    return MemoryCatalogStore()


@pytest.fixture
def adapters():
    return MockAdapterFactory()


@pytest.fixture
def locks():
    return GroupLockRegistry()


@pytest.fixture
def product_sync(memory_store, adapters, locks):
    return ProductSyncService(memory_store.store_factory, adapters, locks)


@pytest.fixture
def resolver(memory_store, adapters, locks):
    return ImportMergeResolver(memory_store.store_factory, adapters, locks, page_size=2, max_pages=5)


@pytest.fixture
def reconciler(memory_store, adapters, resolver, product_sync):
    return WebhookReconciler(memory_store.store_factory, adapters, resolver, product_sync, log_size=5)


@pytest.fixture
def connect_all(memory_store):
    """Every marketplace connected with a live token"""
    for marketplace in Marketplace:
        memory_store.add_connection(marketplace)
    return memory_store
