from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from marketsync.core.config import get_settings
from marketsync.core.security import get_current_username
from marketsync.main import create_app
from marketsync.services.sync_scheduler import PollScheduler
from marketsync.services.token_refresh import TokenRefreshService


@pytest.fixture
def app(settings, memory_store, adapters, locks, product_sync, resolver, reconciler):
    """Application with in-memory services; the lifespan is not run"""
    app = create_app(settings, session_factory=MagicMock())
    scheduler = MagicMock()
    scheduler.get_job.return_value = None

    app.state.store_factory = memory_store.store_factory
    app.state.adapter_factory = adapters
    app.state.locks = locks
    app.state.product_sync = product_sync
    app.state.import_resolver = resolver
    app.state.webhook_reconciler = reconciler
    app.state.poll_scheduler = PollScheduler(scheduler, resolver, memory_store.store_factory, history_size=5)
    app.state.token_refresh = TokenRefreshService(scheduler, memory_store.store_factory, adapters)

    app.dependency_overrides[get_current_username] = lambda: "admin"
    app.dependency_overrides[get_settings] = lambda: settings
    return app


@pytest.fixture
def test_client(app):
    return TestClient(app)
