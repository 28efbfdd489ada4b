"""Integration test fixtures: the FastAPI app on the test database."""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from commission_engine.api.app import create_app
from commission_engine.services import StaticSettingsProvider


@pytest.fixture
def api(session_factory, emitter) -> Generator[TestClient, None, None]:
    """HTTP client bound to a fresh app using the test session factory."""
    app = create_app(
        session_factory=session_factory,
        emitter=emitter,
        settings_provider=StaticSettingsProvider(),
    )
    with TestClient(app) as client:
        yield client
