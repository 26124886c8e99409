from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from codepair.core.config import Settings
from codepair.main import create_app


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        environment="test",
        cors_origins=["*"],
        room_reclaim_delay_seconds=0.5,
        execution_timeout_seconds=5.0,
    )


@pytest.fixture()
def client(settings: Settings) -> Generator[TestClient, None, None]:
    app = create_app(settings)

    with TestClient(app) as test_client:
        yield test_client
