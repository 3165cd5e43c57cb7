from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from npmx_connector.core.session import ConnectorState
from npmx_connector.server.app import create_app
from tests.connector_helpers import TOKEN, FakeExecutor


@pytest.fixture()
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture()
def connector(executor: FakeExecutor) -> ConnectorState:
    return ConnectorState(executor, token=TOKEN)


@pytest.fixture()
def client(connector: ConnectorState):
    app = create_app(connector)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def auth() -> Dict[str, str]:
    return {"Authorization": f"Bearer {TOKEN}"}
