from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Never reach real providers from the test suite.
for _name in (
    "PUBLIC_BASE_URL",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_FROM_NUMBER",
    "TWILIO_DEFAULT_TO_NUMBER",
    "TWILIO_CALLS_API_KEY",
):
    os.environ.pop(_name, None)


@pytest.fixture(scope="session")
def app():
    os.environ["DEEPGRAM_API_KEY"] = "test-deepgram-key"
    os.environ["LLM_API_KEY"] = "test-llm-key"

    import importlib

    for module_name in [
        "config.settings",
        "api.dependencies",
        "api.twilio_routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
