"""Pytest configuration and fixtures.

Loads environment variables from .env file for local testing.
Provides fixtures shared by unit and integration tests.
"""

import base64
import os
import sys
from pathlib import Path

import pytest

# Add src/functions to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src" / "functions"))


def pytest_configure(config):
    """Load .env file and configure pytest markers before tests run."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests requiring Azure resources"
    )

    try:
        from dotenv import load_dotenv

        env_path = Path(__file__).parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            print(f"\n[OK] Loaded environment from {env_path}")
    except ImportError:
        pass  # python-dotenv not installed, skip


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION_TESTS is set."""
    if os.getenv("RUN_INTEGRATION_TESTS"):
        return

    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled. Set RUN_INTEGRATION_TESTS=1 to enable."
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop cached config and services so each test sees its own environment."""
    import config as config_module
    import services

    config_module.reset_config()
    services.reset_services()
    yield
    config_module.reset_config()
    services.reset_services()


@pytest.fixture
def doc_intel_endpoint() -> str:
    return "https://docintel.cognitiveservices.azure.com"


@pytest.fixture
def operation_location(doc_intel_endpoint: str) -> str:
    """Operation-Location header value as returned by the analyze call."""
    return (
        f"{doc_intel_endpoint}/documentintelligence/documentModels/prebuilt-layout"
        "/analyzeResults/3f1c2b7a-0d4e-4b8a-9c55-1e2f3a4b5c6d?api-version=2024-11-30"
    )


@pytest.fixture
def storage_account_key() -> str:
    """A syntactically valid (base64) storage account key."""
    return base64.b64encode(b"not-a-real-storage-account-key").decode()
