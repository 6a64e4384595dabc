"""
Shared pytest fixtures and configuration for the Prompt API test suite.

This module provides a fake llama.cpp model, a real LLMService wired to it,
test clients, and common fixtures used across all test modules.
"""

import os
import sys
import tempfile
from pathlib import Path
from typing import AsyncIterator, Dict

import pytest

# Ensure backend module is importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Set test-specific environment variables BEFORE importing app modules
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_DIR"] = str(Path(tempfile.mkdtemp(prefix="prompt-api-logs-")))

from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from fakes import FakeLlama, create_test_settings
from prompt_api.config.settings import Settings
from prompt_api.operations import OperationRegistry, default_registry
from prompt_api.services.llm import LLMService


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    return tmp_path / "logs"


@pytest.fixture
def test_settings(log_dir: Path) -> Settings:
    """Create test-specific settings with rate limiting disabled."""
    return create_test_settings(
        rate_limit_enabled=False,
        log_level="DEBUG",
        log_dir=str(log_dir),
        llm_repo_id="test/model",
        llm_model_filename="test.gguf",
        llm_request_timeout=5.0,
    )


@pytest.fixture
def limited_settings(log_dir: Path) -> Settings:
    """Create settings with the default request budget enforced."""
    return create_test_settings(
        rate_limit_enabled=True,
        log_level="DEBUG",
        log_dir=str(log_dir),
    )


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def fake_llama() -> FakeLlama:
    return FakeLlama()


@pytest.fixture
def llm_service(test_settings: Settings, fake_llama: FakeLlama) -> LLMService:
    """Provide a real LLMService with the fake model already loaded."""
    service = LLMService(settings=test_settings)
    service._llm = fake_llama  # type: ignore[assignment]
    return service


@pytest.fixture
def registry() -> OperationRegistry:
    return default_registry()


# ============================================================================
# Application Fixtures
# ============================================================================

@pytest.fixture
def app(test_settings: Settings, llm_service: LLMService, registry: OperationRegistry) -> FastAPI:
    """Create a test FastAPI app backed by the fake model."""
    # Import create_app lazily to avoid issues with module-level app creation
    from prompt_api.main import create_app

    application = create_app(settings=test_settings, registry=registry)
    application.state.llm_service = llm_service
    return application


@pytest.fixture
def test_client(app: FastAPI) -> TestClient:
    """Create a synchronous test client."""
    return TestClient(app)


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Create an async test client for async endpoint testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def translate_payload() -> Dict[str, str]:
    return {"Input Language": "English", "Output Language": "French", "Text": "Hello"}
