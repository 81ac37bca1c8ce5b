"""
Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import logging

import pytest

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires API keys and external services)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (may require external services)"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled (use --run-integration to enable)."
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def configure_test_logging(caplog):
    """Capture logs at DEBUG for every test."""
    caplog.set_level(logging.DEBUG)
    yield


# ============================================================================
# Environment and Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def mock_openai_api_key(monkeypatch):
    """
    Mock OpenAI API key and isolate settings for every test.

    Keeps a developer's .env out of the test run and prevents real API calls.
    """
    from finquery.config import clear_settings_cache

    clear_settings_cache()
    monkeypatch.setenv("FINQUERY_ENV_SOURCE", "none")
    monkeypatch.delenv("SYSTEM_DATABASE_URL", raising=False)
    monkeypatch.delenv("LLM_ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("LLM_DEFAULT_PROVIDER", raising=False)

    test_key = "sk-test-key-1234567890-abcdefghijklmnop"  # 20+ chars
    monkeypatch.setenv("LLM_OPENAI_API_KEY", test_key)
    yield test_key

    clear_settings_cache()


# ============================================================================
# Mock LLM Provider
# ============================================================================


@pytest.fixture
def mock_llm_provider():
    """
    Mock LLM provider for testing agents.

    Usage:
        async def test_agent(mock_llm_provider):
            mock_llm_provider.set_response('{"targetSheet": "abc"}')
            spec = await agent.interpret("query", context)
    """
    from unittest.mock import AsyncMock

    from finquery.llm.models import LLMResponse, LLMUsage

    class MockLLMProvider:
        def __init__(self):
            self.provider_name = "mock"
            self.generate = AsyncMock()
            self.complete = AsyncMock(return_value="")
            self.close = AsyncMock()

        def set_response(self, response: str):
            """Set the text that complete() and generate() return."""
            self.complete.return_value = response
            self.complete.side_effect = None
            self.generate.return_value = LLMResponse(
                content=response,
                model="mock-model",
                usage=LLMUsage(prompt_tokens=1, completion_tokens=1, total_tokens=2),
                finish_reason="stop",
                provider="mock",
                metadata={},
            )

        def set_error(self, error: Exception):
            self.complete.side_effect = error
            self.generate.side_effect = error

    return MockLLMProvider()


# ============================================================================
# Common Test Data
# ============================================================================


@pytest.fixture
def sample_matrix() -> list[list]:
    """Expense sheet as returned by the Sheets API (strings throughout)."""
    return [
        ["Date", "Category", "Amount", "Vendor"],
        ["2024-01-05", "Travel", "1200", "Delta"],
        ["2024-01-09", "Software", "300", "GitHub"],
        ["2024-02-11", "Travel", "450.50", "Hilton"],
        ["2024-02-20", "Meals", "", "Cafe"],
        ["2024-03-02", "Software", "1500", "AWS", "extra-cell"],
    ]


@pytest.fixture
def sample_schema_context():
    """Catalog with one registered sheet and its columns."""
    from finquery.models.sheet import ColumnMetadata, SchemaContext, SheetMetadata

    return SchemaContext(
        sheets=[SheetMetadata(sheet_id="sheet-expenses", name="Expenses 2024")],
        columns={
            "sheet-expenses": [
                ColumnMetadata(
                    id=1,
                    sheet_id="sheet-expenses",
                    column_name="Amount",
                    display_name="Amount",
                    data_type="number",
                    description="Expense amount in USD",
                ),
                ColumnMetadata(
                    id=2,
                    sheet_id="sheet-expenses",
                    column_name="Category",
                    display_name="Category",
                    data_type="string",
                ),
            ]
        },
    )
