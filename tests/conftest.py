"""
Shared fixtures: isolated settings, a scripted LLM provider, fake Azure
credentials and a recording httpx transport.
"""

import logging
import time

import pytest

# ============================================================================
# Pytest Configuration
# ============================================================================

_ENV_PREFIXES = ("LLM_", "DATASOURCE_", "AUTH_", "PIPELINE_", "LOG_", "KQLASSIST_")


def pytest_addoption(parser):
    """Register --run-integration."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires Azure credentials and live backends)",
    )


def pytest_configure(config):
    """Register the integration marker."""
    config.addinivalue_line("markers", "integration: queries a live Azure backend")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(
        reason="needs --run-integration and live Azure credentials"
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def configure_test_logging(caplog):
    """Capture DEBUG records so tests can assert on log output."""
    caplog.set_level(logging.DEBUG)
    yield


# ============================================================================
# Environment and Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(request, monkeypatch, tmp_path):
    """
    Ensure a clean environment for each test.

    Removes configuration variables inherited from the shell, runs each
    test from an empty directory so no .env file is picked up, and clears
    the settings cache before and after. Integration tests keep the real
    environment.
    """
    import os

    from kqlassist.config import clear_settings_cache

    if request.node.get_closest_marker("integration") is None:
        for name in list(os.environ):
            if name.upper().startswith(_ENV_PREFIXES):
                monkeypatch.delenv(name, raising=False)
        monkeypatch.chdir(tmp_path)

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def openai_api_key(monkeypatch):
    """Configure a syntactically valid OpenAI key."""
    test_key = "sk-test-key-1234567890-abcdefghijklmnop"
    monkeypatch.setenv("LLM_OPENAI_API_KEY", test_key)
    return test_key


# ============================================================================
# Mock LLM Provider
# ============================================================================


@pytest.fixture
def mock_llm_provider():
    """
    Stand-in provider whose generate() returns scripted completions.

    Usage:
        def test_agent(mock_llm_provider):
            mock_llm_provider.set_response('{"kql": "requests | take 1"}')
            query = await generator.generate("anything")
    """
    from unittest.mock import AsyncMock

    from kqlassist.llm.models import LLMResponse, LLMUsage

    class MockLLMProvider:
        def __init__(self):
            self.provider_name = "mock"
            self.timeout = 30
            self.temperature = 0.3
            self.generate = AsyncMock()
            self.aclose = AsyncMock()

        def set_response(self, response: str, finish_reason: str = "stop"):
            """Return ``response`` from every generate() call."""
            self.generate.return_value = self.make_response(response, finish_reason)

        def set_responses(self, responses: list[str]):
            """Return each response in turn."""
            self.generate.side_effect = [self.make_response(text) for text in responses]

        @staticmethod
        def make_response(content: str, finish_reason: str = "stop") -> LLMResponse:
            return LLMResponse(
                content=content,
                model="mock-model",
                usage=LLMUsage(prompt_tokens=1, completion_tokens=1, total_tokens=2),
                finish_reason=finish_reason,
                provider="mock",
                metadata={},
            )

        @property
        def last_request(self):
            return self.generate.call_args.args[0]

    return MockLLMProvider()


# ============================================================================
# Credentials and HTTP
# ============================================================================


class FakeCredential:
    """Async credential returning a fixed token or raising a fixed error."""

    def __init__(self, token: str = "token", error: Exception | None = None, expires_in: int = 3600):
        self.token = token
        self.error = error
        self.expires_in = expires_in
        self.calls: list[tuple[str, ...]] = []
        self.closed = False

    async def get_token(self, *scopes, **kwargs):
        from azure.core.credentials import AccessToken

        self.calls.append(scopes)
        if self.error is not None:
            raise self.error
        return AccessToken(self.token, int(time.time()) + self.expires_in)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_credential():
    """Factory for fake async token credentials."""
    return FakeCredential


@pytest.fixture
def credential_registry():
    """
    Factory for a CredentialRegistry whose ambient strategies use fake credentials.

    Usage:
        registry = credential_registry(platform_default=FakeCredential("a"))
    """
    from kqlassist.connectors.auth import AuthenticationStrategy, CredentialRegistry

    def _create(
        explicit=None,
        platform_default=None,
        interactive_login=None,
        system_managed_identity=None,
    ) -> CredentialRegistry:
        credentials = {
            AuthenticationStrategy.PLATFORM_DEFAULT: platform_default or FakeCredential("platform"),
            AuthenticationStrategy.INTERACTIVE_LOGIN: interactive_login or FakeCredential("cli"),
            AuthenticationStrategy.SYSTEM_MANAGED_IDENTITY: system_managed_identity
            or FakeCredential("msi"),
        }
        return CredentialRegistry(
            explicit_credential=explicit,
            factories={strategy: (lambda c=c: c) for strategy, c in credentials.items()},
        )

    return _create


@pytest.fixture
def mock_transport():
    """
    Build an httpx client over a MockTransport that records requests.

    Usage:
        client, requests = mock_transport(lambda request: httpx.Response(200, json={...}))
    """
    import httpx

    def _create(handler):
        requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        return httpx.AsyncClient(transport=httpx.MockTransport(_record)), requests

    return _create
