import httpx
import pytest
import respx
from httpx import ASGITransport

from claimchaser.config import Settings, get_settings
from claimchaser.services.call_orchestrator import CallOrchestrator
from claimchaser.services.dispatch_lock import LocalDispatchLock
from claimchaser.services.voice_client import ElevenLabsClient
from fakes import FakeStore

BASE_URL = "https://api.elevenlabs.test/v1"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        environment="development",
        supabase_url="",
        supabase_service_key="",
        elevenlabs_api_key="test-el-key",
        elevenlabs_base_url=BASE_URL,
        elevenlabs_agent_id="agent-1",
        elevenlabs_phone_number_id="phone-1",
        redis_url="",
        cron_secret="",
        transcript_retry_delay_seconds=0,
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def provider_api():
    """Mocked ElevenLabs API. Unmatched requests fail the test."""
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as mock:
        yield mock


@pytest.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def voice(http_client, settings):
    return ElevenLabsClient(http_client, settings.elevenlabs_api_key, base_url=BASE_URL)


@pytest.fixture
def orchestrator(store, voice, settings):
    return CallOrchestrator(store, voice, LocalDispatchLock(), settings)


@pytest.fixture
async def client(orchestrator, settings):
    from claimchaser.api_server import app

    app.state.orchestrator = orchestrator
    app.dependency_overrides[get_settings] = lambda: settings
    async with httpx.AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c
    app.dependency_overrides.clear()
