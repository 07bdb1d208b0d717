"""
Pytest configuration and shared fixtures for ntlm-remote-auth tests.
"""

import pytest

from ntlm_remote_auth.core.config import SessionConfig
from ntlm_remote_auth.core.credentials import resolve_credential
from ntlm_remote_auth.core.types import Credential, TenantTarget
from ntlm_remote_auth.ntlm.handshake import HandshakeEngine
from ntlm_remote_auth.session import authenticate
from ntlm_remote_auth.transport.connection import provision

from tests.fakes import TENANT_URL, FakeExchange, FakeTenant


# =============================================================================
# CREDENTIAL FIXTURES
# =============================================================================


@pytest.fixture
def credential() -> Credential:
    return Credential(username="jdoe", password="TestP@ssw0rd123!", domain="CORP")


@pytest.fixture
def target() -> TenantTarget:
    _, resolved = resolve_credential(TENANT_URL, "", "CORP", "jdoe", "pw")
    return resolved


# =============================================================================
# FAKE SERVER FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_fake_exchanges():
    FakeExchange.instances.clear()
    yield
    FakeExchange.instances.clear()


@pytest.fixture
def tenant() -> FakeTenant:
    return FakeTenant()


@pytest.fixture
def engine_for(credential: Credential, target: TenantTarget):
    """Build a handshake engine wired to a fake tenant."""

    def build(fake: FakeTenant) -> HandshakeEngine:
        templates = provision(target, SessionConfig(), transport=fake.transport)
        return HandshakeEngine(
            credential=credential,
            target=target,
            templates=templates,
            exchange_factory=FakeExchange.factory,
        )

    return build


@pytest.fixture
def connect():
    """Authenticate against a fake tenant with the fake NTLM encoder."""

    async def run(fake: FakeTenant, *args, **kwargs):
        if not args:
            args = (TENANT_URL, "WS01", "CORP", "jdoe", "TestP@ssw0rd123!")
        kwargs.setdefault("transport", fake.transport)
        kwargs.setdefault("exchange_factory", FakeExchange.factory)
        return await authenticate(*args, **kwargs)

    return run


# =============================================================================
# PYTEST MARKERS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: end-to-end tests driving real NTLM contexts"
    )
