"""
Unit tests for ntlm_remote_auth.ntlm.handshake.

Tests the three-message exchange, its redirect shortcut, its failure
modes and the per-run state machine.
"""

import httpx
import pytest
from returns.result import Failure, Success

from ntlm_remote_auth.core.exceptions import HandshakeError, InvariantViolation
from ntlm_remote_auth.core.types import RequestOptions
from ntlm_remote_auth.ntlm.handshake import (
    CHALLENGE_MISSING,
    CHALLENGE_UNPARSEABLE,
    HandshakeStateMachine,
)
from ntlm_remote_auth.ntlm.types import (
    AuthenticateSent,
    ChallengeMessage,
    ChallengeReceived,
    HandshakeFailed,
    HandshakeState,
    NegotiateSent,
    ResponseReceived,
)

from tests.fakes import FakeExchange, FakeTenant, ntlm_message_type


def states(engine):
    trace = engine.last_trace
    return [trace[0].from_state.name] + [t.to_state.name for t in trace]


class TestHandshakeFlow:
    """Tests for a complete negotiate / challenge / authenticate run."""

    @pytest.mark.asyncio
    async def test_three_message_exchange(self, engine_for):
        """Test the Type 1 / Type 3 requests of a full run."""
        tenant = FakeTenant(resources={"/_api/web": (200, {"d": {"Title": "Dev"}})})
        engine = engine_for(tenant)

        response = await engine.handshake(
            RequestOptions(url="/_api/web", method="POST", json={"x": 1})
        )

        assert response.status_code == 200
        assert response.json() == {"d": {"Title": "Dev"}}
        assert [ntlm_message_type(r.headers.get("authorization")) for r in tenant.requests] == [1, 3]

        negotiate, authenticate = tenant.requests
        assert negotiate.headers["connection"] == "keep-alive"
        assert negotiate.method == "GET"
        assert negotiate.content == b""
        assert authenticate.headers["connection"] == "close"
        assert authenticate.method == "POST"
        assert authenticate.content in (b'{"x":1}', b'{"x": 1}')
        assert negotiate.url == authenticate.url

    @pytest.mark.asyncio
    async def test_state_trace(self, engine_for):
        """Test the states visited by a full run."""
        engine = engine_for(FakeTenant(resources={"/a": (200, {})}))
        await engine.handshake("/a")
        assert states(engine) == [
            "INITIAL",
            "NEGOTIATE_SENT",
            "CHALLENGE_RECEIVED",
            "AUTHENTICATE_SENT",
            "DONE",
        ]

    @pytest.mark.asyncio
    async def test_fresh_exchange_per_run(self, engine_for):
        """Test that every run uses a new NTLM context."""
        engine = engine_for(FakeTenant(resources={"/a": (200, {})}))
        await engine.handshake("/a")
        await engine.handshake("/a")
        assert len(FakeExchange.instances) == 2
        assert all(len(e.challenges) == 1 for e in FakeExchange.instances)

    @pytest.mark.asyncio
    async def test_challenge_handed_to_exchange(self, engine_for):
        """Test that the decoded challenge reaches the encoder."""
        engine = engine_for(FakeTenant(resources={"/a": (200, {})}))
        await engine.handshake("/a")
        challenge = FakeExchange.instances[0].challenges[0]
        assert challenge.server_challenge == b"\x01\x02\x03\x04\x05\x06\x07\x08"
        assert challenge.target_name == "TENANT"

    @pytest.mark.asyncio
    async def test_non_2xx_is_a_result(self, engine_for):
        """Test that an error status is returned, not raised."""
        engine = engine_for(FakeTenant())
        response = await engine.handshake(RequestOptions(url="/missing"))
        assert response.status_code == 404
        assert response.json()["error"]["message"]["value"] == "File Not Found."
        assert engine.last_trace[-1].to_state is HandshakeState.DONE

    @pytest.mark.asyncio
    async def test_options_not_mutated(self, engine_for):
        """Test that caller options are left untouched."""
        engine = engine_for(FakeTenant(resources={"/a": (200, {})}))
        options = RequestOptions(url="/a", headers={"X-Test": "1"})
        await engine.handshake(options)
        assert options.headers == {"X-Test": "1"}


class TestHandshakeRedirect:
    """Tests for a redirect answered to the negotiate message."""

    @pytest.mark.asyncio
    async def test_redirect_reissues_request_without_type3(self, engine_for):
        """Test the redirect path of the negotiate step."""
        tenant = FakeTenant(
            redirect_to="/moved/here",
            resources={"/moved/here": (201, {"ok": True})},
        )
        engine = engine_for(tenant)

        response = await engine.handshake(
            RequestOptions(url="/original", method="PUT", json={"v": 2})
        )

        assert response.status_code == 201
        assert len(tenant.requests) == 2
        redirected = tenant.requests[1]
        assert "authorization" not in redirected.headers
        assert redirected.method == "PUT"
        assert str(redirected.url) == "https://tenant.example.com/moved/here"
        assert redirected.content in (b'{"v":2}', b'{"v": 2}')
        assert tenant.requests_of_type(3) == []
        assert states(engine) == ["INITIAL", "NEGOTIATE_SENT", "REDIRECTED", "DONE"]


class TestHandshakeFailures:
    """Tests for engine-level errors."""

    @pytest.mark.asyncio
    async def test_missing_challenge(self, engine_for):
        """Test a negotiate response without a challenge."""
        tenant = FakeTenant(offer_challenge=False)
        engine = engine_for(tenant)

        with pytest.raises(HandshakeError) as exc_info:
            await engine.handshake("/a")

        assert str(exc_info.value) == CHALLENGE_MISSING
        assert len(tenant.requests) == 1
        assert states(engine) == ["INITIAL", "NEGOTIATE_SENT", "ERROR"]

    @pytest.mark.asyncio
    async def test_unparseable_challenge(self, engine_for):
        """Test a challenge that cannot be decoded."""
        tenant = FakeTenant(www_authenticate="NTLM bm90IGEgY2hhbGxlbmdl")
        engine = engine_for(tenant)

        with pytest.raises(HandshakeError) as exc_info:
            await engine.handshake("/a")

        assert str(exc_info.value) == CHALLENGE_UNPARSEABLE
        assert tenant.requests_of_type(3) == []

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, engine_for):
        """Test that transport errors are not wrapped."""
        class Broken(FakeTenant):
            def __call__(self, request):
                raise httpx.ConnectError("connection refused", request=request)

        engine = engine_for(Broken())
        with pytest.raises(httpx.ConnectError):
            await engine.handshake("/a")
        assert engine.last_trace[-1].to_state is HandshakeState.ERROR

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self, engine_for):
        """Test that a failed run releases the connection lock."""
        engine = engine_for(FakeTenant(offer_challenge=False))
        with pytest.raises(HandshakeError):
            await engine.handshake("/a")
        assert not engine.templates.handle.lock.locked()


class TestHandshakeStateMachine:
    """Tests for the per-run state machine."""

    def test_initial_state(self):
        """Test a fresh machine."""
        machine = HandshakeStateMachine.create()
        assert machine.state is HandshakeState.INITIAL
        assert machine.state_path() == ["INITIAL"]

    def test_invalid_transition_is_failure(self):
        """Test an event out of order."""
        machine = HandshakeStateMachine.create()
        result = machine.process_event(AuthenticateSent())
        assert isinstance(result, Failure)
        assert machine.state is HandshakeState.INITIAL

    def test_error_reachable_from_negotiate_sent(self):
        """Test the failure transition."""
        machine = HandshakeStateMachine.create()
        machine.process_event(NegotiateSent(url="/a", method="GET"))
        result = machine.process_event(HandshakeFailed(error_message="boom"))
        assert result == Success(HandshakeState.ERROR)
        assert machine.context.error_message == "boom"

    def test_challenge_before_authenticate_invariant(self):
        """Test that a missing challenge breaks the invariant."""
        machine = HandshakeStateMachine.create()
        machine.process_event(NegotiateSent(url="/a", method="GET"))
        with pytest.raises(InvariantViolation):
            machine.process_event(ChallengeReceived(challenge=None))

    def test_done_records_status(self):
        """Test the context and trace of a completed run."""
        machine = HandshakeStateMachine.create()
        machine.process_event(NegotiateSent(url="/a", method="GET"))
        machine.process_event(ChallengeReceived(challenge=ChallengeMessage(blob=b"x")))
        machine.process_event(AuthenticateSent())
        machine.process_event(ResponseReceived(status_code=204))
        assert machine.state is HandshakeState.DONE
        assert machine.context.status_code == 204
        assert [t.event_type for t in machine.get_trace()] == [
            "NegotiateSent",
            "ChallengeReceived",
            "AuthenticateSent",
            "ResponseReceived",
        ]


class TestHandshakeSteps:
    """Tests for driving the two handshake steps individually."""

    @pytest.mark.asyncio
    async def test_steps_without_machine(self, engine_for):
        """Test calling the negotiate and authenticate steps directly."""
        tenant = FakeTenant(resources={"/a": (200, {"ok": True})})
        engine = engine_for(tenant)
        exchange = FakeExchange.factory(engine.credential, engine.target)
        options = RequestOptions(url="/a", method="DELETE")

        negotiate_response = await engine.send_negotiate(exchange, options)
        assert negotiate_response.status_code == 401

        response = await engine.send_authenticate(exchange, negotiate_response, options)
        assert response.json() == {"ok": True}
        assert [r.method for r in tenant.requests] == ["GET", "DELETE"]
