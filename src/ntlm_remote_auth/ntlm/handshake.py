"""
ntlm-remote-auth NTLM Handshake Engine

Drives one three-message exchange per call:

    1. Type 1 (negotiate) via the negotiate template, Connection: keep-alive
    2. Type 2 (challenge) read from WWW-Authenticate
    3. Type 3 (authenticate) carrying the caller's request via the
       authenticated template, Connection: close

If the negotiate response carries a Location header the caller's request
is re-issued there through the authenticated template and no Type 3 is
sent. This treats a redirect as "already authenticated", which does not
hold for every redirect target.

The final response is returned as is; a non-2xx status is a result, not
an error. No retries are performed.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import attrs
import httpx
import structlog
from returns.result import Failure

from ntlm_remote_auth.core.exceptions import HandshakeError, StateError
from ntlm_remote_auth.core.state_machine import (
    Invariant,
    Rule,
    StateMachine,
    Transition,
)
from ntlm_remote_auth.core.types import Credential, RequestOptions, TenantTarget
from ntlm_remote_auth.ntlm.exchange import (
    ExchangeFactory,
    NTLMExchange,
    spnego_exchange_factory,
)
from ntlm_remote_auth.ntlm.types import (
    AuthenticateSent,
    ChallengeReceived,
    HandshakeContext,
    HandshakeFailed,
    HandshakeState,
    NegotiateSent,
    RedirectReceived,
    ResponseReceived,
    parse_challenge_header,
)
from ntlm_remote_auth.transport.connection import ConnectionTemplates

logger = structlog.get_logger()


CHALLENGE_MISSING = "challenge missing on response of second request"
CHALLENGE_UNPARSEABLE = "could not parse challenge"


# =============================================================================
# HANDSHAKE STATE MACHINE
# =============================================================================


def _record_request(event: NegotiateSent, ctx: HandshakeContext) -> HandshakeContext:
    return attrs.evolve(ctx, url=event.url, method=event.method)


def _record_redirect(event: RedirectReceived, ctx: HandshakeContext) -> HandshakeContext:
    return attrs.evolve(ctx, redirect_location=event.location)


def _record_challenge(event: ChallengeReceived, ctx: HandshakeContext) -> HandshakeContext:
    return attrs.evolve(ctx, challenge=event.challenge)


def _record_status(event: ResponseReceived, ctx: HandshakeContext) -> HandshakeContext:
    return attrs.evolve(ctx, status_code=event.status_code)


def _record_error(event: HandshakeFailed, ctx: HandshakeContext) -> HandshakeContext:
    return attrs.evolve(ctx, error_message=event.error_message)


def _unchanged(event: Any, ctx: HandshakeContext) -> HandshakeContext:
    return ctx


HANDSHAKE_RULES: Dict[Tuple[HandshakeState, type], Rule] = {
    (HandshakeState.INITIAL, NegotiateSent): (HandshakeState.NEGOTIATE_SENT, _record_request),
    (HandshakeState.NEGOTIATE_SENT, RedirectReceived): (HandshakeState.REDIRECTED, _record_redirect),
    (HandshakeState.NEGOTIATE_SENT, ChallengeReceived): (HandshakeState.CHALLENGE_RECEIVED, _record_challenge),
    (HandshakeState.CHALLENGE_RECEIVED, AuthenticateSent): (HandshakeState.AUTHENTICATE_SENT, _unchanged),
    (HandshakeState.AUTHENTICATE_SENT, ResponseReceived): (HandshakeState.DONE, _record_status),
    (HandshakeState.REDIRECTED, ResponseReceived): (HandshakeState.DONE, _record_status),
}
HANDSHAKE_RULES.update({
    (state, HandshakeFailed): (HandshakeState.ERROR, _record_error)
    for state in HandshakeState
    if state not in (HandshakeState.DONE, HandshakeState.ERROR)
})

HANDSHAKE_INVARIANTS = (
    # Type 3 is only ever built from a parsed challenge.
    Invariant(
        "challenge_before_authenticate",
        lambda state, ctx: ctx.challenge is not None
        or state not in (HandshakeState.CHALLENGE_RECEIVED, HandshakeState.AUTHENTICATE_SENT),
    ),
)


@attrs.define
class HandshakeStateMachine(StateMachine[HandshakeState, HandshakeContext]):
    """State machine for a single handshake run."""

    @classmethod
    def create(cls) -> "HandshakeStateMachine":
        return cls(
            state=HandshakeState.INITIAL,
            context=HandshakeContext(),
            rules=HANDSHAKE_RULES,
            invariants=HANDSHAKE_INVARIANTS,
        )


# =============================================================================
# HANDSHAKE ENGINE
# =============================================================================


@attrs.define(eq=False)
class HandshakeEngine:
    """
    NTLM handshake engine bound to one session.

    The connection handle lock is held from Type 1 until the final
    response, so concurrent runs of the same session queue up instead of
    sharing a half-authenticated connection.

    Example:
        engine = HandshakeEngine(credential, target, templates)
        response = await engine.handshake(RequestOptions(url="/_api/web"))
    """

    credential: Credential
    target: TenantTarget
    templates: ConnectionTemplates
    exchange_factory: ExchangeFactory = spnego_exchange_factory
    _last_trace: List[Transition] = attrs.field(factory=list, init=False)

    @property
    def last_trace(self) -> List[Transition]:
        """Transitions of the most recent handshake run."""
        return list(self._last_trace)

    async def handshake(
        self, options: Union[RequestOptions, Mapping[str, Any], str]
    ) -> httpx.Response:
        """
        Run one complete handshake delivering ``options``.

        Raises:
            HandshakeError: Missing or unparseable challenge
            httpx.TransportError: Connection-level failure
        """
        options = RequestOptions.coerce(options)
        machine = HandshakeStateMachine.create()

        async with self.templates.handle.lock:
            try:
                exchange = self.exchange_factory(self.credential, self.target)
                negotiate_response = await self.send_negotiate(exchange, options, machine)
                return await self.send_authenticate(
                    exchange, negotiate_response, options, machine
                )
            except Exception as e:
                if machine.state not in (HandshakeState.DONE, HandshakeState.ERROR):
                    machine.process_event(HandshakeFailed(error_message=str(e)))
                logger.warning(
                    "handshake_failed",
                    url=options.url,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise
            finally:
                self._last_trace = machine.get_trace()

    async def send_negotiate(
        self,
        exchange: NTLMExchange,
        options: RequestOptions,
        machine: Optional[HandshakeStateMachine] = None,
    ) -> httpx.Response:
        """Send the Type 1 message for ``options`` and return the server's answer."""
        machine = machine or HandshakeStateMachine.create()
        negotiate = exchange.negotiate()

        self._step(machine, NegotiateSent(url=options.url, method=options.method))
        response = await self.templates.negotiate.send(
            attrs.evolve(options, method="GET"),
            extra_headers={
                "Connection": "keep-alive",
                "Authorization": negotiate.to_header(),
            },
            include_body=False,
        )
        logger.debug(
            "negotiate_sent",
            url=options.url,
            status_code=response.status_code,
        )
        return response

    async def send_authenticate(
        self,
        exchange: NTLMExchange,
        negotiate_response: httpx.Response,
        options: RequestOptions,
        machine: Optional[HandshakeStateMachine] = None,
    ) -> httpx.Response:
        """
        Answer the challenge in ``negotiate_response`` with a Type 3 message
        carrying ``options``, or follow its redirect.
        """
        if machine is None:
            machine = HandshakeStateMachine.create()
            self._step(machine, NegotiateSent(url=options.url, method=options.method))

        location = negotiate_response.headers.get("location")
        if location:
            redirect_url = str(negotiate_response.url.join(location))
            self._step(machine, RedirectReceived(location=redirect_url))
            logger.info("handshake_redirected", url=options.url, location=redirect_url)

            response = await self.templates.authenticated.send(
                attrs.evolve(options, url=redirect_url)
            )
            self._step(machine, ResponseReceived(status_code=response.status_code))
            return response

        challenge_values = negotiate_response.headers.get_list("www-authenticate")
        if not challenge_values:
            raise HandshakeError(CHALLENGE_MISSING)

        parsed = parse_challenge_header(challenge_values)
        if isinstance(parsed, Failure):
            logger.warning("challenge_parse_failed", reason=parsed.failure())
            raise HandshakeError(CHALLENGE_UNPARSEABLE)

        challenge = parsed.unwrap()
        self._step(machine, ChallengeReceived(challenge=challenge))
        logger.debug(
            "challenge_received",
            target_name=challenge.target_name,
            flags=hex(challenge.negotiate_flags),
        )

        authenticate = exchange.authenticate(challenge)
        self._step(machine, AuthenticateSent())
        response = await self.templates.authenticated.send(
            options,
            extra_headers={
                "Connection": "close",
                "Authorization": authenticate.to_header(),
            },
        )
        self._step(machine, ResponseReceived(status_code=response.status_code))

        logger.info(
            "handshake_complete",
            method=options.method,
            url=options.url,
            status_code=response.status_code,
        )
        return response

    @staticmethod
    def _step(machine: HandshakeStateMachine, event: Any) -> None:
        result = machine.process_event(event)
        if isinstance(result, Failure):
            raise StateError(result.failure())
