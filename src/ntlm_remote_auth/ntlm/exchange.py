"""
ntlm-remote-auth NTLM Message Exchange

Adapter around the NTLM message encoder. The handshake engine only needs
two operations per run:

    exchange = factory(credential, target)
    negotiate = exchange.negotiate()             # Type 1
    authenticate = exchange.authenticate(type2)  # Type 3

The default encoder is pyspnego's pure Python NTLM provider. An exchange
wraps one security context and must not be reused across runs.

Note: pyspnego takes the workstation name from ``NETBIOS_COMPUTER_NAME``
(or the host name), not from the credential.
"""

from __future__ import annotations

import struct
from typing import Callable, Optional, Protocol

import spnego
import structlog
from spnego.exceptions import SpnegoError

from ntlm_remote_auth.core.exceptions import HandshakeError
from ntlm_remote_auth.core.types import Credential, TenantTarget
from ntlm_remote_auth.ntlm.types import (
    AuthenticateMessage,
    ChallengeMessage,
    NegotiateMessage,
)

logger = structlog.get_logger()


class NTLMExchange(Protocol):
    """Single-use producer of Type 1 and Type 3 messages."""

    def negotiate(self) -> NegotiateMessage:
        ...

    def authenticate(self, challenge: ChallengeMessage) -> AuthenticateMessage:
        ...


ExchangeFactory = Callable[[Credential, TenantTarget], NTLMExchange]


class SpnegoNTLMExchange:
    """
    NTLM exchange backed by a pyspnego client context.

    ``credential.workstation`` is ignored: pyspnego puts the value of
    ``NETBIOS_COMPUTER_NAME`` (or the local host name) in the messages.
    Supply another ``exchange_factory`` to control the workstation name.
    """

    def __init__(self, credential: Credential, target: TenantTarget) -> None:
        self._context = spnego.client(
            username=credential.qualified_username,
            password=credential.password,
            hostname=target.host,
            service="http",
            protocol="ntlm",
            options=spnego.NegotiateOptions.use_ntlm,
        )
        self._negotiated = False

    def negotiate(self) -> NegotiateMessage:
        if self._negotiated:
            raise HandshakeError("negotiate message already produced for this exchange")
        token: Optional[bytes] = self._context.step()
        if not token:
            raise HandshakeError("could not create negotiate message")
        self._negotiated = True
        return NegotiateMessage(blob=token)

    def authenticate(self, challenge: ChallengeMessage) -> AuthenticateMessage:
        if not self._negotiated:
            raise HandshakeError("challenge received before negotiate message")
        try:
            token = self._context.step(challenge.blob)
        except (SpnegoError, ValueError, struct.error) as e:
            logger.warning("challenge_rejected_by_encoder", error=str(e))
            raise HandshakeError("could not parse challenge") from e
        if not token:
            raise HandshakeError("could not parse challenge")
        return AuthenticateMessage(blob=token)


def spnego_exchange_factory(credential: Credential, target: TenantTarget) -> NTLMExchange:
    return SpnegoNTLMExchange(credential, target)
