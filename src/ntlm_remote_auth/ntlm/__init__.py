"""
ntlm-remote-auth NTLM Module

Components:
- types: handshake states, events and the Type 1/2/3 messages
- exchange: adapter over the NTLM message encoder (pyspnego)
- handshake: the per-request three-message handshake engine
"""

from ntlm_remote_auth.ntlm.exchange import (
    NTLMExchange,
    SpnegoNTLMExchange,
    spnego_exchange_factory,
)
from ntlm_remote_auth.ntlm.handshake import (
    CHALLENGE_MISSING,
    CHALLENGE_UNPARSEABLE,
    HandshakeEngine,
    HandshakeStateMachine,
)
from ntlm_remote_auth.ntlm.types import (
    AuthenticateMessage,
    ChallengeMessage,
    HandshakeMessage,
    HandshakeState,
    NegotiateMessage,
    parse_challenge_header,
)

__all__ = [
    # Engine
    "HandshakeEngine",
    "HandshakeStateMachine",
    "HandshakeState",
    "CHALLENGE_MISSING",
    "CHALLENGE_UNPARSEABLE",
    # Messages
    "HandshakeMessage",
    "NegotiateMessage",
    "ChallengeMessage",
    "AuthenticateMessage",
    "parse_challenge_header",
    # Encoder
    "NTLMExchange",
    "SpnegoNTLMExchange",
    "spnego_exchange_factory",
]
