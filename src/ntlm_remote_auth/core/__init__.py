"""
ntlm-remote-auth Core Module

Components:
- types: Credential, TenantTarget, RequestOptions, ContextToken
- config: SessionConfig
- credentials: credential resolver
- state_machine: rule-driven state machine with invariant checking
- exceptions: error taxonomy
"""

from ntlm_remote_auth.core.config import SessionConfig
from ntlm_remote_auth.core.credentials import parse_tenant_target, resolve_credential
from ntlm_remote_auth.core.exceptions import (
    HandshakeError,
    InvariantViolation,
    NTLMRemoteError,
    ProtocolError,
    StateError,
    TransportError,
    ValidationError,
)
from ntlm_remote_auth.core.state_machine import Invariant, StateMachine, Transition
from ntlm_remote_auth.core.types import (
    AuthOptions,
    ContextToken,
    Credential,
    RequestOptions,
    TenantTarget,
)

__all__ = [
    # Types
    "AuthOptions",
    "ContextToken",
    "Credential",
    "RequestOptions",
    "TenantTarget",
    "SessionConfig",
    # Resolver
    "parse_tenant_target",
    "resolve_credential",
    # State Machine
    "Invariant",
    "StateMachine",
    "Transition",
    # Exceptions
    "NTLMRemoteError",
    "ValidationError",
    "HandshakeError",
    "ProtocolError",
    "StateError",
    "InvariantViolation",
    "TransportError",
]
