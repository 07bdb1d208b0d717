"""
ntlm-remote-auth Exception Types

Custom exceptions for the handshake, the context service and caller input.

Transport failures are not wrapped: they surface as ``httpx.TransportError``
(re-exported here as ``TransportError``).
"""

from typing import Any, Optional

from httpx import TransportError


class NTLMRemoteError(Exception):
    """Base exception for all ntlm-remote-auth errors."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(NTLMRemoteError):
    """
    Caller input is missing or malformed.

    Raised before any network activity takes place.
    """

    pass


class HandshakeError(NTLMRemoteError):
    """
    The NTLM message exchange could not be completed.

    Raised when the server never offers a challenge, or offers one that
    cannot be parsed. A fresh request may be attempted by the caller.
    """

    pass


class ProtocolError(NTLMRemoteError):
    """
    The remote service answered but reported failure.

    Carries the HTTP status and body of the offending response.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message, code=status_code)
        self.status_code = status_code
        self.body = body


class StateError(NTLMRemoteError):
    """
    Invalid state transition.

    An operation was attempted that is not valid in the current
    handshake state.
    """

    pass


class InvariantViolation(NTLMRemoteError):
    """
    A handshake invariant was violated.

    Indicates a defect in the engine rather than a server problem.
    """

    pass


__all__ = [
    "NTLMRemoteError",
    "ValidationError",
    "HandshakeError",
    "ProtocolError",
    "StateError",
    "InvariantViolation",
    "TransportError",
]
