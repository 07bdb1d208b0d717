"""
ntlm-remote-auth NTLM Types

Handshake states, events and the three NTLM messages as carried in HTTP
``Authorization`` / ``WWW-Authenticate`` headers.

The messages form a closed union:
- NegotiateMessage (Type 1, client -> server)
- ChallengeMessage (Type 2, server -> client)
- AuthenticateMessage (Type 3, client -> server)

Byte-level construction of Type 1 and Type 3 is delegated to the message
encoder (see ``ntlm_remote_auth.ntlm.exchange``). Type 2 is parsed here
far enough to reject anything that is not an NTLM challenge.
"""

from __future__ import annotations

import base64
import binascii
import re
import struct
from enum import Enum, auto
from typing import Iterable, Optional, Union

import attrs
from attrs import field
from returns.result import Failure, Result, Success


NTLM_SIGNATURE = b"NTLMSSP\x00"

AUTH_SCHEME = "NTLM"

_CHALLENGE_RE = re.compile(r"(?:^|,)\s*NTLM\s+([A-Za-z0-9+/=]+)", re.IGNORECASE)


# =============================================================================
# HANDSHAKE STATE MACHINE
# =============================================================================


class HandshakeState(Enum):
    """
    States of one handshake run.

    INITIAL -> NEGOTIATE_SENT -> CHALLENGE_RECEIVED -> AUTHENTICATE_SENT -> DONE
    INITIAL -> NEGOTIATE_SENT -> REDIRECTED -> DONE
    any non-terminal state -> ERROR
    """

    INITIAL = auto()
    NEGOTIATE_SENT = auto()
    CHALLENGE_RECEIVED = auto()
    AUTHENTICATE_SENT = auto()
    REDIRECTED = auto()
    DONE = auto()
    ERROR = auto()


@attrs.define(frozen=True)
class HandshakeContext:
    """Data accumulated during one handshake run."""

    url: str = ""
    method: str = "GET"
    challenge: Optional["ChallengeMessage"] = None
    redirect_location: Optional[str] = None
    status_code: Optional[int] = None
    error_message: str = ""


# =============================================================================
# NTLM MESSAGES
# =============================================================================


def _to_header(blob: bytes) -> str:
    return f"{AUTH_SCHEME} {base64.b64encode(blob).decode('ascii')}"


@attrs.define(frozen=True, slots=True)
class NegotiateMessage:
    """NTLM NEGOTIATE_MESSAGE (Type 1)."""

    blob: bytes = field(repr=False)
    message_type: int = 1

    def to_header(self) -> str:
        return _to_header(self.blob)


@attrs.define(frozen=True, slots=True)
class AuthenticateMessage:
    """NTLM AUTHENTICATE_MESSAGE (Type 3)."""

    blob: bytes = field(repr=False)
    message_type: int = 3

    def to_header(self) -> str:
        return _to_header(self.blob)


# signature, type, name (len, maxlen, offset), flags, challenge, reserved,
# info (len, maxlen, offset), version
_CHALLENGE_HEADER = struct.Struct("<8sI HHI I 8s 8x HHI 8x")


def _field(data: bytes, length: int, offset: int, what: str) -> bytes:
    if offset + length > len(data):
        raise ValueError(f"{what} exceeds message length")
    return data[offset : offset + length]


@attrs.define(frozen=True, slots=True)
class ChallengeMessage:
    """
    NTLM CHALLENGE_MESSAGE (Type 2).

    ``blob`` is the raw message handed back to the encoder; the other
    fields are decoded from its fixed header.
    """

    blob: bytes = field(repr=False)
    negotiate_flags: int = 0
    server_challenge: bytes = field(default=bytes(8), repr=False)
    target_name: str = ""
    target_info: bytes = field(default=b"", repr=False)
    message_type: int = 2

    def to_header(self) -> str:
        return _to_header(self.blob)

    @staticmethod
    def build(
        server_challenge: bytes,
        negotiate_flags: int = 0,
        target_name: str = "",
        target_info: bytes = b"",
    ) -> bytes:
        """Serialize a challenge (used to stand in for a server)."""
        name = target_name.encode("utf-16-le")
        name_offset = _CHALLENGE_HEADER.size
        header = _CHALLENGE_HEADER.pack(
            NTLM_SIGNATURE,
            2,
            len(name), len(name), name_offset,
            negotiate_flags,
            server_challenge[:8].ljust(8, b"\x00"),
            len(target_info), len(target_info), name_offset + len(name),
        )
        return header + name + target_info

    @classmethod
    def from_bytes(cls, data: bytes) -> "ChallengeMessage":
        """
        Decode a Type 2 message.

        Messages from servers that omit the target info and version
        fields (32 bytes of fixed header) are accepted.

        Raises:
            ValueError: If the data is not a Type 2 message
        """
        if len(data) < 32:
            raise ValueError("CHALLENGE_MESSAGE too short")

        padded = data.ljust(_CHALLENGE_HEADER.size, b"\x00")
        (
            signature, message_type,
            name_len, _, name_offset,
            flags, server_challenge,
            info_len, _, info_offset,
        ) = _CHALLENGE_HEADER.unpack_from(padded)

        if signature != NTLM_SIGNATURE:
            raise ValueError("Invalid NTLM signature")
        if message_type != 2:
            raise ValueError(f"Expected type 2, got {message_type}")

        name = _field(data, name_len, name_offset, "Target name")
        info = _field(data, info_len, info_offset, "Target info") if info_len else b""

        return cls(
            blob=data,
            negotiate_flags=flags,
            server_challenge=server_challenge,
            target_name=name.decode("utf-16-le", errors="replace"),
            target_info=info,
        )


HandshakeMessage = Union[NegotiateMessage, ChallengeMessage, AuthenticateMessage]


def parse_challenge_header(values: Iterable[str]) -> Result[ChallengeMessage, str]:
    """
    Find and decode the NTLM challenge among ``WWW-Authenticate`` values.

    Returns:
        Success(ChallengeMessage) or Failure(reason)
    """
    for value in values:
        match = _CHALLENGE_RE.search(value)
        if match is None:
            continue
        try:
            blob = base64.b64decode(match.group(1), validate=True)
            return Success(ChallengeMessage.from_bytes(blob))
        except (binascii.Error, ValueError) as e:
            return Failure(f"Failed to parse challenge: {e}")
    return Failure("No NTLM challenge token in WWW-Authenticate")


# =============================================================================
# EVENTS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class NegotiateSent:
    url: str
    method: str


@attrs.define(frozen=True, slots=True)
class RedirectReceived:
    location: str


@attrs.define(frozen=True, slots=True)
class ChallengeReceived:
    challenge: ChallengeMessage


@attrs.define(frozen=True, slots=True)
class AuthenticateSent:
    pass


@attrs.define(frozen=True, slots=True)
class ResponseReceived:
    status_code: int


@attrs.define(frozen=True, slots=True)
class HandshakeFailed:
    error_message: str
