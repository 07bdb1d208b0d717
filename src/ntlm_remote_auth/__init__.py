"""
ntlm-remote-auth - NTLM authenticated HTTP sessions with context token caching

Issues requests against servers that require an NTLM negotiate /
challenge / authenticate handshake and an anti-forgery form digest on
write requests (such as on-premises SharePoint).

Components:
- core: types, configuration, credential resolution, errors
- ntlm: handshake messages, message encoder adapter, handshake engine
- transport: per-session connection and request templates
- context: context token cache

Example Usage:
    from ntlm_remote_auth import authenticate

    session = await authenticate({
        "tenant_url": "https://sharepoint.example.com/sites/dev",
        "domain": "CORP",
        "username": "jdoe",
        "password": "secret",
    })
    async with session:
        response = await session.get("/_api/web/lists")
        print(response.status_code, session.context_info.expires_at)
"""

from ntlm_remote_auth._version import __version__
from ntlm_remote_auth.core.config import SessionConfig
from ntlm_remote_auth.core.exceptions import (
    HandshakeError,
    NTLMRemoteError,
    ProtocolError,
    TransportError,
    ValidationError,
)
from ntlm_remote_auth.core.types import (
    AuthOptions,
    ContextToken,
    Credential,
    RequestOptions,
    TenantTarget,
)
from ntlm_remote_auth.session import Session, authenticate

__all__ = [
    # Main API
    "authenticate",
    "Session",
    "SessionConfig",
    # Types
    "AuthOptions",
    "ContextToken",
    "Credential",
    "RequestOptions",
    "TenantTarget",
    # Exceptions
    "NTLMRemoteError",
    "ValidationError",
    "HandshakeError",
    "ProtocolError",
    "TransportError",
    # Metadata
    "__version__",
]
