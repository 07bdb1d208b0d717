"""
ntlm-remote-auth Transport Module

Per-session connection handle and the negotiate / authenticated request
templates that share it.
"""

from ntlm_remote_auth.transport.connection import (
    ConnectionHandle,
    ConnectionTemplate,
    ConnectionTemplates,
    VERBOSE_JSON_HEADERS,
    create_transport,
    join_url,
    provision,
)

__all__ = [
    "ConnectionHandle",
    "ConnectionTemplate",
    "ConnectionTemplates",
    "VERBOSE_JSON_HEADERS",
    "create_transport",
    "join_url",
    "provision",
]
