"""ntlm-remote-auth context token cache."""

from ntlm_remote_auth.context.cache import (
    ContextTokenCache,
    parse_digest_issued_at,
    token_from_payload,
)

__all__ = [
    "ContextTokenCache",
    "parse_digest_issued_at",
    "token_from_payload",
]
