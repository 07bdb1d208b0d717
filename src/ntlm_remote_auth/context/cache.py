"""
ntlm-remote-auth Context Token Cache

Owns a session's anti-forgery token. The token is fetched with a POST to
the context service through the handshake engine and kept until its
``expires_at`` passes.

Expected payload (verbose JSON):

    {"d": {"GetContextWebInformation": {
        "FormDigestValue": "0x8F...,17 Oct 2026 18:00:00 -0000",
        "FormDigestTimeoutSeconds": 1800,
        "SiteFullUrl": "https://tenant/sites/dev",
        "WebFullUrl": "https://tenant/sites/dev",
        "LibraryVersion": "16.0.0.0"}}}

The second comma-separated field of the digest is its issue time;
``expires_at`` is that time plus the grace window.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

import attrs
import httpx
import structlog
from returns.result import Failure, Result, Success

from ntlm_remote_auth.core.config import SessionConfig
from ntlm_remote_auth.core.exceptions import ProtocolError
from ntlm_remote_auth.core.types import ContextToken, RequestOptions
from ntlm_remote_auth.ntlm.handshake import HandshakeEngine
from ntlm_remote_auth.transport.connection import VERBOSE_JSON_HEADERS

logger = structlog.get_logger()


UNEXPECTED_SHAPE = "unexpected response shape"

DIGEST_HEADER = "X-RequestDigest"


def parse_digest_issued_at(digest_value: str) -> Result[datetime, str]:
    """
    Extract the issue time embedded in a form digest value.

    Timestamps without a usable offset (``-0000``) are taken as UTC.
    """
    parts = digest_value.split(",", 1)
    if len(parts) != 2 or not parts[1].strip():
        return Failure(f"digest has no timestamp field: {digest_value[:12]}...")
    try:
        issued = parsedate_to_datetime(parts[1].strip())
    except (TypeError, ValueError) as e:
        return Failure(f"unparseable digest timestamp: {e}")
    if issued is None:
        return Failure("unparseable digest timestamp")
    if issued.tzinfo is None:
        issued = issued.replace(tzinfo=timezone.utc)
    return Success(issued)


def token_from_payload(payload: Any, grace_seconds: int) -> Result[ContextToken, str]:
    """Build a ``ContextToken`` from the decoded context service payload."""
    if not isinstance(payload, dict):
        return Failure("payload is not an object")
    envelope = payload.get("d")
    info = envelope.get("GetContextWebInformation") if isinstance(envelope, dict) else None
    if not isinstance(info, dict):
        return Failure("missing d.GetContextWebInformation")

    digest = info.get("FormDigestValue")
    site_url = info.get("SiteFullUrl")
    if not digest or not site_url:
        return Failure("missing FormDigestValue or SiteFullUrl")

    issued = parse_digest_issued_at(digest)
    if isinstance(issued, Failure):
        return Failure(issued.failure())

    return Success(
        ContextToken(
            site_base_url=site_url,
            digest_value=digest,
            expires_at=issued.unwrap() + timedelta(seconds=grace_seconds),
            web_full_url=info.get("WebFullUrl") or "",
            library_version=info.get("LibraryVersion") or "",
            timeout_seconds=info.get("FormDigestTimeoutSeconds"),
        )
    )


def _error_body(response: httpx.Response) -> str:
    return response.text or f"{response.status_code} UNAUTHORIZED"


@attrs.define(eq=False)
class ContextTokenCache:
    """
    Per-session token cell.

    ``token`` is replaced (never mutated) by ``refresh``; readers see
    either the previous token or the new one.
    """

    engine: HandshakeEngine
    config: SessionConfig = attrs.Factory(SessionConfig)
    token: Optional[ContextToken] = None
    refresh_count: int = 0

    async def ensure(self, force: bool = False) -> ContextToken:
        """
        Return a live token, fetching a new one if needed.

        No I/O happens when a token exists, ``force`` is false and
        ``expires_at`` is strictly in the future.

        Raises:
            HandshakeError: The handshake with the context service failed
            ProtocolError: The context service rejected the call or
                returned an unexpected payload
        """
        token = self.token
        if not force and token is not None and not token.is_expired():
            return token
        return await self.refresh()

    async def refresh(self) -> ContextToken:
        """
        Fetch a new token unconditionally and store it.

        The context service is always addressed at the tenant origin, even
        after the authenticated template has been rebased to a site URL.
        """
        options = RequestOptions(
            url=self.config.context_info_path,
            method="POST",
            headers=VERBOSE_JSON_HEADERS,
            base_url=self.engine.target.origin,
        )
        response = await self.engine.handshake(options)

        if response.status_code != 200:
            logger.warning(
                "context_info_rejected",
                status_code=response.status_code,
                tenant=self.engine.target.origin,
            )
            raise ProtocolError(
                _error_body(response),
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload: Dict[str, Any] = response.json()
        except ValueError as e:
            raise ProtocolError(
                UNEXPECTED_SHAPE, status_code=response.status_code, body=response.text
            ) from e

        result = token_from_payload(payload, self.config.token_grace_seconds)
        if isinstance(result, Failure):
            logger.warning("context_info_malformed", reason=result.failure())
            raise ProtocolError(
                UNEXPECTED_SHAPE, status_code=response.status_code, body=response.text
            )

        token = result.unwrap()
        self.engine.templates.authenticated.rebase(
            token.site_base_url, {DIGEST_HEADER: token.digest_value}
        )
        self.token = token
        self.refresh_count += 1

        logger.info(
            "context_info_refreshed",
            site=token.site_base_url,
            expires_at=token.expires_at.isoformat() if token.expires_at else None,
            refresh_count=self.refresh_count,
        )
        return token
