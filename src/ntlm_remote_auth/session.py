"""
ntlm-remote-auth Session

Public entry point. ``authenticate`` resolves the caller's credential,
provisions a private connection, runs a first handshake against the
context service and returns a ``Session``.

Every ``Session.request`` call:
1. ensures a live context token (refreshing it if expired)
2. rebases the request onto the token's site URL and stamps the digest
3. runs a fresh handshake delivering the request

Sessions never share templates, connections or token cells, even when
created with identical arguments.

Example:
    session = await authenticate(
        "https://tenant.example.com", "", "CORP", "jdoe", "secret"
    )
    async with session:
        response = await session.get("/_api/web")
        response = await session.post({"url": "/_api/web/lists", "json": {...}})
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, Mapping, Optional, Union

import attrs
import httpx
import structlog

from ntlm_remote_auth.context.cache import DIGEST_HEADER, ContextTokenCache
from ntlm_remote_auth.core.config import SessionConfig
from ntlm_remote_auth.core.credentials import resolve_credential
from ntlm_remote_auth.core.types import (
    AuthOptions,
    ContextToken,
    Credential,
    RequestOptions,
    TenantTarget,
)
from ntlm_remote_auth.ntlm.exchange import ExchangeFactory, spnego_exchange_factory
from ntlm_remote_auth.ntlm.handshake import HandshakeEngine
from ntlm_remote_auth.transport.connection import ConnectionTemplates, provision

logger = structlog.get_logger()


OptionsLike = Union[RequestOptions, Mapping[str, Any], str]

# Called as callback(error, response).
Callback = Callable[[Optional[BaseException], Optional[httpx.Response]], Any]


async def _notify(callback: Optional[Callback], error: Optional[BaseException], result: Any) -> None:
    if callback is None:
        return
    outcome = callback(error, result)
    if inspect.isawaitable(outcome):
        await outcome


@attrs.define(eq=False)
class Session:
    """
    Caller-owned handle for one authenticated identity.

    Attributes:
        credential: Resolved credential
        target: Normalized tenant origin
        templates: Negotiate and authenticated request templates
        engine: Handshake engine bound to this session
        cache: Context token cache bound to this session
    """

    credential: Credential
    target: TenantTarget
    templates: ConnectionTemplates
    engine: HandshakeEngine
    cache: ContextTokenCache

    @property
    def context_info(self) -> Optional[ContextToken]:
        """Current token snapshot."""
        return self.cache.token

    async def ensure_context_info(self, force: bool = False) -> ContextToken:
        """Return the cached token, refreshing it when expired or forced."""
        return await self.cache.ensure(force=force)

    async def request(
        self,
        options: OptionsLike,
        callback: Optional[Callback] = None,
    ) -> httpx.Response:
        """
        Deliver ``options`` through a fresh handshake.

        The response is returned whatever its status. If ``callback`` is
        given it is also called with ``(None, response)`` or, on failure,
        with ``(error, None)`` before the error is raised.
        """
        try:
            response = await self._request(RequestOptions.coerce(options))
        except Exception as e:
            await _notify(callback, e, None)
            raise
        await _notify(callback, None, response)
        return response

    async def _request(self, options: RequestOptions) -> httpx.Response:
        token = await self.cache.ensure()
        options = attrs.evolve(options, base_url=token.site_base_url).with_headers(
            {DIGEST_HEADER: token.digest_value}
        )
        return await self.engine.handshake(options)

    async def _verb(
        self, method: str, options: OptionsLike, callback: Optional[Callback]
    ) -> httpx.Response:
        try:
            resolved = attrs.evolve(RequestOptions.coerce(options), method=method)
        except Exception as e:
            await _notify(callback, e, None)
            raise
        return await self.request(resolved, callback)

    async def get(self, options: OptionsLike, callback: Optional[Callback] = None) -> httpx.Response:
        return await self._verb("GET", options, callback)

    async def put(self, options: OptionsLike, callback: Optional[Callback] = None) -> httpx.Response:
        return await self._verb("PUT", options, callback)

    async def patch(self, options: OptionsLike, callback: Optional[Callback] = None) -> httpx.Response:
        return await self._verb("PATCH", options, callback)

    async def post(self, options: OptionsLike, callback: Optional[Callback] = None) -> httpx.Response:
        return await self._verb("POST", options, callback)

    async def delete(self, options: OptionsLike, callback: Optional[Callback] = None) -> httpx.Response:
        return await self._verb("DELETE", options, callback)

    async def head(self, options: OptionsLike, callback: Optional[Callback] = None) -> httpx.Response:
        return await self._verb("HEAD", options, callback)

    async def options(self, options: OptionsLike, callback: Optional[Callback] = None) -> httpx.Response:
        return await self._verb("OPTIONS", options, callback)

    async def aclose(self) -> None:
        """Close the session's connection."""
        await self.templates.aclose()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


async def authenticate(
    tenant_url_or_options: Union[str, AuthOptions, Mapping[str, Any], None],
    workstation: Optional[str] = None,
    domain: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    *,
    config: Optional[SessionConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    exchange_factory: ExchangeFactory = spnego_exchange_factory,
) -> Session:
    """
    Authenticate against a tenant and return a new ``Session``.

    Accepts positional values (tenant url, workstation, domain, username,
    password) or a single mapping / ``AuthOptions``.

    Args:
        config: Session configuration
        transport: httpx transport replacing the default persistent one
        exchange_factory: NTLM message encoder factory

    Raises:
        ValidationError: Missing or malformed input (before any I/O)
        HandshakeError: The target does not complete an NTLM handshake
        ProtocolError: The context service rejected the credential
        httpx.TransportError: Connection-level failure
    """
    credential, target = resolve_credential(
        tenant_url_or_options, workstation, domain, username, password
    )
    config = config or SessionConfig()

    templates = provision(target, config, transport=transport)
    engine = HandshakeEngine(
        credential=credential,
        target=target,
        templates=templates,
        exchange_factory=exchange_factory,
    )
    cache = ContextTokenCache(engine=engine, config=config)
    session = Session(
        credential=credential,
        target=target,
        templates=templates,
        engine=engine,
        cache=cache,
    )

    try:
        await cache.ensure(force=True)
    except Exception:
        await session.aclose()
        raise

    logger.info(
        "session_authenticated",
        username=credential.qualified_username,
        tenant=target.origin,
    )
    return session
