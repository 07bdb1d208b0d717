"""
ntlm-remote-auth Connection Provisioning

NTLM authenticates a connection, not a request: the Type 1 and Type 3
messages of one handshake must travel over the same socket. Each session
therefore owns exactly one ``ConnectionHandle``:

- one httpx transport limited to a single keep-alive connection
- one lock held for the duration of a handshake

Both request templates of a session send through that handle.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Mapping, Optional, Union

import attrs
import httpx
import structlog

from ntlm_remote_auth.core.config import SessionConfig
from ntlm_remote_auth.core.credentials import parse_tenant_target
from ntlm_remote_auth.core.types import VERBOSE_JSON, RequestOptions, TenantTarget

logger = structlog.get_logger()


VERBOSE_JSON_HEADERS = {
    "Accept": VERBOSE_JSON,
    "Content-Type": VERBOSE_JSON,
}


def join_url(base_url: str, url: str) -> str:
    """Resolve ``url`` against ``base_url`` unless it is already absolute."""
    if httpx.URL(url).is_absolute_url:
        return url
    if not url:
        return base_url
    return base_url.rstrip("/") + "/" + url.lstrip("/")


@attrs.define(eq=False)
class ConnectionHandle:
    """
    The single connection shared by a session's templates.

    ``lock`` serializes handshakes so that one run's Type 1 and Type 3 are
    never interleaved with another run's messages on the socket.
    """

    client: httpx.AsyncClient
    lock: asyncio.Lock = attrs.Factory(asyncio.Lock)

    async def aclose(self) -> None:
        await self.client.aclose()

    @property
    def is_closed(self) -> bool:
        return self.client.is_closed


@attrs.define(eq=False)
class ConnectionTemplate:
    """
    Request defaults bound to a connection handle.

    Redirects are never followed automatically.
    """

    name: str
    base_url: str
    handle: ConnectionHandle
    default_headers: Dict[str, str] = attrs.Factory(dict)

    def build_request(
        self,
        options: RequestOptions,
        extra_headers: Optional[Mapping[str, str]] = None,
        include_body: bool = True,
    ) -> httpx.Request:
        headers = httpx.Headers(self.default_headers)
        headers.update(options.headers)
        if extra_headers:
            headers.update(extra_headers)

        url = join_url(options.base_url or self.base_url, options.url)
        body = {}
        if include_body:
            body = {"json": options.json, "content": options.content, "data": options.data}

        return self.handle.client.build_request(
            options.method,
            url,
            headers=headers,
            params=options.params,
            **body,
        )

    async def send(
        self,
        options: RequestOptions,
        extra_headers: Optional[Mapping[str, str]] = None,
        include_body: bool = True,
    ) -> httpx.Response:
        request = self.build_request(options, extra_headers, include_body)
        logger.debug(
            "request_sent",
            template=self.name,
            method=request.method,
            url=str(request.url),
        )
        response = await self.handle.client.send(request, follow_redirects=False)
        logger.debug(
            "response_received",
            template=self.name,
            url=str(request.url),
            status_code=response.status_code,
        )
        return response

    def rebase(self, base_url: str, headers: Optional[Mapping[str, str]] = None) -> None:
        """Point the template at a new base URL and merge in default headers."""
        self.base_url = base_url
        if headers:
            replaced = {name.lower() for name in headers}
            merged = {k: v for k, v in self.default_headers.items() if k.lower() not in replaced}
            merged.update(headers)
            self.default_headers = merged


@attrs.define(eq=False)
class ConnectionTemplates:
    """The negotiate and authenticated templates of one session."""

    negotiate: ConnectionTemplate
    authenticated: ConnectionTemplate
    handle: ConnectionHandle

    async def aclose(self) -> None:
        await self.handle.aclose()


def create_transport(target: TenantTarget, config: SessionConfig) -> httpx.AsyncBaseTransport:
    """
    Select the persistent transport for ``target``.

    TLS verification applies to https targets; http targets use a
    plaintext transport.
    """
    limits = httpx.Limits(max_connections=1, max_keepalive_connections=1)
    if target.is_secure:
        return httpx.AsyncHTTPTransport(verify=config.verify, limits=limits, retries=0)
    return httpx.AsyncHTTPTransport(limits=limits, retries=0)


def provision(
    target: Union[TenantTarget, str],
    config: Optional[SessionConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ConnectionTemplates:
    """
    Build the connection handle and both request templates for ``target``.

    Args:
        target: Normalized tenant origin, or a URL to normalize
        config: Session configuration (defaults apply when omitted)
        transport: Transport to use instead of the default one

    Raises:
        ValidationError: If ``target`` is not a parseable http(s) URL
    """
    if not isinstance(target, TenantTarget):
        target = parse_tenant_target(target)

    config = config or SessionConfig()
    transport = transport or create_transport(target, config)

    client = httpx.AsyncClient(
        transport=transport,
        timeout=config.timeout,
        follow_redirects=False,
        headers={"User-Agent": config.user_agent},
    )
    handle = ConnectionHandle(client=client)

    negotiate = ConnectionTemplate(
        name="negotiate",
        base_url=target.origin,
        handle=handle,
    )
    authenticated = ConnectionTemplate(
        name="authenticated",
        base_url=target.origin,
        handle=handle,
        default_headers=dict(VERBOSE_JSON_HEADERS),
    )

    logger.info(
        "connection_provisioned",
        tenant=target.origin,
        tls=target.is_secure,
        custom_transport=not isinstance(transport, httpx.AsyncHTTPTransport),
    )
    return ConnectionTemplates(negotiate=negotiate, authenticated=authenticated, handle=handle)
