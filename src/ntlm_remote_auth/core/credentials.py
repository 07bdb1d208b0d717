"""
ntlm-remote-auth Credential Resolver

Normalizes the two ``authenticate`` call shapes into a ``Credential`` and
a ``TenantTarget``. All checks run before any network activity.

Accepted shapes:
    resolve_credential("https://tenant/sites/x", "WS01", "CORP", "jdoe", "pw")
    resolve_credential({"tenant_url": ..., "username": ..., "password": ...})
    resolve_credential(AuthOptions(tenant_url=..., username=..., ...))
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple, Union

import attrs
import httpx
import structlog

from ntlm_remote_auth.core.exceptions import ValidationError
from ntlm_remote_auth.core.types import AuthOptions, Credential, TenantTarget

logger = structlog.get_logger()


def parse_tenant_target(tenant_url: str) -> TenantTarget:
    """
    Reduce a tenant URL to its origin (scheme, host, explicit port).

    Raises:
        ValidationError: If the URL cannot be parsed or is not http(s)
    """
    try:
        url = httpx.URL(tenant_url)
    except (httpx.InvalidURL, TypeError) as e:
        raise ValidationError(f"invalid tenant url: {e}") from e

    if url.scheme not in ("http", "https") or not url.host:
        raise ValidationError(f"invalid tenant url: {tenant_url!r}")

    return TenantTarget(scheme=url.scheme, host=url.host, port=url.port)


def _options_from(value: Union[AuthOptions, Mapping[str, Any]]) -> AuthOptions:
    if isinstance(value, AuthOptions):
        return value
    return AuthOptions(
        tenant_url=value.get("tenant_url") or value.get("tenant_domain"),
        username=value.get("username"),
        password=value.get("password"),
        domain=value.get("domain"),
        workstation=value.get("workstation"),
    )


def resolve_credential(
    tenant_url_or_options: Union[str, AuthOptions, Mapping[str, Any], None],
    workstation: Optional[str] = None,
    domain: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
) -> Tuple[Credential, TenantTarget]:
    """
    Resolve call arguments into a credential and a tenant target.

    Raises:
        ValidationError: "username required", "password required" or
            "tenant target required" when the field is absent, or an
            invalid tenant url message
    """
    if isinstance(tenant_url_or_options, (AuthOptions, Mapping)):
        options = _options_from(tenant_url_or_options)
    else:
        options = AuthOptions(
            tenant_url=tenant_url_or_options,
            username=username,
            password=password,
            domain=domain,
            workstation=workstation,
        )

    options = attrs.evolve(
        options,
        domain=options.domain or "",
        workstation=options.workstation or "",
    )

    if not options.username:
        raise ValidationError("username required")
    if not options.password:
        raise ValidationError("password required")
    if not options.tenant_url:
        raise ValidationError("tenant target required")

    target = parse_tenant_target(options.tenant_url)
    credential = Credential(
        username=options.username,
        password=options.password,
        domain=options.domain,
        workstation=options.workstation,
    )

    logger.debug(
        "credential_resolved",
        username=credential.qualified_username,
        tenant=target.origin,
    )
    return credential, target
