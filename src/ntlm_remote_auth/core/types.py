"""
ntlm-remote-auth Core Types

Value types shared by the resolver, the handshake engine, the context
token cache and the session.

Design Principles:
- Immutable where the data is resolved once (credential, tenant target)
- Mutable only where the owner replaces or expires it (context token)
- Request options are evolved, never mutated in place
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

import attrs
from attrs import field, validators

from ntlm_remote_auth.core.exceptions import ValidationError


VERBOSE_JSON = "application/json;odata=verbose"

DEFAULT_PORTS = {"http": 80, "https": 443}


# =============================================================================
# IDENTITY TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Credential:
    """
    Resolved NTLM credential.

    Attributes:
        username: Account name (without domain)
        password: Account password (never shown in repr)
        domain: NetBIOS or DNS domain, empty for local accounts
        workstation: Client workstation name, may be empty
    """

    username: str = field(validator=validators.instance_of(str))
    password: str = field(validator=validators.instance_of(str), repr=False)
    domain: str = field(default="", validator=validators.instance_of(str))
    workstation: str = field(default="", validator=validators.instance_of(str))

    @property
    def qualified_username(self) -> str:
        """Username in ``DOMAIN\\user`` form when a domain is set."""
        if self.domain:
            return f"{self.domain}\\{self.username}"
        return self.username


@attrs.define(frozen=True, slots=True)
class TenantTarget:
    """
    Normalized tenant origin: scheme and host, path dropped.

    INVARIANT: scheme is ``http`` or ``https``
    """

    scheme: str = field(validator=validators.in_(("http", "https")))
    host: str = field(validator=validators.min_len(1))
    port: Optional[int] = None

    @property
    def origin(self) -> str:
        if self.port is None or self.port == DEFAULT_PORTS[self.scheme]:
            return f"{self.scheme}://{self.host}"
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def is_secure(self) -> bool:
        return self.scheme == "https"

    def __str__(self) -> str:
        return self.origin


@attrs.define(frozen=True, slots=True)
class AuthOptions:
    """Structured form of the ``authenticate`` arguments."""

    tenant_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    domain: Optional[str] = None
    workstation: Optional[str] = None


# =============================================================================
# REQUEST OPTIONS
# =============================================================================


@attrs.define(frozen=True)
class RequestOptions:
    """
    Description of one outbound call.

    ``url`` may be absolute or relative to ``base_url`` (or, when that is
    unset, to the base of the template that sends it).
    """

    url: str
    method: str = field(default="GET", converter=lambda m: (m or "GET").upper())
    headers: Dict[str, str] = field(factory=dict, converter=lambda h: dict(h or {}))
    params: Optional[Mapping[str, Any]] = None
    json: Any = None
    content: Optional[Union[str, bytes]] = None
    data: Optional[Mapping[str, Any]] = None
    base_url: Optional[str] = None

    @classmethod
    def coerce(
        cls, value: Union["RequestOptions", Mapping[str, Any], str]
    ) -> "RequestOptions":
        """Build options from an instance, a mapping or a bare URL."""
        if isinstance(value, RequestOptions):
            return value
        if isinstance(value, str):
            return cls(url=value)
        if isinstance(value, Mapping):
            known = {a.name for a in attrs.fields(cls)}
            unknown = set(value) - known
            if unknown:
                raise ValidationError(
                    f"unknown request options: {', '.join(sorted(unknown))}"
                )
            if not value.get("url"):
                raise ValidationError("url required")
            return cls(**value)
        raise ValidationError(f"unsupported request options type: {type(value).__name__}")

    def with_headers(self, headers: Mapping[str, str]) -> "RequestOptions":
        """Return a copy with ``headers`` set, replacing same-named ones."""
        replaced = {name.lower() for name in headers}
        merged = {k: v for k, v in self.headers.items() if k.lower() not in replaced}
        merged.update(headers)
        return attrs.evolve(self, headers=merged)


# =============================================================================
# CONTEXT TOKEN
# =============================================================================


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """Read naive datetimes as local time."""
    if value is not None and value.tzinfo is None:
        return value.astimezone()
    return value


@attrs.define(eq=False)
class ContextToken:
    """
    Anti-forgery token issued by the context service.

    ``expires_at`` is the issue time embedded in the digest plus the grace
    window. Naive datetimes, whether assigned or passed as ``now``, are
    read as local time. Instances are owned by exactly one session and
    compared by identity.
    """

    site_base_url: str
    digest_value: str = field(repr=False)
    expires_at: Optional[datetime] = field(default=None, converter=_aware)
    web_full_url: str = ""
    library_version: str = ""
    timeout_seconds: Optional[int] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True unless ``expires_at`` is strictly in the future."""
        if self.expires_at is None:
            return True
        now = _aware(now) or datetime.now(timezone.utc)
        return not self.expires_at > now
