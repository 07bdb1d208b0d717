"""
ntlm-remote-auth Configuration

Per-session settings. Nothing is read from the environment or disk;
callers build a ``SessionConfig`` and hand it to ``authenticate``.
"""

from __future__ import annotations

from typing import Union

import attrs
from attrs import field, validators

from ntlm_remote_auth._version import __version__


CONTEXT_INFO_SERVICE_PATH = "/_api/contextinfo"

# Added to the issue time embedded in the form digest.
CONTEXT_TOKEN_GRACE_SECONDS = 1800


def _positive(instance: object, attribute: attrs.Attribute, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{attribute.name} must be positive, got {value}")


@attrs.define(frozen=True)
class SessionConfig:
    """
    Session configuration.

    Attributes:
        timeout: Per-request transport timeout in seconds
        verify: TLS verification flag or CA bundle path (https targets only)
        token_grace_seconds: Seconds added to the digest issue time
        context_info_path: Service path that issues context tokens
        user_agent: User-Agent header sent on every request
    """

    timeout: float = field(default=30.0, validator=_positive)
    verify: Union[bool, str] = True
    token_grace_seconds: int = field(
        default=CONTEXT_TOKEN_GRACE_SECONDS,
        validator=[validators.instance_of(int), validators.ge(0)],
    )
    context_info_path: str = field(
        default=CONTEXT_INFO_SERVICE_PATH,
        validator=validators.matches_re(r"/.*"),
    )
    user_agent: str = f"ntlm-remote-auth/{__version__}"
