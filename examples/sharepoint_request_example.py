#!/usr/bin/env python3
"""
SharePoint Request Example

Demonstrates how to open an NTLM authenticated session against an
on-premises SharePoint site and issue REST calls through it.

Features:
1. Session creation (positional and mapping forms)
2. Context token inspection and refresh
3. Read and write requests with the form digest stamped automatically
4. Callback style completion
5. Handshake trace inspection

Set SP_URL, SP_DOMAIN, SP_USERNAME and SP_PASSWORD before running.
"""

import asyncio
import os

import structlog

from ntlm_remote_auth import (
    HandshakeError,
    ProtocolError,
    SessionConfig,
    authenticate,
)


async def main():
    """Demonstrate authenticated SharePoint requests."""

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(20),
    )

    print("=" * 70)
    print("ntlm-remote-auth - SharePoint REST Requests")
    print("=" * 70)
    print()

    SITE_URL = os.environ.get("SP_URL", "https://sharepoint.example.com/sites/dev")
    DOMAIN = os.environ.get("SP_DOMAIN", "CORP")
    USERNAME = os.environ.get("SP_USERNAME", "jdoe")
    PASSWORD = os.environ.get("SP_PASSWORD", "")

    # ==========================================================================
    # EXAMPLE 1: Authenticate
    # ==========================================================================
    print("1. Authenticate")
    print("-" * 40)

    try:
        session = await authenticate(
            {
                "tenant_url": SITE_URL,
                "domain": DOMAIN,
                "username": USERNAME,
                "password": PASSWORD,
            },
            config=SessionConfig(timeout=15.0),
        )
    except HandshakeError as e:
        print(f"   Server did not complete NTLM: {e}")
        return
    except ProtocolError as e:
        print(f"   Credential rejected ({e.status_code}): {e}")
        return

    token = session.context_info
    print(f"   Tenant: {session.target}")
    print(f"   Site: {token.site_base_url}")
    print(f"   Token expires: {token.expires_at.isoformat()}")
    print()

    async with session:
        # ======================================================================
        # EXAMPLE 2: Read request
        # ======================================================================
        print("2. Read the web title")
        print("-" * 40)

        response = await session.get("/_api/web?$select=Title")
        print(f"   Status: {response.status_code}")
        if response.status_code == 200:
            print(f"   Title: {response.json()['d']['Title']}")
        print()

        # ======================================================================
        # EXAMPLE 3: Write request
        # ======================================================================
        print("3. Create a list (X-RequestDigest added by the session)")
        print("-" * 40)

        response = await session.post({
            "url": "/_api/web/lists",
            "json": {
                "__metadata": {"type": "SP.List"},
                "BaseTemplate": 100,
                "Title": "ntlm-remote-auth demo",
            },
        })
        print(f"   Status: {response.status_code}")
        print()

        # ======================================================================
        # EXAMPLE 4: Callback style
        # ======================================================================
        print("4. Callback completion")
        print("-" * 40)

        def on_done(error, result):
            if error is not None:
                print(f"   Failed: {error}")
            else:
                print(f"   Completed with {result.status_code}")

        await session.get("/_api/web/currentuser", on_done)
        print()

        # ======================================================================
        # EXAMPLE 5: Trace and refresh
        # ======================================================================
        print("5. Handshake trace and token refresh")
        print("-" * 40)

        for transition in session.engine.last_trace:
            print(f"   {transition.from_state.name} -> {transition.to_state.name}")

        refreshed = await session.ensure_context_info(force=True)
        print(f"   New token expires: {refreshed.expires_at.isoformat()}")
        print()

    print("=" * 70)
    print("Done")
    print("=" * 70)


if __name__ == "__main__":
    asyncio.run(main())
