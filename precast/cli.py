# -*- coding: utf-8 -*-

# Precast Session
# Copyright (C) 2025 Precast Session contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Precast CLI - session management from the terminal.

Usage:
    precast login qc@example.com
    precast status
    precast request GET /api/projects
    precast logout
"""

import asyncio
import json
import sys
from typing import Any, Dict, Optional

import click

from precast.admission import DeviceSessionAdmission
from precast.config import API_BASE_URL, CREDS_FILE, DEFAULT_CLI_CREDS_FILE
from precast.exceptions import EvictionFailed, SessionError, TransportError
from precast.network_errors import format_error_for_user
from precast.session import PrecastSession
from precast.token_store import init_token_store


def _describe(error: SessionError) -> str:
    if isinstance(error, TransportError):
        return format_error_for_user(error.info)
    return error.message


def _fail(message: str) -> None:
    click.echo(f"ERROR: {message}", err=True)
    sys.exit(1)


def _session_expired() -> None:
    click.echo("Session expired. Please log in again with: precast login EMAIL", err=True)


def _open_session(ctx: click.Context) -> PrecastSession:
    store = init_token_store(ctx.obj["creds_file"])
    return PrecastSession(
        base_url=ctx.obj["base_url"],
        store=store,
        on_session_expired=_session_expired,
        transport=ctx.obj.get("transport"),
    )


@click.group()
@click.option("--base-url", default=API_BASE_URL, show_default=True, help="Precast backend URL")
@click.option("--creds-file", default=None, help="Credentials file (default: PRECAST_CREDS_FILE or ~/.precast/credentials.json)")
@click.pass_context
def cli(ctx: click.Context, base_url: str, creds_file: Optional[str]):
    """Precast CLI - session management tool."""
    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url
    ctx.obj["creds_file"] = creds_file or CREDS_FILE or DEFAULT_CLI_CREDS_FILE


async def _run_device_dialog(admission: DeviceSessionAdmission) -> Optional[Dict[str, Any]]:
    """Lets the user pick a device to log out. Returns login data, or None if cancelled."""
    info = admission.device_limit
    click.echo("\n=== Device Limit Reached ===\n")
    click.echo(info.message)

    if info.is_empty:
        click.echo(f"\n{info.empty_message}.")
        admission.dismiss()
        return None

    click.echo("Please logout from one device below to continue.\n")
    devices = info.active_devices
    for i, device in enumerate(devices, 1):
        click.echo(f"  [{i}] Device {i} - Active session")
        click.echo(f"      IP Address: {device.ip_address or 'N/A'}")
        click.echo(f"      Login Time: {device.display_login_time()}")
    click.echo()

    while True:
        choice = click.prompt("Device to log out (number, or q to cancel)", default="q")
        if choice.strip().lower() == "q":
            admission.dismiss()
            click.echo("Login cancelled.")
            return None
        if not choice.strip().isdigit() or not 1 <= int(choice) <= len(devices):
            click.echo(f"Invalid choice: {choice}")
            continue

        device = devices[int(choice) - 1]
        click.echo(f"Logging out Device {choice}...")
        try:
            return await admission.evict(device.session_id)
        except EvictionFailed as e:
            click.echo(f"ERROR: {e.message}", err=True)


@cli.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True, help="Account password")
@click.option("--ip", default=None, help="Client IP reported to the server")
@click.pass_context
def login(ctx: click.Context, email: str, password: str, ip: Optional[str]):
    """Log in, freeing a device slot if the limit is reached."""

    async def _login():
        async with _open_session(ctx) as session:
            admission = session.admission()
            try:
                data = await admission.begin(email, password, ip)
                if data is None:
                    data = await _run_device_dialog(admission)
            except SessionError as e:
                _fail(f"Login failed: {_describe(e)}")
                return
            if data is None:
                sys.exit(1)
            click.echo(f"✓ Logged in as {email} (role: {data.get('role') or 'unknown'})")

    asyncio.run(_login())


@cli.command()
@click.pass_context
def logout(ctx: click.Context):
    """Forget the stored session."""

    async def _logout():
        async with _open_session(ctx) as session:
            await session.auth.logout()
        click.echo("✓ Logged out")

    asyncio.run(_logout())


@cli.command()
@click.pass_context
def status(ctx: click.Context):
    """Show the stored session."""
    store = init_token_store(ctx.obj["creds_file"])
    credential = store.get()
    if credential.is_empty:
        click.echo("Not logged in.")
        return

    expires = credential.expires_at.isoformat() if credential.expires_at else "unknown"
    state = "expiring soon" if credential.is_expiring_soon() else "valid"
    click.echo("Logged in.")
    click.echo(f"  Access token: {credential.access_token[:8]}...")
    click.echo(f"  Expires: {expires} ({state})")


@cli.command()
@click.pass_context
def refresh(ctx: click.Context):
    """Refresh the access token now."""

    async def _refresh():
        async with _open_session(ctx) as session:
            try:
                token = await session.coordinator.refresh()
            except SessionError as e:
                _fail(f"Refresh failed: {_describe(e)}")
                return
            click.echo(f"✓ Token refreshed ({token[:8]}...)")

    asyncio.run(_refresh())


@cli.command()
@click.argument("method")
@click.argument("path")
@click.option("--data", default=None, help="JSON request body")
@click.option("--raw-token", is_flag=True, help="Send the raw token instead of a Bearer header")
@click.option("--session-id-header", is_flag=True, help="Also send the token in a session_id header")
@click.pass_context
def request(ctx: click.Context, method: str, path: str, data: Optional[str], raw_token: bool, session_id_header: bool):
    """Send an authenticated request and print the response."""
    try:
        body = json.loads(data) if data else None
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON body: {e}")
        return

    async def _request():
        async with _open_session(ctx) as session:
            try:
                response = await session.api.request(
                    method,
                    path,
                    json_data=body,
                    use_bearer=not raw_token,
                    include_session_id=session_id_header,
                )
            except SessionError as e:
                _fail(_describe(e))
                return
            click.echo(f"HTTP {response.status_code}")
            click.echo(response.text)
            if not response.is_success:
                sys.exit(1)

    asyncio.run(_request())


if __name__ == "__main__":
    cli()
