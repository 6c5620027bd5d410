"""CLI for the Toon Client."""

import argparse
import asyncio
import json
import logging
import os
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, Optional, Tuple

import aiohttp

from toonclient import (
    Credentials,
    DeviceOffline,
    DeviceOnline,
    Event,
    Initialized,
    OAuth,
    TemperatureState,
    TokensRefreshed,
    ToonAuthError,
    ToonClient,
    ToonDeviceOfflineError,
    ToonError,
    ToonMissingArgumentError,
    ValueChanged,
)

# Default file to store tokens and config
TOKEN_FILE = "tokens.json"
DEFAULT_REDIRECT_URI = "http://localhost:4200/"

logging.basicConfig(level=logging.INFO, format="%(message)s")
_LOGGER = logging.getLogger(__name__)


@dataclass
class CLIContext:
    session: aiohttp.ClientSession
    auth: OAuth
    client: ToonClient


def load_config(token_file: str) -> Dict[str, Any]:
    """Load configuration from token file."""
    try:
        with open(token_file, "r") as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def save_config(token_file: str, updates: Dict[str, Any]) -> None:
    """Save values to the token file, preserving existing content."""
    current_data = load_config(token_file)
    current_data.update(updates)

    with open(token_file, "w") as f:
        json.dump(current_data, f, indent=2)


def get_client_config(args) -> Tuple[str, Optional[str], str]:
    """Get client_id, client_secret and redirect_uri from args, env or file."""
    config = load_config(args.token_file)

    client_id = args.client_id or os.getenv("TOON_CLIENT_ID") or config.get("client_id")
    client_secret = (
        args.client_secret or os.getenv("TOON_CLIENT_SECRET") or config.get("client_secret")
    )
    redirect_uri = (
        args.redirect_uri
        or os.getenv("TOON_REDIRECT_URI")
        or config.get("redirect_uri")
        or DEFAULT_REDIRECT_URI
    )

    if not client_id:
        print("Error: Client ID not found. Provide via --client-id or TOON_CLIENT_ID env var.")
        sys.exit(1)

    return client_id, client_secret, redirect_uri


async def create_session(args) -> aiohttp.ClientSession:
    """Create aiohttp session with optional insecure SSL."""
    if args.insecure:
        print("WARNING: SSL verification disabled via --insecure")
        connector = aiohttp.TCPConnector(ssl=False)
        return aiohttp.ClientSession(connector=connector)
    return aiohttp.ClientSession()


def persist_tokens(token_file: str):
    """Return an event callback writing refreshed tokens to `token_file`."""

    def _on_event(event: Event) -> None:
        if isinstance(event, TokensRefreshed):
            save_config(token_file, event.credentials.as_dict())
            _LOGGER.debug("Tokens saved to %s", token_file)

    return _on_event


@asynccontextmanager
async def setup_client_context(args) -> AsyncGenerator[CLIContext, None]:
    """
    Creates Session, Auth and Client with stored credentials.
    Refreshed tokens are written back to the token file.
    """
    client_id, client_secret, redirect_uri = get_client_config(args)
    config = load_config(args.token_file)

    async with await create_session(args) as session:
        auth = OAuth(client_id, redirect_uri, session, client_secret=client_secret)
        if config.get("access_token"):
            auth.set_credentials(Credentials.from_dict(config))
        auth.events.subscribe(persist_tokens(args.token_file), kinds=[TokensRefreshed.KIND])

        client = ToonClient(auth, include_consumption=getattr(args, "consumption", False))
        try:
            yield CLIContext(session, auth, client)
        finally:
            await client.destroy()


async def bind_stored_agreement(args, ctx: CLIContext) -> None:
    """Bind the agreement given on the command line or saved in the token file."""
    agreement_id = getattr(args, "agreement_id", None) or load_config(args.token_file).get(
        "agreement_id"
    )
    if not agreement_id:
        raise ToonMissingArgumentError(
            "No agreement selected. Run 'set-agreement' or pass --agreement-id."
        )
    await ctx.client.set_agreement(agreement_id)


def report_error(action: str, err: ToonError) -> None:
    """Print an error the way a user should read it."""
    if isinstance(err, ToonDeviceOfflineError):
        print(f"Error {action}: Toon is unavailable (offline).")
    elif isinstance(err, ToonAuthError):
        print(f"Error {action}: authorization expired, run 'login' again.")
    elif isinstance(err, ToonMissingArgumentError):
        print(f"Error {action}: {err}")
    else:
        status = getattr(err, "status", None)
        suffix = f" (HTTP {status})" if status else ""
        print(f"Error {action}{suffix}: {err}")


def print_status(status, as_json: bool = False) -> None:
    if as_json:
        print(json.dumps(status.as_dict()))
        return
    print(f"- Temperature:        {status.measure_temperature} °C")
    print(f"- Target temperature: {status.target_temperature} °C")
    print(f"- State:              {status.temperature_state}")
    print(f"- Power:              {status.measure_power} W")
    print(f"- Power today:        {status.meter_power} kWh")
    print(f"- Gas today:          {status.meter_gas} m³")
    print(f"- Connectivity:       {status.connectivity.value}")


async def cmd_login(args):
    """Handle login command."""
    client_id, client_secret, redirect_uri = get_client_config(args)

    async with await create_session(args) as session:
        auth = OAuth(client_id, redirect_uri, session, client_secret=client_secret)
        url = auth.get_authorization_url()

        print(f"Please visit the following URL to log in:\n\n{url}\n")
        print(f"After verifying, you will be redirected to {redirect_uri}?code=...")
        code = input("Paste the 'code' parameter from the URL here: ").strip()

        try:
            credentials = await auth.async_fetch_details_from_code(code)
        except ToonError as err:
            report_error("logging in", err)
            return

    config = {"client_id": client_id, "redirect_uri": redirect_uri, **credentials.as_dict()}
    if client_secret:
        config["client_secret"] = client_secret
    save_config(args.token_file, config)
    print(f"Successfully authenticated! Tokens and config saved to {args.token_file}")


async def cmd_list_agreements(args):
    """List agreements available to the account."""
    async with setup_client_context(args) as ctx:
        try:
            agreements = await ctx.client.get_agreements()
        except ToonError as err:
            report_error("listing agreements", err)
            return

        print(f"Found {len(agreements)} Agreements:")
        for agreement in agreements:
            print(
                f"- {agreement.agreement_id}: {agreement.display_common_name} "
                f"({agreement.display_address}, hw {agreement.display_hardware_version})"
            )


async def cmd_set_agreement(args):
    """Bind an agreement and remember it."""
    async with setup_client_context(args) as ctx:
        try:
            await ctx.client.set_agreement(args.agreement_id)
        except ToonError as err:
            report_error("setting agreement", err)
            return

    save_config(args.token_file, {"agreement_id": args.agreement_id})
    print(f"Agreement {args.agreement_id} selected.")


async def cmd_status(args):
    """Print the thermostat status."""
    async with setup_client_context(args) as ctx:
        try:
            await bind_stored_agreement(args, ctx)
        except ToonError as err:
            report_error("fetching status", err)
            return
        print_status(ctx.client.status, as_json=args.json)


async def cmd_set_temperature(args):
    """Set a new target temperature."""
    async with setup_client_context(args) as ctx:
        try:
            await bind_stored_agreement(args, ctx)
            # The display accepts half degrees.
            temperature = await ctx.client.set_target_temperature(
                round(args.temperature * 2) / 2
            )
        except ToonError as err:
            report_error("setting temperature", err)
            return
        print(f"Target temperature set to {temperature} °C")


async def cmd_set_state(args):
    """Activate a temperature preset."""
    async with setup_client_context(args) as ctx:
        try:
            await bind_stored_agreement(args, ctx)
            await ctx.client.update_state(args.state, keep_program=args.keep_program)
        except ToonError as err:
            report_error("setting state", err)
            return
        print(f"State set to {args.state}")


async def cmd_program(args):
    """Enable or disable the temperature program."""
    async with setup_client_context(args) as ctx:
        try:
            await bind_stored_agreement(args, ctx)
            if args.mode == "on":
                await ctx.client.enable_program()
            else:
                await ctx.client.disable_program()
        except ToonError as err:
            report_error("changing program", err)
            return
        print(f"Program turned {args.mode}")


def print_event(event: Event) -> None:
    if isinstance(event, ValueChanged):
        print(f"* {event.field} -> {event.value}")
    elif isinstance(event, Initialized):
        print("* initialized")
        print_status(event.status)
    elif isinstance(event, DeviceOffline):
        print("* Toon went offline")
    elif isinstance(event, DeviceOnline):
        print("* Toon is online")


async def cmd_watch(args):
    """Poll the status and print events until interrupted."""
    async with setup_client_context(args) as ctx:
        ctx.client.events.subscribe(
            print_event,
            kinds=[ValueChanged.KIND, Initialized.KIND, DeviceOnline.KIND, DeviceOffline.KIND],
        )
        try:
            await bind_stored_agreement(args, ctx)
        except ToonError as err:
            report_error("starting watch", err)
            return

        print(f"Watching every {args.interval}s, press Ctrl+C to stop.")
        ctx.client.start_polling(args.interval)
        # Runs until cancelled by KeyboardInterrupt.
        await asyncio.Event().wait()


def main():
    """Main CLI entrypoint."""
    # Parent parser for common arguments
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument("--client-id", help="OAuth Client ID (optional if saved)")
    common_parser.add_argument("--client-secret", help="OAuth Client Secret (optional if saved)")
    common_parser.add_argument("--redirect-uri", help="OAuth Redirect URI")
    common_parser.add_argument("--token-file", default=TOKEN_FILE, help="Path to save/load tokens")
    common_parser.add_argument("--insecure", action="store_true", help="Disable SSL verification")
    common_parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    # Commands acting on a bound thermostat
    device_parser = argparse.ArgumentParser(add_help=False)
    device_parser.add_argument("--agreement-id", help="Agreement ID (optional if saved)")

    parser = argparse.ArgumentParser(description="Toon API CLI")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("login", help="Authenticate with Toon", parents=[common_parser])

    subparsers.add_parser(
        "list-agreements", help="List agreements (displays)", parents=[common_parser]
    )

    parser_agreement = subparsers.add_parser(
        "set-agreement", help="Select the agreement to use", parents=[common_parser]
    )
    parser_agreement.add_argument("agreement_id", help="Agreement ID")

    parser_status = subparsers.add_parser(
        "status", help="Show thermostat status", parents=[common_parser, device_parser]
    )
    parser_status.add_argument("--json", action="store_true", help="Output JSON")
    parser_status.add_argument(
        "--consumption", action="store_true", help="Also read consumption flows"
    )

    parser_temp = subparsers.add_parser(
        "set-temperature", help="Set target temperature", parents=[common_parser, device_parser]
    )
    parser_temp.add_argument("temperature", type=float, help="Temperature in °C")

    parser_state = subparsers.add_parser(
        "set-state", help="Activate a preset", parents=[common_parser, device_parser]
    )
    parser_state.add_argument(
        "state",
        choices=[state.label for state in TemperatureState if state is not TemperatureState.NONE],
        help="Preset",
    )
    parser_state.add_argument(
        "--keep-program", action="store_true", help="Resume the program afterwards"
    )

    parser_program = subparsers.add_parser(
        "program", help="Enable or disable the program", parents=[common_parser, device_parser]
    )
    parser_program.add_argument("mode", choices=["on", "off"])

    parser_watch = subparsers.add_parser(
        "watch", help="Poll status and print changes", parents=[common_parser, device_parser]
    )
    parser_watch.add_argument("--interval", type=float, default=15, help="Seconds between polls")
    parser_watch.add_argument(
        "--consumption", action="store_true", help="Also read consumption flows"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    commands = {
        "login": cmd_login,
        "list-agreements": cmd_list_agreements,
        "set-agreement": cmd_set_agreement,
        "status": cmd_status,
        "set-temperature": cmd_set_temperature,
        "set-state": cmd_set_state,
        "program": cmd_program,
        "watch": cmd_watch,
    }

    try:
        asyncio.run(commands[args.command](args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
