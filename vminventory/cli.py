import argparse
import logging
import sys
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

from vminventory import __version__
from vminventory.config import (
    ENV_INSECURE,
    ENV_PERSIST_SESSION,
    ENV_URL,
    CredentialOverride,
    get_env_bool,
    get_env_string,
    resolve,
)
from vminventory.errors import InventoryError, UsageError
from vminventory.inventory import ALL_KINDS, ObjectKind, fetch_inventory
from vminventory.render import print_table, render
from vminventory.session import SessionCache, acquire_client

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

logger = logging.getLogger(__name__)

COMMAND_KINDS = {
    "vm": (ObjectKind.VIRTUAL_MACHINE,),
    "datastore": (ObjectKind.DATASTORE,),
    "network": (ObjectKind.NETWORK,),
    "all": ALL_KINDS,
}

COMMAND_HELP = {
    "vm": "list virtual machines",
    "datastore": "list datastores",
    "network": "list networks",
    "all": "list datastores, virtual machines and networks",
}


@dataclass(frozen=True)
class InventoryQuery:
    kinds: tuple
    name_filter: str = ""


# --- Arguments ---
def _add_global_options(parser, with_defaults):
    """
    Register the shared flags. Subcommand parsers get SUPPRESS defaults so a
    flag given before the subcommand is not reset by the subparser.
    """
    def default(value):
        return value if with_defaults else argparse.SUPPRESS

    parser.add_argument("-url", "--url", default=default(get_env_string(ENV_URL)),
                        help=f"ESX or vCenter URL [{ENV_URL}]")
    parser.add_argument("-insecure", "--insecure", action=argparse.BooleanOptionalAction,
                        default=default(get_env_bool(ENV_INSECURE, False)),
                        help=f"Don't verify the server's certificate chain [{ENV_INSECURE}]")
    parser.add_argument("-name", "--name", default=default(""),
                        help="Only list objects with exactly this name")
    parser.add_argument("-persist-session", "--persist-session", action=argparse.BooleanOptionalAction,
                        default=default(get_env_bool(ENV_PERSIST_SESSION, True)),
                        help=f"Reuse and store the session cookie [{ENV_PERSIST_SESSION}]")
    parser.add_argument("-timeout", "--timeout", type=float, metavar="SECONDS", default=default(None),
                        help="Socket timeout for the connection (no timeout by default)")
    parser.add_argument("-debug", "--debug", "-v", action="store_true", default=default(False),
                        help="Enable debug logging")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="vminventory",
        description="List virtual machines, datastores and networks of an ESXi host or vCenter.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    _add_global_options(parser, with_defaults=True)

    subparsers = parser.add_subparsers(dest="command", metavar="command")
    for command in COMMAND_KINDS:
        subparser = subparsers.add_parser(command, help=COMMAND_HELP[command])
        _add_global_options(subparser, with_defaults=False)
    return parser


def build_query(args):
    """Turn parsed arguments into an InventoryQuery; fails before anything touches the network."""
    commands = ", ".join(COMMAND_KINDS)
    if not args.command:
        raise UsageError(f"Please specify a subcommand. Command must be one of: {commands}")
    kinds = COMMAND_KINDS.get(args.command)
    if not kinds:
        raise UsageError(f"Unrecognized command {args.command!r}. Command must be one of: {commands}")
    if not args.url:
        raise UsageError(f"url must be set (-url or {ENV_URL})")
    return InventoryQuery(kinds=kinds, name_filter=args.name or "")


# --- Main execution ---
def main(argv=None):
    load_dotenv(find_dotenv(usecwd=True))
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING, format=LOG_FORMAT)

    try:
        query = build_query(args)
        target = resolve(args.url, CredentialOverride.from_env(), insecure=args.insecure)
        cache = SessionCache() if args.persist_session else None
        si = acquire_client(target, timeout=args.timeout, cache=cache)
        inventory = fetch_inventory(si, query.kinds)
    except UsageError as e:
        parser.print_usage(sys.stderr)
        logger.error(f"{e}")
        return 1
    except InventoryError as e:
        logger.error(f"{e}", exc_info=args.debug)
        return 1

    print_table(render(inventory, query.kinds, query.name_filter))
    return 0
