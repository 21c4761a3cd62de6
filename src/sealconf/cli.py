"""
Command-line interface for sealconf.

Provides commands to seal the secrets of configuration files in place, to
seal or open single values with this host's key, and to inspect the hardware
fingerprint the key is derived from.

Uses Python's argparse module (no external CLI libraries).
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

from sealconf import __version__
from sealconf.config.envfile import EnvLoader
from sealconf.config.loader import load_config
from sealconf.errors import SealconfError
from sealconf.settings import load_settings
from sealconf.vault.context import VaultContext
from sealconf.vault.fingerprint import collect_identifiers, fold_identifiers, probe_for_platform

# Set up logging
logger = logging.getLogger(__name__)

# Global verbosity settings (set during main() based on args)
_quiet_mode = False


def set_output_mode(quiet: bool = False) -> None:
    """
    Set the output mode for the CLI.

    Args:
        quiet: If True, suppress non-essential output.
    """
    global _quiet_mode
    _quiet_mode = quiet


def output(message: str = "", force: bool = False) -> None:
    """
    Print a message to stdout, respecting quiet mode.

    Args:
        message: The message to print.
        force: If True, print even in quiet mode (for essential output like JSON).
    """
    if force or not _quiet_mode:
        print(message)


def output_error(message: str) -> None:
    """Print an error message (always shown, even in quiet mode)."""
    print(message, file=sys.stderr)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the sealconf CLI."""
    parser = argparse.ArgumentParser(
        prog="sealconf",
        description="Configuration files with machine-bound password sealing",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"sealconf {__version__}",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (can be repeated)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        metavar="<command>",
    )

    # load command
    load_parser = subparsers.add_parser(
        "load",
        help="Seal new passwords in a JSON or YAML config file",
        description=(
            "Load a JSON/YAML configuration, seal every new plaintext password "
            "and rewrite the file if anything changed."
        ),
    )
    load_parser.add_argument("path", metavar="PATH", help="Config file (.json, .yaml, .yml)")
    load_parser.add_argument(
        "--expect-version",
        type=int,
        metavar="N",
        help="Expected config version; a differing top-level Version is updated",
    )
    load_parser.add_argument(
        "--clean",
        action="store_true",
        help="Write passwords back in plaintext (migration only, use with care)",
    )
    load_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on secure fields without a plaintext sibling",
    )
    load_parser.set_defaults(func=cmd_load)

    # env command
    env_parser = subparsers.add_parser(
        "env",
        help="Seal new passwords in a .env file",
        description="Load a .env file, seal every new *_PASSWORD value and rewrite it.",
    )
    env_parser.add_argument("path", metavar="PATH", nargs="?", default=".env", help="Env file (default: .env)")
    env_parser.add_argument(
        "--clean",
        action="store_true",
        help="Write passwords back in plaintext (migration only, use with care)",
    )
    env_parser.set_defaults(func=cmd_env)

    # seal command
    seal_parser = subparsers.add_parser(
        "seal",
        help="Seal a single value with this host's key",
        description="Print the sealed form of a value. Prompts if no value is given.",
    )
    seal_parser.add_argument("value", metavar="TEXT", nargs="?", help="Value to seal")
    seal_parser.set_defaults(func=cmd_seal)

    # open command
    open_parser = subparsers.add_parser(
        "open",
        help="Open a sealed value with this host's key",
        description="Print the plaintext of a sealed value.",
    )
    open_parser.add_argument("value", metavar="SEALED", help="Sealed value")
    open_parser.set_defaults(func=cmd_open)

    # hwid command
    hwid_parser = subparsers.add_parser(
        "hwid",
        help="Show the hardware fingerprint of this host",
        description="Show how many hardware identifiers were collected and the folded machine ID.",
    )
    hwid_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    hwid_parser.set_defaults(func=cmd_hwid)

    return parser


def setup_logging(verbose: int, quiet: bool) -> None:
    """Configure logging based on verbosity level."""
    if quiet:
        level = logging.ERROR
    elif verbose == 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def cmd_load(args: argparse.Namespace) -> int:
    """Seal a structured config file in place."""
    path = Path(args.path)
    if not path.exists():
        output_error(f"Config file not found: {path}")
        return 1

    record: dict[str, Any] = {}
    changed = load_config(
        record,
        args.expect_version,
        path,
        clean_config=args.clean,
        strict_pairs=args.strict or None,
    )

    if args.clean:
        output(f"Wrote {path} with plaintext passwords")
    elif changed:
        output(f"Updated {path}")
    else:
        output(f"{path} is up to date")
    return 0


def cmd_env(args: argparse.Namespace) -> int:
    """Seal a .env file in place."""
    path = Path(args.path)
    if not path.exists():
        output_error(f"Env file not found: {path}")
        return 1

    # A private environment keeps the CLI from publishing secrets anywhere
    loader = EnvLoader(environ={})
    changed = loader.load(path, clean_config=args.clean)

    if args.clean:
        output(f"Wrote {path} with plaintext passwords")
    elif changed:
        output(f"Updated {path}")
    else:
        output(f"{path} is up to date")
    return 0


def cmd_seal(args: argparse.Namespace) -> int:
    """Print the sealed form of a value."""
    value = args.value
    if value is None:
        value = getpass.getpass("Value to seal: ")
    if not value:
        output_error("Nothing to seal")
        return 1

    context = VaultContext.from_hardware_id()
    output(context.codec.seal(value), force=True)
    return 0


def cmd_open(args: argparse.Namespace) -> int:
    """Print the plaintext of a sealed value."""
    context = VaultContext.from_hardware_id()
    output(context.codec.open(args.value), force=True)
    return 0


def cmd_hwid(args: argparse.Namespace) -> int:
    """Show the hardware fingerprint of this host."""
    settings = load_settings()
    probe = probe_for_platform(timeout=settings.probe_timeout)
    identifiers = collect_identifiers(probe)
    machine_id = fold_identifiers(identifiers)

    if args.json:
        data = {
            "probe": type(probe).__name__,
            "virtual_machine": probe.is_virtual_machine,
            "identifier_count": len(identifiers),
            "hardware_id": f"{machine_id:016x}",
        }
        output(json.dumps(data, indent=2), force=True)
        return 0

    output("Hardware Fingerprint")
    output("=" * 50)
    output(f"Probe: {type(probe).__name__}")
    output(f"Virtual machine: {'yes' if probe.is_virtual_machine else 'no'}")
    output(f"Identifiers collected: {len(identifiers)}")
    output(f"Hardware ID: {machine_id:016x}", force=True)
    return 0


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the sealconf CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Set up logging and output mode
    setup_logging(args.verbose, args.quiet)
    set_output_mode(args.quiet)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        output("\nOperation cancelled.")
        sys.exit(130)
    except SealconfError as e:
        output_error(f"Error: {e}")
        sys.exit(2)
    except Exception as e:
        if args.verbose > 0:
            raise
        output_error(f"Error: {e}")
        logger.exception("Unexpected failure")
        sys.exit(1)


if __name__ == "__main__":
    main()
