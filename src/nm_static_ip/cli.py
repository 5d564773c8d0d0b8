"""
CLI interface for static IPv4 assignment
"""

import os
import sys
import logging
import argparse
from typing import Optional, Sequence

from rich.console import Console
from rich.table import Table
from rich import box

from . import __version__
from .commands import missing_commands
from .config import parse_dns_list
from .configurator import AssignmentRequest, StaticIPConfigurator, interface_table
from .errors import InventoryUnavailable, ReconcileError, StaticIPError
from .factory import AddressProberFactory
from .linux import LinuxNetworkInventory
from .reconciler import ProfileReconciler
from .settings import load_settings, init_config, get_config_paths, Settings

REQUIRED_COMMANDS = ("nmcli", "ip")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='[%(asctime)s] %(levelname)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def create_parser(settings: Settings) -> argparse.ArgumentParser:
    """Create CLI argument parser with defaults from settings."""
    parser = argparse.ArgumentParser(
        prog="nm-static-ip",
        description="Assign a persistent static IPv4 address through NetworkManager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Choose interface interactively, find a free address automatically
  sudo %(prog)s

  # Find a free address on a given interface
  sudo %(prog)s -i ens27f0

  # Set a specific address (checked for availability first)
  sudo %(prog)s -i ens27f0 -a 192.168.250.50

  # Every parameter given, lab-only (no default route)
  sudo %(prog)s -i ens27f0 -a 10.0.0.20 -p 24 -g 10.0.0.1 -d 9.9.9.9,1.1.1.1 --never-default

  # Show what would be done
  %(prog)s -i ens27f0 --dry-run
        """
    )

    # Config management
    parser.add_argument(
        "--preset",
        metavar="NAME",
        help="Use named preset from config file"
    )

    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Show current configuration and available presets"
    )

    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Initialize user config file with defaults"
    )

    parser.add_argument(
        "--list-presets",
        action="store_true",
        help="List available presets"
    )

    parser.add_argument(
        "--list-interfaces",
        action="store_true",
        help="List interfaces managed by NetworkManager and exit"
    )

    # Assignment (defaults from settings)
    parser.add_argument(
        "-i", "--interface",
        default=settings.interface,
        help="Network interface (e.g. ens27f0); prompted for when omitted"
    )

    parser.add_argument(
        "-a", "--address",
        default=settings.address,
        help=f"Static IPv4 address; when omitted, search from {settings.base_ip} upwards"
    )

    parser.add_argument(
        "-p", "--prefix",
        type=int,
        default=settings.prefix,
        help=f"Prefix length (default: {settings.prefix})"
    )

    parser.add_argument(
        "-g", "--gateway",
        default=settings.gateway,
        help="IPv4 gateway (default: x.x.x.1 of the chosen address's network)"
    )

    parser.add_argument(
        "-d", "--dns",
        default=",".join(settings.dns),
        help=f"Comma-separated DNS servers (default: {','.join(settings.dns)})"
    )

    parser.add_argument(
        "--base",
        default=settings.base_ip,
        help=f"First address of the automatic search (default: {settings.base_ip})"
    )

    parser.add_argument(
        "--max-attempts",
        type=int,
        default=settings.scan_max,
        help=f"Addresses examined by the automatic search (default: {settings.scan_max})"
    )

    parser.add_argument(
        "--reassign",
        action="store_true",
        help="Report the interface's current address before replacing it"
    )

    parser.add_argument(
        "--never-default",
        action=argparse.BooleanOptionalAction,
        default=settings.never_default,
        help="Lab-only mode: never use this interface for the default route"
    )

    parser.add_argument(
        "--allow-subnet-conflict",
        action="store_true",
        help="Proceed even if the subnet already exists on another interface"
    )

    parser.add_argument(
        "-y", "--yes",
        action=argparse.BooleanOptionalAction,
        default=settings.skip_confirmation,
        help="Apply without asking for confirmation"
    )

    parser.add_argument(
        "--dry-run",
        action=argparse.BooleanOptionalAction,
        default=settings.dry_run,
        help="Show what would be done without making changes"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"nm-static-ip {__version__}"
    )

    return parser


def show_config(settings: Settings) -> None:
    """Display current configuration and available presets."""
    console = Console()

    # Show config sources
    console.print("[bold cyan]Configuration Sources[/bold cyan]")
    if settings.config_sources:
        for source in settings.config_sources:
            console.print(f"  [green][OK][/green] {source}")
    else:
        console.print("  [dim]No config files found (using built-in defaults)[/dim]")

    console.print()

    # Show search paths
    console.print("[bold cyan]Config Search Paths[/bold cyan]")
    for path in get_config_paths():
        exists = "[green][OK][/green]" if path.exists() else "[dim]--[/dim]"
        console.print(f"  {exists} {path}")

    console.print()

    # Show current settings
    console.print("[bold cyan]Current Settings[/bold cyan]")
    settings_table = Table(box=box.SIMPLE)
    settings_table.add_column("Setting", style="cyan")
    settings_table.add_column("Value", style="white")

    settings_table.add_row("base_ip", settings.base_ip)
    settings_table.add_row("prefix", str(settings.prefix))
    settings_table.add_row("dns", ",".join(settings.dns))
    settings_table.add_row("scan_max", str(settings.scan_max))
    settings_table.add_row("probe_method", settings.probe_method)
    settings_table.add_row("command_timeout", f"{settings.command_timeout}s")
    settings_table.add_row("connections_dir", settings.connections_dir)
    settings_table.add_row("never_default", str(settings.never_default))
    settings_table.add_row("dry_run", str(settings.dry_run))

    if settings.default_preset:
        settings_table.add_row("default_preset", settings.default_preset)

    console.print(settings_table)

    # Show presets
    if settings.presets:
        console.print()
        console.print("[bold cyan]Available Presets[/bold cyan]")
        presets_table = Table(box=box.SIMPLE)
        presets_table.add_column("Preset", style="cyan")
        presets_table.add_column("Interface", style="white")
        presets_table.add_column("Address", style="white")
        presets_table.add_column("Description", style="dim")

        for name, preset in settings.presets.items():
            default_marker = " [yellow]*[/yellow]" if name == settings.default_preset else ""
            presets_table.add_row(
                f"{name}{default_marker}",
                preset.interface or "--",
                preset.address or "auto",
                preset.description
            )

        console.print(presets_table)
        console.print("[dim]* = default preset[/dim]")


def list_presets(settings: Settings) -> None:
    """List available presets."""
    console = Console()

    if not settings.presets:
        console.print("[yellow]No presets configured.[/yellow]")
        console.print("Run [cyan]nm-static-ip --init-config[/cyan] to create a config file.")
        return

    console.print("[bold cyan]Available Presets[/bold cyan]\n")

    for name, preset in settings.presets.items():
        default = " [yellow](default)[/yellow]" if name == settings.default_preset else ""
        console.print(f"[bold]{name}[/bold]{default}")
        console.print(f"  Interface: {preset.interface or '(prompt)'}")
        console.print(f"  Address: {preset.address or '(search)'}" + (f"/{preset.prefix}" if preset.prefix else ""))
        if preset.gateway:
            console.print(f"  Gateway: {preset.gateway}")
        if preset.dns:
            console.print(f"  DNS: {', '.join(preset.dns)}")
        if preset.description:
            console.print(f"  [dim]{preset.description}[/dim]")
        console.print()


def list_interfaces(inventory: LinuxNetworkInventory) -> int:
    """Print managed interfaces."""
    console = Console()
    logger = logging.getLogger(__name__)

    try:
        interfaces = inventory.list_managed_interfaces()
    except InventoryUnavailable as e:
        logger.error(f"[FAIL] {e}")
        return 1

    if not interfaces:
        console.print("[yellow]No ethernet or infiniband interfaces managed by NetworkManager.[/yellow]")
        return 0

    console.print(interface_table(interfaces, title="Managed interfaces"))
    return 0


def _preset_arg(argv: Sequence[str]) -> Optional[str]:
    """Pre-parse --preset so config defaults can be resolved before the real parse"""
    args = list(argv)
    for index, arg in enumerate(args):
        if arg == "--preset" and index + 1 < len(args):
            return args[index + 1]
        if arg.startswith("--preset="):
            return arg.split("=", 1)[1]
    return None


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 for failure or abort, 2 for invalid input,
        130 when interrupted)
    """
    console = Console()
    argv = list(sys.argv[1:] if argv is None else argv)

    # Load settings first (before parsing args, so defaults come from config)
    settings = load_settings(preset=_preset_arg(argv))

    parser = create_parser(settings)
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    # Handle config management commands first
    if args.init_config:
        config_path = init_config()
        if config_path:
            console.print(f"[green][OK][/green] Config file created: {config_path}")
            console.print("\nEdit this file to add your presets.")
        else:
            console.print("[yellow]Config file already exists.[/yellow]")
            console.print("Use --show-config to view current settings.")
        return 0

    if args.show_config:
        show_config(settings)
        return 0

    if args.list_presets:
        list_presets(settings)
        return 0

    if args.preset and args.preset not in settings.presets:
        console.print(f"[yellow]Warning: Preset '{args.preset}' not found[/yellow]")
        console.print("Available presets:", ", ".join(settings.list_presets()) or "(none)")
    elif args.preset:
        console.print(f"[cyan]Using preset: {args.preset}[/cyan]")

    missing = missing_commands(REQUIRED_COMMANDS)
    if missing:
        logger.error(f"[FAIL] Required command(s) not found: {', '.join(missing)}")
        return 1

    inventory = LinuxNetworkInventory(timeout=settings.command_timeout)

    if args.list_interfaces:
        return list_interfaces(inventory)

    if not args.dry_run and os.geteuid() != 0:
        logger.error("[FAIL] Please run as root (sudo).")
        return 1

    try:
        request = AssignmentRequest(
            interface=args.interface,
            address=args.address,
            base_ip=args.base,
            prefix=args.prefix,
            gateway=args.gateway,
            dns=parse_dns_list(args.dns),
            max_attempts=args.max_attempts,
            never_default=args.never_default,
            reassign=args.reassign
        )

        if not AddressProberFactory.is_supported():
            logger.error("[FAIL] Neither arping nor ping is available for address probing")
            return 1

        prober = AddressProberFactory.create(
            inventory,
            method=settings.probe_method,
            count=settings.probe_count,
            timeout=settings.probe_timeout
        )
        reconciler = ProfileReconciler(
            connections_dir=settings.connections_dir,
            timeout=settings.command_timeout
        )

        configurator = StaticIPConfigurator(
            request,
            inventory,
            prober=prober,
            reconciler=reconciler,
            dry_run=args.dry_run,
            skip_confirmation=args.yes,
            allow_subnet_conflict=args.allow_subnet_conflict,
            console=console
        )
        result = configurator.run()

        if result.applied or result.dry_run:
            return 0
        return 1

    except ValueError as e:
        logger.error(f"[FAIL] Configuration error: {e}")
        return 2
    except ReconcileError as e:
        logger.error(f"[FAIL] Profile {e.action} failed: {e}")
        if e.backup:
            logger.error(f"[i] Previous profile saved at {e.backup}; restore it manually if needed")
        return 1
    except StaticIPError as e:
        logger.error(f"[FAIL] {e}")
        return 1
    except RuntimeError as e:
        logger.error(f"[FAIL] {e}")
        return 1
    except EOFError:
        logger.error("[FAIL] Input closed before an answer was given")
        return 1
    except KeyboardInterrupt:
        logger.info("\n[!] Cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
