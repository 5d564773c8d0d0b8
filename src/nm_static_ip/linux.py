"""
Linux interface inventory using NetworkManager (nmcli) and iproute2
"""

import ipaddress
import logging
import subprocess
from typing import Sequence

from .commands import DEFAULT_TIMEOUT, describe_failure, run_command
from .config import (
    UNKNOWN, DeviceState, Interface, InterfaceKind, InterfaceName, InterfaceSnapshot
)
from .detectors import InterfaceInventory
from .errors import InventoryUnavailable

logger = logging.getLogger(__name__)

# nmcli prints "--" for an empty value
NMCLI_EMPTY = "--"


def split_terse(line: str) -> list[str]:
    """
    Split one line of `nmcli -t` output into fields.

    Terse mode escapes literal colons and backslashes inside values.
    """
    fields: list[str] = []
    current: list[str] = []
    chars = iter(line)
    for char in chars:
        if char == "\\":
            current.append(next(chars, ""))
        elif char == ":":
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
    fields.append("".join(current))
    return fields


def parse_ip_addr(output: str) -> dict[InterfaceName, list[ipaddress.IPv4Interface]]:
    """
    Parse `ip -o -4 addr show` output.

    Lines look like:
        2: eth0    inet 192.168.1.5/24 brd 192.168.1.255 scope global eth0\\ ...
    """
    addresses: dict[InterfaceName, list[ipaddress.IPv4Interface]] = {}
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 4 or parts[2] != "inet":
            continue
        name = parts[1].split("@", 1)[0]
        try:
            addr = ipaddress.IPv4Interface(parts[3])
        except ValueError:
            logger.debug(f"Skipping unparsable address line: {line}")
            continue
        addresses.setdefault(name, []).append(addr)
    return addresses


class LinuxNetworkInventory(InterfaceInventory):
    """
    Interface inventory backed by nmcli and ip.

    Detection Strategy:
    1. nmcli device status for device, type, state and bound profile
    2. ip -o -4 addr show for bound IPv4 addresses
    3. Map raw type/state text onto closed enums at this boundary
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def list_devices(self) -> Sequence[Interface]:
        """List all NetworkManager devices with their current IPv4 addresses"""
        try:
            result = run_command(
                ["nmcli", "-t", "-f", "DEVICE,TYPE,STATE,CONNECTION", "device", "status"],
                timeout=self.timeout
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.warning(f"nmcli device query failed: {describe_failure(e)}")
            raise InventoryUnavailable(
                f"NetworkManager inventory unavailable ({describe_failure(e)})"
            ) from e

        try:
            bound = self.local_addresses()
        except InventoryUnavailable:
            bound = {}

        interfaces: list[Interface] = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            fields = split_terse(line)
            if len(fields) < 4:
                logger.debug(f"Skipping malformed nmcli line: {line}")
                continue

            name, raw_type, raw_state, connection = fields[:4]
            if not name:
                continue

            kind = InterfaceKind.from_nmcli(raw_type)
            managed = raw_state.strip().lower() != "unmanaged" and raw_type != "loopback"
            interfaces.append(Interface(
                name=name,
                kind=kind,
                state=DeviceState.from_nmcli(raw_state),
                profile=connection if connection and connection != NMCLI_EMPTY else None,
                addresses=tuple(str(addr) for addr in bound.get(name, [])),
                managed=managed
            ))

        return interfaces

    def describe(self, name: InterfaceName) -> InterfaceSnapshot:
        """Snapshot of a device from nmcli device show"""
        try:
            result = run_command(
                ["nmcli", "-t", "-f", "GENERAL.STATE,GENERAL.CONNECTION,IP4.ADDRESS",
                 "device", "show", name],
                timeout=self.timeout
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.debug(f"nmcli device show {name} failed: {describe_failure(e)}")
            return InterfaceSnapshot(name=name)

        state = DeviceState.UNKNOWN
        profile = UNKNOWN
        addresses: list[str] = []

        for line in result.stdout.splitlines():
            key, sep, value = line.partition(":")
            if not sep:
                continue
            value = value.replace("\\:", ":").strip()
            if key == "GENERAL.STATE":
                state = DeviceState.from_nmcli(value)
            elif key == "GENERAL.CONNECTION":
                profile = value if value and value != NMCLI_EMPTY else "none"
            elif key.startswith("IP4.ADDRESS") and value:
                addresses.append(value)

        return InterfaceSnapshot(
            name=name,
            state=state,
            profile=profile,
            addresses=tuple(addresses)
        )

    def local_addresses(self) -> dict[InterfaceName, list[ipaddress.IPv4Interface]]:
        """All IPv4 bindings on this host from iproute2"""
        try:
            result = run_command(["ip", "-o", "-4", "addr", "show"], timeout=self.timeout)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError) as e:
            raise InventoryUnavailable(
                f"Could not read local IPv4 addresses ({describe_failure(e)})"
            ) from e
        return parse_ip_addr(result.stdout)

    def interface_addresses(self, name: InterfaceName) -> list[str]:
        """IPv4 addresses of one device, read directly for the post-check"""
        try:
            result = run_command(
                ["ip", "-o", "-4", "addr", "show", "dev", name],
                timeout=self.timeout
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.warning(f"Could not read addresses of {name}: {describe_failure(e)}")
            return []
        return [str(addr) for addr in parse_ip_addr(result.stdout).get(name, [])]
