"""
Data models and type definitions
Python 3.12+ with modern type system
"""

import ipaddress
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, TypeAlias

InterfaceName: TypeAlias = str
IPAddress: TypeAlias = str
ProfileName: TypeAlias = str

# Rendered in place of any field the connection manager could not report
UNKNOWN = "unknown"

# Host range for the last octet; .0, .1 (gateway) and .255 are reserved
HOST_OCTET_MIN = 2
HOST_OCTET_MAX = 254


class InterfaceKind(Enum):
    """Device type as reported by NetworkManager"""
    ETHERNET = "ethernet"
    WIRELESS = "wifi"
    INFINIBAND = "infiniband"
    OTHER = "other"

    @classmethod
    def from_nmcli(cls, value: str) -> "InterfaceKind":
        """Map a raw nmcli TYPE column onto a known kind"""
        value = value.strip().lower()
        match value:
            case "ethernet":
                return cls.ETHERNET
            case "wifi" | "wireless" | "802-11-wireless":
                return cls.WIRELESS
            case "infiniband":
                return cls.INFINIBAND
            case _:
                return cls.OTHER


class DeviceState(Enum):
    """Operational state of a device"""
    UNKNOWN = "unknown"
    DOWN = "down"
    UP = "up"
    CONNECTING = "connecting"
    CONNECTED = "connected"

    @classmethod
    def from_nmcli(cls, value: str) -> "DeviceState":
        """
        Map nmcli STATE text onto a state.

        Accepts both the `device status` form ("connected (externally)")
        and the `device show` form ("100 (connected)").
        """
        text = value.strip().lower()
        if "(" in text and text.split("(", 1)[0].strip().isdigit():
            text = text.split("(", 1)[1].rstrip(")").strip()

        if text.startswith("connected"):
            return cls.CONNECTED
        if text.startswith(("connecting", "deactivating")):
            return cls.CONNECTING
        if text == "disconnected":
            # Link is available, nothing activated on it
            return cls.UP
        if text in ("unavailable", "unmanaged"):
            return cls.DOWN
        return cls.UNKNOWN


@dataclass(slots=True)
class Interface:
    """
    A network device as seen by NetworkManager.

    Attributes:
        name: Device identifier (e.g., ens27f0)
        kind: Device kind
        state: Operational state
        profile: Bound connection profile, None when nothing is bound
        addresses: Currently bound IPv4 addresses in CIDR notation
        managed: Whether NetworkManager manages the device
    """
    name: InterfaceName
    kind: InterfaceKind
    state: DeviceState = DeviceState.UNKNOWN
    profile: Optional[ProfileName] = None
    addresses: tuple[str, ...] = ()
    managed: bool = True

    def __str__(self) -> str:
        ips = ", ".join(self.addresses) or "none"
        return (
            f"{self.name:12} type={self.kind.value:10} state={self.state.value:10} "
            f"conn={self.profile or '--'} (ip4={ips})"
        )

    @property
    def is_configurable(self) -> bool:
        """Only wired ethernet and infiniband devices are offered for assignment"""
        return self.managed and self.kind in (InterfaceKind.ETHERNET, InterfaceKind.INFINIBAND)


@dataclass(frozen=True, slots=True)
class InterfaceSnapshot:
    """Best-effort description of a single device"""
    name: InterfaceName
    state: DeviceState = DeviceState.UNKNOWN
    profile: str = UNKNOWN
    addresses: tuple[str, ...] = ()

    def summary(self) -> str:
        ips = " ".join(self.addresses) or "none"
        return f"state={self.state.value} conn={self.profile} ip4={ips}"


@dataclass(frozen=True, slots=True)
class CandidateAddress:
    """
    An IPv4 address under evaluation, plus its prefix length.

    Raises:
        ValueError: If the address or prefix is invalid
    """
    address: ipaddress.IPv4Address
    prefix: int = 24

    def __post_init__(self) -> None:
        if not isinstance(self.address, ipaddress.IPv4Address):
            raise ValueError(f"Not an IPv4 address: {self.address!r}")
        if not 0 <= self.prefix <= 32:
            raise ValueError(f"Invalid prefix length: {self.prefix}")

    @classmethod
    def parse(cls, address: str, prefix: int = 24) -> "CandidateAddress":
        """Build from dotted-quad text"""
        try:
            ip = ipaddress.IPv4Address(address.strip())
        except ValueError as e:
            raise ValueError(f"Invalid IPv4 address: {address!r}") from e
        return cls(ip, prefix)

    @property
    def network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Network(f"{self.address}/{self.prefix}", strict=False)

    @property
    def cidr(self) -> str:
        return f"{self.address}/{self.prefix}"

    @property
    def last_octet(self) -> int:
        return int(self.address) & 0xFF

    def default_gateway(self) -> IPAddress:
        """Gateway used when none is given (network address, host part 1)"""
        return str(self.network.network_address + 1)

    def __str__(self) -> str:
        return str(self.address)


@dataclass(frozen=True, slots=True)
class ProfileSettings:
    """
    Network parameters written into a connection profile.

    Attributes:
        candidate: Address and prefix to assign
        gateway: IPv4 gateway
        dns: DNS servers, in resolver order
        autoconnect: Activate the profile on boot
        never_default: Keep the interface out of the default route (lab-only mode)
    """
    candidate: CandidateAddress
    gateway: IPAddress
    dns: tuple[IPAddress, ...] = ()
    autoconnect: bool = True
    never_default: bool = False

    def __post_init__(self) -> None:
        try:
            ipaddress.IPv4Address(self.gateway)
            for server in self.dns:
                ipaddress.IPv4Address(server)
        except ValueError as e:
            raise ValueError(f"Invalid profile settings: {e}") from e


@dataclass(frozen=True, slots=True)
class BackupHandle:
    """A timestamped copy of a profile keyfile"""
    profile: ProfileName
    source: Path
    path: Path
    created: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return str(self.path)


def parse_dns_list(value: str) -> tuple[IPAddress, ...]:
    """Split a comma-separated DNS list, validating every entry"""
    servers = tuple(part.strip() for part in value.split(",") if part.strip())
    for server in servers:
        try:
            ipaddress.IPv4Address(server)
        except ValueError as e:
            raise ValueError(f"Invalid DNS server: {server!r}") from e
    return servers
