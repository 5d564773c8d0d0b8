"""
Abstract base classes and protocols for interface inventory and address probing
"""

import ipaddress
import logging
from abc import ABC, abstractmethod
from typing import Protocol, Sequence

from .config import Interface, InterfaceName, InterfaceSnapshot, IPAddress
from .errors import InterfaceNotFound

logger = logging.getLogger(__name__)


class NetworkInventory(Protocol):
    """
    Protocol for interface inventory (structural subtyping).

    Test doubles only need these methods, no inheritance.
    """

    def list_managed_interfaces(self) -> Sequence[Interface]: ...
    def find_interface(self, name: InterfaceName) -> Interface: ...
    def describe(self, name: InterfaceName) -> InterfaceSnapshot: ...
    def local_addresses(self) -> dict[InterfaceName, list[ipaddress.IPv4Interface]]: ...
    def interface_addresses(self, name: InterfaceName) -> list[str]: ...


class InterfaceInventory(ABC):
    """
    Abstract base class for reading interface state.

    Every method is a read; nothing here changes host configuration.
    Results are never cached, each call queries the host again.
    """

    # Devices never offered for assignment
    EXCLUDED_INTERFACES: frozenset[InterfaceName] = frozenset({
        "lo",
    })

    @abstractmethod
    def list_devices(self) -> Sequence[Interface]:
        """
        List every device the connection manager reports.

        Raises:
            InventoryUnavailable: If the connection manager cannot be queried
        """
        ...

    @abstractmethod
    def describe(self, name: InterfaceName) -> InterfaceSnapshot:
        """
        Best-effort snapshot of one device.

        Never raises; fields that cannot be read are reported as unknown.
        """
        ...

    @abstractmethod
    def local_addresses(self) -> dict[InterfaceName, list[ipaddress.IPv4Interface]]:
        """
        IPv4 addresses bound on this host, keyed by interface.

        Raises:
            InventoryUnavailable: If the addresses cannot be read
        """
        ...

    def list_managed_interfaces(self) -> Sequence[Interface]:
        """
        Ethernet and infiniband devices managed by the connection manager.

        Loopback and unmanaged devices are excluded.
        """
        return [
            iface for iface in self.list_devices()
            if iface.is_configurable and not self.is_excluded_interface(iface.name)
        ]

    def find_interface(self, name: InterfaceName) -> Interface:
        """
        Look up a device by name.

        Raises:
            InterfaceNotFound: If no such device exists
        """
        for iface in self.list_devices():
            if iface.name == name:
                return iface
        raise InterfaceNotFound(name)

    def interface_addresses(self, name: InterfaceName) -> list[str]:
        """Current IPv4 addresses of one device, in CIDR notation"""
        return [str(addr) for addr in self.local_addresses().get(name, [])]

    def is_assigned_locally(self, address: IPAddress) -> bool:
        """Check whether address is bound on any local interface"""
        target = ipaddress.IPv4Address(address)
        for name, bound in self.local_addresses().items():
            if any(addr.ip == target for addr in bound):
                logger.debug(f"{address} is bound on {name}")
                return True
        return False

    def is_excluded_interface(self, name: InterfaceName) -> bool:
        return name in self.EXCLUDED_INTERFACES


class AddressProber(ABC):
    """
    Abstract base class for deciding whether an address is taken.

    Callers must consult is_assigned_locally() before is_in_use(): a wire
    probe for one of this host's own addresses tells nothing.
    """

    method: str = "unknown"

    def __init__(self, inventory: InterfaceInventory):
        self.inventory = inventory

    def is_assigned_locally(self, address: IPAddress) -> bool:
        """Authoritative local check, no network traffic"""
        return self.inventory.is_assigned_locally(address)

    @abstractmethod
    def is_in_use(self, interface: InterfaceName, address: IPAddress) -> bool:
        """
        Probe the segment behind interface for address.

        Args:
            interface: Device to send probes from
            address: IPv4 address to look for

        Returns:
            True if another host answered for address
        """
        ...
