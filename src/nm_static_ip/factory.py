"""
Factory pattern for creating address probers
"""

import logging
from enum import Enum
from typing import Optional

from .commands import has_command
from .detectors import AddressProber, InterfaceInventory
from .probers import ArpingProber, PingProber

logger = logging.getLogger(__name__)


class ProbeMethod(Enum):
    """Wire probing strategies"""
    AUTO = "auto"
    ARPING = "arping"
    PING = "ping"


class AddressProberFactory:
    """
    Factory for creating the wire prober best suited to this host.

    Example:
        >>> prober = AddressProberFactory.create(inventory)
        >>> prober.is_in_use("ens27f0", "192.168.250.11")
    """

    @staticmethod
    def create(
        inventory: InterfaceInventory,
        method: ProbeMethod | str = ProbeMethod.AUTO,
        count: int = 2,
        timeout: int = 2
    ) -> AddressProber:
        """
        Create a prober for the requested or detected method.

        Args:
            inventory: Inventory used for the local assignment check
            method: Probe method, AUTO picks arping when installed
            count: ARP probes per candidate
            timeout: Seconds to wait per probe

        Returns:
            AddressProber implementation

        Raises:
            ValueError: If method is not a known probe method
            RuntimeError: If the requested tool is not installed
        """
        method = ProbeMethod(method)
        if method is ProbeMethod.AUTO:
            method = AddressProberFactory._detect_method()

        match method:
            case ProbeMethod.ARPING:
                if not has_command("arping"):
                    raise RuntimeError("arping requested but not installed")
                logger.info(f"Using arping duplicate address detection (count={count}, timeout={timeout}s)")
                return ArpingProber(inventory, count=count, timeout=timeout)

            case ProbeMethod.PING:
                if not has_command("ping"):
                    raise RuntimeError("ping requested but not installed")
                logger.info("Using ICMP reachability probe")
                return PingProber(inventory, timeout=max(1, timeout // 2))

            case _:
                raise ValueError(f"Probe method {method} not supported")

    @staticmethod
    def _detect_method() -> ProbeMethod:
        """Prefer arping, fall back to ping"""
        if has_command("arping"):
            return ProbeMethod.ARPING
        return ProbeMethod.PING

    @staticmethod
    def is_supported(method: Optional[ProbeMethod] = None) -> bool:
        """Check if the given (or detected) method can run on this host"""
        method = method or AddressProberFactory._detect_method()
        match method:
            case ProbeMethod.ARPING:
                return has_command("arping")
            case ProbeMethod.PING:
                return has_command("ping")
            case _:
                return has_command("arping") or has_command("ping")
