"""
Wire probes for duplicate address detection
"""

import logging
import subprocess

from .commands import describe_failure, run_command
from .config import InterfaceName, IPAddress
from .detectors import AddressProber, InterfaceInventory
from .errors import ProbeFailed

logger = logging.getLogger(__name__)

# iputils arping and ping both exit 2 (or higher) on errors; 0 and 1 are answers
TOOL_ERROR_STATUS = 2


def _tool_error(result: subprocess.CompletedProcess) -> str:
    stderr = (result.stderr or "").strip()
    return f"exit {result.returncode}" + (f": {stderr}" if stderr else "")


class ArpingProber(AddressProber):
    """
    Duplicate address detection with iputils arping.

    Detection Strategy:
    1. arping -D (duplicate address detection); exit status 1 means a
       host answered for the address
    2. Unicast ARP request; any "reply from" line means the address is taken

    Any other exit status, a timeout or a missing binary raises ProbeFailed:
    an address is never reported free unless the probe actually ran.
    """

    method = "arping"

    def __init__(self, inventory: InterfaceInventory, count: int = 2, timeout: int = 2):
        super().__init__(inventory)
        self.count = count
        self.timeout = timeout

    def _arping(self, interface: InterfaceName, address: IPAddress, dad: bool) -> subprocess.CompletedProcess:
        cmd = ["arping", "-I", interface, "-c", str(self.count), "-w", str(self.timeout)]
        if dad:
            cmd.append("-D")
        cmd.append(address)
        try:
            result = run_command(cmd, timeout=self.timeout + 5, check=False)
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            raise ProbeFailed(address, "arping", describe_failure(e)) from e

        if result.returncode >= TOOL_ERROR_STATUS:
            raise ProbeFailed(address, "arping", _tool_error(result))
        return result

    def is_in_use(self, interface: InterfaceName, address: IPAddress) -> bool:
        """
        Check if another host on the segment claims address.

        Raises:
            ProbeFailed: If arping could not probe (permissions, unknown device, timeout)
        """
        dad = self._arping(interface, address, dad=True)
        if dad.returncode == 1:
            logger.debug(f"Duplicate address detection: {address} answered on {interface}")
            return True

        # Unicast mode exits 1 when nothing replied
        probe = self._arping(interface, address, dad=False)
        if "reply from" in (probe.stdout or "").lower():
            logger.debug(f"ARP reply for {address} on {interface}")
            return True

        return False


class PingProber(AddressProber):
    """
    Reachability probe with a single ICMP echo.

    Known limitation: a host that ignores ICMP is reported as free.
    """

    method = "ping"

    def __init__(self, inventory: InterfaceInventory, timeout: int = 1):
        super().__init__(inventory)
        self.timeout = timeout
        self._warned = False

    def is_in_use(self, interface: InterfaceName, address: IPAddress) -> bool:
        """
        Check if address answers an ICMP echo via interface.

        Raises:
            ProbeFailed: If ping itself failed rather than getting no reply
        """
        if not self._warned:
            logger.warning("[!] arping not available; falling back to ping (silent hosts look free)")
            self._warned = True

        try:
            result = run_command(
                ["ping", "-c", "1", "-W", str(self.timeout), "-I", interface, address],
                timeout=self.timeout + 5,
                check=False
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            raise ProbeFailed(address, "ping", describe_failure(e)) from e

        if result.returncode >= TOOL_ERROR_STATUS:
            raise ProbeFailed(address, "ping", _tool_error(result))
        return result.returncode == 0
