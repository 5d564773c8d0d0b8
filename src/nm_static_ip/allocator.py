"""
Candidate address selection by deterministic linear scan
"""

import ipaddress
import logging
from typing import Iterator, Optional

from .config import HOST_OCTET_MAX, HOST_OCTET_MIN, CandidateAddress, InterfaceName
from .detectors import AddressProber
from .errors import AddressAlreadyLocal, AddressInUse, NoFreeAddress

logger = logging.getLogger(__name__)

DEFAULT_BASE_IP = "192.168.250.11"
DEFAULT_MAX_ATTEMPTS = 200


def clamp_host(address: ipaddress.IPv4Address) -> ipaddress.IPv4Address:
    """Move the last octet into the host range [2, 254]"""
    last = int(address) & 0xFF
    stem = int(address) & ~0xFF
    last = min(max(last, HOST_OCTET_MIN), HOST_OCTET_MAX)
    return ipaddress.IPv4Address(stem | last)


def next_candidate(address: ipaddress.IPv4Address) -> ipaddress.IPv4Address:
    """
    Increment the last octet, clamped to [2, 254].

    .0 and .1 step up to .2; anything past .254 stays at .254. The upper
    octets never change.
    """
    last = (int(address) & 0xFF) + 1
    stem = int(address) & ~0xFF
    last = min(max(last, HOST_OCTET_MIN), HOST_OCTET_MAX)
    return ipaddress.IPv4Address(stem | last)


def iter_candidates(base: ipaddress.IPv4Address, limit: int) -> Iterator[ipaddress.IPv4Address]:
    """Yield up to limit distinct candidates starting at base, without wraparound"""
    current = clamp_host(base)
    for _ in range(limit):
        yield current
        following = next_candidate(current)
        if following == current:
            return
        current = following


class CandidateAllocator:
    """
    Finds an address that is neither bound locally nor answering on the wire.

    The scan is strictly sequential: one candidate is probed at a time so
    the segment never sees bursts of probe traffic.
    """

    def __init__(self, prober: AddressProber):
        self.prober = prober

    def check(self, interface: InterfaceName, candidate: CandidateAddress) -> None:
        """
        Validate a single address, local binding first.

        Raises:
            AddressAlreadyLocal: If the address is bound on this host
            AddressInUse: If another host answered for it
            ProbeFailed: If the wire check could not run
        """
        address = str(candidate.address)
        if self.prober.is_assigned_locally(address):
            raise AddressAlreadyLocal(address)
        if self.prober.is_in_use(interface, address):
            raise AddressInUse(address)

    def allocate(
        self,
        interface: InterfaceName,
        explicit_address: Optional[str] = None,
        base: str = DEFAULT_BASE_IP,
        prefix: int = 24,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS
    ) -> CandidateAddress:
        """
        Choose the address to assign.

        Args:
            interface: Device the probes are sent from
            explicit_address: Address requested by the operator; validated, not searched
            base: First address of the scan
            prefix: Prefix length of the result
            max_attempts: Candidates examined before giving up

        Returns:
            CandidateAddress that passed both checks

        Raises:
            AddressAlreadyLocal, AddressInUse: Explicit address rejected
            NoFreeAddress: Scan exhausted
            ProbeFailed: The wire check could not run
            ValueError: Malformed address or prefix
        """
        if explicit_address:
            candidate = CandidateAddress.parse(explicit_address, prefix)
            logger.info(f"[*] Checking availability of requested IP {candidate}...")
            self.check(interface, candidate)
            logger.info(f"[OK] IP {candidate} looks free")
            return candidate

        if max_attempts < 1:
            raise ValueError(f"max_attempts must be positive, got {max_attempts}")

        start = CandidateAddress.parse(base, prefix)
        logger.info(f"[*] No IP provided. Searching for a free address starting at {start}...")

        attempts = 0
        for address in iter_candidates(start.address, max_attempts):
            attempts += 1
            candidate = CandidateAddress(address, prefix)
            try:
                self.check(interface, candidate)
            except AddressAlreadyLocal:
                logger.warning(f"[!] {candidate} is already assigned on this host; trying next...")
                continue
            except AddressInUse:
                logger.warning(f"[!] {candidate} is in use on the network; trying next...")
                continue

            logger.info(f"[OK] Selected free IP: {candidate}")
            return candidate

        raise NoFreeAddress(str(start), attempts)
