"""
Detection of the same subnet bound to more than one interface
"""

import logging
from dataclasses import dataclass

from .config import CandidateAddress, InterfaceName
from .detectors import NetworkInventory
from .errors import SubnetConflict

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SubnetConflictEntry:
    """Another interface holding an address in the target subnet"""
    interface: InterfaceName
    cidr: str


class ConflictDetector:
    """
    Compares the candidate's network against addresses on other interfaces.

    Networks are compared after masking with their own prefix lengths, so a
    /24 candidate matches exactly when the first three octets agree, and
    wider or narrower prefixes compare by overlap.
    """

    def __init__(self, inventory: NetworkInventory):
        self.inventory = inventory

    def find_conflicts(
        self,
        target_interface: InterfaceName,
        candidate: CandidateAddress
    ) -> list[SubnetConflictEntry]:
        """List every other interface whose bound network overlaps the candidate's"""
        network = candidate.network
        conflicts: list[SubnetConflictEntry] = []

        for name, bound in sorted(self.inventory.local_addresses().items()):
            if name == target_interface:
                continue
            for addr in bound:
                if addr.network.overlaps(network):
                    logger.debug(f"{network} overlaps {addr} on {name}")
                    conflicts.append(SubnetConflictEntry(name, str(addr)))

        return conflicts

    def subnet_used_elsewhere(
        self,
        target_interface: InterfaceName,
        candidate: CandidateAddress
    ) -> bool:
        return bool(self.find_conflicts(target_interface, candidate))

    def check(self, target_interface: InterfaceName, candidate: CandidateAddress) -> None:
        """
        Raises:
            SubnetConflict: If another interface already sits in the candidate's subnet
        """
        conflicts = self.find_conflicts(target_interface, candidate)
        if conflicts:
            raise SubnetConflict(str(candidate.network), conflicts)
