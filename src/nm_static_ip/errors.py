"""
Exception hierarchy for the static address workflow
"""

from pathlib import Path
from typing import Optional


class StaticIPError(Exception):
    """Base class for every workflow failure"""


class InventoryUnavailable(StaticIPError):
    """NetworkManager could not be queried; an explicit interface is required"""


class InterfaceNotFound(StaticIPError):
    """The requested device is not known to NetworkManager"""

    def __init__(self, interface: str):
        super().__init__(f"Interface '{interface}' not found via NetworkManager")
        self.interface = interface


class AllocationError(StaticIPError):
    """No usable candidate address"""

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(message)
        self.address = address


class AddressAlreadyLocal(AllocationError):
    def __init__(self, address: str):
        super().__init__(f"IP {address} is already assigned on this host", address)


class AddressInUse(AllocationError):
    def __init__(self, address: str):
        super().__init__(f"IP {address} appears to be in use on the network", address)


class ProbeFailed(AllocationError):
    """The wire probe could not run, so occupancy is unknown"""

    def __init__(self, address: str, tool: str, detail: str):
        super().__init__(f"{tool} probe for {address} failed: {detail}", address)
        self.tool = tool
        self.detail = detail


class NoFreeAddress(AllocationError):
    def __init__(self, base: str, attempts: int):
        super().__init__(
            f"Could not find a free IP near {base} after {attempts} attempts", base
        )
        self.attempts = attempts


class SubnetConflict(StaticIPError):
    """The target subnet is already bound to another interface"""

    def __init__(self, network: str, conflicts: list):
        names = ", ".join(f"{c.interface} ({c.cidr})" for c in conflicts)
        super().__init__(f"Subnet {network} already exists on: {names}")
        self.network = network
        self.conflicts = conflicts


class ReconcileError(StaticIPError):
    """
    A profile operation failed.

    Carries enough context for manual recovery: the interface, the candidate,
    the profile name and the backup written before the failure, if any.
    """

    action = "reconcile"

    def __init__(
        self,
        message: str,
        interface: Optional[str] = None,
        profile: Optional[str] = None,
        candidate: Optional[str] = None,
        backup: Optional[Path] = None,
    ):
        super().__init__(message)
        self.interface = interface
        self.profile = profile
        self.candidate = candidate
        self.backup = backup

    def __str__(self) -> str:
        details = [super().__str__()]
        if self.interface:
            details.append(f"interface={self.interface}")
        if self.profile:
            details.append(f"profile={self.profile}")
        if self.candidate:
            details.append(f"candidate={self.candidate}")
        if self.backup:
            details.append(f"backup={self.backup}")
        return " | ".join(details)


class ProfileCreateFailed(ReconcileError):
    action = "create"


class BackupFailed(ReconcileError):
    action = "backup"


class ApplyFailed(ReconcileError):
    action = "apply"


class ActivateFailed(ReconcileError):
    action = "activate"
